"""
Persistence gateway for the Library Circulation Engine.

The engine never talks to SQLAlchemy directly. Each unit of work builds one
gateway over its session and reaches every entity through it, so all reads
and writes of an operation share the same database transaction.
"""

from sqlalchemy.orm import Session

from .book_repository import BookRepository
from .fine_repository import FineRepository
from .member_repository import MemberRepository
from .reservation_repository import ReservationRepository
from .transaction_repository import TransactionRepository


class PersistenceGateway:
    """Bundle of repositories bound to a single session."""

    def __init__(self, session: Session):
        self.session = session
        self.books = BookRepository(session)
        self.members = MemberRepository(session)
        self.transactions = TransactionRepository(session)
        self.reservations = ReservationRepository(session)
        self.fines = FineRepository(session)
