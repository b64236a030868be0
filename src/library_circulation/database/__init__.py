"""
Database package for the Library Circulation Engine.

This package provides:
- SQLAlchemy schema definitions (schema.py)
- Session management and connection handling (session.py)
- Repositories returning typed Pydantic entities, bundled by PersistenceGateway

The circulation invariants are backed here by the database itself: CHECK
constraints on the copy counters, conditional counter updates, and a UNIQUE
constraint making one fine per transaction.
"""

from .book_repository import BookRepository
from .fine_repository import FineRepository
from .gateway import PersistenceGateway
from .member_repository import MemberRepository
from .repository import (
    BaseRepository,
    DuplicateError,
    PaginatedResponse,
    PaginationParams,
    PersistenceError,
    RepositoryException,
)
from .reservation_repository import ReservationRepository
from .schema import (
    Base,
    Book,
    Fine,
    LoanTransaction,
    Member,
    MemberPhone,
    Reservation,
)
from .session import (
    DatabaseManager,
    get_db_manager,
    reset_db_manager,
    safe_commit,
    safe_flush,
    safe_query,
    session_scope,
)
from .transaction_repository import TransactionRepository

__all__ = [
    "Base",
    "BaseRepository",
    "Book",
    "BookRepository",
    "DatabaseManager",
    "DuplicateError",
    "Fine",
    "FineRepository",
    "LoanTransaction",
    "Member",
    "MemberPhone",
    "MemberRepository",
    "PaginatedResponse",
    "PaginationParams",
    "PersistenceError",
    "PersistenceGateway",
    "RepositoryException",
    "Reservation",
    "ReservationRepository",
    "TransactionRepository",
    "get_db_manager",
    "reset_db_manager",
    "safe_commit",
    "safe_flush",
    "safe_query",
    "session_scope",
]
