"""
Library Circulation Engine models.

Pydantic models for the entity model. Every persistence call returns one of
these, never an untyped row:

- Book: catalog entries with availability counters
- Member: registered borrowers
- Transaction / Reservation: circulation records
- Fine: charges against overdue transactions
"""

from .book import Book, normalize_isbn
from .circulation import (
    OPEN_TRANSACTION_STATUSES,
    Reservation,
    ReservationStatus,
    Transaction,
    TransactionStatus,
)
from .fine import Fine, FineStatus
from .member import Member

__all__ = [
    "OPEN_TRANSACTION_STATUSES",
    "Book",
    "Fine",
    "FineStatus",
    "Member",
    "Reservation",
    "ReservationStatus",
    "Transaction",
    "TransactionStatus",
    "normalize_isbn",
]
