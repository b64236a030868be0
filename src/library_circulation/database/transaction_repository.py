"""
Transaction repository implementation for the Library Circulation Engine.

Borrow transactions are "open" while the copy is out with the member, i.e.
in ACTIVE or OVERDUE status. Limit checks and return lookups count open
transactions, so a loan flagged overdue still occupies one of the member's
borrowing slots and can still be returned.
"""

from datetime import datetime

from sqlalchemy import and_, desc, func, or_, select

from ..models.book import normalize_isbn
from ..models.circulation import OPEN_TRANSACTION_STATUSES
from ..models.circulation import Transaction as TransactionModel
from .repository import BaseRepository
from .schema import LoanTransaction as TransactionDB
from .session import safe_query


class TransactionRepository(BaseRepository[TransactionDB, TransactionModel]):
    """Repository for borrow transactions."""

    @property
    def model_class(self):
        return TransactionDB

    @property
    def response_schema(self):
        return TransactionModel

    def get_active_by_member_and_isbn(self, member_id: str, isbn: str) -> TransactionModel | None:
        """The member's open transaction for a book, if any."""
        query = (
            select(TransactionDB)
            .where(
                TransactionDB.member_id == member_id,
                TransactionDB.book_isbn == normalize_isbn(isbn),
                TransactionDB.status.in_(OPEN_TRANSACTION_STATUSES),
            )
            .order_by(TransactionDB.transaction_date)
            .limit(1)
        )
        txn = safe_query(
            self.session,
            lambda s: s.execute(query).scalar_one_or_none(),
            "Failed to get open transaction",
        )
        return self._to_response_model(txn) if txn else None

    def list_by_member(self, member_id: str, open_only: bool = False) -> list[TransactionModel]:
        """A member's transactions, newest first."""
        query = select(TransactionDB).where(TransactionDB.member_id == member_id)
        if open_only:
            query = query.where(TransactionDB.status.in_(OPEN_TRANSACTION_STATUSES))
        query = query.order_by(desc(TransactionDB.transaction_date))

        results = safe_query(
            self.session,
            lambda s: s.execute(query).scalars().all(),
            "Failed to list member transactions",
        )
        return [self._to_response_model(t) for t in results]

    def list_past_due(self, now: datetime) -> list[TransactionModel]:
        """
        Transactions whose due date has passed and that did not come back in time.

        That is: still out after the due date, or returned after it.
        """
        query = (
            select(TransactionDB)
            .where(
                and_(
                    TransactionDB.due_date < now,
                    or_(
                        TransactionDB.return_date.is_(None),
                        TransactionDB.return_date > TransactionDB.due_date,
                    ),
                )
            )
            .order_by(TransactionDB.due_date)
        )
        results = safe_query(
            self.session,
            lambda s: s.execute(query).scalars().all(),
            "Failed to list past-due transactions",
        )
        return [self._to_response_model(t) for t in results]

    def count_open_by_member(self, member_id: str) -> int:
        query = (
            select(func.count())
            .select_from(TransactionDB)
            .where(
                TransactionDB.member_id == member_id,
                TransactionDB.status.in_(OPEN_TRANSACTION_STATUSES),
            )
        )
        return (
            safe_query(
                self.session,
                lambda s: s.execute(query).scalar(),
                "Failed to count open transactions for member",
            )
            or 0
        )

    def count_open_by_isbn(self, isbn: str) -> int:
        query = (
            select(func.count())
            .select_from(TransactionDB)
            .where(
                TransactionDB.book_isbn == normalize_isbn(isbn),
                TransactionDB.status.in_(OPEN_TRANSACTION_STATUSES),
            )
        )
        return (
            safe_query(
                self.session,
                lambda s: s.execute(query).scalar(),
                "Failed to count open transactions for book",
            )
            or 0
        )

    def save(self, transaction: TransactionModel) -> TransactionModel:
        """Insert or update a transaction."""
        return self._save(TransactionDB(**transaction.model_dump()), "save transaction")
