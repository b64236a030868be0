"""
Fine repository implementation for the Library Circulation Engine.

Two guarantees are pushed down to the database here:

- ``insert`` relies on the UNIQUE(transaction_id) constraint, so a racing
  second fine for the same transaction fails with DuplicateError
- ``mark_paid`` is a conditional UPDATE on status, so of two concurrent
  payments only one changes a row
"""

from datetime import datetime
from decimal import Decimal

from sqlalchemy import func, select, update

from ..models.fine import Fine as FineModel
from ..models.fine import FineStatus
from ..observability.context import trace_repository_operation
from .repository import BaseRepository
from .schema import Fine as FineDB
from .schema import LoanTransaction as TransactionDB
from .session import safe_flush, safe_query


class FineRepository(BaseRepository[FineDB, FineModel]):
    """Repository for fines."""

    @property
    def model_class(self):
        return FineDB

    @property
    def response_schema(self):
        return FineModel

    def get_by_id(self, id: str) -> FineModel | None:
        query = select(FineDB).where(FineDB.id == id).execution_options(populate_existing=True)
        fine = safe_query(
            self.session,
            lambda s: s.execute(query).scalar_one_or_none(),
            "Failed to get fine by ID",
        )
        return self._to_response_model(fine) if fine else None

    def get_by_transaction_id(self, transaction_id: str) -> FineModel | None:
        query = select(FineDB).where(FineDB.transaction_id == transaction_id)
        fine = safe_query(
            self.session,
            lambda s: s.execute(query).scalar_one_or_none(),
            "Failed to get fine by transaction",
        )
        return self._to_response_model(fine) if fine else None

    def list_by_member(self, member_id: str, unpaid_only: bool = False) -> list[FineModel]:
        """Fines charged against a member's transactions, oldest first."""
        query = (
            select(FineDB)
            .join(TransactionDB, FineDB.transaction_id == TransactionDB.id)
            .where(TransactionDB.member_id == member_id)
        )
        if unpaid_only:
            query = query.where(FineDB.status == FineStatus.UNPAID)
        query = query.order_by(FineDB.issued_date)

        results = safe_query(
            self.session,
            lambda s: s.execute(query).scalars().all(),
            "Failed to list member fines",
        )
        return [self._to_response_model(f) for f in results]

    def list_unpaid_by_member(self, member_id: str) -> list[FineModel]:
        return self.list_by_member(member_id, unpaid_only=True)

    def unpaid_total_by_member(self, member_id: str) -> Decimal:
        query = (
            select(func.coalesce(func.sum(FineDB.amount), 0))
            .join(TransactionDB, FineDB.transaction_id == TransactionDB.id)
            .where(TransactionDB.member_id == member_id, FineDB.status == FineStatus.UNPAID)
        )
        total = safe_query(
            self.session,
            lambda s: s.execute(query).scalar(),
            "Failed to total unpaid fines",
        )
        return Decimal(str(total or 0)).quantize(Decimal("0.01"))

    def insert(self, fine: FineModel) -> FineModel:
        """
        Insert a new fine.

        Raises:
            DuplicateError: If the transaction already has a fine
        """
        db_obj = FineDB(**fine.model_dump())
        with trace_repository_operation("fine", "insert", "fines"):
            self.session.add(db_obj)
            safe_flush(self.session, "insert fine")
        return self._to_response_model(db_obj)

    def save(self, fine: FineModel) -> FineModel:
        """Insert or update a fine."""
        return self._save(FineDB(**fine.model_dump()), "save fine")

    def mark_paid(self, fine_id: str, paid_at: datetime) -> bool:
        """
        Move an unpaid fine to paid.

        Returns:
            True if this call performed the transition, False if the fine was
            missing or already paid
        """
        statement = (
            update(FineDB)
            .where(FineDB.id == fine_id, FineDB.status == FineStatus.UNPAID)
            .values(status=FineStatus.PAID, payment_date=paid_at)
            .execution_options(synchronize_session=False)
        )
        with trace_repository_operation("fine", "mark_paid", "fines"):
            result = safe_query(
                self.session,
                lambda s: s.execute(statement),
                "Failed to mark fine paid",
            )
        return result.rowcount == 1
