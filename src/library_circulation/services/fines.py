"""
Fine accrual service for the Library Circulation Engine.

Overdue detection is an explicit, idempotent scan rather than a timer:

1. Every transaction whose due date has passed and which did not come back on
   time is a candidate
2. Candidates still out with the member are flagged OVERDUE
3. A candidate without a fine gets one for each whole day late, at the
   configured daily rate; the amount is fixed when the fine is issued

Each candidate is handled in its own unit of work. The UNIQUE constraint on
``fines.transaction_id`` makes a fine issued by a concurrent scan show up here
as a duplicate, which is counted as skipped, so repeated or overlapping scans
never charge a transaction twice.
"""

import functools
import logging
from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, Field

from ..database.exceptions import DuplicateError
from ..database.gateway import PersistenceGateway
from ..models.circulation import Transaction, TransactionStatus
from ..models.fine import Fine, FineStatus
from ..observability import trace_operation
from .errors import (
    AlreadyPaid,
    DeadlineExceeded,
    FineExists,
    FineNotFound,
    MemberNotFound,
    TransactionNotFound,
)
from .locks import Deadline, book_key, member_key
from .unit_of_work import ServiceBase, new_id

logger = logging.getLogger(__name__)

CENTS = Decimal("0.01")


class AccrualSummary(BaseModel):
    """Outcome of one accrual scan."""

    scanned: int = Field(0, description="Past-due transactions examined")
    flagged_overdue: int = Field(0, description="Open transactions newly marked overdue")
    issued: int = Field(0, description="Fines issued by this scan")
    skipped: int = Field(0, description="Transactions that already had a fine")
    pending: int = Field(0, description="Past due by less than a whole day")
    interrupted: bool = Field(
        False, description="Stopped at the deadline before every transaction was examined"
    )
    fines: list[Fine] = Field(default_factory=list, description="The newly issued fines")


class Assessment(BaseModel):
    """What applying the accrual rule to one transaction did."""

    flagged: bool = False
    fine: Fine | None = None
    already_fined: bool = False
    past_due: bool = False


class FineAccrualService(ServiceBase):
    """Issues fines for overdue transactions and records payments."""

    @trace_operation("run_fine_accrual")
    def run_accrual_scan(self, timeout: float | None = None) -> AccrualSummary:
        """
        Scan all past-due transactions and issue missing fines.

        Running the scan again over the same data issues nothing new. The
        timeout bounds the whole scan: once it passes, the scan stops and
        reports itself as interrupted. Fines issued up to then stay issued and
        the next scan picks up the rest.
        """
        deadline = self._deadline("run_fine_accrual", timeout)
        now = self.clock()
        with self._read_only() as gateway:
            candidates = gateway.transactions.list_past_due(now)

        summary = AccrualSummary()
        for txn in candidates:
            if deadline.expired:
                summary.interrupted = True
                break
            try:
                assessment = self._assess(txn, now, deadline)
            except TransactionNotFound:
                summary.scanned += 1
                continue
            except DeadlineExceeded:
                summary.interrupted = True
                break
            summary.scanned += 1

            if assessment.flagged:
                summary.flagged_overdue += 1
            if assessment.fine is not None:
                summary.issued += 1
                summary.fines.append(assessment.fine)
            elif assessment.already_fined:
                summary.skipped += 1
            elif assessment.past_due:
                summary.pending += 1

        logger.info(
            "Fine accrual scan: %d scanned, %d flagged overdue, %d issued, %d skipped",
            summary.scanned,
            summary.flagged_overdue,
            summary.issued,
            summary.skipped,
        )
        if summary.interrupted:
            logger.warning(
                "Fine accrual scan stopped at its deadline after %d of %d transactions",
                summary.scanned,
                len(candidates),
            )
        return summary

    @trace_operation("assess_fine")
    def assess_transaction(self, transaction_id: str, timeout: float | None = None) -> Fine | None:
        """
        Apply the accrual rule to a single transaction.

        Returns:
            The fine issued by this call, or None if none was due or one
            already existed

        Raises:
            TransactionNotFound: If the transaction does not exist
        """
        deadline = self._deadline("assess_fine", timeout)
        with self._read_only() as gateway:
            txn = gateway.transactions.get_by_id(transaction_id)
        if txn is None:
            raise TransactionNotFound(transaction_id)
        return self._assess(txn, self.clock(), deadline).fine

    def _assess(self, txn: Transaction, now: datetime, deadline: Deadline) -> Assessment:
        keys = [book_key(txn.book_isbn), member_key(txn.member_id)]
        with self._unit_of_work("assess_fine", keys, deadline=deadline) as gateway:
            # Re-read under the locks; a return may have landed since the scan query
            current = gateway.transactions.get_by_id(txn.id)
            if current is None:
                raise TransactionNotFound(txn.id)
            return self.assess_in(gateway, current, now)

    def assess_in(
        self, gateway: PersistenceGateway, txn: Transaction, now: datetime
    ) -> Assessment:
        """
        Apply the accrual rule inside the caller's unit of work.

        The caller holds the book and member locks; whatever this writes
        commits or rolls back with the rest of the caller's changes.
        """
        result = Assessment()
        if not txn.is_past_due(now):
            return result
        result.past_due = True

        if txn.status == TransactionStatus.ACTIVE:
            txn = gateway.transactions.save(txn.model_copy(update={"status": TransactionStatus.OVERDUE}))
            result.flagged = True
            logger.info("Transaction %s is overdue (due %s)", txn.id, txn.due_date)

        if gateway.fines.get_by_transaction_id(txn.id) is not None:
            result.already_fined = True
            return result

        days = txn.days_overdue(now)
        if days < 1:
            return result

        fine = Fine(
            id=new_id("fine"),
            transaction_id=txn.id,
            amount=txn.calculate_fine(now, self.config.fine_rate_per_day),
            issued_date=now,
            reason=f"Overdue by {days} day(s)",
        )
        try:
            # Savepoint keeps the overdue flag if a concurrent scan won the insert
            with gateway.session.begin_nested():
                result.fine = gateway.fines.insert(fine)
        except DuplicateError:
            logger.info("Fine for %s was issued concurrently; skipping", txn.id)
            result.already_fined = True
            return result

        logger.info("Issued fine %s of %s for %s", fine.id, fine.amount, txn.id)
        return result

    @trace_operation("issue_manual_fine")
    def issue_manual_fine(
        self,
        transaction_id: str,
        amount: Decimal | str | int,
        reason: str | None = None,
        timeout: float | None = None,
    ) -> Fine:
        """
        Issue a fine chosen by an operator.

        Raises:
            TransactionNotFound: If the transaction does not exist
            FineExists: If the transaction already has a fine
            ValueError: If the amount is negative
        """
        value = Decimal(str(amount)).quantize(CENTS)
        if value < 0:
            raise ValueError("Fine amount cannot be negative")

        with self._read_only() as gateway:
            txn = gateway.transactions.get_by_id(transaction_id)
        if txn is None:
            raise TransactionNotFound(transaction_id)

        keys = [book_key(txn.book_isbn), member_key(txn.member_id)]
        with self._unit_of_work(
            "issue_manual_fine",
            keys,
            timeout,
            conflict=functools.partial(FineExists, transaction_id),
        ) as gateway:
            if gateway.fines.get_by_transaction_id(transaction_id) is not None:
                raise FineExists(transaction_id)
            fine = gateway.fines.insert(
                Fine(
                    id=new_id("fine"),
                    transaction_id=transaction_id,
                    amount=value,
                    issued_date=self.clock(),
                    reason=reason,
                )
            )

        logger.info("Operator issued fine %s of %s for %s", fine.id, fine.amount, transaction_id)
        return fine

    @trace_operation("pay_fine")
    def pay_fine(self, fine_id: str, timeout: float | None = None) -> Fine:
        """
        Record payment of a fine.

        Of several concurrent payments for the same fine exactly one succeeds;
        the others see AlreadyPaid.

        Raises:
            FineNotFound: If the fine does not exist
            AlreadyPaid: If the fine was already paid
        """
        with self._unit_of_work("pay_fine", [f"fine:{fine_id}"], timeout) as gateway:
            fine = gateway.fines.get_by_id(fine_id)
            if fine is None:
                raise FineNotFound(fine_id)
            if fine.status == FineStatus.PAID:
                raise AlreadyPaid(fine_id)
            if not gateway.fines.mark_paid(fine_id, self.clock()):
                raise AlreadyPaid(fine_id)
            paid = gateway.fines.get_by_id(fine_id)

        logger.info("Fine %s paid (%s)", fine_id, paid.amount)
        return paid

    def list_unpaid_fines(self, member_id: str) -> list[Fine]:
        """Unpaid fines on a member's transactions, oldest first."""
        with self._read_only() as gateway:
            self._require_member(gateway, member_id)
            return gateway.fines.list_unpaid_by_member(member_id)

    def list_member_fines(self, member_id: str) -> list[Fine]:
        """All fines on a member's transactions, oldest first."""
        with self._read_only() as gateway:
            self._require_member(gateway, member_id)
            return gateway.fines.list_by_member(member_id)

    def outstanding_balance(self, member_id: str) -> Decimal:
        """Total of a member's unpaid fines."""
        with self._read_only() as gateway:
            self._require_member(gateway, member_id)
            return gateway.fines.unpaid_total_by_member(member_id)

    @staticmethod
    def _require_member(gateway: PersistenceGateway, member_id: str) -> None:
        if not gateway.members.exists(member_id):
            raise MemberNotFound(member_id)
