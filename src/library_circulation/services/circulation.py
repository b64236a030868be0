"""
Circulation engine for the Library Circulation Engine.

This is the state machine behind the four circulation operations:

1. **Borrow**: create an ACTIVE transaction and take a copy off the shelf
2. **Reserve**: queue a member for a book
3. **Return**: close an open transaction and put the copy back
4. **Cancel reservation**: withdraw an ACTIVE reservation

Preconditions are checked in a fixed order and the first failure wins, so the
same request against the same state always yields the same error. Each
operation runs as one unit of work holding the locks of the book and the
member it touches: the new transaction and the inventory decrement commit
together or not at all, and two borrows can never both pass a limit check for
the last free slot.
"""

import logging
from collections.abc import Callable
from datetime import datetime, timedelta

from ..config import CirculationConfig, ReservationPolicy
from ..database.gateway import PersistenceGateway
from ..database.session import DatabaseManager
from ..models.book import normalize_isbn
from ..models.circulation import (
    Reservation,
    ReservationStatus,
    Transaction,
    TransactionStatus,
)
from ..models.fine import Fine
from ..observability import trace_operation
from .errors import (
    AlreadyBorrowed,
    AlreadyCancelled,
    BookAvailable,
    BookNotFound,
    BorrowLimitExceeded,
    DeadlineExceeded,
    MemberInactive,
    MemberNotFound,
    NoActiveBorrow,
    NotAvailable,
    ReservationExists,
    ReservationLimitExceeded,
    ReservationNotActive,
    ReservationNotFound,
    TransactionNotFound,
)
from .fines import FineAccrualService
from .inventory import InventoryLedger
from .locks import Deadline, KeyedLockRegistry, book_key, member_key
from .unit_of_work import ServiceBase, new_id

logger = logging.getLogger(__name__)


class CirculationEngine(ServiceBase):
    """
    Enforces the borrow, return and reservation rules.

    Args:
        db_manager: Database to run against (defaults to the global manager)
        config: Circulation rules (defaults to the global configuration)
        locks: Lock registry shared with other services in the process
        clock: Source of "now"; injectable for tests
        fines: Fine service applying the fine rule when a copy comes back
    """

    def __init__(
        self,
        db_manager: DatabaseManager | None = None,
        config: CirculationConfig | None = None,
        locks: KeyedLockRegistry | None = None,
        clock: Callable[[], datetime] = datetime.now,
        fines: FineAccrualService | None = None,
    ):
        super().__init__(db_manager, config, locks, clock)
        self.fines = fines or FineAccrualService(self.db, self.config, self.locks, self.clock)

    # === Borrow ===

    @trace_operation("borrow")
    def borrow(self, isbn: str, member_id: str, timeout: float | None = None) -> Transaction:
        """
        Lend one copy of a book to a member.

        Checks, in order:
            1. the book exists (BookNotFound)
            2. a copy is free (NotAvailable)
            3. the member does not already have this book (AlreadyBorrowed)
            4. the member is under the borrowing limit (BorrowLimitExceeded)
            5. the member exists and is active (MemberNotFound, MemberInactive)

        A successful borrow also fulfils the member's active reservation for
        the book, if there is one.

        Raises:
            DeadlineExceeded: If the operation could not finish in time
            PersistenceFailure: If the database failed
        """
        isbn = normalize_isbn(isbn)
        keys = [book_key(isbn), member_key(member_id)]

        with self._unit_of_work("borrow", keys, timeout) as gateway:
            now = self.clock()

            book = gateway.books.get_by_isbn(isbn)
            if book is None:
                raise BookNotFound(isbn)
            if book.available_copies <= 0:
                raise NotAvailable(isbn)
            if gateway.transactions.get_active_by_member_and_isbn(member_id, isbn) is not None:
                raise AlreadyBorrowed(isbn, member_id)
            limit = self.config.borrowing_limit
            if gateway.transactions.count_open_by_member(member_id) >= limit:
                raise BorrowLimitExceeded(member_id, limit)
            self._require_active_member(gateway, member_id)

            InventoryLedger(gateway).decrement(isbn)
            transaction = gateway.transactions.save(
                Transaction(
                    id=new_id("txn"),
                    book_isbn=isbn,
                    member_id=member_id,
                    transaction_date=now,
                    due_date=now + timedelta(days=self.config.loan_period_days),
                    status=TransactionStatus.ACTIVE,
                )
            )

            reservation = gateway.reservations.get_active_by_member_and_isbn(member_id, isbn)
            if reservation is not None:
                gateway.reservations.save(
                    reservation.model_copy(update={"status": ReservationStatus.FULFILLED})
                )
                logger.info("Reservation %s fulfilled by borrow", reservation.id)

        logger.info(
            "Member %s borrowed %s (transaction %s, due %s)",
            member_id,
            isbn,
            transaction.id,
            transaction.due_date,
        )
        return transaction

    # === Reserve ===

    @trace_operation("reserve")
    def reserve(self, isbn: str, member_id: str, timeout: float | None = None) -> Reservation:
        """
        Place a reservation for a book.

        Checks, in order:
            1. the book exists (BookNotFound)
            2. no active reservation for this book and member (ReservationExists)
            3. the member is under the reservation limit (ReservationLimitExceeded)
            4. under the ``require_unavailable`` policy, no copy is free (BookAvailable)
            5. the member exists and is active (MemberNotFound, MemberInactive)

        The reservation lasts for the configured window; it never touches
        the inventory counter.
        """
        isbn = normalize_isbn(isbn)
        keys = [book_key(isbn), member_key(member_id)]

        with self._unit_of_work("reserve", keys, timeout) as gateway:
            now = self.clock()

            book = gateway.books.get_by_isbn(isbn)
            if book is None:
                raise BookNotFound(isbn)
            if gateway.reservations.get_active_by_member_and_isbn(member_id, isbn) is not None:
                raise ReservationExists(isbn, member_id)
            limit = self.config.reservation_limit
            if gateway.reservations.count_active_by_member(member_id) >= limit:
                raise ReservationLimitExceeded(member_id, limit)
            if (
                self.config.reservation_policy == ReservationPolicy.REQUIRE_UNAVAILABLE
                and book.available_copies > 0
            ):
                raise BookAvailable(isbn)
            self._require_active_member(gateway, member_id)

            reservation = gateway.reservations.save(
                Reservation(
                    id=new_id("res"),
                    book_isbn=isbn,
                    member_id=member_id,
                    reservation_date=now,
                    expiration_date=Reservation.window_end(now, self.config.reservation_window_days),
                    status=ReservationStatus.ACTIVE,
                )
            )

        logger.info("Member %s reserved %s (reservation %s)", member_id, isbn, reservation.id)
        return reservation

    # === Return ===

    @trace_operation("return")
    def return_book(
        self,
        transaction_id: str | None = None,
        *,
        isbn: str | None = None,
        member_id: str | None = None,
        timeout: float | None = None,
    ) -> tuple[Transaction, Fine | None]:
        """
        Take a lent copy back.

        The transaction is identified either by ``transaction_id`` or by
        ``isbn`` and ``member_id`` together. Both ACTIVE and OVERDUE
        transactions can be returned.

        The fine rule is applied to the transaction in the same database
        transaction as the return, so a late return is charged and either both
        commit or neither does.

        Returns:
            The returned transaction and the fine issued for it, if any

        Raises:
            TransactionNotFound: If ``transaction_id`` is unknown
            NoActiveBorrow: If there is no open transaction to return
            InventoryOverflow: If every copy of the book is already on the shelf
        """
        if transaction_id is None and (isbn is None or member_id is None):
            raise ValueError("Provide a transaction_id, or both isbn and member_id")

        if transaction_id is not None:
            with self._read_only() as gateway:
                found = gateway.transactions.get_by_id(transaction_id)
            if found is None:
                raise TransactionNotFound(transaction_id)
            isbn, member_id = found.book_isbn, found.member_id
        else:
            isbn = normalize_isbn(isbn)

        keys = [book_key(isbn), member_key(member_id)]
        with self._unit_of_work("return", keys, timeout) as gateway:
            now = self.clock()

            if transaction_id is not None:
                transaction = gateway.transactions.get_by_id(transaction_id)
                if transaction is None or not transaction.is_open:
                    raise NoActiveBorrow(
                        f"Transaction {transaction_id} is not open",
                        transaction_id=transaction_id,
                    )
            else:
                transaction = gateway.transactions.get_active_by_member_and_isbn(member_id, isbn)
                if transaction is None:
                    raise NoActiveBorrow(
                        f"Member {member_id} has no open loan of {isbn}",
                        isbn=isbn,
                        member_id=member_id,
                    )

            InventoryLedger(gateway).increment(transaction.book_isbn)
            returned = gateway.transactions.save(
                transaction.model_copy(
                    update={
                        "status": TransactionStatus.RETURNED,
                        "return_date": max(now, transaction.transaction_date),
                    }
                )
            )
            fine = self.fines.assess_in(gateway, returned, now).fine

        logger.info("Transaction %s returned by %s", returned.id, returned.member_id)
        return returned, fine

    # === Cancel reservation ===

    @trace_operation("cancel_reservation")
    def cancel_reservation(self, reservation_id: str, timeout: float | None = None) -> Reservation:
        """
        Cancel an active reservation.

        Raises:
            ReservationNotFound: If the reservation does not exist
            AlreadyCancelled: If it was already cancelled
            ReservationNotActive: If it was fulfilled or has expired
        """
        with self._read_only() as gateway:
            found = gateway.reservations.get_by_id(reservation_id)
        if found is None:
            raise ReservationNotFound(reservation_id)

        keys = [book_key(found.book_isbn), member_key(found.member_id)]
        with self._unit_of_work("cancel_reservation", keys, timeout) as gateway:
            reservation = gateway.reservations.get_by_id(reservation_id)
            if reservation is None:
                raise ReservationNotFound(reservation_id)
            if reservation.status == ReservationStatus.CANCELLED:
                raise AlreadyCancelled(reservation_id)
            if reservation.status != ReservationStatus.ACTIVE:
                raise ReservationNotActive(reservation_id, reservation.status.value)

            cancelled = gateway.reservations.save(
                reservation.model_copy(update={"status": ReservationStatus.CANCELLED})
            )

        logger.info("Reservation %s cancelled", reservation_id)
        return cancelled

    # === Reservation expiry ===

    @trace_operation("expire_reservations")
    def expire_reservations(self, timeout: float | None = None) -> int:
        """
        Move active reservations past their window to EXPIRED.

        The timeout bounds the whole sweep. Once it passes the sweep stops;
        reservations it did not reach stay active until the next sweep.

        Returns:
            Number of reservations expired
        """
        deadline = self._deadline("expire_reservations", timeout)
        now = self.clock()
        with self._read_only() as gateway:
            stale = gateway.reservations.list_expired_active(now)

        expired = 0
        try:
            for found in stale:
                deadline.check()
                if self._expire_one(found, now, deadline):
                    expired += 1
        except DeadlineExceeded:
            logger.warning(
                "Reservation sweep stopped at its deadline after %d of %d", expired, len(stale)
            )

        if expired:
            logger.info("Expired %d reservation(s)", expired)
        return expired

    def _expire_one(self, found: Reservation, now: datetime, deadline: Deadline) -> bool:
        keys = [book_key(found.book_isbn), member_key(found.member_id)]
        with self._unit_of_work("expire_reservation", keys, deadline=deadline) as gateway:
            reservation = gateway.reservations.get_by_id(found.id)
            if reservation is None or not reservation.is_expired(now):
                return False
            gateway.reservations.save(
                reservation.model_copy(update={"status": ReservationStatus.EXPIRED})
            )
        return True

    # === Queries ===

    def list_member_transactions(self, member_id: str, open_only: bool = False) -> list[Transaction]:
        with self._read_only() as gateway:
            return gateway.transactions.list_by_member(member_id, open_only=open_only)

    def list_member_reservations(self, member_id: str, active_only: bool = False) -> list[Reservation]:
        with self._read_only() as gateway:
            return gateway.reservations.list_by_member(member_id, active_only=active_only)

    def get_transaction(self, transaction_id: str) -> Transaction:
        with self._read_only() as gateway:
            transaction = gateway.transactions.get_by_id(transaction_id)
        if transaction is None:
            raise TransactionNotFound(transaction_id)
        return transaction

    @staticmethod
    def _require_active_member(gateway: PersistenceGateway, member_id: str) -> None:
        member = gateway.members.get_by_id(member_id)
        if member is None:
            raise MemberNotFound(member_id)
        if not member.is_active:
            raise MemberInactive(member_id)
