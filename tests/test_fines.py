"""
Tests for the fine accrual service.

These tests verify that:
1. Fines are charged per whole day late, once per transaction
2. Repeated scans never charge twice
3. Returns made on time are never fined
4. Payment commits exactly once
"""

import time
from datetime import timedelta
from decimal import Decimal

import pytest

from library_circulation.config import CirculationConfig
from library_circulation.database import FineRepository, PersistenceGateway
from library_circulation.models import Fine, FineStatus, TransactionStatus
from library_circulation.services import FineAccrualService
from library_circulation.services.errors import (
    AlreadyPaid,
    FineExists,
    FineNotFound,
    MemberNotFound,
    TransactionNotFound,
)


@pytest.fixture
def loan(library, add_book, add_member):
    return library.circulation.borrow(add_book().isbn, add_member().id)


class TestAccrualScan:
    def test_scenario_five_days_overdue(self, library, loan, clock):
        clock.advance(days=14 + 5)

        summary = library.fines.run_accrual_scan()

        assert summary.issued == 1
        fine = summary.fines[0]
        assert fine.transaction_id == loan.id
        assert fine.amount == Decimal("5.00")
        assert fine.status == FineStatus.UNPAID
        assert fine.issued_date == clock.now
        assert fine.reason == "Overdue by 5 day(s)"

        again = library.fines.run_accrual_scan()
        assert again.issued == 0
        assert again.skipped == 1
        assert len(library.fines.list_member_fines(loan.member_id)) == 1

    def test_scan_flags_open_loans_overdue(self, library, loan, clock):
        clock.advance(days=15)

        summary = library.fines.run_accrual_scan()

        assert summary.flagged_overdue == 1
        assert library.circulation.get_transaction(loan.id).status == TransactionStatus.OVERDUE
        assert library.fines.run_accrual_scan().flagged_overdue == 0

    def test_nothing_due_before_due_date(self, library, loan, clock):
        clock.advance(days=13)

        summary = library.fines.run_accrual_scan()

        assert summary.scanned == 0
        assert summary.issued == 0
        assert library.circulation.get_transaction(loan.id).status == TransactionStatus.ACTIVE

    def test_partial_day_is_pending(self, library, loan, clock):
        clock.advance(days=14, hours=12)

        summary = library.fines.run_accrual_scan()

        assert summary.issued == 0
        assert summary.pending == 1
        assert summary.flagged_overdue == 1

        clock.advance(hours=12)
        assert library.fines.run_accrual_scan().issued == 1

    def test_amount_fixed_at_issue(self, library, loan, clock):
        clock.advance(days=16)
        library.fines.run_accrual_scan()
        clock.advance(days=10)
        library.fines.run_accrual_scan()

        fines = library.fines.list_member_fines(loan.member_id)
        assert [f.amount for f in fines] == [Decimal("2.00")]

    def test_returned_on_time_not_fined(self, library, loan, clock):
        clock.advance(days=10)
        library.circulation.return_book(loan.id)
        clock.advance(days=30)

        summary = library.fines.run_accrual_scan()

        assert summary.scanned == 0
        assert library.fines.list_member_fines(loan.member_id) == []

    def test_late_return_fined_against_return_date(self, library, loan, clock):
        clock.advance(days=18)
        # Return already assesses the fine; the scan afterwards must not add one
        _, fine = library.circulation.return_book(loan.id)
        clock.advance(days=30)

        summary = library.fines.run_accrual_scan()

        assert fine.amount == Decimal("4.00")
        assert summary.issued == 0
        assert summary.skipped == 1
        transaction = library.circulation.get_transaction(loan.id)
        assert transaction.status == TransactionStatus.RETURNED

    def test_configured_rate(self, test_db_path, db_manager, library, loan, clock):
        config = CirculationConfig(
            _env_file=None, database_path=test_db_path, fine_rate_per_day=Decimal("0.25")
        )
        service = FineAccrualService(db_manager, config, clock=clock)
        clock.advance(days=14 + 7)

        summary = service.run_accrual_scan()

        assert summary.fines[0].amount == Decimal("1.75")

    def test_many_transactions(self, library, add_book, add_member, clock):
        members = [add_member() for _ in range(3)]
        for member in members:
            library.circulation.borrow(add_book().isbn, member.id)
        clock.advance(days=20)

        summary = library.fines.run_accrual_scan()

        assert summary.scanned == 3
        assert summary.issued == 3
        assert {f.amount for f in summary.fines} == {Decimal("6.00")}
        assert summary.interrupted is False

    def test_fine_issued_behind_the_scan_is_skipped(self, library, loan, clock, monkeypatch):
        clock.advance(days=20)
        with library.db.session_scope() as session:
            PersistenceGateway(session).fines.insert(
                Fine(
                    id="fine_000000000001",
                    transaction_id=loan.id,
                    amount=Decimal("2.00"),
                    issued_date=clock.now,
                    reason="Issued at the desk",
                )
            )
        # The lookup misses, so only the UNIQUE constraint stops a second fine
        monkeypatch.setattr(FineRepository, "get_by_transaction_id", lambda self, txn_id: None)

        summary = library.fines.run_accrual_scan()

        assert summary.issued == 0
        assert summary.skipped == 1
        assert summary.flagged_overdue == 1
        monkeypatch.undo()
        assert library.circulation.get_transaction(loan.id).status == TransactionStatus.OVERDUE
        fines = library.fines.list_member_fines(loan.member_id)
        assert [f.id for f in fines] == ["fine_000000000001"]
        assert fines[0].amount == Decimal("2.00")


class TestScanDeadline:
    def test_expired_deadline_issues_nothing(self, library, loan, clock):
        clock.advance(days=20)

        summary = library.fines.run_accrual_scan(timeout=0)

        assert summary.interrupted is True
        assert summary.issued == 0
        assert summary.scanned == 0
        assert library.circulation.get_transaction(loan.id).status == TransactionStatus.ACTIVE
        assert library.fines.run_accrual_scan().issued == 1

    def test_deadline_bounds_the_whole_scan(
        self, library, add_book, add_member, clock, monkeypatch
    ):
        for _ in range(10):
            library.circulation.borrow(add_book().isbn, add_member().id)
        clock.advance(days=20)
        assess_in = library.fines.assess_in

        def slow_assess(gateway, txn, now):
            time.sleep(0.05)
            return assess_in(gateway, txn, now)

        monkeypatch.setattr(library.fines, "assess_in", slow_assess)
        started = time.monotonic()
        first = library.fines.run_accrual_scan(timeout=0.12)
        elapsed = time.monotonic() - started
        monkeypatch.undo()

        assert first.interrupted is True
        assert first.issued < 10
        assert elapsed < 0.5
        rest = library.fines.run_accrual_scan()
        assert rest.interrupted is False
        assert rest.issued == 10 - first.issued


class TestAssessTransaction:
    def test_assess_single_transaction(self, library, loan, clock):
        clock.advance(days=17)

        fine = library.fines.assess_transaction(loan.id)

        assert fine.amount == Decimal("3.00")
        assert library.fines.assess_transaction(loan.id) is None

    def test_not_yet_due(self, library, loan):
        assert library.fines.assess_transaction(loan.id) is None

    def test_unknown_transaction(self, library):
        with pytest.raises(TransactionNotFound):
            library.fines.assess_transaction("txn_doesnotexist")


class TestManualFines:
    def test_issue_manual_fine(self, library, loan):
        fine = library.fines.issue_manual_fine(loan.id, "12.50", reason="Damaged cover")

        assert fine.amount == Decimal("12.50")
        assert fine.reason == "Damaged cover"
        assert fine.status == FineStatus.UNPAID

    def test_manual_fine_blocks_accrual(self, library, loan, clock):
        library.fines.issue_manual_fine(loan.id, 2)
        clock.advance(days=20)

        summary = library.fines.run_accrual_scan()

        assert summary.issued == 0
        assert summary.skipped == 1

    def test_second_fine_refused(self, library, loan):
        library.fines.issue_manual_fine(loan.id, "1.00")
        with pytest.raises(FineExists):
            library.fines.issue_manual_fine(loan.id, "1.00")

    def test_negative_amount(self, library, loan):
        with pytest.raises(ValueError):
            library.fines.issue_manual_fine(loan.id, "-1")

    def test_unknown_transaction(self, library):
        with pytest.raises(TransactionNotFound):
            library.fines.issue_manual_fine("txn_doesnotexist", "1.00")


class TestPayment:
    @pytest.fixture
    def fine(self, library, loan, clock):
        clock.advance(days=19)
        return library.fines.run_accrual_scan().fines[0]

    def test_pay_fine(self, library, fine, clock):
        clock.advance(days=1)

        paid = library.fines.pay_fine(fine.id)

        assert paid.status == FineStatus.PAID
        assert paid.payment_date == clock.now
        assert paid.amount == fine.amount

    def test_pay_twice(self, library, fine):
        library.fines.pay_fine(fine.id)
        with pytest.raises(AlreadyPaid) as exc_info:
            library.fines.pay_fine(fine.id)
        assert exc_info.value.kind == "AlreadyPaid"

    def test_pay_unknown(self, library):
        with pytest.raises(FineNotFound):
            library.fines.pay_fine("fine_doesnotexist")

    def test_balance_and_listing(self, library, fine, loan):
        member_id = loan.member_id
        assert library.fines.outstanding_balance(member_id) == Decimal("5.00")
        assert [f.id for f in library.fines.list_unpaid_fines(member_id)] == [fine.id]

        library.fines.pay_fine(fine.id)

        assert library.fines.outstanding_balance(member_id) == Decimal("0.00")
        assert library.fines.list_unpaid_fines(member_id) == []
        assert [f.id for f in library.fines.list_member_fines(member_id)] == [fine.id]

    def test_listing_unknown_member(self, library):
        with pytest.raises(MemberNotFound):
            library.fines.list_unpaid_fines("member_doesnotexist")
