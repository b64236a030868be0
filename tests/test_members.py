"""Tests for the member service."""

from decimal import Decimal

import pytest
from pydantic import ValidationError

from library_circulation.services.errors import EmailAlreadyRegistered, MemberNotFound


class TestRegister:
    def test_register(self, library, clock):
        member = library.members.register(
            name="Jane Doe",
            email="Jane.Doe@Library.org",
            address="1 Main Street",
            phones=["555-0100", "555-0100", "555-0199"],
        )

        assert member.id.startswith("member_")
        assert member.email == "jane.doe@library.org"
        assert member.phones == ["555-0100", "555-0199"]
        assert member.registration_date == clock.now
        assert member.is_active is True
        assert library.members.get_member(member.id) == member

    def test_email_unique_ignoring_case(self, library):
        library.members.register(name="Jane", email="jane@library.org")
        with pytest.raises(EmailAlreadyRegistered):
            library.members.register(name="Other Jane", email="JANE@library.org")

    def test_invalid_email(self, library):
        with pytest.raises(ValidationError):
            library.members.register(name="Jane", email="jane")

    def test_find_by_email(self, library, add_member):
        member = add_member()
        assert library.members.find_by_email(member.email.upper()) == member
        assert library.members.find_by_email("nobody@library.org") is None

    def test_get_unknown(self, library):
        with pytest.raises(MemberNotFound):
            library.members.get_member("member_doesnotexist")


class TestUpdateContact:
    def test_update_fields(self, library, add_member):
        member = add_member()

        updated = library.members.update_contact(
            member.id,
            name="New Name",
            email="new.address@library.org",
            address="2 Side Street",
            phones=["555-0300"],
        )

        assert updated.id == member.id
        assert updated.name == "New Name"
        assert updated.email == "new.address@library.org"
        assert updated.address == "2 Side Street"
        assert updated.phones == ["555-0300"]
        assert updated.registration_date == member.registration_date

    def test_unchanged_fields_kept(self, library, add_member):
        member = add_member()

        updated = library.members.update_contact(member.id, name="Only Name")

        assert updated.email == member.email
        assert updated.phones == member.phones

    def test_email_taken_by_another_member(self, library, add_member):
        first, second = add_member(), add_member()
        with pytest.raises(EmailAlreadyRegistered):
            library.members.update_contact(second.id, email=first.email.upper())

    def test_keeping_own_email(self, library, add_member):
        member = add_member()
        updated = library.members.update_contact(member.id, email=member.email.upper())
        assert updated.email == member.email

    def test_update_unknown(self, library):
        with pytest.raises(MemberNotFound):
            library.members.update_contact("member_doesnotexist", name="Nobody")


class TestActivation:
    def test_deactivate_and_activate(self, library, add_member):
        member = add_member()

        assert library.members.deactivate(member.id).is_active is False
        assert library.members.activate(member.id).is_active is True


class TestSummary:
    def test_summary(self, library, add_book, add_member, clock):
        member = add_member()
        late = library.circulation.borrow(add_book().isbn, member.id)
        clock.advance(days=10)
        library.circulation.borrow(add_book().isbn, member.id)
        taken = add_book()
        library.circulation.borrow(taken.isbn, add_member().id)
        library.circulation.reserve(taken.isbn, member.id)
        clock.advance(days=7)
        library.fines.run_accrual_scan()

        summary = library.members.member_summary(member.id)

        assert summary.open_loans == 2
        assert summary.overdue_loans == 1
        assert summary.active_reservations == 1
        assert summary.unpaid_balance == Decimal("3.00")
        assert summary.can_borrow is True
        assert late.id in {t.id for t in library.circulation.list_member_transactions(member.id)}

    def test_inactive_member_cannot_borrow(self, library, add_member):
        member = add_member()
        library.members.deactivate(member.id)

        assert library.members.member_summary(member.id).can_borrow is False
