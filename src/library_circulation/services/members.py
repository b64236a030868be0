"""
Member service for the Library Circulation Engine.

Registration assigns a member its permanent ID. Contact fields stay editable;
an email address may belong to one member only, compared case-insensitively.
"""

import functools
import logging
from collections.abc import Iterable
from decimal import Decimal

from pydantic import BaseModel, Field

from ..models.circulation import TransactionStatus
from ..models.member import Member
from ..observability import trace_operation
from .errors import EmailAlreadyRegistered, MemberNotFound
from .locks import member_key
from .unit_of_work import ServiceBase, new_id

logger = logging.getLogger(__name__)


def _email_key(email: str) -> str:
    return f"email:{email.strip().lower()}"


class MemberSummary(BaseModel):
    """A member's standing with the library."""

    member: Member
    open_loans: int = Field(..., description="Copies currently on loan")
    overdue_loans: int = Field(..., description="Open loans flagged overdue")
    active_reservations: int
    unpaid_balance: Decimal
    can_borrow: bool = Field(..., description="Active and under the borrowing limit")


class MemberService(ServiceBase):
    """Registers members and maintains their contact details."""

    @trace_operation("register_member")
    def register(
        self,
        name: str,
        email: str,
        address: str | None = None,
        phones: Iterable[str] = (),
        timeout: float | None = None,
    ) -> Member:
        """
        Register a new member.

        Raises:
            EmailAlreadyRegistered: If another member uses the email
            pydantic.ValidationError: If a field is invalid
        """
        member = Member(
            id=new_id("member"),
            name=name,
            email=email,
            address=address,
            phones=list(phones),
            registration_date=self.clock(),
        )

        with self._unit_of_work(
            "register_member",
            [_email_key(member.email)],
            timeout,
            conflict=functools.partial(EmailAlreadyRegistered, member.email),
        ) as gateway:
            if gateway.members.get_by_email(member.email) is not None:
                raise EmailAlreadyRegistered(member.email)
            saved = gateway.members.save(member)

        logger.info("Registered member %s (%s)", saved.id, saved.email)
        return saved

    def get_member(self, member_id: str) -> Member:
        with self._read_only() as gateway:
            member = gateway.members.get_by_id(member_id)
        if member is None:
            raise MemberNotFound(member_id)
        return member

    def find_by_email(self, email: str) -> Member | None:
        with self._read_only() as gateway:
            return gateway.members.get_by_email(email)

    @trace_operation("update_member_contact")
    def update_contact(
        self,
        member_id: str,
        name: str | None = None,
        email: str | None = None,
        address: str | None = None,
        phones: Iterable[str] | None = None,
        timeout: float | None = None,
    ) -> Member:
        """
        Change a member's contact fields. Arguments left as None are kept.

        ``phones`` replaces the whole set of phone numbers.

        Raises:
            MemberNotFound: If the member does not exist
            EmailAlreadyRegistered: If the new email belongs to someone else
        """
        keys = [member_key(member_id)]
        conflict = None
        if email is not None:
            keys.append(_email_key(email))
            conflict = functools.partial(EmailAlreadyRegistered, email.strip().lower())

        with self._unit_of_work(
            "update_member_contact", keys, timeout, conflict=conflict
        ) as gateway:
            member = gateway.members.get_by_id(member_id)
            if member is None:
                raise MemberNotFound(member_id)

            changes = {}
            if name is not None:
                changes["name"] = name
            if address is not None:
                changes["address"] = address
            if phones is not None:
                changes["phones"] = list(phones)
            if email is not None:
                owner = gateway.members.get_by_email(email)
                if owner is not None and owner.id != member_id:
                    raise EmailAlreadyRegistered(email.strip().lower())
                changes["email"] = email

            updated = Member.model_validate({**member.model_dump(), **changes})
            saved = gateway.members.save(updated)

        logger.info("Updated contact details of %s", member_id)
        return saved

    @trace_operation("deactivate_member")
    def deactivate(self, member_id: str, timeout: float | None = None) -> Member:
        """Stop a member from borrowing or reserving. Open loans are unaffected."""
        return self._set_active(member_id, False, timeout)

    @trace_operation("activate_member")
    def activate(self, member_id: str, timeout: float | None = None) -> Member:
        return self._set_active(member_id, True, timeout)

    def _set_active(self, member_id: str, active: bool, timeout: float | None) -> Member:
        with self._unit_of_work("set_member_active", [member_key(member_id)], timeout) as gateway:
            member = gateway.members.get_by_id(member_id)
            if member is None:
                raise MemberNotFound(member_id)
            saved = gateway.members.save(member.model_copy(update={"is_active": active}))

        logger.info("Member %s is now %s", member_id, "active" if active else "inactive")
        return saved

    def member_summary(self, member_id: str) -> MemberSummary:
        """Loans, reservations and unpaid fines of a member."""
        with self._read_only() as gateway:
            member = gateway.members.get_by_id(member_id)
            if member is None:
                raise MemberNotFound(member_id)
            open_loans = gateway.transactions.list_by_member(member_id, open_only=True)
            reservations = gateway.reservations.count_active_by_member(member_id)
            balance = gateway.fines.unpaid_total_by_member(member_id)

        return MemberSummary(
            member=member,
            open_loans=len(open_loans),
            overdue_loans=sum(1 for t in open_loans if t.status == TransactionStatus.OVERDUE),
            active_reservations=reservations,
            unpaid_balance=balance,
            can_borrow=member.is_active and len(open_loans) < self.config.borrowing_limit,
        )
