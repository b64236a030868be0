"""
Member repository implementation for the Library Circulation Engine.

Members own a set of phone numbers stored in a child table; saving a member
reconciles that set rather than rewriting it.
"""

from sqlalchemy import func, select

from ..models.member import Member as MemberModel
from .repository import BaseRepository
from .schema import Member as MemberDB
from .schema import MemberPhone
from .session import safe_flush, safe_query


class MemberRepository(BaseRepository[MemberDB, MemberModel]):
    """Repository for member data access."""

    @property
    def model_class(self):
        return MemberDB

    @property
    def response_schema(self):
        return MemberModel

    def get_by_email(self, email: str) -> MemberModel | None:
        """Case-insensitive lookup by email."""
        query = select(MemberDB).where(func.lower(MemberDB.email) == email.strip().lower())
        member = safe_query(
            self.session,
            lambda s: s.execute(query).scalar_one_or_none(),
            "Failed to get member by email",
        )
        return self._to_response_model(member) if member else None

    def save(self, member: MemberModel) -> MemberModel:
        """Insert or update a member, reconciling the phone number set."""
        db_obj = self._get_db_object(member.id, for_update=True)
        if db_obj is None:
            db_obj = MemberDB(id=member.id, registration_date=member.registration_date)
            self.session.add(db_obj)

        db_obj.name = member.name
        db_obj.email = member.email
        db_obj.address = member.address
        db_obj.is_active = member.is_active

        wanted = set(member.phones)
        for phone in list(db_obj.phone_numbers):
            if phone.phone not in wanted:
                db_obj.phone_numbers.remove(phone)
        present = {p.phone for p in db_obj.phone_numbers}
        for phone in sorted(wanted - present):
            db_obj.phone_numbers.append(MemberPhone(phone=phone))

        safe_flush(self.session, "save member")
        self.session.refresh(db_obj)
        return self._to_response_model(db_obj)
