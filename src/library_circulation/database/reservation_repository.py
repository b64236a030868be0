"""Reservation repository implementation for the Library Circulation Engine."""

from datetime import datetime

from sqlalchemy import desc, func, select

from ..models.book import normalize_isbn
from ..models.circulation import Reservation as ReservationModel
from ..models.circulation import ReservationStatus
from .repository import BaseRepository
from .schema import Reservation as ReservationDB
from .session import safe_query


class ReservationRepository(BaseRepository[ReservationDB, ReservationModel]):
    """Repository for reservations."""

    @property
    def model_class(self):
        return ReservationDB

    @property
    def response_schema(self):
        return ReservationModel

    def get_active_by_member_and_isbn(self, member_id: str, isbn: str) -> ReservationModel | None:
        query = (
            select(ReservationDB)
            .where(
                ReservationDB.member_id == member_id,
                ReservationDB.book_isbn == normalize_isbn(isbn),
                ReservationDB.status == ReservationStatus.ACTIVE,
            )
            .order_by(ReservationDB.reservation_date)
            .limit(1)
        )
        reservation = safe_query(
            self.session,
            lambda s: s.execute(query).scalar_one_or_none(),
            "Failed to get active reservation",
        )
        return self._to_response_model(reservation) if reservation else None

    def count_active_by_member(self, member_id: str) -> int:
        query = (
            select(func.count())
            .select_from(ReservationDB)
            .where(
                ReservationDB.member_id == member_id,
                ReservationDB.status == ReservationStatus.ACTIVE,
            )
        )
        return (
            safe_query(
                self.session,
                lambda s: s.execute(query).scalar(),
                "Failed to count active reservations for member",
            )
            or 0
        )

    def count_active_by_isbn(self, isbn: str) -> int:
        query = (
            select(func.count())
            .select_from(ReservationDB)
            .where(
                ReservationDB.book_isbn == normalize_isbn(isbn),
                ReservationDB.status == ReservationStatus.ACTIVE,
            )
        )
        return (
            safe_query(
                self.session,
                lambda s: s.execute(query).scalar(),
                "Failed to count active reservations for book",
            )
            or 0
        )

    def list_by_member(self, member_id: str, active_only: bool = False) -> list[ReservationModel]:
        query = select(ReservationDB).where(ReservationDB.member_id == member_id)
        if active_only:
            query = query.where(ReservationDB.status == ReservationStatus.ACTIVE)
        query = query.order_by(desc(ReservationDB.reservation_date))

        results = safe_query(
            self.session,
            lambda s: s.execute(query).scalars().all(),
            "Failed to list member reservations",
        )
        return [self._to_response_model(r) for r in results]

    def list_expired_active(self, now: datetime) -> list[ReservationModel]:
        """Active reservations whose window has closed."""
        query = (
            select(ReservationDB)
            .where(
                ReservationDB.status == ReservationStatus.ACTIVE,
                ReservationDB.expiration_date < now,
            )
            .order_by(ReservationDB.expiration_date)
        )
        results = safe_query(
            self.session,
            lambda s: s.execute(query).scalars().all(),
            "Failed to list expired reservations",
        )
        return [self._to_response_model(r) for r in results]

    def save(self, reservation: ReservationModel) -> ReservationModel:
        """Insert or update a reservation."""
        return self._save(ReservationDB(**reservation.model_dump()), "save reservation")
