"""
Circulation models for the Library Circulation Engine.

These models represent the movement of books between the shelf and members:
- Transaction: one borrow event, from checkout until the copy comes back
- Reservation: a member queuing for a book that has no free copy

State transitions are driven by the circulation engine:
- borrow: creates an ACTIVE Transaction and takes a copy from the ledger
- return: moves an open Transaction to RETURNED and gives the copy back
- the fine accrual scan flags ACTIVE transactions past their due date as OVERDUE
- reserve / cancel: create and cancel ACTIVE Reservations
"""

import math
from datetime import datetime, timedelta
from decimal import Decimal
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, model_validator

from .book import ISBN_PATTERN

SECONDS_PER_DAY = 24 * 60 * 60


class TransactionStatus(str, Enum):
    """Status of a borrow transaction."""

    ACTIVE = "active"
    RETURNED = "returned"
    OVERDUE = "overdue"


# Both statuses mean the copy is still out with the member
OPEN_TRANSACTION_STATUSES = (TransactionStatus.ACTIVE, TransactionStatus.OVERDUE)


class ReservationStatus(str, Enum):
    """Status of a reservation."""

    ACTIVE = "active"
    CANCELLED = "cancelled"
    FULFILLED = "fulfilled"
    EXPIRED = "expired"


class Transaction(BaseModel):
    """
    Represents a single borrow of one copy of a book by one member.

    The due date is fixed at creation (creation + loan period). Overdue days
    are counted in whole days, rounding down, against the return timestamp
    when the copy came back or against "now" while it is still out.
    """

    id: str = Field(
        ...,
        description="Unique identifier for the transaction",
        pattern=r"^txn_[a-zA-Z0-9]{6,}$",
        examples=["txn_5c1e0f3a9b2d"],
    )

    book_isbn: str = Field(
        ...,
        description="ISBN of the borrowed book",
        pattern=ISBN_PATTERN,
    )

    member_id: str = Field(
        ...,
        description="ID of the borrowing member",
        pattern=r"^member_[a-zA-Z0-9_]{6,}$",
    )

    transaction_date: datetime = Field(
        default_factory=datetime.now,
        description="When the book was borrowed",
    )

    due_date: datetime = Field(
        ...,
        description="When the book must be back",
    )

    status: TransactionStatus = Field(
        default=TransactionStatus.ACTIVE,
        description="Current status of the transaction",
    )

    return_date: datetime | None = Field(
        None,
        description="When the book was returned",
    )

    @model_validator(mode="after")
    def validate_dates(self) -> "Transaction":
        """Validate date relationships."""
        if self.due_date <= self.transaction_date:
            raise ValueError("Due date must be after transaction date")

        if self.return_date and self.return_date < self.transaction_date:
            raise ValueError("Return date cannot be before transaction date")

        if self.status == TransactionStatus.RETURNED and self.return_date is None:
            raise ValueError("Returned transactions must record a return date")

        return self

    @property
    def is_open(self) -> bool:
        """Check if the copy is still out with the member."""
        return self.status in OPEN_TRANSACTION_STATUSES

    def is_past_due(self, now: datetime) -> bool:
        """Check if the due date has passed without the book coming back in time."""
        if self.return_date is not None:
            return self.return_date > self.due_date
        return now > self.due_date

    def days_overdue(self, now: datetime) -> int:
        """
        Whole days between the due date and the reference date.

        The reference date is the return date for returned books and ``now``
        otherwise. Partial days are not counted.
        """
        reference = self.return_date or now
        if reference <= self.due_date:
            return 0
        return math.floor((reference - self.due_date).total_seconds() / SECONDS_PER_DAY)

    def calculate_fine(self, now: datetime, daily_rate: Decimal) -> Decimal:
        """
        Calculate the fine owed for this transaction.

        Args:
            now: Reference time for books that are still out
            daily_rate: Fine charged per whole day overdue

        Returns:
            Fine amount, quantized to cents
        """
        return (Decimal(self.days_overdue(now)) * daily_rate).quantize(Decimal("0.01"))

    model_config = ConfigDict(
        validate_assignment=True,
        populate_by_name=True,
        from_attributes=True,
        json_schema_extra={
            "example": {
                "id": "txn_5c1e0f3a9b2d",
                "book_isbn": "9780134685479",
                "member_id": "member_3f9a1c2b7d4e",
                "transaction_date": "2024-03-01T10:30:00",
                "due_date": "2024-03-15T10:30:00",
                "status": "active",
            }
        },
    )


class Reservation(BaseModel):
    """
    Represents a member's hold on a book.

    A reservation stays valid for a fixed window after it is placed; the
    expiry sweep moves stale ACTIVE reservations to EXPIRED.
    """

    id: str = Field(
        ...,
        description="Unique identifier for the reservation",
        pattern=r"^res_[a-zA-Z0-9]{6,}$",
        examples=["res_8d2b6e4f1a0c"],
    )

    book_isbn: str = Field(
        ...,
        description="ISBN of the reserved book",
        pattern=ISBN_PATTERN,
    )

    member_id: str = Field(
        ...,
        description="ID of the member holding the reservation",
        pattern=r"^member_[a-zA-Z0-9_]{6,}$",
    )

    reservation_date: datetime = Field(
        default_factory=datetime.now,
        description="When the reservation was placed",
    )

    expiration_date: datetime = Field(
        ...,
        description="When the reservation lapses",
    )

    status: ReservationStatus = Field(
        default=ReservationStatus.ACTIVE,
        description="Current status of the reservation",
    )

    @model_validator(mode="after")
    def validate_dates(self) -> "Reservation":
        if self.expiration_date <= self.reservation_date:
            raise ValueError("Expiration date must be after reservation date")
        return self

    @property
    def is_active(self) -> bool:
        return self.status == ReservationStatus.ACTIVE

    def is_expired(self, now: datetime) -> bool:
        """Check if an active reservation has outlived its window."""
        return self.is_active and now > self.expiration_date

    @classmethod
    def window_end(cls, placed_at: datetime, window_days: int) -> datetime:
        """Expiration timestamp for a reservation placed at ``placed_at``."""
        return placed_at + timedelta(days=window_days)

    model_config = ConfigDict(
        validate_assignment=True,
        populate_by_name=True,
        from_attributes=True,
    )
