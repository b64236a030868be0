"""
Fine model for the Library Circulation Engine.

A fine is attached to exactly one transaction. Fines are issued either by the
accrual scan (overdue detection) or manually by an operator, and move from
UNPAID to PAID through an explicit payment.
"""

from datetime import datetime
from decimal import Decimal
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, model_validator


class FineStatus(str, Enum):
    """Payment status of a fine."""

    UNPAID = "unpaid"
    PAID = "paid"


class Fine(BaseModel):
    """Represents a fine charged against a borrow transaction."""

    id: str = Field(
        ...,
        description="Unique identifier for the fine",
        pattern=r"^fine_[a-zA-Z0-9]{6,}$",
        examples=["fine_0a9b8c7d6e5f"],
    )

    transaction_id: str = Field(
        ...,
        description="Transaction the fine was charged for (one fine per transaction)",
        pattern=r"^txn_[a-zA-Z0-9]{6,}$",
    )

    amount: Decimal = Field(
        ...,
        description="Amount owed",
        ge=Decimal("0"),
        max_digits=10,
        decimal_places=2,
    )

    issued_date: datetime = Field(
        default_factory=datetime.now,
        description="When the fine was issued",
    )

    payment_date: datetime | None = Field(
        None,
        description="When the fine was paid",
    )

    status: FineStatus = Field(
        default=FineStatus.UNPAID,
        description="Payment status",
    )

    reason: str | None = Field(
        None,
        description="Free-text reason, e.g. 'Overdue by 5 day(s)'",
        max_length=500,
    )

    @model_validator(mode="after")
    def validate_payment(self) -> "Fine":
        """A paid fine must carry its payment date, an unpaid one must not."""
        if self.status == FineStatus.PAID and self.payment_date is None:
            raise ValueError("Paid fines must record a payment date")
        if self.status == FineStatus.UNPAID and self.payment_date is not None:
            raise ValueError("Unpaid fines cannot have a payment date")
        return self

    @property
    def is_paid(self) -> bool:
        return self.status == FineStatus.PAID

    model_config = ConfigDict(
        validate_assignment=True,
        populate_by_name=True,
        from_attributes=True,
    )
