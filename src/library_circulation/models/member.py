"""
Member model for the Library Circulation Engine.

Members are registered once and keep their identity for life; their contact
fields (name, email, address, phone numbers) may change. The circulation
engine only reads members, to check that they exist and are active.
"""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator


class Member(BaseModel):
    """Represents a registered library member."""

    id: str = Field(
        ...,
        description="Unique identifier for the member",
        pattern=r"^member_[a-zA-Z0-9_]{6,}$",
        examples=["member_3f9a1c2b7d4e"],
    )

    name: str = Field(
        ...,
        description="Full name of the member",
        min_length=1,
        max_length=100,
        examples=["Jane Doe"],
    )

    email: EmailStr = Field(
        ...,
        description="Email address, unique across members (case-insensitive)",
    )

    address: str | None = Field(
        None,
        description="Postal address",
        max_length=500,
    )

    phones: list[str] = Field(
        default_factory=list,
        description="Phone numbers; duplicates are collapsed",
    )

    registration_date: datetime = Field(
        default_factory=datetime.now,
        description="When the member registered",
    )

    is_active: bool = Field(
        default=True,
        description="Inactive members cannot borrow or reserve",
    )

    @field_validator("email")
    @classmethod
    def lowercase_email(cls, v: str) -> str:
        return v.lower()

    @field_validator("phones")
    @classmethod
    def normalize_phones(cls, v: list[str]) -> list[str]:
        """Treat phone numbers as a set: strip blanks and drop duplicates."""
        cleaned = {p.strip() for p in v if p and p.strip()}
        return sorted(cleaned)

    model_config = ConfigDict(
        validate_assignment=True,
        populate_by_name=True,
        from_attributes=True,
    )
