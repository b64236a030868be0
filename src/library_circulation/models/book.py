"""
Book model for the Library Circulation Engine.

A book is a catalog entry keyed by ISBN. Besides its bibliographic details it
carries two counters:

- total_copies: copies the library owns, fixed at catalog entry and raised
  only when new copies are acquired
- available_copies: copies currently free to lend, owned by the inventory
  ledger

The model validates ``0 <= available_copies <= total_copies`` so a record that
breaks the inventory invariant can never be constructed.
"""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

ISBN_PATTERN = r"^(\d{9}[\dX]|\d{13})$"


def normalize_isbn(value: str) -> str:
    """Strip hyphens and spaces from an ISBN and upper-case a trailing x."""
    return value.replace("-", "").replace(" ", "").upper()


class Book(BaseModel):
    """
    Represents a book in the library catalog.

    Books are looked up by ISBN by every circulation operation. The
    availability counter is read here but only ever written through the
    inventory ledger.
    """

    isbn: str = Field(
        ...,
        description="International Standard Book Number (ISBN-10 or ISBN-13)",
        pattern=ISBN_PATTERN,
        examples=["9780134685479", "030640615X"],
    )

    title: str = Field(
        ...,
        description="The title of the book",
        min_length=1,
        max_length=500,
        examples=["The Great Gatsby", "To Kill a Mockingbird"],
    )

    publisher: str = Field(
        ...,
        description="Publishing house",
        min_length=1,
        max_length=200,
    )

    publication_year: int = Field(
        ...,
        description="Year the edition was published",
        ge=1450,
        le=2100,
    )

    language: str = Field(
        ...,
        description="Language the book is written in",
        min_length=1,
        max_length=50,
        examples=["English", "French"],
    )

    page_count: int = Field(
        default=0,
        description="Number of pages",
        ge=0,
    )

    description: str | None = Field(
        None,
        description="Blurb or summary",
        max_length=5000,
    )

    available_copies: int = Field(
        ...,
        description="Copies currently free to lend",
        ge=0,
    )

    total_copies: int = Field(
        ...,
        description="Copies owned by the library",
        ge=1,
    )

    created_at: datetime | None = None
    updated_at: datetime | None = None

    @field_validator("isbn", mode="before")
    @classmethod
    def clean_isbn(cls, v: str) -> str:
        """Accept hyphenated ISBNs by normalizing them before validation."""
        if isinstance(v, str):
            return normalize_isbn(v)
        return v

    @model_validator(mode="after")
    def validate_copies(self) -> "Book":
        """Available copies can never exceed the copies owned."""
        if self.available_copies > self.total_copies:
            raise ValueError("Available copies cannot exceed total copies")
        return self

    @property
    def is_available(self) -> bool:
        """Check if at least one copy can be lent."""
        return self.available_copies > 0

    @property
    def lent_copies(self) -> int:
        """Number of copies currently out on loan."""
        return self.total_copies - self.available_copies

    model_config = ConfigDict(
        validate_assignment=True,
        populate_by_name=True,
        from_attributes=True,
        json_schema_extra={
            "example": {
                "isbn": "9780134685479",
                "title": "Effective Java",
                "publisher": "Addison-Wesley",
                "publication_year": 2018,
                "language": "English",
                "page_count": 412,
                "available_copies": 2,
                "total_copies": 3,
            }
        },
    )
