"""
SQLAlchemy database schema for the Library Circulation Engine.

These tables mirror the Pydantic entity model. The constraints below are the
last line of defence for the circulation invariants:

1. ``0 <= available_copies <= total_copies`` on every book
2. at most one fine per transaction (UNIQUE on fines.transaction_id)
3. member emails are unique
"""

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import declarative_base, relationship
from sqlalchemy.sql import func

from ..models.circulation import ReservationStatus, TransactionStatus
from ..models.fine import FineStatus

Base = declarative_base()


def _enum_values(enum_cls):
    return [member.value for member in enum_cls]


class Book(Base):
    """
    Books table - the library catalog.

    available_copies is written only through BookRepository's conditional
    counter updates, which the inventory ledger drives.
    """

    __tablename__ = "books"

    # ISBN as primary key (normalized without hyphens)
    isbn = Column(String(13), primary_key=True)
    title = Column(String(500), nullable=False, index=True)
    publisher = Column(String(200), nullable=False)
    publication_year = Column(Integer, nullable=False)
    language = Column(String(50), nullable=False)
    page_count = Column(Integer, nullable=False, default=0)
    description = Column(Text, nullable=True)
    available_copies = Column(Integer, nullable=False)
    total_copies = Column(Integer, nullable=False)

    created_at = Column(DateTime, nullable=False, default=func.now())
    updated_at = Column(DateTime, nullable=True, default=func.now(), onupdate=func.now())

    transactions = relationship("LoanTransaction", back_populates="book")
    reservations = relationship("Reservation", back_populates="book")

    __table_args__ = (
        Index("idx_book_availability", "available_copies"),
        CheckConstraint("available_copies >= 0", name="check_available_copies_non_negative"),
        CheckConstraint(
            "available_copies <= total_copies", name="check_available_not_exceed_total"
        ),
        CheckConstraint("total_copies > 0", name="check_total_copies_positive"),
        CheckConstraint("page_count >= 0", name="check_page_count_non_negative"),
    )


class Member(Base):
    """Members table - registered borrowers."""

    __tablename__ = "members"

    id = Column(String(50), primary_key=True)
    name = Column(String(100), nullable=False, index=True)
    email = Column(String(255), nullable=False, unique=True)
    address = Column(Text, nullable=True)
    registration_date = Column(DateTime, nullable=False, default=func.now())
    is_active = Column(Boolean, nullable=False, default=True)

    phone_numbers = relationship(
        "MemberPhone",
        back_populates="member",
        cascade="all, delete-orphan",
        order_by="MemberPhone.phone",
    )
    transactions = relationship("LoanTransaction", back_populates="member")
    reservations = relationship("Reservation", back_populates="member")

    __table_args__ = (
        CheckConstraint("id LIKE 'member_%'", name="check_member_id_format"),
    )

    @property
    def phones(self) -> list[str]:
        """Phone numbers as plain strings, for the Pydantic model."""
        return [p.phone for p in self.phone_numbers]


class MemberPhone(Base):
    """Member phone numbers - one row per (member, number)."""

    __tablename__ = "member_phones"

    member_id = Column(String(50), ForeignKey("members.id"), primary_key=True)
    phone = Column(String(30), primary_key=True)

    member = relationship("Member", back_populates="phone_numbers")


class LoanTransaction(Base):
    """
    Borrow transactions table.

    One row per borrow event. Rows are never deleted by the engine; a return
    only changes status and return_date.
    """

    __tablename__ = "transactions"

    id = Column(String(50), primary_key=True)
    book_isbn = Column(String(13), ForeignKey("books.isbn"), nullable=False)
    member_id = Column(String(50), ForeignKey("members.id"), nullable=False)
    transaction_date = Column(DateTime, nullable=False, default=func.now())
    due_date = Column(DateTime, nullable=False)
    status = Column(
        Enum(TransactionStatus, values_callable=_enum_values, name="transaction_status"),
        nullable=False,
        default=TransactionStatus.ACTIVE,
    )
    return_date = Column(DateTime, nullable=True)

    book = relationship("Book", back_populates="transactions")
    member = relationship("Member", back_populates="transactions")
    fine = relationship("Fine", back_populates="transaction", uselist=False)

    __table_args__ = (
        Index("idx_transaction_member_status", "member_id", "status"),
        Index("idx_transaction_book_status", "book_isbn", "status"),
        Index("idx_transaction_due_date", "due_date"),
        CheckConstraint("id LIKE 'txn_%'", name="check_transaction_id_format"),
        CheckConstraint("due_date > transaction_date", name="check_due_after_borrow"),
    )


class Reservation(Base):
    """Reservations table - members queuing for books with no free copy."""

    __tablename__ = "reservations"

    id = Column(String(50), primary_key=True)
    book_isbn = Column(String(13), ForeignKey("books.isbn"), nullable=False)
    member_id = Column(String(50), ForeignKey("members.id"), nullable=False)
    reservation_date = Column(DateTime, nullable=False, default=func.now())
    expiration_date = Column(DateTime, nullable=False)
    status = Column(
        Enum(ReservationStatus, values_callable=_enum_values, name="reservation_status"),
        nullable=False,
        default=ReservationStatus.ACTIVE,
    )

    book = relationship("Book", back_populates="reservations")
    member = relationship("Member", back_populates="reservations")

    __table_args__ = (
        Index("idx_reservation_member_status", "member_id", "status"),
        Index("idx_reservation_book_status", "book_isbn", "status"),
        CheckConstraint("id LIKE 'res_%'", name="check_reservation_id_format"),
    )


class Fine(Base):
    """
    Fines table.

    The UNIQUE constraint on transaction_id makes fine issuance idempotent
    even when two accrual scans race for the same transaction.
    """

    __tablename__ = "fines"

    id = Column(String(50), primary_key=True)
    transaction_id = Column(String(50), ForeignKey("transactions.id"), nullable=False)
    amount = Column(Numeric(10, 2), nullable=False)
    issued_date = Column(DateTime, nullable=False, default=func.now())
    payment_date = Column(DateTime, nullable=True)
    status = Column(
        Enum(FineStatus, values_callable=_enum_values, name="fine_status"),
        nullable=False,
        default=FineStatus.UNPAID,
    )
    reason = Column(Text, nullable=True)

    transaction = relationship("LoanTransaction", back_populates="fine")

    __table_args__ = (
        UniqueConstraint("transaction_id", name="unique_fine_per_transaction"),
        Index("idx_fine_status", "status"),
        CheckConstraint("id LIKE 'fine_%'", name="check_fine_id_format"),
        CheckConstraint("amount >= 0", name="check_fine_non_negative"),
    )
