"""
Book repository implementation for the Library Circulation Engine.

Besides plain catalog lookups this repository exposes the atomic counter
updates the inventory ledger is built on. Each one is a single conditional
UPDATE, so the database never sees a read-then-write race:

    UPDATE books SET available_copies = available_copies - 1
    WHERE isbn = :isbn AND available_copies > 0

A zero rowcount means the guard failed (no copy left, or the ceiling of
total_copies reached) and the caller decides which error that is.
"""

from datetime import datetime

from sqlalchemy import func, select, update

from ..models.book import Book as BookModel
from ..models.book import normalize_isbn
from ..observability.context import trace_repository_operation
from .repository import BaseRepository
from .schema import Book as BookDB
from .session import safe_flush, safe_query

# Fields a catalog update may touch; the counters are deliberately absent
DESCRIPTIVE_FIELDS = (
    "title",
    "publisher",
    "publication_year",
    "language",
    "page_count",
    "description",
)


class BookRepository(BaseRepository[BookDB, BookModel]):
    """Repository for book data access and availability counters."""

    @property
    def model_class(self):
        return BookDB

    @property
    def response_schema(self):
        return BookModel

    @property
    def primary_key(self):
        return BookDB.isbn

    def get_by_isbn(self, isbn: str) -> BookModel | None:
        """Look a book up by ISBN (hyphens allowed)."""
        query = (
            select(BookDB)
            .where(BookDB.isbn == normalize_isbn(isbn))
            .execution_options(populate_existing=True)
        )
        book = safe_query(
            self.session,
            lambda s: s.execute(query).scalar_one_or_none(),
            "Failed to get book by ISBN",
        )
        return self._to_response_model(book) if book else None

    def save(self, book: BookModel) -> BookModel:
        """
        Upsert a book.

        New books are inserted with the counters they carry. For existing
        books only the descriptive fields are written; availability is owned
        by the counter methods below.
        """
        existing = self._get_db_object(book.isbn, for_update=True)
        if existing is None:
            db_obj = BookDB(
                **book.model_dump(exclude={"created_at", "updated_at"}),
                created_at=datetime.now(),
                updated_at=datetime.now(),
            )
            self.session.add(db_obj)
        else:
            db_obj = existing
            for field in DESCRIPTIVE_FIELDS:
                setattr(db_obj, field, getattr(book, field))
            db_obj.updated_at = datetime.now()

        safe_flush(self.session, "save book")
        self.session.refresh(db_obj)
        return self._to_response_model(db_obj)

    def available_copies(self, isbn: str) -> int | None:
        """Current availability straight from the database, or None if unknown."""
        query = select(BookDB.available_copies).where(BookDB.isbn == normalize_isbn(isbn))
        return safe_query(
            self.session,
            lambda s: s.execute(query).scalar_one_or_none(),
            "Failed to read available copies",
        )

    def decrement_available(self, isbn: str) -> int | None:
        """
        Take one copy off the shelf if one is free.

        Returns:
            The new available count, or None if no copy was free (or the
            book does not exist)
        """
        statement = (
            update(BookDB)
            .where(BookDB.isbn == normalize_isbn(isbn), BookDB.available_copies > 0)
            .values(available_copies=BookDB.available_copies - 1, updated_at=datetime.now())
        )
        return self._apply_counter_update(statement, isbn, "decrement available copies")

    def increment_available(self, isbn: str) -> int | None:
        """
        Put one copy back on the shelf unless every owned copy is already there.

        Returns:
            The new available count, or None if the ceiling was reached (or
            the book does not exist)
        """
        statement = (
            update(BookDB)
            .where(
                BookDB.isbn == normalize_isbn(isbn),
                BookDB.available_copies < BookDB.total_copies,
            )
            .values(available_copies=BookDB.available_copies + 1, updated_at=datetime.now())
        )
        return self._apply_counter_update(statement, isbn, "increment available copies")

    def add_copies(self, isbn: str, count: int) -> int | None:
        """
        Register newly acquired copies: raises total and available together.

        Returns:
            The new available count, or None if the book does not exist
        """
        statement = (
            update(BookDB)
            .where(BookDB.isbn == normalize_isbn(isbn))
            .values(
                total_copies=BookDB.total_copies + count,
                available_copies=BookDB.available_copies + count,
                updated_at=datetime.now(),
            )
        )
        return self._apply_counter_update(statement, isbn, "add copies")

    def count_all(self) -> int:
        return (
            safe_query(
                self.session,
                lambda s: s.execute(select(func.count()).select_from(BookDB)).scalar(),
                "Failed to count books",
            )
            or 0
        )

    def _apply_counter_update(self, statement, isbn: str, operation: str) -> int | None:
        with trace_repository_operation("book", operation, "books") as span:
            result = safe_query(
                self.session,
                lambda s: s.execute(statement.execution_options(synchronize_session=False)),
                f"Failed to {operation}",
            )
            span.set_attribute("db.rowcount", result.rowcount)
            if result.rowcount != 1:
                return None
            safe_flush(self.session, operation)
            return self.available_copies(isbn)
