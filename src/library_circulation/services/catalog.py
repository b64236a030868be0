"""
Catalog service for the Library Circulation Engine.

Books enter the catalog with a fixed number of owned copies, all of them
available. Afterwards the bibliographic details may be edited freely, but the
copy counters only change through the inventory ledger: lending, returning
and receiving newly acquired copies.
"""

import functools
import logging

from ..database.repository import PaginatedResponse, PaginationParams
from ..models.book import Book, normalize_isbn
from ..observability import trace_operation
from .errors import BookAlreadyCataloged, BookInUse, BookNotFound
from .inventory import InventoryLedger
from .locks import book_key
from .unit_of_work import ServiceBase

logger = logging.getLogger(__name__)

EDITABLE_FIELDS = frozenset(
    {"title", "publisher", "publication_year", "language", "page_count", "description"}
)


class CatalogService(ServiceBase):
    """Adds, edits and removes books."""

    @trace_operation("add_book")
    def add_book(
        self,
        isbn: str,
        title: str,
        publisher: str,
        publication_year: int,
        language: str,
        total_copies: int = 1,
        page_count: int = 0,
        description: str | None = None,
        timeout: float | None = None,
    ) -> Book:
        """
        Catalog a new book with all of its copies on the shelf.

        Raises:
            BookAlreadyCataloged: If the ISBN is already in the catalog
            pydantic.ValidationError: If a field is invalid
        """
        book = Book(
            isbn=isbn,
            title=title,
            publisher=publisher,
            publication_year=publication_year,
            language=language,
            page_count=page_count,
            description=description,
            total_copies=total_copies,
            available_copies=total_copies,
        )

        with self._unit_of_work(
            "add_book",
            [book_key(book.isbn)],
            timeout,
            conflict=functools.partial(BookAlreadyCataloged, book.isbn),
        ) as gateway:
            if gateway.books.exists(book.isbn):
                raise BookAlreadyCataloged(book.isbn)
            saved = gateway.books.save(book)

        logger.info("Cataloged %s '%s' with %d copies", saved.isbn, saved.title, saved.total_copies)
        return saved

    def get_book(self, isbn: str) -> Book:
        with self._read_only() as gateway:
            book = gateway.books.get_by_isbn(isbn)
        if book is None:
            raise BookNotFound(normalize_isbn(isbn))
        return book

    def list_books(
        self, pagination: PaginationParams | None = None
    ) -> list[Book] | PaginatedResponse[Book]:
        """Books ordered by title, optionally paginated."""
        with self._read_only() as gateway:
            return gateway.books.get_all(pagination=pagination, order_by="title")

    @trace_operation("update_book_details")
    def update_details(self, isbn: str, timeout: float | None = None, **changes) -> Book:
        """
        Edit bibliographic details.

        Only title, publisher, publication_year, language, page_count and
        description can be changed here.

        Raises:
            ValueError: If a non-editable field is passed
            BookNotFound: If the book is not in the catalog
        """
        unknown = set(changes) - EDITABLE_FIELDS
        if unknown:
            raise ValueError(f"Fields cannot be edited: {', '.join(sorted(unknown))}")

        isbn = normalize_isbn(isbn)
        with self._unit_of_work("update_book_details", [book_key(isbn)], timeout) as gateway:
            book = gateway.books.get_by_isbn(isbn)
            if book is None:
                raise BookNotFound(isbn)
            updated = Book.model_validate({**book.model_dump(), **changes})
            saved = gateway.books.save(updated)

        logger.info("Updated details of %s: %s", isbn, ", ".join(sorted(changes)))
        return saved

    @trace_operation("add_copies")
    def add_copies(self, isbn: str, count: int, timeout: float | None = None) -> Book:
        """Register newly acquired copies of a cataloged book."""
        isbn = normalize_isbn(isbn)
        with self._unit_of_work("add_copies", [book_key(isbn)], timeout) as gateway:
            InventoryLedger(gateway).receive_copies(isbn, count)
            return gateway.books.get_by_isbn(isbn)

    @trace_operation("remove_book")
    def remove_book(self, isbn: str, timeout: float | None = None) -> None:
        """
        Remove a book from the catalog.

        Raises:
            BookNotFound: If the book is not in the catalog
            BookInUse: If copies are on loan, reservations are active, or the
                book still has circulation history
        """
        isbn = normalize_isbn(isbn)
        with self._unit_of_work(
            "remove_book",
            [book_key(isbn)],
            timeout,
            conflict=functools.partial(BookInUse, isbn, "it still has circulation history"),
        ) as gateway:
            if not gateway.books.exists(isbn):
                raise BookNotFound(isbn)
            open_loans = gateway.transactions.count_open_by_isbn(isbn)
            if open_loans:
                raise BookInUse(isbn, f"{open_loans} copy(ies) on loan")
            reservations = gateway.reservations.count_active_by_isbn(isbn)
            if reservations:
                raise BookInUse(isbn, f"{reservations} active reservation(s)")
            gateway.books.delete(isbn)

        logger.info("Removed %s from the catalog", isbn)
