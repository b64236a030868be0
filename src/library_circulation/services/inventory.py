"""
Inventory ledger for the Library Circulation Engine.

The ledger is the only code that changes a book's available copy count. It
runs inside the caller's unit of work, so a decrement is committed or rolled
back together with the borrow that caused it.

Every mutation is a conditional UPDATE in the database (see
BookRepository), which keeps ``0 <= available_copies <= total_copies`` even
if two processes share the database without sharing in-process locks.
"""

import logging

from ..database.gateway import PersistenceGateway
from ..models.book import normalize_isbn
from .errors import BookNotFound, InventoryOverflow, OutOfStock

logger = logging.getLogger(__name__)


class InventoryLedger:
    """Owner of the available-copies counter."""

    def __init__(self, gateway: PersistenceGateway):
        self.books = gateway.books

    def available(self, isbn: str) -> int:
        """
        Current number of free copies.

        Raises:
            BookNotFound: If the book is not in the catalog
        """
        count = self.books.available_copies(isbn)
        if count is None:
            raise BookNotFound(normalize_isbn(isbn))
        return count

    def decrement(self, isbn: str) -> int:
        """
        Lend out one copy.

        Returns:
            The new available count

        Raises:
            OutOfStock: If no copy is free
            BookNotFound: If the book is not in the catalog
        """
        remaining = self.books.decrement_available(isbn)
        if remaining is None:
            # Tell "no such book" apart from "no copy left"
            self.available(isbn)
            raise OutOfStock(normalize_isbn(isbn))
        logger.debug("Decremented %s to %d available", isbn, remaining)
        return remaining

    def increment(self, isbn: str) -> int:
        """
        Put one copy back.

        Returns:
            The new available count

        Raises:
            InventoryOverflow: If every owned copy is already available
            BookNotFound: If the book is not in the catalog
        """
        available = self.books.increment_available(isbn)
        if available is None:
            self.available(isbn)
            raise InventoryOverflow(normalize_isbn(isbn))
        logger.debug("Incremented %s to %d available", isbn, available)
        return available

    def receive_copies(self, isbn: str, count: int) -> int:
        """
        Add newly acquired copies to both the owned and the available count.

        Raises:
            ValueError: If count is not positive
            BookNotFound: If the book is not in the catalog
        """
        if count < 1:
            raise ValueError("Copy count must be positive")
        available = self.books.add_copies(isbn, count)
        if available is None:
            raise BookNotFound(normalize_isbn(isbn))
        logger.info("Received %d new copies of %s (%d available)", count, isbn, available)
        return available
