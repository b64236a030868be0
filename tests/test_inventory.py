"""Tests for the inventory ledger."""

import pytest

from library_circulation.models import Book
from library_circulation.services import InventoryLedger
from library_circulation.services.errors import (
    BookNotFound,
    InventoryOverflow,
    NotAvailable,
    OutOfStock,
)


@pytest.fixture
def ledger(gateway, sample_book_data) -> InventoryLedger:
    sample_book_data.update(available_copies=1, total_copies=2)
    gateway.books.save(Book(**sample_book_data))
    return InventoryLedger(gateway)


class TestInventoryLedger:
    def test_available(self, ledger):
        assert ledger.available("9780134685479") == 1

    def test_decrement_to_zero_then_out_of_stock(self, ledger):
        assert ledger.decrement("9780134685479") == 0

        with pytest.raises(OutOfStock) as exc_info:
            ledger.decrement("9780134685479")

        # OutOfStock is reported to callers as NotAvailable
        assert isinstance(exc_info.value, NotAvailable)
        assert exc_info.value.kind == "NotAvailable"
        assert ledger.available("9780134685479") == 0

    def test_increment_up_to_total(self, ledger):
        assert ledger.increment("9780134685479") == 2

        with pytest.raises(InventoryOverflow):
            ledger.increment("9780134685479")
        assert ledger.available("9780134685479") == 2

    def test_unknown_book(self, ledger):
        with pytest.raises(BookNotFound):
            ledger.decrement("9780000000000")
        with pytest.raises(BookNotFound):
            ledger.increment("9780000000000")
        with pytest.raises(BookNotFound):
            ledger.available("9780000000000")

    def test_receive_copies(self, ledger, gateway):
        assert ledger.receive_copies("9780134685479", 3) == 4

        book = gateway.books.get_by_isbn("9780134685479")
        assert book.total_copies == 5
        assert book.available_copies == 4

    def test_receive_copies_requires_positive_count(self, ledger):
        with pytest.raises(ValueError):
            ledger.receive_copies("9780134685479", 0)
