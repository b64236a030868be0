"""
Domain errors raised by the circulation services.

Every error carries a ``kind`` naming its category, so callers can branch on
the category without importing each class:

    try:
        engine.borrow(isbn, member_id)
    except CirculationError as e:
        if e.kind == "NotAvailable":
            ...
"""


class CirculationError(Exception):
    """Base class for all rule violations and failures of the engine."""

    kind = "CirculationError"

    def __init__(self, message: str, **context):
        super().__init__(message)
        self.message = message
        self.context = context


# === Not found ===


class NotFound(CirculationError):
    kind = "NotFound"


class BookNotFound(NotFound):
    def __init__(self, isbn: str):
        super().__init__(f"Book {isbn} not found", isbn=isbn)


class MemberNotFound(NotFound):
    def __init__(self, member_id: str):
        super().__init__(f"Member {member_id} not found", member_id=member_id)


class TransactionNotFound(NotFound):
    def __init__(self, transaction_id: str):
        super().__init__(f"Transaction {transaction_id} not found", transaction_id=transaction_id)


class ReservationNotFound(NotFound):
    def __init__(self, reservation_id: str):
        super().__init__(f"Reservation {reservation_id} not found", reservation_id=reservation_id)


class FineNotFound(NotFound):
    def __init__(self, fine_id: str):
        super().__init__(f"Fine {fine_id} not found", fine_id=fine_id)


# === Inventory ===


class NotAvailable(CirculationError):
    """No copy of the book is free to lend."""

    kind = "NotAvailable"

    def __init__(self, isbn: str, message: str | None = None):
        super().__init__(message or f"No copies of {isbn} are available", isbn=isbn)


class OutOfStock(NotAvailable):
    """Raised by the inventory ledger when the counter is already zero."""

    def __init__(self, isbn: str):
        super().__init__(isbn, f"Inventory for {isbn} is exhausted")


class InventoryOverflow(CirculationError):
    """Returning a copy would push availability past the copies owned."""

    kind = "InventoryOverflow"

    def __init__(self, isbn: str):
        super().__init__(f"All copies of {isbn} are already on the shelf", isbn=isbn)


# === Borrowing ===


class AlreadyBorrowed(CirculationError):
    kind = "AlreadyBorrowed"

    def __init__(self, isbn: str, member_id: str):
        super().__init__(
            f"Member {member_id} already has {isbn} on loan", isbn=isbn, member_id=member_id
        )


class BorrowLimitExceeded(CirculationError):
    kind = "BorrowLimitExceeded"

    def __init__(self, member_id: str, limit: int):
        super().__init__(
            f"Member {member_id} has reached the borrowing limit of {limit}",
            member_id=member_id,
            limit=limit,
        )


class NoActiveBorrow(CirculationError):
    kind = "NoActiveBorrow"

    def __init__(self, message: str, **context):
        super().__init__(message, **context)


class MemberInactive(CirculationError):
    kind = "MemberInactive"

    def __init__(self, member_id: str):
        super().__init__(f"Member {member_id} is not active", member_id=member_id)


# === Reservations ===


class ReservationExists(CirculationError):
    kind = "ReservationExists"

    def __init__(self, isbn: str, member_id: str):
        super().__init__(
            f"Member {member_id} already holds a reservation for {isbn}",
            isbn=isbn,
            member_id=member_id,
        )


class ReservationLimitExceeded(CirculationError):
    kind = "ReservationLimitExceeded"

    def __init__(self, member_id: str, limit: int):
        super().__init__(
            f"Member {member_id} has reached the reservation limit of {limit}",
            member_id=member_id,
            limit=limit,
        )


class BookAvailable(CirculationError):
    """A reservation was refused because a copy is free right now."""

    kind = "BookAvailable"

    def __init__(self, isbn: str):
        super().__init__(f"{isbn} has free copies; borrow it instead of reserving", isbn=isbn)


class AlreadyCancelled(CirculationError):
    kind = "AlreadyCancelled"

    def __init__(self, reservation_id: str):
        super().__init__(
            f"Reservation {reservation_id} is already cancelled", reservation_id=reservation_id
        )


class ReservationNotActive(CirculationError):
    kind = "ReservationNotActive"

    def __init__(self, reservation_id: str, status: str):
        super().__init__(
            f"Reservation {reservation_id} is {status} and can no longer be cancelled",
            reservation_id=reservation_id,
            status=status,
        )


# === Fines ===


class AlreadyPaid(CirculationError):
    kind = "AlreadyPaid"

    def __init__(self, fine_id: str):
        super().__init__(f"Fine {fine_id} is already paid", fine_id=fine_id)


class FineExists(CirculationError):
    kind = "FineExists"

    def __init__(self, transaction_id: str):
        super().__init__(
            f"Transaction {transaction_id} already has a fine", transaction_id=transaction_id
        )


# === Catalog and members ===


class BookInUse(CirculationError):
    kind = "BookInUse"

    def __init__(self, isbn: str, reason: str):
        super().__init__(f"Book {isbn} cannot be removed: {reason}", isbn=isbn)


class EmailAlreadyRegistered(CirculationError):
    kind = "EmailAlreadyRegistered"

    def __init__(self, email: str):
        super().__init__(f"Email {email} is already registered", email=email)


class BookAlreadyCataloged(CirculationError):
    kind = "BookAlreadyCataloged"

    def __init__(self, isbn: str):
        super().__init__(f"Book {isbn} is already in the catalog", isbn=isbn)


# === Infrastructure ===


class DeadlineExceeded(CirculationError):
    """The operation ran out of time before it could commit."""

    kind = "DeadlineExceeded"

    def __init__(self, operation: str, timeout: float):
        super().__init__(
            f"{operation} did not complete within {timeout:.2f}s",
            operation=operation,
            timeout=timeout,
        )


class PersistenceFailure(CirculationError):
    """The persistence gateway failed; nothing was committed."""

    kind = "PersistenceFailure"
