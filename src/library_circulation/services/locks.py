"""
Per-key locking and deadlines for circulation operations.

Operations lock the keys of the records they check and mutate, e.g. the book
being borrowed and the borrowing member:

    deadline = Deadline.after(5.0, "borrow")
    with registry.hold([book_key(isbn), member_key(member_id)], deadline):
        ...

Keys are always acquired in sorted order, so two operations that need an
overlapping set of keys can never deadlock on each other. Acquisition waits at
most until the deadline and raises DeadlineExceeded instead of blocking
forever.
"""

import logging
import threading
import time
from collections.abc import Generator, Iterable
from contextlib import contextmanager

from .errors import DeadlineExceeded

logger = logging.getLogger(__name__)


def book_key(isbn: str) -> str:
    return f"book:{isbn}"


def member_key(member_id: str) -> str:
    return f"member:{member_id}"


class Deadline:
    """A point in (monotonic) time an operation must finish by."""

    def __init__(self, expires_at: float, timeout: float, operation: str):
        self.expires_at = expires_at
        self.timeout = timeout
        self.operation = operation

    @classmethod
    def after(cls, timeout: float, operation: str) -> "Deadline":
        return cls(time.monotonic() + timeout, timeout, operation)

    def remaining(self) -> float:
        return max(0.0, self.expires_at - time.monotonic())

    @property
    def expired(self) -> bool:
        return time.monotonic() >= self.expires_at

    def check(self) -> None:
        """Raise DeadlineExceeded if the deadline has passed."""
        if self.expired:
            raise DeadlineExceeded(self.operation, self.timeout)


class _KeyLock:
    __slots__ = ("lock", "users")

    def __init__(self):
        self.lock = threading.Lock()
        self.users = 0


class KeyedLockRegistry:
    """
    In-process registry of one mutex per key.

    A key's mutex exists only while some caller holds or waits for it, so the
    registry does not grow with every book, member or email ever seen.
    """

    def __init__(self):
        self._guard = threading.Lock()
        self._locks: dict[str, _KeyLock] = {}

    def _checkout(self, key: str) -> threading.Lock:
        with self._guard:
            entry = self._locks.get(key)
            if entry is None:
                entry = self._locks[key] = _KeyLock()
            entry.users += 1
            return entry.lock

    def _checkin(self, key: str) -> None:
        with self._guard:
            entry = self._locks[key]
            entry.users -= 1
            if entry.users == 0:
                del self._locks[key]

    @contextmanager
    def hold(self, keys: Iterable[str], deadline: Deadline) -> Generator[None, None, None]:
        """
        Hold the locks for all keys for the duration of the block.

        Raises:
            DeadlineExceeded: If a lock cannot be taken before the deadline
        """
        checked_out: list[str] = []
        acquired: list[threading.Lock] = []
        try:
            for key in sorted(set(keys)):
                lock = self._checkout(key)
                checked_out.append(key)
                if not lock.acquire(timeout=deadline.remaining()):
                    logger.warning("Timed out waiting for lock %s (%s)", key, deadline.operation)
                    raise DeadlineExceeded(deadline.operation, deadline.timeout)
                acquired.append(lock)
            yield
        finally:
            for lock in reversed(acquired):
                lock.release()
            for key in checked_out:
                self._checkin(key)

    def __len__(self) -> int:
        """Number of keys currently held or waited on."""
        with self._guard:
            return len(self._locks)


_default_registry = KeyedLockRegistry()


def get_lock_registry() -> KeyedLockRegistry:
    """The process-wide registry shared by all services."""
    return _default_registry
