"""Test configuration and fixtures for the Library Circulation Engine.

Every test gets:
1. Its own SQLite database file under tmp_path (a file, not ``:memory:``,
   so concurrent tests really use separate connections)
2. A configuration that ignores the environment and any .env file
3. A controllable clock, so due dates and fines are deterministic
4. A private lock registry
"""

import os
from collections.abc import Generator
from datetime import datetime, timedelta
from pathlib import Path

import pytest

from library_circulation.app import Library
from library_circulation.config import CirculationConfig, reset_config
from library_circulation.database import DatabaseManager, PersistenceGateway
from library_circulation.models import Book, Member
from library_circulation.observability import ObservabilityConfig, initialize_observability
from library_circulation.services import KeyedLockRegistry

START = datetime(2024, 3, 1, 10, 0, 0)


class FakeClock:
    """Callable clock that only moves when told to."""

    def __init__(self, now: datetime = START):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now += timedelta(**kwargs)
        return self.now


# === Session-wide setup ===


@pytest.fixture(scope="session", autouse=True)
def _local_tracing() -> None:
    """Configure Logfire to record spans locally without exporting them."""
    initialize_observability(
        ObservabilityConfig(enabled=True, send_to_logfire=False, console_output=False)
    )


# === Database Fixtures ===


@pytest.fixture
def test_db_path(tmp_path: Path) -> Path:
    return tmp_path / "test_library.db"


@pytest.fixture
def test_database_url(test_db_path: Path) -> str:
    return f"sqlite:///{test_db_path}"


@pytest.fixture
def db_manager(test_database_url: str) -> Generator[DatabaseManager, None, None]:
    """A database manager over a fresh schema."""
    manager = DatabaseManager(test_database_url, busy_timeout=10.0)
    manager.init_database()
    yield manager
    manager.close()


@pytest.fixture
def gateway(db_manager: DatabaseManager) -> Generator[PersistenceGateway, None, None]:
    """A gateway over one session, rolled back after the test."""
    session = db_manager.create_session()
    try:
        yield PersistenceGateway(session)
    finally:
        session.rollback()
        session.close()


# === Configuration Fixtures ===


@pytest.fixture
def test_config(test_db_path: Path) -> Generator[CirculationConfig, None, None]:
    """Default circulation rules over the test database."""
    reset_config()
    config = CirculationConfig(_env_file=None, database_path=test_db_path)
    yield config
    reset_config()


@pytest.fixture
def clean_env() -> Generator[None, None, None]:
    """Remove LIBRARY_CIRCULATION_* variables for the duration of a test."""
    original_env = os.environ.copy()
    for key in list(os.environ):
        if key.startswith("LIBRARY_CIRCULATION_"):
            del os.environ[key]

    yield

    os.environ.clear()
    os.environ.update(original_env)


# === Service Fixtures ===


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def library(
    test_config: CirculationConfig, db_manager: DatabaseManager, clock: FakeClock
) -> Library:
    return Library(test_config, db_manager, locks=KeyedLockRegistry(), clock=clock)


@pytest.fixture
def add_book(library: Library):
    """Factory cataloging a book with a given number of copies."""
    counter = iter(range(1, 10_000))

    def _add_book(copies: int = 1, isbn: str | None = None, title: str | None = None) -> Book:
        n = next(counter)
        return library.catalog.add_book(
            isbn=isbn or f"978000000{n:04d}",
            title=title or f"Test Book {n}",
            publisher="Test Press",
            publication_year=2020,
            language="English",
            total_copies=copies,
            page_count=200,
        )

    return _add_book


@pytest.fixture
def add_member(library: Library):
    """Factory registering a member with a unique email."""
    counter = iter(range(1, 10_000))

    def _add_member(name: str | None = None) -> Member:
        n = next(counter)
        return library.members.register(
            name=name or f"Member {n}",
            email=f"member{n}@library.org",
            address=f"{n} Library Lane",
            phones=[f"555-01{n:02d}"],
        )

    return _add_member


# === Test Data Fixtures ===


@pytest.fixture
def sample_book_data() -> dict:
    return {
        "isbn": "9780134685479",
        "title": "Effective Java",
        "publisher": "Addison-Wesley",
        "publication_year": 2018,
        "language": "English",
        "page_count": 412,
        "description": "Best practices for the Java platform",
        "available_copies": 3,
        "total_copies": 3,
    }


@pytest.fixture
def sample_member_data() -> dict:
    return {
        "id": "member_3f9a1c2b7d4e",
        "name": "Jane Doe",
        "email": "Jane.Doe@Library.org",
        "address": "1 Main Street",
        "phones": ["555-0100", " 555-0100 ", "555-0199"],
    }
