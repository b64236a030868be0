"""
Database session management for the Library Circulation Engine.

Every engine operation runs inside one ``session_scope()``: the borrow's new
transaction row and its inventory decrement either commit together or roll
back together.

SQLite specifics:

- Write transactions are opened with ``BEGIN IMMEDIATE`` so the database write
  lock is taken up front. Two sessions can then never both read a counter and
  race to write it; the second one waits (up to the busy timeout) instead.
- Foreign keys are switched on per connection.
- ``:memory:`` databases share a single connection through StaticPool.
"""

import logging
from collections.abc import Callable, Generator
from contextlib import contextmanager

from sqlalchemy import create_engine, event, text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from ..config import get_config
from .exceptions import DuplicateError, PersistenceError
from .schema import Base

logger = logging.getLogger(__name__)

DEFAULT_BUSY_TIMEOUT = 10.0


def _is_memory_url(database_url: str) -> bool:
    return database_url in ("sqlite://", "sqlite:///:memory:") or "mode=memory" in database_url


class DatabaseManager:
    """
    Manages database connections and sessions.

    This class provides:
    - Lazily created engine and session factory
    - Transactional session scopes with commit/rollback
    - Schema initialization for development and tests
    """

    def __init__(self, database_url: str | None = None, busy_timeout: float | None = None):
        """
        Initialize the database manager.

        Args:
            database_url: SQLAlchemy database URL. If None, uses the configured one.
            busy_timeout: Seconds SQLite waits for a lock before giving up.
        """
        if database_url is None:
            config = get_config()
            database_url = config.get_database_url()
            busy_timeout = busy_timeout or config.sqlite_busy_timeout_seconds
            logger.info("Using database at: %s", database_url)

        self.database_url = database_url
        self.busy_timeout = busy_timeout or DEFAULT_BUSY_TIMEOUT
        self._engine: Engine | None = None
        self._session_factory: sessionmaker | None = None

    @property
    def engine(self) -> Engine:
        """Get or create the database engine."""
        if self._engine is None:
            if self.database_url.startswith("sqlite"):
                engine_kwargs = {
                    "connect_args": {
                        "check_same_thread": False,
                        "timeout": self.busy_timeout,
                    },
                    "echo": False,
                }
                if _is_memory_url(self.database_url):
                    engine_kwargs["poolclass"] = StaticPool

                self._engine = create_engine(self.database_url, **engine_kwargs)
                self._install_sqlite_listeners(self._engine)
            else:
                self._engine = create_engine(
                    self.database_url,
                    pool_size=10,
                    max_overflow=20,
                    pool_pre_ping=True,
                    echo=False,
                )

            logger.info("Database engine created: %s", self._engine.url)

        return self._engine

    @staticmethod
    def _install_sqlite_listeners(engine: Engine) -> None:
        @event.listens_for(engine, "connect")
        def set_sqlite_pragma(dbapi_connection, connection_record):  # noqa: ARG001
            # Let SQLAlchemy's "begin" hook below control transactions
            dbapi_connection.isolation_level = None
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.close()

        @event.listens_for(engine, "begin")
        def begin_immediate(conn):
            conn.exec_driver_sql("BEGIN IMMEDIATE")

    @property
    def session_factory(self) -> sessionmaker:
        """Get or create the session factory."""
        if self._session_factory is None:
            self._session_factory = sessionmaker(
                bind=self.engine,
                autoflush=False,
                expire_on_commit=False,
            )
        return self._session_factory

    def create_session(self) -> Session:
        """Create a new database session. Prefer session_scope()."""
        return self.session_factory()

    @contextmanager
    def session_scope(self) -> Generator[Session, None, None]:
        """
        Provide a transactional scope for database operations.

        ```python
        with db_manager.session_scope() as session:
            gateway = PersistenceGateway(session)
            ...
        # committed on success, rolled back on any exception
        ```

        Raises:
            PersistenceError: If the commit itself fails
        """
        session = self.create_session()
        try:
            yield session
            safe_commit(session, "unit of work")
            logger.debug("Database transaction committed successfully")
        except SQLAlchemyError:
            logger.exception("Database error, rolling back")
            session.rollback()
            raise
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    def init_database(self, drop_existing: bool = False) -> None:
        """
        Initialize the database schema.

        Args:
            drop_existing: If True, drop all tables before creating
        """
        engine = self.engine

        if drop_existing:
            logger.warning("Dropping all existing tables...")
            Base.metadata.drop_all(bind=engine)

        logger.info("Creating database tables...")
        Base.metadata.create_all(bind=engine)
        logger.info("Database initialization complete")

    def verify_connection(self) -> bool:
        """Return True if a trivial query succeeds."""
        try:
            with self.engine.connect() as conn:
                conn.execute(text("SELECT 1"))
            logger.info("Database connection verified")
            return True
        except SQLAlchemyError:
            logger.exception("Database connection failed")
            return False

    def close(self) -> None:
        """Dispose of the engine and its pooled connections."""
        if self._engine:
            self._engine.dispose()
            logger.info("Database engine disposed")
        self._engine = None
        self._session_factory = None


_db_manager: DatabaseManager | None = None


def get_db_manager(database_url: str | None = None) -> DatabaseManager:
    """
    Get the global database manager instance.

    Args:
        database_url: Database URL (only used on first call)
    """
    global _db_manager  # noqa: PLW0603 - Singleton pattern for database manager

    if _db_manager is None:
        _db_manager = DatabaseManager(database_url)

    return _db_manager


def reset_db_manager() -> None:
    """Dispose of and forget the global manager (useful for testing)."""
    global _db_manager  # noqa: PLW0603

    if _db_manager is not None:
        _db_manager.close()
    _db_manager = None


@contextmanager
def session_scope() -> Generator[Session, None, None]:
    """Convenience context manager over the global database manager."""
    with get_db_manager().session_scope() as session:
        yield session


def safe_commit(session: Session, operation: str) -> None:
    """
    Commit a session, translating driver errors.

    Raises:
        DuplicateError: If a uniqueness or integrity constraint fails
        PersistenceError: On any other database error
    """
    try:
        session.commit()
    except IntegrityError as e:
        session.rollback()
        raise DuplicateError(f"Database operation '{operation}' violated a constraint: {e!s}") from e
    except SQLAlchemyError as e:
        session.rollback()
        raise PersistenceError(f"Database operation '{operation}' failed: {e!s}") from e


def safe_flush(session: Session, operation: str) -> None:
    """
    Flush pending changes without committing.

    Raises:
        DuplicateError: If a uniqueness or integrity constraint fails
        PersistenceError: On any other database error
    """
    try:
        session.flush()
    except IntegrityError as e:
        raise DuplicateError(f"Database operation '{operation}' violated a constraint: {e!s}") from e
    except SQLAlchemyError as e:
        raise PersistenceError(f"Database operation '{operation}' failed: {e!s}") from e


def safe_query[T](session: Session, query_func: Callable[[Session], T], error_msg: str) -> T:
    """
    Execute a query, translating driver errors.

    Args:
        session: The database session
        query_func: Function that performs the query
        error_msg: Context for the error message

    Raises:
        PersistenceError: If the query fails
    """
    try:
        return query_func(session)
    except SQLAlchemyError as e:
        logger.exception("Query failed")
        raise PersistenceError(f"{error_msg}: Database query failed") from e
