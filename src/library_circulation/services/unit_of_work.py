"""
Unit of work shared by the circulation services.

A unit of work takes the per-key locks, opens one database session scope and
hands the caller a PersistenceGateway over it. Everything written through the
gateway commits together when the block exits normally; any exception rolls
all of it back. The deadline is checked once more right before commit, so an
operation that ran out of time leaves no trace.
"""

import logging
import uuid
from collections.abc import Callable, Generator, Iterable
from contextlib import contextmanager
from datetime import datetime

from ..config import CirculationConfig, get_config
from ..database.exceptions import DuplicateError, RepositoryException
from ..database.gateway import PersistenceGateway
from ..database.session import DatabaseManager, get_db_manager
from .errors import CirculationError, PersistenceFailure
from .locks import Deadline, KeyedLockRegistry, get_lock_registry

logger = logging.getLogger(__name__)


def new_id(prefix: str) -> str:
    """Random identifier such as ``txn_5c1e0f3a9b2d``."""
    return f"{prefix}_{uuid.uuid4().hex[:12]}"


class ServiceBase:
    """Wiring common to every service: database, config, locks and clock."""

    def __init__(
        self,
        db_manager: DatabaseManager | None = None,
        config: CirculationConfig | None = None,
        locks: KeyedLockRegistry | None = None,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.config = config or get_config()
        self.db = db_manager or get_db_manager()
        self.locks = locks or get_lock_registry()
        self.clock = clock

    def _deadline(self, operation: str, timeout: float | None) -> Deadline:
        return Deadline.after(
            timeout if timeout is not None else self.config.lock_timeout_seconds, operation
        )

    @contextmanager
    def _unit_of_work(
        self,
        operation: str,
        keys: Iterable[str] = (),
        timeout: float | None = None,
        *,
        deadline: Deadline | None = None,
        conflict: Callable[[], CirculationError] | None = None,
    ) -> Generator[PersistenceGateway, None, None]:
        """
        Run a block under locks and a single database transaction.

        Args:
            operation: Name used in logs and errors
            keys: Lock keys to hold for the whole block
            timeout: Seconds allowed for this block, when no deadline is given
            deadline: Deadline shared with the rest of the calling operation
            conflict: Builds the error to raise when a constraint is violated

        Raises:
            DeadlineExceeded: If locks could not be taken, or the block finished
                after the deadline (nothing is committed then)
            PersistenceFailure: If the database failed, or a constraint was
                violated and no ``conflict`` error was given
        """
        if deadline is None:
            deadline = self._deadline(operation, timeout)
        try:
            with self.locks.hold(keys, deadline), self.db.session_scope() as session:
                yield PersistenceGateway(session)
                deadline.check()
        except DuplicateError as e:
            if conflict is not None:
                raise conflict() from e
            logger.error("%s violated a database constraint: %s", operation, e)
            raise PersistenceFailure(str(e), operation=operation) from e
        except RepositoryException as e:
            logger.error("%s failed in the persistence layer: %s", operation, e)
            raise PersistenceFailure(str(e), operation=operation) from e

    @contextmanager
    def _read_only(self) -> Generator[PersistenceGateway, None, None]:
        """Gateway for queries that need no locks."""
        try:
            with self.db.session_scope() as session:
                yield PersistenceGateway(session)
        except RepositoryException as e:
            raise PersistenceFailure(str(e)) from e
