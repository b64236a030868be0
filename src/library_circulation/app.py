"""
Application wiring for the Library Circulation Engine.

Front ends (a web API, a desktop UI, a scheduled job) build the services
once per process:

    library = create_library()
    txn = library.circulation.borrow("9780134685479", member_id)
    library.fines.run_accrual_scan()

All services share one database manager, one lock registry and one clock.
"""

import logging
import sys
from collections.abc import Callable
from datetime import datetime

from .config import CirculationConfig, get_config
from .database.session import DatabaseManager
from .observability import ObservabilityConfig, initialize_observability
from .services import (
    CatalogService,
    CirculationEngine,
    FineAccrualService,
    KeyedLockRegistry,
    MemberService,
    get_lock_registry,
)

logger = logging.getLogger(__name__)


def configure_logging(config: CirculationConfig) -> None:
    """Send logs to stderr at the configured level."""
    logging.basicConfig(
        level=config.log_level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=[logging.StreamHandler(sys.stderr)],
    )
    if config.debug:
        logging.getLogger().setLevel(logging.DEBUG)
        logger.debug("Debug mode enabled")
    else:
        logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)


class Library:
    """The circulation services bound to one database."""

    def __init__(
        self,
        config: CirculationConfig,
        db_manager: DatabaseManager,
        locks: KeyedLockRegistry | None = None,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.config = config
        self.db = db_manager
        self.locks = locks or get_lock_registry()

        self.fines = FineAccrualService(db_manager, config, self.locks, clock)
        self.circulation = CirculationEngine(db_manager, config, self.locks, clock, fines=self.fines)
        self.catalog = CatalogService(db_manager, config, self.locks, clock)
        self.members = MemberService(db_manager, config, self.locks, clock)

    def close(self) -> None:
        self.db.close()


def create_library(
    config: CirculationConfig | None = None,
    db_manager: DatabaseManager | None = None,
    clock: Callable[[], datetime] = datetime.now,
    init_schema: bool = True,
) -> Library:
    """
    Configure logging and tracing, open the database and build the services.

    Args:
        config: Circulation configuration (defaults to the environment)
        db_manager: Database to use (defaults to the configured database)
        clock: Source of "now" for every service
        init_schema: Create missing tables
    """
    config = config or get_config()
    configure_logging(config)
    initialize_observability(ObservabilityConfig(enabled=config.observability_enabled))

    db_manager = db_manager or DatabaseManager(
        config.get_database_url(), busy_timeout=config.sqlite_busy_timeout_seconds
    )
    if init_schema:
        db_manager.init_database()

    logger.info(
        "Library circulation ready (loan period %d days, borrowing limit %d)",
        config.loan_period_days,
        config.borrowing_limit,
    )
    return Library(config, db_manager, clock=clock)
