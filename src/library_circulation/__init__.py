"""
Library Circulation Engine package.

This package implements the circulation core of a library tracker: book
inventory counts, member borrowing/reservation limits and fine accrual for
overdue loans.

Key Components:
- models: Pydantic models for the entity model (books, members, loans, fines)
- database: SQLAlchemy schema, session management and repositories
- services: inventory ledger, circulation engine, fine accrual, catalog, members
- config: Configuration management with pydantic-settings
- observability: Logfire spans around engine and repository operations
"""

__version__ = "0.1.0"

from . import database, models, services
from .config import CirculationConfig, ReservationPolicy, get_config, reset_config
from .services import (
    CatalogService,
    CirculationEngine,
    CirculationError,
    FineAccrualService,
    MemberService,
)

__all__ = [
    "CatalogService",
    "CirculationConfig",
    "CirculationEngine",
    "CirculationError",
    "FineAccrualService",
    "MemberService",
    "ReservationPolicy",
    "__version__",
    "database",
    "get_config",
    "models",
    "reset_config",
    "services",
]
