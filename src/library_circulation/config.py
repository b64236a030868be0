"""Configuration management for the Library Circulation Engine.

Circulation rules (loan period, limits, fine rate, reservation policy) live
here rather than as constants scattered through the engine, so a deployment
can tune them through environment variables or a ``.env`` file.
"""

import enum
from decimal import Decimal
from pathlib import Path

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class ReservationPolicy(str, enum.Enum):
    """Whether a reservation may be placed on a book with free copies."""

    # Reservations only queue for a future copy
    REQUIRE_UNAVAILABLE = "require_unavailable"
    ALLOW_AVAILABLE = "allow_available"


class CirculationConfig(BaseSettings):
    """Circulation engine configuration.

    All fields can be overridden with ``LIBRARY_CIRCULATION_<FIELD>``
    environment variables.
    """

    model_config = SettingsConfigDict(
        env_prefix="LIBRARY_CIRCULATION_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # === Database Configuration ===

    database_path: Path = Field(
        default=Path("data/library.db"),
        description="SQLite database file path",
    )

    database_url: str | None = Field(
        default=None,
        description="Full SQLAlchemy URL; overrides database_path when set",
    )

    sqlite_busy_timeout_seconds: float = Field(
        default=10.0,
        description="How long SQLite waits for the write lock before failing",
        gt=0,
    )

    # === Circulation Rules ===

    loan_period_days: int = Field(
        default=14,
        description="Days between a borrow and its due date",
        ge=1,
    )

    borrowing_limit: int = Field(
        default=5,
        description="Maximum open loans per member",
        ge=1,
    )

    reservation_limit: int = Field(
        default=3,
        description="Maximum active reservations per member",
        ge=1,
    )

    reservation_window_days: int = Field(
        default=7,
        description="Days a reservation stays valid after it is placed",
        ge=1,
    )

    reservation_policy: ReservationPolicy = Field(
        default=ReservationPolicy.REQUIRE_UNAVAILABLE,
        description="Reservation availability policy",
    )

    fine_rate_per_day: Decimal = Field(
        default=Decimal("1.00"),
        description="Fine charged per whole day overdue",
        ge=Decimal("0"),
        decimal_places=2,
    )

    # === Concurrency ===

    lock_timeout_seconds: float = Field(
        default=30.0,
        description="Default upper bound for acquiring per-book/per-member locks",
        gt=0,
    )

    # === Development Configuration ===

    debug: bool = Field(
        default=False,
        description="Enable debug logging",
    )

    log_level: str = Field(
        default="INFO",
        description="Logging level (DEBUG, INFO, WARNING, ERROR)",
        pattern=r"^(DEBUG|INFO|WARNING|ERROR)$",
    )

    observability_enabled: bool = Field(
        default=True,
        description="Emit Logfire spans for engine operations",
    )

    @field_validator("database_path")
    @classmethod
    def validate_database_path(cls, v: Path) -> Path:
        """Resolve the database path and make sure its directory exists."""
        abs_path = v.absolute()
        abs_path.parent.mkdir(parents=True, exist_ok=True)

        if not abs_path.parent.is_dir():
            raise ValueError(f"Database directory {abs_path.parent} is not accessible")

        return abs_path

    @property
    def is_development(self) -> bool:
        """Check if running in development mode."""
        return self.debug or self.log_level == "DEBUG"

    def get_database_url(self) -> str:
        """Get SQLAlchemy database URL."""
        if self.database_url:
            return self.database_url
        return f"sqlite:///{self.database_path}"


class _ConfigStore:
    """Internal storage for configuration singleton."""

    _instance: CirculationConfig | None = None


def get_config() -> CirculationConfig:
    """Get or create the global configuration instance."""
    if _ConfigStore._instance is None:  # type: ignore[reportPrivateUsage]
        _ConfigStore._instance = CirculationConfig()  # type: ignore[reportPrivateUsage]
    return _ConfigStore._instance  # type: ignore[reportPrivateUsage]


def reset_config() -> None:
    """Reset configuration (useful for testing)."""
    _ConfigStore._instance = None  # type: ignore[reportPrivateUsage]
