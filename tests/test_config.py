"""Tests for circulation configuration.

These tests demonstrate:
1. Default circulation rules
2. Environment variable loading
3. Validation of rule values
4. The configuration singleton
"""

import os
from decimal import Decimal
from pathlib import Path
from unittest.mock import patch

import pytest
from pydantic import ValidationError

from library_circulation.config import (
    CirculationConfig,
    ReservationPolicy,
    get_config,
    reset_config,
)
from library_circulation.observability.config import (
    DevelopmentConfig,
    ObservabilityConfig,
    ProductionConfig,
    get_environment_config,
)


class TestCirculationConfig:
    """Test circulation configuration behavior."""

    def test_default_rules(self, clean_env, tmp_path: Path):
        config = CirculationConfig(_env_file=None, database_path=tmp_path / "library.db")

        assert config.loan_period_days == 14
        assert config.borrowing_limit == 5
        assert config.reservation_limit == 3
        assert config.reservation_window_days == 7
        assert config.fine_rate_per_day == Decimal("1.00")
        assert config.reservation_policy == ReservationPolicy.REQUIRE_UNAVAILABLE
        assert config.observability_enabled is True

    def test_environment_variable_loading(self, clean_env, tmp_path: Path):
        env_vars = {
            "LIBRARY_CIRCULATION_DATABASE_PATH": str(tmp_path / "env.db"),
            "LIBRARY_CIRCULATION_BORROWING_LIMIT": "8",
            "LIBRARY_CIRCULATION_FINE_RATE_PER_DAY": "0.50",
            "LIBRARY_CIRCULATION_RESERVATION_POLICY": "allow_available",
            "LIBRARY_CIRCULATION_LOG_LEVEL": "DEBUG",
        }

        with patch.dict(os.environ, env_vars):
            config = CirculationConfig(_env_file=None)

        assert config.database_path == tmp_path / "env.db"
        assert config.borrowing_limit == 8
        assert config.fine_rate_per_day == Decimal("0.50")
        assert config.reservation_policy == ReservationPolicy.ALLOW_AVAILABLE
        assert config.is_development is True

    def test_database_path_is_made_absolute(self, clean_env, tmp_path: Path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        config = CirculationConfig(_env_file=None, database_path=Path("nested/library.db"))

        assert config.database_path.is_absolute()
        assert (tmp_path / "nested").is_dir()
        assert config.get_database_url() == f"sqlite:///{tmp_path / 'nested' / 'library.db'}"

    def test_database_url_overrides_path(self, clean_env, tmp_path: Path):
        config = CirculationConfig(
            _env_file=None,
            database_path=tmp_path / "ignored.db",
            database_url="sqlite:///:memory:",
        )
        assert config.get_database_url() == "sqlite:///:memory:"

    @pytest.mark.parametrize(
        "field,value",
        [
            ("borrowing_limit", 0),
            ("reservation_limit", 0),
            ("loan_period_days", 0),
            ("fine_rate_per_day", Decimal("-1")),
            ("log_level", "VERBOSE"),
            ("reservation_policy", "first_come"),
        ],
    )
    def test_invalid_values(self, clean_env, tmp_path: Path, field, value):
        with pytest.raises(ValidationError):
            CirculationConfig(_env_file=None, database_path=tmp_path / "x.db", **{field: value})


class TestConfigSingleton:
    def test_get_config_is_cached(self, clean_env, tmp_path: Path, monkeypatch):
        monkeypatch.setenv("LIBRARY_CIRCULATION_DATABASE_PATH", str(tmp_path / "one.db"))
        reset_config()
        try:
            assert get_config() is get_config()
        finally:
            reset_config()

    def test_reset_config_reloads(self, clean_env, tmp_path: Path, monkeypatch):
        monkeypatch.setenv("LIBRARY_CIRCULATION_DATABASE_PATH", str(tmp_path / "one.db"))
        reset_config()
        try:
            monkeypatch.setenv("LIBRARY_CIRCULATION_BORROWING_LIMIT", "2")
            first = get_config()
            reset_config()
            monkeypatch.setenv("LIBRARY_CIRCULATION_BORROWING_LIMIT", "4")
            second = get_config()

            assert first.borrowing_limit == 2
            assert second.borrowing_limit == 4
        finally:
            reset_config()


class TestObservabilityConfig:
    @pytest.mark.parametrize(
        "environment,config_class",
        [
            ("production", ProductionConfig),
            ("development", DevelopmentConfig),
            ("staging", ObservabilityConfig),
        ],
    )
    def test_environment_selects_config(self, monkeypatch, environment, config_class):
        monkeypatch.setenv("ENVIRONMENT", environment)

        config = get_environment_config()

        assert type(config) is config_class
        assert config.environment == environment

    def test_production_exports_spans(self, monkeypatch):
        monkeypatch.setenv("ENVIRONMENT", "production")
        assert get_environment_config().send_to_logfire is True
