"""
Tests for configuration management in `medtrack/config.py`.

Covers:
- Environment parsing and debug defaults
- Logging level coercion to the expected Literal
- Schedule and inventory settings from the environment
- get_config cache behavior
- AppConfig validation (debug only allowed in development)
"""

from __future__ import annotations

from collections.abc import Iterator
from datetime import timedelta

import pytest

from medtrack.config import (
    AppConfig,
    InventoryConfig,
    LoggingConfig,
    ScheduleConfig,
    configure_logging,
    get_config,
    load_config_from_env,
)

_SETTINGS = (
    "ENVIRONMENT",
    "LOG_LEVEL",
    "DUE_WINDOW_MINUTES",
    "OVERDUE_GRACE_MINUTES",
    "REMINDER_GRACE_MINUTES",
    "DEFAULT_TIMEZONE",
    "CONSUMPTION_LOOKBACK_DAYS",
    "REFILL_LEAD_DAYS",
    "DEFAULT_LOW_STOCK_THRESHOLD",
    "DEFAULT_REFILL_QUANTITY",
)


@pytest.fixture(autouse=True)
def clear_config_cache(monkeypatch: pytest.MonkeyPatch) -> Iterator[None]:
    """Start each test from a clean environment and an empty get_config cache."""
    for name in _SETTINGS:
        monkeypatch.delenv(name, raising=False)
    get_config.cache_clear()
    yield
    get_config.cache_clear()


def test_load_config_dev_defaults(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("ENVIRONMENT", "development")

    config = load_config_from_env()

    assert config.environment == "development"
    assert config.debug is True
    assert config.logging.format == "console"
    assert config.schedule.due_window == timedelta(minutes=30)
    assert config.schedule.overdue_grace == timedelta(minutes=30)
    assert config.schedule.reminder_grace == timedelta(hours=2)
    assert config.inventory.consumption_lookback_days == 7


def test_production_uses_json_logs(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("ENVIRONMENT", "prod")

    config = load_config_from_env()

    assert config.environment == "production"
    assert config.debug is False
    assert config.logging.format == "json"


def test_schedule_and_inventory_overrides(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("ENVIRONMENT", "staging")
    monkeypatch.setenv("DUE_WINDOW_MINUTES", "15")
    monkeypatch.setenv("OVERDUE_GRACE_MINUTES", "0")
    monkeypatch.setenv("DEFAULT_TIMEZONE", "Europe/Berlin")
    monkeypatch.setenv("REFILL_LEAD_DAYS", "10")
    monkeypatch.setenv("DEFAULT_LOW_STOCK_THRESHOLD", "3.5")

    config = load_config_from_env()

    assert config.schedule.due_window_minutes == 15
    assert config.schedule.overdue_grace == timedelta(0)
    assert config.schedule.default_timezone == "Europe/Berlin"
    assert config.inventory.refill_lead_days == 10
    assert config.inventory.default_low_stock_threshold == 3.5


def test_logging_level_literal_coercion(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("ENVIRONMENT", "staging")

    # Unknown level should coerce to INFO
    monkeypatch.setenv("LOG_LEVEL", "unknown")
    config = load_config_from_env()
    assert config.logging.level == "INFO"

    # Known level should pass through
    monkeypatch.setenv("LOG_LEVEL", "error")
    config = load_config_from_env()
    assert config.logging.level == "ERROR"


def test_invalid_values_fail_fast(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("DEFAULT_TIMEZONE", "Mars/Olympus_Mons")

    with pytest.raises(ValueError, match="Unknown timezone"):
        load_config_from_env()

    with pytest.raises(ValueError):
        ScheduleConfig(due_window_minutes=-5)
    with pytest.raises(ValueError):
        InventoryConfig(consumption_lookback_days=0)


def test_get_config_cache(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("ENVIRONMENT", "development")

    # First call populates cache
    c1 = get_config()
    c2 = get_config()
    assert c1 is c2  # same object due to lru_cache


def test_app_config_debug_only_in_dev_validation() -> None:
    with pytest.raises(ValueError, match="debug mode is only allowed"):
        AppConfig(environment="production", debug=True)


def test_configure_logging_accepts_both_formats() -> None:
    configure_logging(LoggingConfig(level="DEBUG", format="console"))
    configure_logging(LoggingConfig(level="WARNING", format="json"))
