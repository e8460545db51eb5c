"""
Configuration management with environment variable support and validation.

Design principles:
- Environment-specific configs (dev, staging, prod)
- Validation at startup (fail fast)
- Type safety with Pydantic
"""

import logging
import os
from datetime import timedelta
from functools import lru_cache
from typing import Literal, cast
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

import structlog
from dotenv import load_dotenv
from pydantic import BaseModel, Field, field_validator, model_validator

# Load environment variables from .env file
load_dotenv()


class ScheduleConfig(BaseModel):
    """Dose timing configuration."""

    due_window_minutes: int = Field(
        default=30, ge=0, description="Lead time before a dose during which it is 'due'"
    )
    overdue_grace_minutes: int = Field(
        default=30, ge=0, description="How long after its time a dose stays 'due' before 'overdue'"
    )
    reminder_grace_minutes: int = Field(
        default=120, ge=0, description="How long an overdue dose keeps producing reminders"
    )
    default_timezone: str = Field(default="UTC", description="Timezone for new prescriptions")

    @field_validator("default_timezone")
    def validate_timezone(cls, v):
        try:
            ZoneInfo(v)
        except (ZoneInfoNotFoundError, ValueError) as e:
            raise ValueError(f"Unknown timezone: {v}") from e
        return v

    @property
    def due_window(self) -> timedelta:
        return timedelta(minutes=self.due_window_minutes)

    @property
    def overdue_grace(self) -> timedelta:
        return timedelta(minutes=self.overdue_grace_minutes)

    @property
    def reminder_grace(self) -> timedelta:
        return timedelta(minutes=self.reminder_grace_minutes)


class InventoryConfig(BaseModel):
    """Stock projection configuration."""

    consumption_lookback_days: int = Field(
        default=7, gt=0, description="Days of taken doses used for the consumption rate"
    )
    refill_lead_days: int = Field(
        default=7, ge=0, description="Flag a refill when depletion is this close"
    )
    default_low_stock_threshold: float = Field(default=7.0, ge=0.0)
    default_refill_quantity: float = Field(default=30.0, gt=0.0)


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO", description="Logging level"
    )
    format: Literal["json", "console"] = Field(default="json", description="Logging format")


class AppConfig(BaseModel):
    """Main application configuration combining all subsystems."""

    environment: Literal["development", "staging", "production"] = Field(
        default="development", description="Environment"
    )
    debug: bool = Field(default=False, description="Enable debug mode")

    schedule: ScheduleConfig = Field(default_factory=ScheduleConfig)
    inventory: InventoryConfig = Field(default_factory=InventoryConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    @model_validator(mode="after")
    def debug_only_in_dev(self) -> "AppConfig":
        """Ensure debug mode is only allowed in development environment."""
        if self.debug and self.environment != "development":
            raise ValueError("debug mode is only allowed in development environment")
        return self


def load_config_from_env() -> AppConfig:
    """Load configuration from environment variables with validation."""

    def _env_to_literal(val: str) -> Literal["development", "staging", "production"]:
        v = val.strip().lower()
        if v in {"dev", "development"}:
            return "development"
        if v in {"stage", "staging"}:
            return "staging"
        return "production"

    def _level_to_literal(val: str) -> Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]:
        v = val.strip().upper()
        return cast(
            Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
            v if v in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"} else "INFO",
        )

    environment = _env_to_literal(os.getenv("ENVIRONMENT", "development"))
    debug = environment == "development"

    schedule_config = ScheduleConfig(
        due_window_minutes=int(os.getenv("DUE_WINDOW_MINUTES", "30")),
        overdue_grace_minutes=int(os.getenv("OVERDUE_GRACE_MINUTES", "30")),
        reminder_grace_minutes=int(os.getenv("REMINDER_GRACE_MINUTES", "120")),
        default_timezone=os.getenv("DEFAULT_TIMEZONE", "UTC"),
    )

    inventory_config = InventoryConfig(
        consumption_lookback_days=int(os.getenv("CONSUMPTION_LOOKBACK_DAYS", "7")),
        refill_lead_days=int(os.getenv("REFILL_LEAD_DAYS", "7")),
        default_low_stock_threshold=float(os.getenv("DEFAULT_LOW_STOCK_THRESHOLD", "7")),
        default_refill_quantity=float(os.getenv("DEFAULT_REFILL_QUANTITY", "30")),
    )

    logging_config = LoggingConfig(
        level=_level_to_literal(os.getenv("LOG_LEVEL", "INFO")),
        format="console" if debug else "json",
    )

    return AppConfig(
        environment=environment,
        debug=debug,
        schedule=schedule_config,
        inventory=inventory_config,
        logging=logging_config,
    )


@lru_cache
def get_config() -> AppConfig:
    """Get cached application configuration."""
    return load_config_from_env()


def configure_logging(config: LoggingConfig) -> None:
    """Apply level and renderer; console output for local development."""
    logging.basicConfig(level=getattr(logging, config.level), format="%(message)s")
    renderer = (
        structlog.dev.ConsoleRenderer()
        if config.format == "console"
        else structlog.processors.JSONRenderer()
    )
    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            renderer,
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def validate_config() -> None:
    """Validate configuration at startup."""
    try:
        config = get_config()
        print(f"Configuration loaded for {config.environment} environment")
    except Exception as e:
        print(f"Configuration validation failed: {e}")
        raise


def print_config_summary() -> None:
    """Print configuration summary for debugging."""
    config = get_config()

    print("\nCONFIGURATION SUMMARY")
    print(f"Environment: {config.environment}")
    print(f"Debug Mode: {config.debug}")
    print(f"Log Level: {config.logging.level}")

    print("\nSCHEDULE")
    print(f"Due Window: {config.schedule.due_window_minutes}m")
    print(f"Overdue Grace: {config.schedule.overdue_grace_minutes}m")
    print(f"Reminder Grace: {config.schedule.reminder_grace_minutes}m")
    print(f"Default Timezone: {config.schedule.default_timezone}")

    print("\nINVENTORY")
    print(f"Consumption Lookback: {config.inventory.consumption_lookback_days}d")
    print(f"Refill Lead Time: {config.inventory.refill_lead_days}d")
    print(f"Low Stock Threshold: {config.inventory.default_low_stock_threshold:g}")


if __name__ == "__main__":
    validate_config()
    print_config_summary()
