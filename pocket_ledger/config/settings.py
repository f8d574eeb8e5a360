"""
Configuration Management for Pocket Ledger

Uses pydantic-settings for type-safe configuration from environment variables.

All configuration is centralized here. The composition root reads it once
and hands each component the values it needs, so nothing below the
orchestrator reaches for settings on its own.
"""

from functools import lru_cache
from pathlib import Path
from typing import Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class RateFeedSettings(BaseSettings):
    """External reference price feed configuration."""

    model_config = SettingsConfigDict(
        env_prefix="RATE_FEED_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    url: str = Field(
        default="https://api.binance.com/api/v3/ticker/price",
        description="Ticker endpoint queried on every refresh"
    )
    symbol: str = Field(
        default="BTCUSDT",
        min_length=1,
        description="Symbol sent as the `symbol` query parameter"
    )
    price_field: str = Field(
        default="price",
        min_length=1,
        description="JSON field holding the price as a string"
    )
    update_interval_seconds: float = Field(
        default=15.0,
        gt=0,
        description="Delay between two refreshes"
    )
    request_timeout_seconds: Optional[float] = Field(
        default=None,
        gt=0,
        description="Per-request timeout; unset keeps the transport default"
    )
    cache_key: str = Field(
        default="cached_bitcoin_rate",
        min_length=1,
        description="Key under which the last good price is persisted"
    )


class StorageSettings(BaseSettings):
    """Ledger persistence configuration."""

    model_config = SettingsConfigDict(
        env_prefix="LEDGER_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    database_path: Path = Field(
        default=Path("ledger.db"),
        description="SQLite file holding transactions and cached values"
    )
    page_size: int = Field(
        default=20,
        ge=1,
        le=1000,
        description="How many records each page adds to the window"
    )
    timezone: str = Field(
        default="UTC",
        description="IANA zone of the calendar used for day buckets"
    )
    echo_sql: bool = Field(
        default=False,
        description="Echo SQL statements (debugging only)"
    )

    @field_validator("timezone")
    @classmethod
    def validate_timezone(cls, v: str) -> str:
        """Reject zone names the tz database does not know."""
        try:
            ZoneInfo(v)
        except (ZoneInfoNotFoundError, ValueError) as e:
            raise ValueError(f"Unknown timezone: {v}") from e
        return v

    @property
    def database_url(self) -> str:
        """Get SQLite connection URL."""
        return f"sqlite:///{self.database_path}"

    @property
    def zone(self) -> ZoneInfo:
        return ZoneInfo(self.timezone)


class AppSettings(BaseSettings):
    """
    Main application settings.

    Loads configuration from environment variables and .env file.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    # Environment
    app_environment: str = Field(
        default="development",
        description="Application environment"
    )
    debug_mode: bool = Field(
        default=False,
        description="Enable debug mode"
    )

    # Logging
    log_level: str = Field(
        default="INFO",
        description="Minimum level for the structured log"
    )
    log_json: bool = Field(
        default=True,
        description="Render log lines as JSON (console renderer otherwise)"
    )

    # Display
    currency_code: str = Field(
        default="BTC",
        max_length=10,
        description="Unit shown next to ledger amounts"
    )

    seed_demo_data_count: int = Field(
        default=0,
        ge=0,
        le=10000,
        description="Records seeded on startup when the ledger is empty (0 disables)"
    )

    @field_validator("log_level")
    @classmethod
    def normalize_log_level(cls, v: str) -> str:
        level = v.strip().upper()
        if level not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"Unsupported log level: {v}")
        return level


class Settings(BaseSettings):
    """
    Root settings container.

    Aggregates all sub-settings for easy access.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    @property
    def rate_feed(self) -> RateFeedSettings:
        return RateFeedSettings()

    @property
    def storage(self) -> StorageSettings:
        return StorageSettings()

    @property
    def app(self) -> AppSettings:
        return AppSettings()


@lru_cache()
def get_settings() -> Settings:
    """
    Get application settings (cached).

    Uses LRU cache to ensure settings are only loaded once.
    Call get_settings.cache_clear() to reload if needed.
    """
    return Settings()


def validate_all_settings() -> dict[str, bool]:
    """
    Validate all settings are properly configured.

    Returns a dict of {setting_name: is_valid}.
    Useful for startup checks.
    """
    results = {}

    settings = get_settings()

    for name in ("rate_feed", "storage", "app"):
        try:
            getattr(settings, name)
            results[name] = True
        except ValueError as e:
            results[name] = False
            results[f"{name}_error"] = str(e)

    return results
