"""Environment-driven configuration for the inventory engine.

Every knob the rules engine consumes from outside lives here so callers never
hard-code thresholds or markups. Values are read once and cached by
``get_settings``; tests call ``get_settings.cache_clear()`` after patching the
environment.
"""

from __future__ import annotations

from functools import lru_cache

from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

DEAD_STOCK_THRESHOLD_CHOICES = (3, 6, 9, 12)


class AppSettings(BaseSettings):
    """Environment-driven application configuration."""

    model_config = SettingsConfigDict(
        env_file=(".env", ".env.local"),
        env_file_encoding="utf-8",
        extra="ignore",
    )

    APP_NAME: str = "SurgiStock"

    # In-process SQLite keeps the ledger in memory for the lifetime of the
    # process. Point this at a file URL to keep data between runs.
    DB_URL: str = "sqlite://"

    LOG_LEVEL: str = "INFO"
    LOG_JSON: bool = True

    DEAD_STOCK_THRESHOLD_MONTHS: int = 6
    PLATE_MARKUP: float = Field(default=1.35, gt=1.0)
    USAGE_BYPASSES_MARGIN: bool = True
    LOW_STOCK_ALERT_ENABLED: bool = True
    MARGIN_WARNING_ENABLED: bool = True
    RECENT_LIMIT: int = Field(default=5, ge=1)

    @field_validator("DEAD_STOCK_THRESHOLD_MONTHS")
    @classmethod
    def check_threshold(cls, value: int) -> int:
        if value not in DEAD_STOCK_THRESHOLD_CHOICES:
            raise ValueError(
                f"DEAD_STOCK_THRESHOLD_MONTHS must be one of {DEAD_STOCK_THRESHOLD_CHOICES}"
            )
        return value

    @field_validator("LOG_LEVEL")
    @classmethod
    def normalize_level(cls, value: str) -> str:
        return value.strip().upper() or "INFO"

    @property
    def system(self) -> "SystemSettings":
        return SystemSettings(
            dead_stock_threshold_months=self.DEAD_STOCK_THRESHOLD_MONTHS,
            low_stock_alert_enabled=self.LOW_STOCK_ALERT_ENABLED,
            margin_warning_enabled=self.MARGIN_WARNING_ENABLED,
        )


class SystemSettings(BaseModel):
    """The user-facing system toggles shown on the settings screen."""

    model_config = {"frozen": True}

    dead_stock_threshold_months: int = 6
    low_stock_alert_enabled: bool = True
    margin_warning_enabled: bool = True


@lru_cache(maxsize=1)
def get_settings() -> AppSettings:
    return AppSettings()


__all__ = [
    "AppSettings",
    "DEAD_STOCK_THRESHOLD_CHOICES",
    "SystemSettings",
    "get_settings",
]
