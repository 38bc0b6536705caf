"""
Configuration Management for Split Ledger

Uses pydantic-settings for type-safe configuration from environment variables.

DESIGN DECISION: All configuration is centralized here.
The ledger core never reads these settings itself; the service layer reads
them and passes plain values into the core, so the core stays testable with
no environment at all.
"""

from decimal import Decimal
from functools import lru_cache

from pydantic import Field, ValidationInfo, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class LedgerSettings(BaseSettings):
    """Reconciliation and validation thresholds."""

    model_config = SettingsConfigDict(
        env_prefix="LEDGER_",
        extra="ignore"
    )

    settlement_epsilon: Decimal = Field(
        default=Decimal("0.01"),
        ge=0,
        description="Balances at or below this are shown as settled"
    )
    max_settlement_amount: Decimal = Field(
        default=Decimal("999999.99"),
        gt=0,
        description="Largest single settlement accepted"
    )
    max_expense_amount: Decimal = Field(
        default=Decimal("10000000"),
        gt=0,
        description="Expenses above this get a sanity warning"
    )
    future_date_tolerance_days: int = Field(
        default=7,
        ge=0,
        description="How many days in the future an expense date can be"
    )
    expense_deleted_reason: str = Field(
        default="expense deleted",
        min_length=1,
        description="Reason recorded on settlements cancelled by expense deletion"
    )


class StorageSettings(BaseSettings):
    """Retry behaviour for storage writes."""

    model_config = SettingsConfigDict(
        env_prefix="STORAGE_",
        extra="ignore"
    )

    retry_attempts: int = Field(
        default=3,
        ge=1,
        le=10,
        description="Attempts per atomic write before giving up"
    )
    retry_wait_min: float = Field(
        default=2.0,
        ge=0.0,
        description="Minimum backoff between attempts (seconds)"
    )
    retry_wait_max: float = Field(
        default=10.0,
        ge=0.0,
        description="Maximum backoff between attempts (seconds)"
    )

    @field_validator("retry_wait_max")
    @classmethod
    def validate_wait_window(cls, v: float, info: ValidationInfo) -> float:
        minimum = info.data.get("retry_wait_min", 0.0)
        if v < minimum:
            raise ValueError("retry_wait_max cannot be below retry_wait_min")
        return v


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

    debug_mode: bool = Field(
        default=False,
        description="Enable debug logging"
    )
    log_json: bool = Field(
        default=True,
        description="Render logs as JSON (False for a human-readable console)"
    )


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

    # Loaded lazily so a bad section only fails when it is used

    @property
    def ledger(self) -> LedgerSettings:
        return LedgerSettings()

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

    for name in ("ledger", "storage", "app"):
        try:
            getattr(settings, name)
            results[name] = True
        except Exception as e:
            results[name] = False
            results[f"{name}_error"] = str(e)

    return results
