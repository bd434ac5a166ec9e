"""
Configuration Management for the Fund Ledger

Uses pydantic-settings for type-safe configuration from environment variables.

DESIGN DECISION: All configuration is centralized here.
The distribution policy and the participant roster are configuration
values, not constants buried in the engine.
"""

from functools import lru_cache
from pathlib import Path

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class GoogleSheetsSettings(BaseSettings):
    """Google Sheets storage configuration."""

    model_config = SettingsConfigDict(
        env_prefix="GOOGLE_SHEETS_",
        extra="ignore"
    )

    credentials_path: str = Field(
        ...,
        description="Path to Google service account credentials JSON"
    )
    spreadsheet_id: str = Field(
        ...,
        description="ID of the Google Sheets spreadsheet to use"
    )

    # Sheet names within the spreadsheet
    balances_sheet_name: str = Field(
        default="Balances",
        description="Name of the sheet holding one row per balance record"
    )
    income_sheet_name: str = Field(
        default="Income",
        description="Name of the sheet for income transactions"
    )
    expenses_sheet_name: str = Field(
        default="Expenses",
        description="Name of the sheet for operating expenses"
    )
    history_sheet_name: str = Field(
        default="History",
        description="Name of the sheet holding one row per balance movement"
    )
    audit_sheet_name: str = Field(
        default="AuditLog",
        description="Name of the sheet for audit logs"
    )

    @field_validator('credentials_path')
    @classmethod
    def validate_credentials_path(cls, v: str) -> str:
        """Warn if credentials file doesn't exist (but don't fail - might be mounted later)."""
        if not Path(v).exists():
            import warnings
            warnings.warn(
                f"Google credentials file not found at {v}. "
                "Make sure it exists before running the application."
            )
        return v


class LedgerSettings(BaseSettings):
    """
    Ledger policy and transaction behaviour.

    The roster is a comma-separated list of display names; balance ids
    are derived from them (lowercased).
    """

    model_config = SettingsConfigDict(
        env_prefix="LEDGER_",
        extra="ignore"
    )

    distribution_policy: str = Field(
        default="remainder_split",
        description="Named allocation policy (remainder_split or category_split)"
    )
    roster: str = Field(
        default="Firdaus,Faza,Rafah,Haikal",
        description="Comma-separated participant names"
    )

    # Transaction retries
    max_attempts: int = Field(
        default=3,
        ge=1,
        le=10,
        description="Attempts per operation before surfacing a contention error"
    )
    backoff_max_seconds: float = Field(
        default=0.5,
        ge=0.0,
        le=10.0,
        description="Upper bound for the jittered backoff between attempts"
    )

    # Display
    history_display_limit: int = Field(
        default=10,
        ge=1,
        le=500,
        description="Default number of history entries returned per balance"
    )
    currency_prefix: str = Field(
        default="Rp",
        description="Currency label used when formatting amounts for display"
    )

    # Savings access rule
    lock_savings_until_target: bool = Field(
        default=True,
        description="Refuse savings withdrawals until the emergency fund reaches its target"
    )

    @field_validator('distribution_policy')
    @classmethod
    def validate_policy(cls, v: str) -> str:
        """Only known policies are accepted."""
        allowed = {"remainder_split", "category_split"}
        if v not in allowed:
            raise ValueError(
                f"Unknown distribution policy '{v}'. Use one of: {', '.join(sorted(allowed))}"
            )
        return v

    @field_validator('roster')
    @classmethod
    def validate_roster(cls, v: str) -> str:
        names = [name.strip() for name in v.split(",") if name.strip()]
        if not names:
            raise ValueError("Roster must name at least one participant")
        if len({name.lower() for name in names}) != len(names):
            raise ValueError("Roster names must be unique (case-insensitive)")
        return v

    @property
    def roster_list(self) -> list[str]:
        """Get the roster as a list of display names."""
        return [name.strip() for name in self.roster.split(",") if name.strip()]


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
    use_sheets_storage: bool = Field(
        default=True,
        description="Persist to Google Sheets (False keeps everything in memory)"
    )

    # Sanity limits for form input
    max_amount: int = Field(
        default=1_000_000_000_000,
        ge=1,
        description="Largest amount a single form submission may carry"
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

    # Sub-settings are loaded lazily to allow partial configuration

    @property
    def google_sheets(self) -> GoogleSheetsSettings:
        return GoogleSheetsSettings()

    @property
    def ledger(self) -> LedgerSettings:
        return LedgerSettings()

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

    for name in ("google_sheets", "ledger", "app"):
        try:
            _ = getattr(settings, name)
            results[name] = True
        except Exception as e:
            results[name] = False
            results[f"{name}_error"] = str(e)

    return results
