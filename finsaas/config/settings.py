"""
Configuration Management for FinanSaaS

Uses pydantic-settings for type-safe configuration from environment variables.

DESIGN DECISION: All configuration is centralized here.
This makes it easy to see what external dependencies exist and
ensures all required configuration is validated at startup.
"""

from functools import lru_cache
from pathlib import Path

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


STORAGE_BACKENDS = ("supabase", "google_sheets", "memory")


class SupabaseSettings(BaseSettings):
    """Supabase (hosted Postgres + auth) configuration."""

    model_config = SettingsConfigDict(
        env_prefix="SUPABASE_",
        extra="ignore"
    )

    url: str = Field(
        ...,
        description="Supabase project URL"
    )
    key: str = Field(
        ...,
        description="Supabase anon/publishable key"
    )

    @field_validator('url')
    @classmethod
    def validate_url(cls, v: str) -> str:
        if not v.startswith(("https://", "http://")):
            raise ValueError(f"Supabase URL must be an http(s) URL, got: {v}")
        return v.rstrip("/")


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

    app_name: str = Field(
        default="FinanSaaS",
        description="Application display name"
    )
    app_environment: str = Field(
        default="development",
        description="Application environment"
    )
    debug_mode: bool = Field(
        default=False,
        description="Enable debug mode"
    )
    log_level: str = Field(
        default="INFO",
        description="Minimum level for local structured logs"
    )

    storage_backend: str = Field(
        default="supabase",
        description="Where ledger records live: supabase, google_sheets or memory"
    )

    # Dashboard
    upcoming_short_window_days: int = Field(
        default=7,
        ge=1,
        description="Payables due within this many days are 'due soon'"
    )
    upcoming_long_window_days: int = Field(
        default=30,
        ge=1,
        description="Payables due within this many days are 'upcoming'"
    )

    # Validation thresholds
    max_transaction_amount: float = Field(
        default=10000000.0,
        description="Amount above which a record is flagged as suspicious"
    )
    future_date_tolerance_days: int = Field(
        default=1,
        description="How many days in the future a settled transaction can be dated"
    )

    @field_validator('storage_backend')
    @classmethod
    def validate_storage_backend(cls, v: str) -> str:
        v = v.strip().lower()
        if v not in STORAGE_BACKENDS:
            raise ValueError(
                f"Unsupported storage backend: {v}. Allowed: {', '.join(STORAGE_BACKENDS)}"
            )
        return v

    @field_validator('log_level')
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        v = v.strip().upper()
        if v not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"Unknown log level: {v}")
        return v


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

    # Note: These are loaded lazily to allow partial configuration

    @property
    def supabase(self) -> SupabaseSettings:
        return SupabaseSettings()

    @property
    def google_sheets(self) -> GoogleSheetsSettings:
        return GoogleSheetsSettings()

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
    Only the storage backend actually selected is required.
    Useful for startup checks.
    """
    results = {}

    settings = get_settings()

    try:
        app = settings.app
        results["app"] = True
    except Exception as e:
        results["app"] = False
        results["app_error"] = str(e)
        return results

    if app.storage_backend == "supabase":
        try:
            _ = settings.supabase
            results["supabase"] = True
        except Exception as e:
            results["supabase"] = False
            results["supabase_error"] = str(e)

    if app.storage_backend == "google_sheets":
        try:
            _ = settings.google_sheets
            results["google_sheets"] = True
        except Exception as e:
            results["google_sheets"] = False
            results["google_sheets_error"] = str(e)

    return results
