"""Configuration package."""

from finsaas.config.settings import (
    AppSettings,
    GoogleSheetsSettings,
    Settings,
    SupabaseSettings,
    get_settings,
    validate_all_settings,
)

__all__ = [
    "AppSettings",
    "GoogleSheetsSettings",
    "Settings",
    "SupabaseSettings",
    "get_settings",
    "validate_all_settings",
]
