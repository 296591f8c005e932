"""Configuration package."""

from buddy.config.settings import (
    AppSettings,
    GeminiSettings,
    GoogleSheetsSettings,
    OpenAISettings,
    Settings,
    StorageSettings,
    get_settings,
    validate_all_settings,
)

__all__ = [
    "AppSettings",
    "GeminiSettings",
    "GoogleSheetsSettings",
    "OpenAISettings",
    "Settings",
    "StorageSettings",
    "get_settings",
    "validate_all_settings",
]
