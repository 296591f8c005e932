"""
Configuration Management for Buddy

Uses pydantic-settings for type-safe configuration from environment variables.

DESIGN DECISION: All configuration is centralized here.
This makes it easy to see what external dependencies exist and
ensures all required configuration is validated at startup.
"""

from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class GeminiSettings(BaseSettings):
    """Gemini LLM configuration (primary streaming provider)."""

    model_config = SettingsConfigDict(
        env_prefix="GEMINI_",
        extra="ignore"
    )

    api_key: str = Field(
        ...,
        description="Gemini API key"
    )
    model_name: str = Field(
        default="gemini-2.5-flash",
        description="Gemini model to use"
    )
    max_tokens: int = Field(
        default=8192,
        ge=256,
        le=65536,
        description="Maximum tokens in response"
    )
    temperature: float = Field(
        default=0.1,
        ge=0.0,
        le=1.0,
        description="Model temperature (lower = more deterministic)"
    )


class OpenAISettings(BaseSettings):
    """OpenAI configuration (fallback streaming provider)."""

    model_config = SettingsConfigDict(
        env_prefix="OPENAI_",
        extra="ignore"
    )

    api_key: str = Field(
        ...,
        description="OpenAI API key"
    )
    model_name: str = Field(
        default="gpt-4o-mini",
        description="OpenAI model to use"
    )
    temperature: float = Field(
        default=0.1,
        ge=0.0,
        le=2.0,
    )


class GoogleSheetsSettings(BaseSettings):
    """Google Sheets (hosted store) configuration."""

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


class StorageSettings(BaseSettings):
    """Which store backs the ledger."""

    model_config = SettingsConfigDict(
        env_prefix="STORAGE_",
        extra="ignore"
    )

    backend: Literal["local", "sheets"] = Field(
        default="local",
        description="'local' for the JSON file store, 'sheets' for Google Sheets"
    )
    local_path: str = Field(
        default="buddy-data.json",
        description="Path of the local persisted store"
    )


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

    # Statement upload limits
    max_upload_size_mb: int = Field(
        default=5,
        ge=1,
        le=50,
        description="Maximum statement upload size in MB"
    )
    min_pdf_text_length: int = Field(
        default=50,
        ge=0,
        description="Minimum characters a PDF must yield to be usable"
    )
    min_csv_text_length: int = Field(
        default=10,
        ge=0,
        description="Minimum characters a CSV must contain to be usable"
    )

    # AI behaviour
    ai_max_retries: int = Field(
        default=2,
        ge=0,
        le=5,
        description="Extra attempts per provider before falling back"
    )
    history_months: int = Field(
        default=3,
        ge=1,
        le=24,
        description="How many months of past expenses are sent as context"
    )
    statement_history_limit: int = Field(
        default=50,
        ge=0,
        description="Maximum historical expenses included in statement prompts"
    )
    default_transaction_year: int = Field(
        default=2025,
        description="Year assumed by the model when a transaction has none"
    )

    # HTTP API
    api_host: str = Field(
        default="127.0.0.1",
        description="Interface the API server binds to"
    )
    api_port: int = Field(
        default=8000,
        ge=1,
        le=65535,
        description="Port of the API server"
    )
    log_level: str = Field(
        default="INFO",
        description="Level of the structured log"
    )

    @property
    def max_upload_size_bytes(self) -> int:
        """Get max upload size in bytes."""
        return self.max_upload_size_mb * 1024 * 1024


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
    def gemini(self) -> GeminiSettings:
        return GeminiSettings()

    @property
    def openai(self) -> OpenAISettings:
        return OpenAISettings()

    @property
    def google_sheets(self) -> GoogleSheetsSettings:
        return GoogleSheetsSettings()

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

    for name in ("gemini", "openai", "google_sheets", "storage", "app"):
        try:
            getattr(settings, name)
            results[name] = True
        except Exception as e:
            results[name] = False
            results[f"{name}_error"] = str(e)

    return results
