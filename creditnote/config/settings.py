"""
Configuration Management for the Credit Note Console

Uses pydantic-settings for type-safe configuration from environment variables.

DESIGN DECISION: All configuration is centralized here.
This makes it easy to see what external dependencies exist and
ensures all required configuration is validated at startup.
"""

from functools import lru_cache
from pathlib import Path
from typing import Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class FirebaseSettings(BaseSettings):
    """Firebase Realtime Database configuration."""

    model_config = SettingsConfigDict(
        env_prefix="FIREBASE_",
        extra="ignore"
    )

    credentials_path: str = Field(
        ...,
        description="Path to Firebase service account credentials JSON"
    )
    database_url: str = Field(
        ...,
        description="Realtime Database URL (https://<project>.firebaseio.com)"
    )

    # Node paths inside the database
    party_path: str = Field(default="/PARTYDATA_CN_MAILER")
    template_path: str = Field(default="/cnTemplates")
    settings_path: str = Field(default="/settings")
    audit_path: str = Field(default="/auditLog")
    counter_path: str = Field(
        default="/cnCounter",
        description="Atomic credit note counter cell"
    )
    last_issued_path: str = Field(
        default="/cnLastIssued",
        description="Highest counter value whose document was dispatched"
    )

    @field_validator('credentials_path')
    @classmethod
    def validate_credentials_path(cls, v: str) -> str:
        """Warn if credentials file doesn't exist (but don't fail - might be mounted later)."""
        if not Path(v).exists():
            import warnings
            warnings.warn(
                f"Firebase credentials file not found at {v}. "
                "Make sure it exists before running the application."
            )
        return v


class ScriptEndpointSettings(BaseSettings):
    """Google Apps Script endpoint that stores and mails credit notes."""

    model_config = SettingsConfigDict(
        env_prefix="APPS_SCRIPT_",
        extra="ignore"
    )

    url: str = Field(
        ...,
        description="Deployed web app URL (https://script.google.com/macros/s/.../exec)"
    )
    timeout_seconds: float = Field(
        default=60.0,
        gt=0,
        le=300,
        description="HTTP timeout; the script uploads PDFs and sends mail"
    )


class GoogleSheetsSettings(BaseSettings):
    """Optional direct read access to the credit note register sheet."""

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
        description="ID of the spreadsheet the script endpoint writes to"
    )
    register_sheet_name: str = Field(
        default="CreditNotes",
        description="Name of the sheet holding one row per credit note"
    )


class DocumentSettings(BaseSettings):
    """Credit note numbering and rendering configuration."""

    model_config = SettingsConfigDict(
        env_prefix="CN_",
        extra="ignore"
    )

    number_prefix: str = Field(
        default="KA-EN-CN",
        min_length=1,
        max_length=20,
        description="Prefix of every credit note number"
    )
    watermark_url: Optional[str] = Field(
        default=None,
        description="Logo used as page watermark; unset disables the watermark"
    )
    watermark_timeout_seconds: float = Field(
        default=5.0,
        gt=0,
        le=30,
        description="Upper bound on the one-time watermark fetch"
    )
    default_purpose: str = Field(
        default="Volume Based Commercial Settlement - Net Sales Based Incentive",
        max_length=500,
    )
    business_timezone: str = Field(
        default="Asia/Kolkata",
        description="Calendar used to decide what 'today' is"
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

    # Environment
    app_environment: str = Field(
        default="development",
        description="Application environment"
    )
    debug_mode: bool = Field(
        default=False,
        description="Enable debug mode"
    )

    # Party workbook upload limit
    max_upload_size_mb: int = Field(
        default=10,
        ge=1,
        le=50,
        description="Maximum upload file size in MB"
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
    def firebase(self) -> FirebaseSettings:
        return FirebaseSettings()

    @property
    def script_endpoint(self) -> ScriptEndpointSettings:
        return ScriptEndpointSettings()

    @property
    def google_sheets(self) -> GoogleSheetsSettings:
        return GoogleSheetsSettings()

    @property
    def document(self) -> DocumentSettings:
        return DocumentSettings()

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

    for name in ("firebase", "script_endpoint", "google_sheets", "document", "app"):
        try:
            _ = getattr(settings, name)
            results[name] = True
        except Exception as e:
            results[name] = False
            results[f"{name}_error"] = str(e)

    return results
