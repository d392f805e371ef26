"""Configuration package."""

from creditnote.config.settings import (
    AppSettings,
    DocumentSettings,
    FirebaseSettings,
    GoogleSheetsSettings,
    ScriptEndpointSettings,
    Settings,
    get_settings,
    validate_all_settings,
)

__all__ = [
    "AppSettings",
    "DocumentSettings",
    "FirebaseSettings",
    "GoogleSheetsSettings",
    "ScriptEndpointSettings",
    "Settings",
    "get_settings",
    "validate_all_settings",
]
