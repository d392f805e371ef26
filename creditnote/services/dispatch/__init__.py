"""Dispatch Services Package"""

from creditnote.services.dispatch.apps_script import (
    AppsScriptClient,
    DispatchInterface,
    parse_script_response,
)

__all__ = [
    "AppsScriptClient",
    "DispatchInterface",
    "parse_script_response",
]
