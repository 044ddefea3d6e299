"""Unified configuration module.

Single source of truth for all configuration and settings.
"""

from .settings import (
    settings,
    Settings,
    get_settings,
    DEFAULT_LLM,
)

__all__ = [
    "settings",
    "Settings",
    "get_settings",
    "DEFAULT_LLM",
]
