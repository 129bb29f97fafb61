"""Core module for configuration and shared infrastructure."""

from hlspipe.core.config import Settings, get_settings

__all__ = [
    "Settings",
    "get_settings",
]
