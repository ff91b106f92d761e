"""
Core module - configuration, logging, errors and time helpers.
"""

from .config import Settings, get_settings, reset_settings
from .exceptions import (
    WorkforceError,
    PermissionDeniedError,
)
from .logging import get_logger

__all__ = [
    "Settings",
    "get_settings",
    "reset_settings",
    "WorkforceError",
    "PermissionDeniedError",
    "get_logger",
]
