"""
Security module - Seguridad
Provides encryption, password/PIN hashing, lockout, permissions and export sanitization.
"""

from .core import (
    EncryptionManager,
    PasswordManager,
)
from .lockout import LockoutPolicy
from .permissions import (
    ROLE_PERMISSIONS,
    SessionContext,
    capabilities_for,
)
from .sanitizer import (
    sanitize_for_spreadsheet,
    sanitize_dataframe_for_export,
)

__all__ = [
    # Core
    "EncryptionManager",
    "PasswordManager",
    # Lockout
    "LockoutPolicy",
    # Permissions
    "ROLE_PERMISSIONS",
    "SessionContext",
    "capabilities_for",
    # Sanitizer
    "sanitize_for_spreadsheet",
    "sanitize_dataframe_for_export",
]
