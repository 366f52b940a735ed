"""
Security Module

Encryption of credentials stored at rest, and the user roles that gate
destructive operations.
"""

from botpe_core.security.encryption import (
    DecryptionError,
    EncryptionConfigError,
    EncryptionError,
    TokenEncryptor,
)
from botpe_core.security.roles import ADMIN_ROLES, Role, is_admin_role

__all__ = [
    "DecryptionError",
    "EncryptionConfigError",
    "EncryptionError",
    "TokenEncryptor",
    "ADMIN_ROLES",
    "Role",
    "is_admin_role",
]
