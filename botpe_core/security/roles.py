"""
User Roles

Roles arrive in the bearer token's ``role`` claim. Account deletion is
limited to the admin roles.
"""

from enum import Enum
from typing import Optional, Union


class Role(str, Enum):
    """User roles carried in the token's ``role`` claim."""

    SUPERADMIN = "SUPERADMIN"
    ADMIN = "ADMIN"
    AGENT = "AGENT"
    VIEWER = "VIEWER"


ADMIN_ROLES = frozenset({Role.SUPERADMIN, Role.ADMIN})


def is_admin_role(role: Optional[Union[Role, str]]) -> bool:
    """True for ADMIN or SUPERADMIN, given as a Role or a raw claim string."""
    if not role:
        return False
    try:
        return Role(str(getattr(role, "value", role)).upper()) in ADMIN_ROLES
    except ValueError:
        return False


__all__ = ["Role", "ADMIN_ROLES", "is_admin_role"]
