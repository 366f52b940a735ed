"""
API Authentication Module

Verifies the HS256 bearer tokens issued by the auth provider and
turns their claims into a per-request AuthContext.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Dict, Optional

import jwt
from pydantic import BaseModel, Field

from ..security.roles import ADMIN_ROLES, Role
from .base import (
    AuthenticationError,
    AuthorizationError,
    ErrorCode,
)


logger = logging.getLogger(__name__)


@dataclass
class AuthContext:
    """Authentication context for a request."""

    user_id: str
    organization_id: Optional[str] = None
    role: Optional[Role] = None
    email: Optional[str] = None
    authenticated_at: datetime = field(default_factory=datetime.utcnow)

    def require_organization(self) -> str:
        """Return the organization id, raise if the user has none."""
        if not self.organization_id:
            raise AuthorizationError(message="User does not belong to an organization")
        return self.organization_id


class JWTConfig(BaseModel):
    """JWT configuration."""

    secret_key: str = Field(..., description="Secret key for signing")
    algorithm: str = Field(default="HS256", description="Signing algorithm")
    access_token_expire_minutes: int = Field(
        default=60 * 24,
        description="Access token expiration in minutes",
    )


def decode_token(token: str, config: JWTConfig) -> AuthContext:
    """
    Verify a bearer token and build the request's AuthContext.

    Raises:
        AuthenticationError: The token is expired, malformed, or signed
            with another key.
    """
    try:
        payload = jwt.decode(
            token,
            config.secret_key,
            algorithms=[config.algorithm],
        )
    except jwt.ExpiredSignatureError:
        raise AuthenticationError(
            message="Token has expired",
            code=ErrorCode.EXPIRED_TOKEN,
        )
    except jwt.InvalidTokenError as e:
        raise AuthenticationError(
            message=f"Invalid token: {str(e)}",
            code=ErrorCode.INVALID_TOKEN,
        )

    user_id = payload.get("sub")
    if not user_id:
        raise AuthenticationError(
            message="Token has no subject",
            code=ErrorCode.INVALID_TOKEN,
        )

    role = None
    role_str = payload.get("role")
    if role_str:
        try:
            role = Role(str(role_str).upper())
        except ValueError:
            logger.warning(f"Unknown role in token: {role_str}")

    return AuthContext(
        user_id=str(user_id),
        organization_id=payload.get("org_id"),
        role=role,
        email=payload.get("email"),
    )


def create_token(
    user_id: str,
    organization_id: Optional[str],
    config: JWTConfig,
    role: Optional[Role] = None,
    additional_claims: Optional[Dict[str, Any]] = None,
) -> str:
    """Issue a token in the auth provider's format."""
    now = datetime.utcnow()
    payload: Dict[str, Any] = {
        "sub": user_id,
        "org_id": organization_id,
        "iat": now,
        "exp": now + timedelta(minutes=config.access_token_expire_minutes),
    }
    if role:
        payload["role"] = role.value
    if additional_claims:
        payload.update(additional_claims)

    return jwt.encode(payload, config.secret_key, algorithm=config.algorithm)


__all__ = [
    "Role",
    "ADMIN_ROLES",
    "AuthContext",
    "JWTConfig",
    "decode_token",
    "create_token",
]
