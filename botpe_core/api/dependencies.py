"""
API Dependencies

This module provides FastAPI dependencies for database sessions,
authentication, and the request-scoped services built on them.
"""

import logging
from typing import AsyncGenerator, Optional

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from ..database.base import DatabaseManager
from ..flows.store import FlowGraphStore
from ..security.encryption import TokenEncryptor
from ..whatsapp.client import WhatsAppGraphClient
from ..whatsapp.service import WhatsAppAccountLinker
from .auth import AuthContext, JWTConfig, decode_token
from .base import AuthenticationError, ErrorCode, ServiceError


logger = logging.getLogger(__name__)


# =============================================================================
# Database Session Dependency
# =============================================================================


def get_database(request: Request) -> DatabaseManager:
    return request.app.state.db


async def get_db_session(
    db: DatabaseManager = Depends(get_database),
) -> AsyncGenerator[AsyncSession, None]:
    """
    FastAPI dependency for database sessions.

    The session commits when the route returns and rolls back if it
    raises, so one request is one transaction.
    """
    async with db.session() as session:
        yield session


# =============================================================================
# Authentication Dependencies
# =============================================================================

bearer_scheme = HTTPBearer(auto_error=False)


async def get_auth_context(
    request: Request,
    authorization: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
) -> AuthContext:
    """
    Get authentication context from the bearer token.

    Usage in routes:
        @router.get("/bots")
        async def list_bots(auth: AuthContext = Depends(get_auth_context)):
            organization_id = auth.require_organization()
    """
    if authorization is None or authorization.scheme.lower() != "bearer":
        raise AuthenticationError(
            message="Bearer token required",
            code=ErrorCode.AUTHENTICATION_REQUIRED,
        )

    jwt_config: Optional[JWTConfig] = getattr(request.app.state, "jwt_config", None)
    if jwt_config is None:
        logger.error("JWT authentication requested but AUTH_JWT_SECRET is not set")
        raise AuthenticationError(
            message="Authentication is not configured",
            code=ErrorCode.AUTHENTICATION_REQUIRED,
        )

    return decode_token(authorization.credentials, jwt_config)


async def get_organization_context(
    auth: AuthContext = Depends(get_auth_context),
) -> AuthContext:
    """Authenticated context that is guaranteed to carry an organization."""
    auth.require_organization()
    return auth


# =============================================================================
# Service Dependencies
# =============================================================================


def get_encryptor(request: Request) -> TokenEncryptor:
    encryptor = getattr(request.app.state, "encryptor", None)
    if encryptor is None:
        raise ServiceError(message="Token encryption is not configured")
    return encryptor


def get_graph_client(request: Request) -> WhatsAppGraphClient:
    return request.app.state.graph_client


async def get_flow_store(
    request: Request,
    db: AsyncSession = Depends(get_db_session),
) -> FlowGraphStore:
    config = request.app.state.config
    return FlowGraphStore(db, strict_validation=config.flow_strict_validation)


async def get_account_linker(
    db: AsyncSession = Depends(get_db_session),
    graph_client: WhatsAppGraphClient = Depends(get_graph_client),
    encryptor: TokenEncryptor = Depends(get_encryptor),
) -> WhatsAppAccountLinker:
    return WhatsAppAccountLinker(db, graph_client, encryptor)


# =============================================================================
# Exports
# =============================================================================

__all__ = [
    "get_database",
    "get_db_session",
    "get_auth_context",
    "get_organization_context",
    "get_encryptor",
    "get_graph_client",
    "get_flow_store",
    "get_account_linker",
]
