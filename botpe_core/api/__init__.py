"""
REST API Module

FastAPI application, authentication, and routes for bots and
WhatsApp accounts.
"""

from .app import AppConfig, create_app, run_server
from .auth import AuthContext, JWTConfig, Role, create_token, decode_token
from .base import (
    APIException,
    AuthenticationError,
    AuthorizationError,
    ConflictError,
    DependencyError,
    ErrorCode,
    NotFoundError,
    ServiceError,
    ValidationError,
    success_response,
)

__all__ = [
    "AppConfig",
    "create_app",
    "run_server",
    "AuthContext",
    "JWTConfig",
    "Role",
    "create_token",
    "decode_token",
    "APIException",
    "AuthenticationError",
    "AuthorizationError",
    "ConflictError",
    "DependencyError",
    "ErrorCode",
    "NotFoundError",
    "ServiceError",
    "ValidationError",
    "success_response",
]
