"""
API Envelope and Errors

Every response, success or failure, is wrapped in the same envelope:

    {success, data, error, meta, request_id, timestamp}

Errors carry an ``ErrorCode`` so the editor can branch on the failure
class without parsing messages.
"""

import secrets
import time
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field


class ErrorCode(str, Enum):
    """Error codes returned in ``error.code``."""

    # Auth (1xxx)
    AUTHENTICATION_REQUIRED = "AUTH_1001"
    INVALID_TOKEN = "AUTH_1002"
    EXPIRED_TOKEN = "AUTH_1003"
    INSUFFICIENT_PERMISSIONS = "AUTH_1004"

    # Request validation (2xxx)
    VALIDATION_ERROR = "VAL_2001"
    INVALID_REQUEST_BODY = "VAL_2002"

    # Bots and accounts (3xxx)
    RESOURCE_NOT_FOUND = "RES_3001"
    RESOURCE_CONFLICT = "RES_3003"

    # Server and Graph API (5xxx)
    INTERNAL_ERROR = "SRV_5001"
    DEPENDENCY_FAILURE = "SRV_5003"


# =============================================================================
# Envelope Models
# =============================================================================


class APIError(BaseModel):
    """The ``error`` member of a failed response."""

    model_config = ConfigDict(use_enum_values=True)

    code: ErrorCode
    message: str
    field: Optional[str] = Field(
        default=None,
        description="Request field at fault, e.g. nodes[2].nodeId",
    )
    details: Optional[Dict[str, Any]] = None
    request_id: Optional[str] = None


class APIResponse(BaseModel):
    """Response envelope."""

    success: bool = True
    data: Any = None
    error: Optional[APIError] = None
    meta: Optional[Dict[str, Any]] = None
    request_id: str
    timestamp: datetime = Field(default_factory=datetime.utcnow)


# =============================================================================
# Exceptions
# =============================================================================


class APIException(Exception):
    """
    Error that maps straight onto an HTTP status and envelope.

    Subclasses fix ``status_code`` and ``code``; raise them from routes
    and dependencies and the app's handler renders the envelope.
    """

    status_code: int = 400
    code: ErrorCode = ErrorCode.INVALID_REQUEST_BODY

    def __init__(
        self,
        message: str,
        code: Optional[ErrorCode] = None,
        status_code: Optional[int] = None,
        field: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        if code is not None:
            self.code = code
        if status_code is not None:
            self.status_code = status_code
        self.field = field
        self.details = details
        super().__init__(message)

    def to_error(self, request_id: Optional[str] = None) -> APIError:
        return APIError(
            code=self.code,
            message=self.message,
            field=self.field,
            details=self.details,
            request_id=request_id,
        )


class AuthenticationError(APIException):
    """Missing, malformed or expired bearer token."""

    status_code = 401
    code = ErrorCode.AUTHENTICATION_REQUIRED

    def __init__(self, message: str = "Authentication required", code: Optional[ErrorCode] = None):
        super().__init__(message, code=code)


class AuthorizationError(APIException):
    """Authenticated, but not allowed to touch this organization or resource."""

    status_code = 403
    code = ErrorCode.INSUFFICIENT_PERMISSIONS

    def __init__(self, message: str = "Insufficient permissions"):
        super().__init__(message)


class NotFoundError(APIException):
    status_code = 404
    code = ErrorCode.RESOURCE_NOT_FOUND

    def __init__(self, resource_type: str, resource_id: str, message: Optional[str] = None):
        super().__init__(
            message or f"{resource_type} with ID '{resource_id}' not found",
            details={"resource_type": resource_type, "resource_id": resource_id},
        )


class ValidationError(APIException):
    status_code = 422
    code = ErrorCode.VALIDATION_ERROR

    def __init__(
        self,
        message: str,
        field: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message, field=field, details=details)


class ConflictError(APIException):
    """The bot moved on to a newer version than the caller expected."""

    status_code = 409
    code = ErrorCode.RESOURCE_CONFLICT

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, details=details)


class DependencyError(APIException):
    """The Meta Graph API failed or answered with something unusable."""

    status_code = 502
    code = ErrorCode.DEPENDENCY_FAILURE

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, details=details)


class ServiceError(APIException):
    status_code = 500
    code = ErrorCode.INTERNAL_ERROR

    def __init__(self, message: str = "Internal server error"):
        super().__init__(message)


# =============================================================================
# Envelope Builders
# =============================================================================


def generate_request_id() -> str:
    """``req_<epoch ms>_<16 hex chars>``."""
    return f"req_{int(time.time() * 1000)}_{secrets.token_hex(8)}"


def success_response(
    data: Any,
    meta: Optional[Dict[str, Any]] = None,
    request_id: Optional[str] = None,
) -> Dict[str, Any]:
    envelope = APIResponse(
        data=data,
        meta=meta,
        request_id=request_id or generate_request_id(),
    )
    return envelope.model_dump(mode="json")


def error_response(error: APIException, request_id: Optional[str] = None) -> Dict[str, Any]:
    request_id = request_id or generate_request_id()
    envelope = APIResponse(
        success=False,
        error=error.to_error(request_id),
        request_id=request_id,
    )
    return envelope.model_dump(mode="json")


__all__ = [
    "ErrorCode",
    "APIError",
    "APIResponse",
    "APIException",
    "AuthenticationError",
    "AuthorizationError",
    "NotFoundError",
    "ValidationError",
    "ConflictError",
    "DependencyError",
    "ServiceError",
    "generate_request_id",
    "success_response",
    "error_response",
]
