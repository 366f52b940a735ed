"""
FastAPI Application Module

This module provides the main FastAPI application setup with
all routes, middleware, and configuration.
"""

import logging
import os
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Any, Dict, List, Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel
from starlette.exceptions import HTTPException

from ..core.logging import setup_logging
from ..database.base import DatabaseManager
from ..flows.base import BotNotFoundError, GraphValidationError, VersionConflictError
from ..security.encryption import DecryptionError, TokenEncryptor
from ..whatsapp.base import AccountNotFoundError, ExternalServiceError, ForbiddenError
from ..whatsapp.client import GraphAPIConfig, WhatsAppGraphClient
from .auth import JWTConfig
from .base import (
    APIException,
    AuthorizationError,
    ConflictError,
    DependencyError,
    ErrorCode,
    NotFoundError,
    ServiceError,
    ValidationError,
    error_response,
    generate_request_id,
)
from .routes import bots_router, whatsapp_router


logger = logging.getLogger(__name__)


# =============================================================================
# Application Configuration
# =============================================================================


def _env_flag(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).lower() in ("1", "true", "yes")


class AppConfig(BaseModel):
    """Application configuration."""

    # API settings
    title: str = "BotPe API"
    description: str = "WhatsApp chatbot builder API"
    version: str = "1.0.0"
    api_prefix: str = "/api"

    # Server settings
    debug: bool = False
    docs_enabled: bool = True

    # Database
    database_url: str = "sqlite+aiosqlite:///./botpe.db"
    database_pool_size: int = 5
    database_max_overflow: int = 10

    # CORS - never use "*" with credentials=True
    cors_origins: List[str] = ["http://localhost:3000"]
    cors_allow_credentials: bool = True

    # Auth
    jwt_secret: Optional[str] = None
    jwt_algorithm: str = "HS256"

    # Secrets at rest
    encryption_key: Optional[str] = None

    # WhatsApp Graph API
    whatsapp_app_id: Optional[str] = None
    whatsapp_app_secret: Optional[str] = None
    whatsapp_api_version: str = "v18.0"
    whatsapp_timeout_seconds: float = 30.0

    # Flow graphs
    flow_strict_validation: bool = False

    # Logging
    log_level: str = "INFO"
    log_format: str = "json"

    @classmethod
    def from_env(cls) -> "AppConfig":
        """Load configuration from environment variables."""
        return cls(
            debug=_env_flag("DEBUG"),
            database_url=os.getenv("DATABASE_URL", "sqlite+aiosqlite:///./botpe.db"),
            database_pool_size=int(os.getenv("DATABASE_POOL_SIZE", "5")),
            database_max_overflow=int(os.getenv("DATABASE_MAX_OVERFLOW", "10")),
            cors_origins=os.getenv("CORS_ORIGINS", "http://localhost:3000").split(","),
            jwt_secret=os.getenv("AUTH_JWT_SECRET"),
            encryption_key=os.getenv("ENCRYPTION_KEY"),
            whatsapp_app_id=os.getenv("WHATSAPP_APP_ID"),
            whatsapp_app_secret=os.getenv("WHATSAPP_APP_SECRET"),
            whatsapp_api_version=os.getenv("WHATSAPP_API_VERSION", "v18.0"),
            whatsapp_timeout_seconds=float(os.getenv("WHATSAPP_TIMEOUT_SECONDS", "30")),
            flow_strict_validation=_env_flag("FLOW_STRICT_VALIDATION"),
            log_level=os.getenv("LOG_LEVEL", "INFO"),
            log_format=os.getenv("LOG_FORMAT", "json"),
        )

    def graph_api_config(self) -> GraphAPIConfig:
        return GraphAPIConfig(
            app_id=self.whatsapp_app_id,
            app_secret=self.whatsapp_app_secret,
            api_version=self.whatsapp_api_version,
            timeout=self.whatsapp_timeout_seconds,
        )


# =============================================================================
# Health Check Models
# =============================================================================


class HealthResponse(BaseModel):
    """Health check response."""

    status: str = "healthy"
    version: str
    timestamp: datetime
    checks: Dict[str, Any] = {}


# =============================================================================
# Exception Handlers
# =============================================================================


def _request_id(request: Request) -> str:
    return getattr(request.state, "request_id", None) or generate_request_id()


async def api_exception_handler(request: Request, exc: APIException):
    """Handle API exceptions."""
    return JSONResponse(
        status_code=exc.status_code,
        content=error_response(exc, _request_id(request)),
    )


def to_api_exception(exc: Exception) -> APIException:
    """Translate a domain exception into its API error."""
    if isinstance(exc, BotNotFoundError):
        return NotFoundError("Bot", exc.bot_id)
    if isinstance(exc, AccountNotFoundError):
        return NotFoundError("WhatsAppAccount", exc.identifier, message=str(exc))
    if isinstance(exc, GraphValidationError):
        details = {"issues": exc.issues} if exc.issues else None
        return ValidationError(exc.message, field=exc.field, details=details)
    if isinstance(exc, VersionConflictError):
        return ConflictError(
            str(exc),
            details={"expected_version": exc.expected, "current_version": exc.actual},
        )
    if isinstance(exc, ExternalServiceError):
        details = None
        if exc.status_code is not None or exc.upstream_message:
            details = {
                "upstream_status": exc.status_code,
                "upstream_message": exc.upstream_message,
            }
        return DependencyError(exc.message, details=details)
    if isinstance(exc, ForbiddenError):
        return AuthorizationError(message=str(exc))
    if isinstance(exc, DecryptionError):
        # Never echo ciphertext problems back to the caller
        return ServiceError(message="Stored credentials could not be read")
    return ServiceError(message="An unexpected error occurred")


async def domain_exception_handler(request: Request, exc: Exception):
    """Handle domain exceptions raised by the services."""
    api_exc = to_api_exception(exc)
    if api_exc.status_code >= 500:
        logger.error(
            f"{type(exc).__name__}: {exc}",
            extra={"path": request.url.path},
        )
    return await api_exception_handler(request, api_exc)


async def request_validation_handler(request: Request, exc: RequestValidationError):
    """Handle request body and parameter validation failures."""
    errors = exc.errors()
    first = errors[0] if errors else {}
    # Drop the leading "body"/"query"/"path" location segment
    loc = [str(part) for part in first.get("loc", ())[1:]]
    return await api_exception_handler(
        request,
        ValidationError(
            first.get("msg", "Invalid request"),
            field=".".join(loc) or None,
            details={"errors": len(errors)},
        ),
    )


async def http_exception_handler(request: Request, exc: HTTPException):
    """Handle HTTP exceptions."""
    # Map HTTP status to error code
    error_codes = {
        400: ErrorCode.INVALID_REQUEST_BODY,
        401: ErrorCode.AUTHENTICATION_REQUIRED,
        403: ErrorCode.INSUFFICIENT_PERMISSIONS,
        404: ErrorCode.RESOURCE_NOT_FOUND,
        405: ErrorCode.INVALID_REQUEST_BODY,
    }
    error_code = error_codes.get(exc.status_code, ErrorCode.INTERNAL_ERROR)

    return await api_exception_handler(
        request,
        APIException(
            code=error_code,
            message=str(exc.detail),
            status_code=exc.status_code,
        ),
    )


async def generic_exception_handler(request: Request, exc: Exception):
    """Handle unexpected exceptions."""
    logger.exception(f"Unhandled exception: {exc}")
    return await api_exception_handler(
        request, ServiceError(message="An unexpected error occurred")
    )


DOMAIN_EXCEPTIONS = (
    BotNotFoundError,
    AccountNotFoundError,
    GraphValidationError,
    VersionConflictError,
    ExternalServiceError,
    ForbiddenError,
    DecryptionError,
)


# =============================================================================
# Application Factory
# =============================================================================


def create_app(
    config: Optional[AppConfig] = None,
    database: Optional[DatabaseManager] = None,
    graph_client: Optional[WhatsAppGraphClient] = None,
    encryptor: Optional[TokenEncryptor] = None,
) -> FastAPI:
    """
    Create and configure the FastAPI application.

    Components passed in are used as-is and left open on shutdown;
    missing ones are built from ``config`` when the app starts.

    Args:
        config: Application configuration
        database: Database manager
        graph_client: WhatsApp Graph API client
        encryptor: Token encryptor

    Returns:
        Configured FastAPI application
    """
    config = config or AppConfig.from_env()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        # Startup
        setup_logging(level=config.log_level, format=config.log_format)
        logger.info("Starting BotPe API...")

        owned = []
        if app.state.encryptor is None:
            # Fails fast when ENCRYPTION_KEY is missing
            app.state.encryptor = TokenEncryptor(config.encryption_key)

        if app.state.db is None:
            logger.info("Initializing database connection...")
            app.state.db = DatabaseManager(
                database_url=config.database_url,
                pool_size=config.database_pool_size,
                max_overflow=config.database_max_overflow,
                echo=config.debug,
            )
            owned.append(app.state.db)

            # Create tables if they don't exist (for development)
            if config.debug or app.state.db.is_sqlite:
                logger.info("Creating database tables...")
                await app.state.db.create_all()

        if app.state.graph_client is None:
            app.state.graph_client = WhatsAppGraphClient(config.graph_api_config())
            owned.append(app.state.graph_client)

        if await app.state.db.health_check():
            logger.info("Database connection established successfully")
        else:
            logger.error("Database connection failed!")

        yield

        # Shutdown
        logger.info("Shutting down BotPe API...")
        for component in owned:
            if isinstance(component, DatabaseManager):
                await component.close()
            else:
                await component.aclose()
        logger.info("Connections closed")

    app = FastAPI(
        title=config.title,
        description=config.description,
        version=config.version,
        docs_url="/docs" if config.docs_enabled else None,
        redoc_url="/redoc" if config.docs_enabled else None,
        openapi_url="/openapi.json" if config.docs_enabled else None,
        lifespan=lifespan,
    )

    # Store config and shared components
    app.state.config = config
    app.state.jwt_config = (
        JWTConfig(secret_key=config.jwt_secret, algorithm=config.jwt_algorithm)
        if config.jwt_secret
        else None
    )
    app.state.db = database
    app.state.graph_client = graph_client
    app.state.encryptor = encryptor

    # ==========================================================================
    # Add Middleware
    # ==========================================================================

    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.cors_origins,
        allow_credentials=config.cors_allow_credentials,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["X-Request-ID"],
    )

    # ==========================================================================
    # Add Exception Handlers
    # ==========================================================================

    app.add_exception_handler(APIException, api_exception_handler)
    for exc_class in DOMAIN_EXCEPTIONS:
        app.add_exception_handler(exc_class, domain_exception_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.add_exception_handler(HTTPException, http_exception_handler)
    app.add_exception_handler(Exception, generic_exception_handler)

    # ==========================================================================
    # Add Routes
    # ==========================================================================

    # Health check (no prefix)
    @app.get("/health", response_model=HealthResponse, tags=["Health"])
    async def health_check():
        """Health check endpoint."""
        db: Optional[DatabaseManager] = app.state.db
        db_healthy = db is not None and await db.health_check()

        return HealthResponse(
            status="healthy" if db_healthy else "degraded",
            version=config.version,
            timestamp=datetime.utcnow(),
            checks={
                "api": "ok",
                "database": "ok" if db_healthy else "error",
            },
        )

    app.include_router(bots_router, prefix=config.api_prefix)
    app.include_router(whatsapp_router, prefix=config.api_prefix)

    return app


# =============================================================================
# Entry Point
# =============================================================================


def run_server(
    host: str = "0.0.0.0",
    port: int = 8000,
    reload: bool = False,
):
    """Run the API server."""
    import uvicorn

    uvicorn.run(
        "botpe_core.api.app:create_app",
        host=host,
        port=port,
        reload=reload,
        factory=True,
        log_level="info",
    )


if __name__ == "__main__":
    run_server(reload=True)
