"""
FastAPI application entry point.

Configures the application with:
- Lifespan handlers for database setup and teardown
- CORS middleware
- Correlation ID middleware
- Domain error translation
- Health and readiness checks
- API routes
"""

from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel
from sqlalchemy.exc import SQLAlchemyError

from roadwatch.api import api_router
from roadwatch.core.config import get_settings
from roadwatch.core.logging import (
    bind_actor,
    get_correlation_id,
    get_logger,
    set_correlation_id,
    setup_logging,
)
from roadwatch.domain.exceptions import (
    ConflictError,
    GatewayError,
    IllegalStateTransitionError,
    InvalidInputError,
    NotFoundError,
    RoadwatchError,
    SignatureInvalidError,
    TransientFailureError,
)
from roadwatch.infrastructure.db.session import check_db, close_db, init_db

# Initialize logging
setup_logging()
logger = get_logger(__name__)

ERROR_STATUS_CODES: dict[type[RoadwatchError], int] = {
    NotFoundError: status.HTTP_404_NOT_FOUND,
    ConflictError: status.HTTP_409_CONFLICT,
    InvalidInputError: status.HTTP_400_BAD_REQUEST,
    IllegalStateTransitionError: status.HTTP_409_CONFLICT,
    GatewayError: status.HTTP_502_BAD_GATEWAY,
    SignatureInvalidError: status.HTTP_400_BAD_REQUEST,
    TransientFailureError: status.HTTP_503_SERVICE_UNAVAILABLE,
}


class HealthResponse(BaseModel):
    """Health check response."""

    status: str
    version: str = "1.0.0"


class ReadinessResponse(BaseModel):
    """Readiness check response."""

    status: str
    database_connected: bool
    gateways_configured: list[str]


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """
    Application lifespan manager.

    Handles startup and shutdown tasks:
    - Startup: Initialize DB schema
    - Shutdown: Dispose connections
    """
    logger.info("application_starting")

    try:
        await init_db()
        logger.info("database_initialized")
    except SQLAlchemyError as e:
        logger.error("startup_failed", error=str(e))
        raise

    logger.info("application_started")

    yield

    logger.info("application_shutting_down")
    await close_db()
    logger.info("application_shutdown_complete")


async def roadwatch_error_handler(request: Request, exc: RoadwatchError) -> JSONResponse:
    """Translate a domain error into an HTTP response."""
    status_code = next(
        (code for kind, code in ERROR_STATUS_CODES.items() if isinstance(exc, kind)),
        status.HTTP_500_INTERNAL_SERVER_ERROR,
    )

    content: dict[str, object] = {"detail": exc.message, "error": type(exc).__name__}
    if isinstance(exc, InvalidInputError) and exc.errors:
        content["errors"] = exc.errors

    log = logger.error if status_code >= 500 else logger.info
    log(
        "request_failed",
        path=request.url.path,
        error=type(exc).__name__,
        status_code=status_code,
        message=exc.message,
    )
    return JSONResponse(status_code=status_code, content=content)


def create_app() -> FastAPI:
    """
    Create and configure the FastAPI application.

    Returns:
        FastAPI: Configured application instance.
    """
    settings = get_settings()

    app = FastAPI(
        title="Roadwatch Violation Service",
        description="Traffic violation recording, vehicle registry and fine payments",
        version="1.0.0",
        lifespan=lifespan,
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"] if settings.debug else ["http://localhost:3000"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_exception_handler(RoadwatchError, roadwatch_error_handler)

    @app.middleware("http")
    async def correlation_id_middleware(request: Request, call_next):
        """Add correlation ID to each request."""
        set_correlation_id(request.headers.get("X-Correlation-ID"))
        bind_actor(None)

        response = await call_next(request)

        response.headers["X-Correlation-ID"] = get_correlation_id()
        return response

    @app.get(
        "/health",
        response_model=HealthResponse,
        tags=["health"],
    )
    async def health_check() -> HealthResponse:
        """
        Basic liveness check.

        Returns 200 if the application is running.
        """
        return HealthResponse(status="healthy")

    @app.get(
        "/ready",
        response_model=ReadinessResponse,
        tags=["health"],
    )
    async def readiness_check() -> ReadinessResponse:
        """
        Readiness check for load balancers.

        Returns 200 only if the database answers; lists the gateways
        that have credentials.
        """
        try:
            database_connected = await check_db()
        except (SQLAlchemyError, OSError) as e:
            logger.warning("readiness_check_failed", component="database", error=str(e))
            database_connected = False

        gateways_configured = [
            name
            for name, key in (
                ("paystack", settings.paystack_secret_key),
                ("flutterwave", settings.flutterwave_secret_key),
            )
            if key
        ]

        response = ReadinessResponse(
            status="ready" if database_connected else "not_ready",
            database_connected=database_connected,
            gateways_configured=gateways_configured,
        )

        if not database_connected:
            return JSONResponse(
                status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
                content=response.model_dump(),
            )

        return response

    app.include_router(api_router)

    return app


# Create app instance
app = create_app()
