"""FastAPI application initialization."""

from contextlib import asynccontextmanager
from uuid import uuid4

from dotenv import load_dotenv

# Load environment variables before anything else
load_dotenv()

import asyncpg
import structlog
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from redis.exceptions import RedisError

from src.api.auth import router as auth_router
from src.api.middleware import RequestContextMiddleware
from src.api.routes import router
from src.api.users import router as users_router
from src.config import get_settings
from src.database import close_database, init_database, run_migrations
from src.services.errors import AuthError, DependencyError
from src.services.logging_service import configure_logging, get_logger
from src.services.oauth_provider_service import close_http_client
from src.services.redis_service import close_redis, get_redis

GENERIC_ERROR_DETAIL = "An unexpected error occurred. Please try again later."
DEPENDENCY_ERROR_DETAIL = "A required service is temporarily unavailable. Please try again later."

ERROR_TITLES = {
    400: "Validation error",
    401: "Unauthorized",
    403: "Forbidden",
    404: "Not found",
    409: "Conflict",
    500: "Internal server error",
    503: "Service unavailable",
}


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler for startup/shutdown events."""
    # Startup
    settings = get_settings()
    configure_logging(settings.log_level)
    logger = get_logger("main")

    # Refuse to start without token signing secrets
    settings.require_signing_secrets()

    await init_database()
    await run_migrations()
    logger.info("database_initialized")

    # Auth codes need Redis; without it code issuance answers 503
    if await get_redis() is None:
        logger.warning(
            "redis_initialization_failed",
            note="Continuing without Redis - auth code handoff will be unavailable",
        )
    else:
        logger.info("redis_initialized")

    logger.info(
        "application_started",
        environment=settings.environment,
        log_level=settings.log_level,
        auth_code_handoff=settings.auth_code_handoff,
    )

    yield

    # Shutdown
    await close_http_client()
    await close_database()
    await close_redis()

    logger.info("application_shutdown")


app = FastAPI(
    title="StudyHub Auth API",
    description="Account registration, sign-in and session token exchange",
    version="0.1.0",
    lifespan=lifespan,
)


def _correlation_id(request: Request) -> str:
    # Use correlation ID from middleware if available, otherwise generate
    return getattr(request.state, "correlation_id", None) or str(uuid4())


def _error_response(
    status_code: int, detail: str, correlation_id: str
) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={
            "error": ERROR_TITLES.get(status_code, "Error"),
            "detail": detail,
            "correlation_id": correlation_id,
        },
        headers={"X-Correlation-Id": correlation_id},
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """Handle Pydantic validation errors with user-friendly messages.

    Returns 400 Bad Request naming the first offending field.
    """
    correlation_id = _correlation_id(request)
    logger = structlog.get_logger()

    # Extract validation error details
    errors = exc.errors()
    if errors:
        first_error = errors[0]
        field = ".".join(str(loc) for loc in first_error.get("loc", ["unknown"]))
        message = first_error.get("msg", "Validation failed")
        detail = f"Field '{field}': {message}"
    else:
        detail = "Request validation failed"

    logger.warning(
        "validation_error",
        correlation_id=correlation_id,
        detail=detail,
    )

    return _error_response(400, detail, correlation_id)


@app.exception_handler(AuthError)
async def auth_error_handler(request: Request, exc: AuthError) -> JSONResponse:
    """Map typed auth errors to their HTTP status.

    Errors not flagged `expose` never leak their message to the client.
    """
    correlation_id = _correlation_id(request)
    logger = structlog.get_logger()

    log = logger.error if exc.status_code >= 500 else logger.info
    log(
        "request_error",
        correlation_id=correlation_id,
        status_code=exc.status_code,
        reason=exc.code,
        detail=exc.message,
    )

    if exc.expose:
        detail = exc.message
    elif isinstance(exc, DependencyError):
        detail = DEPENDENCY_ERROR_DETAIL
    else:
        detail = GENERIC_ERROR_DETAIL

    return _error_response(exc.status_code, detail, correlation_id)


@app.exception_handler(asyncpg.PostgresError)
@app.exception_handler(asyncpg.InterfaceError)
@app.exception_handler(RedisError)
@app.exception_handler(ConnectionError)
@app.exception_handler(TimeoutError)
async def dependency_error_handler(request: Request, exc: Exception) -> JSONResponse:
    """Database and cache failures answer 503 with the cause logged server side."""
    structlog.get_logger().error(
        "dependency_failure",
        error=str(exc),
        error_type=type(exc).__name__,
    )
    return await auth_error_handler(request, DependencyError(str(exc)))


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Last-resort handler: log the exception and return a generic 500."""
    correlation_id = _correlation_id(request)
    structlog.get_logger().exception(
        "unhandled_exception",
        correlation_id=correlation_id,
        error_type=type(exc).__name__,
    )

    detail = GENERIC_ERROR_DETAIL
    if not get_settings().is_production:
        detail = f"{type(exc).__name__}: {exc}"

    return _error_response(500, detail, correlation_id)


# CORS for the browser frontend; credentials are required for auth cookies
app.add_middleware(
    CORSMiddleware,
    allow_origins=get_settings().cors_origin_list,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PATCH", "OPTIONS"],
    allow_headers=["Content-Type", "Authorization", "X-Correlation-Id", "X-CSRF-Token"],
    expose_headers=["X-Correlation-Id"],
)

# Correlation ID middleware for request tracking and observability
app.add_middleware(RequestContextMiddleware)

# Include API routes
app.include_router(auth_router)
app.include_router(users_router)
app.include_router(router)
