"""Services package exports."""

from src.services.errors import (
    AuthError,
    ConflictError,
    DependencyError,
    ForbiddenError,
    MisconfigurationError,
    NotFoundError,
    UnauthorizedError,
    ValidationFailedError,
)
from src.services.logging_service import configure_logging, get_logger

__all__ = [
    "AuthError",
    "ConflictError",
    "DependencyError",
    "ForbiddenError",
    "MisconfigurationError",
    "NotFoundError",
    "UnauthorizedError",
    "ValidationFailedError",
    "configure_logging",
    "get_logger",
]
