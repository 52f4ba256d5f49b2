"""Typed errors raised by the auth core and mapped to HTTP at the API boundary."""

from typing import Optional


class AuthError(Exception):
    """Base class for errors that carry an HTTP status and a client-facing message.

    Attributes:
        message: Text safe to show the client when ``expose`` is True
        code: Machine-readable reason (used in OAuth redirect error params)
        status_code: HTTP status the boundary responds with
        expose: Whether ``message`` may be sent to the client in production
    """

    status_code: int = 500
    default_code: str = "error"
    expose: bool = True

    def __init__(self, message: str, code: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.code = code or self.default_code


class ValidationFailedError(AuthError):
    status_code = 400
    default_code = "validation_failed"


class UnauthorizedError(AuthError):
    status_code = 401
    default_code = "unauthorized"


class ForbiddenError(AuthError):
    status_code = 403
    default_code = "forbidden"


class NotFoundError(AuthError):
    status_code = 404
    default_code = "not_found"


class ConflictError(AuthError):
    status_code = 409
    default_code = "conflict"


class DependencyError(AuthError):
    """A backing store (Postgres or Redis) is unreachable or failed."""

    status_code = 503
    default_code = "dependency_unavailable"
    expose = False


class MisconfigurationError(AuthError):
    """Required configuration is missing. Fatal at startup."""

    status_code = 500
    default_code = "misconfigured"
    expose = False
