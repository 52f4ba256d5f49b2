"""FastAPI dependencies for authentication."""

import secrets
from typing import Optional
from uuid import UUID

import structlog
from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from src.api.cookies import ACCESS_TOKEN_COOKIE, CSRF_TOKEN_COOKIE
from src.models.user import AuthenticatedUser
from src.services.errors import ForbiddenError, UnauthorizedError
from src.services.token_service import TokenService
from src.services.user_service import UserService

logger = structlog.get_logger(__name__)

bearer_scheme = HTTPBearer(auto_error=False)

CSRF_HEADER = "X-CSRF-Token"
CSRF_SAFE_METHODS = {"GET", "HEAD", "OPTIONS"}


def extract_access_token(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials],
) -> Optional[str]:
    """Access token from the accessToken cookie, else the Bearer header."""
    cookie_token = request.cookies.get(ACCESS_TOKEN_COOKIE)
    if cookie_token:
        return cookie_token
    if credentials is not None and credentials.credentials:
        return credentials.credentials
    return None


async def get_current_user(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
) -> AuthenticatedUser:
    """Resolve the authenticated principal for the request.

    Args:
        request: Incoming request (cookies)
        credentials: Optional Bearer token from the Authorization header

    Returns:
        AuthenticatedUser for the token's subject

    Raises:
        UnauthorizedError: If no token is present, it does not verify, or
            the user no longer exists
    """
    token = extract_access_token(request, credentials)
    if not token:
        raise UnauthorizedError("Authentication required", code="missing_token")

    payload = TokenService().validate_access_token(token)

    try:
        user_id = UUID(str(payload.get("sub")))
    except ValueError:
        raise UnauthorizedError("Invalid token payload", code="invalid_token")

    user = await UserService().get_by_id(user_id)
    if user is None:
        raise UnauthorizedError("User not found", code="invalid_token")

    return user.to_principal()


async def verify_csrf(
    request: Request,
    current_user: AuthenticatedUser = Depends(get_current_user),
) -> AuthenticatedUser:
    """Authenticated principal for a state-changing request.

    Double-submit check: the X-CSRF-Token header must equal the csrf-token
    cookie issued by GET /csrf-token. Safe methods pass through.

    Raises:
        UnauthorizedError: If the request is not authenticated
        ForbiddenError: If the header or cookie is missing or they differ
    """
    if request.method in CSRF_SAFE_METHODS:
        return current_user

    header_token = request.headers.get(CSRF_HEADER, "")
    cookie_token = request.cookies.get(CSRF_TOKEN_COOKIE, "")

    if not header_token or not cookie_token or not secrets.compare_digest(
        header_token.encode("utf-8"), cookie_token.encode("utf-8")
    ):
        logger.warning(
            "csrf_check_failed",
            method=request.method,
            path=request.url.path,
            has_header=bool(header_token),
            has_cookie=bool(cookie_token),
        )
        raise ForbiddenError("Invalid CSRF token", code="invalid_csrf")

    return current_user
