"""httpOnly auth cookies: set on token issuance, cleared on logout."""

import re
from typing import Optional
from urllib.parse import urlparse

from starlette.responses import Response

from src.config import Settings
from src.services.errors import MisconfigurationError
from src.services.token_service import parse_duration

ACCESS_TOKEN_COOKIE = "accessToken"
REFRESH_TOKEN_COOKIE = "refreshToken"
CSRF_TOKEN_COOKIE = "csrf-token"
CSRF_TOKEN_MAX_AGE_SECONDS = 24 * 60 * 60

DEFAULT_MAX_AGE_MS = 15 * 60 * 1000
IPV4_PATTERN = re.compile(r"^\d+\.\d+\.\d+\.\d+$")


def parse_expiration_to_ms(expiration: Optional[str]) -> int:
    """Parse "30s", "15m", "2h" or "7d" into milliseconds.

    Unknown formats fall back to 15 minutes.
    """
    try:
        lifetime = parse_duration((expiration or "").strip())
    except MisconfigurationError:
        return DEFAULT_MAX_AGE_MS
    return int(lifetime.total_seconds()) * 1000


def cookie_domain(settings: Settings) -> Optional[str]:
    """Parent domain for auth cookies in production, e.g. ".example.com".

    Returns None outside production and for localhost or IP frontends.
    """
    if not settings.is_production or not settings.frontend_url:
        return None
    hostname = urlparse(settings.frontend_url).hostname
    if not hostname or "localhost" in hostname or IPV4_PATTERN.match(hostname):
        return None
    parts = hostname.split(".")
    if len(parts) < 2:
        return None
    return "." + ".".join(parts[-2:])


def _cookie_attributes(settings: Settings) -> dict:
    # clear_auth_cookies must send exactly these or browsers keep the cookie
    return {
        "httponly": True,
        "secure": settings.is_production,
        "samesite": "strict",
        "path": "/",
        "domain": cookie_domain(settings),
    }


def set_auth_cookies(
    response: Response,
    access_token: str,
    refresh_token: str,
    settings: Settings,
) -> None:
    """Set the access and refresh tokens as httpOnly cookies."""
    attributes = _cookie_attributes(settings)
    response.set_cookie(
        ACCESS_TOKEN_COOKIE,
        access_token,
        max_age=parse_expiration_to_ms(settings.jwt_expires_in) // 1000,
        **attributes,
    )
    response.set_cookie(
        REFRESH_TOKEN_COOKIE,
        refresh_token,
        max_age=parse_expiration_to_ms(settings.jwt_refresh_expires_in) // 1000,
        **attributes,
    )


def clear_auth_cookies(response: Response, settings: Settings) -> None:
    """Expire both auth cookies using the attributes they were set with."""
    attributes = _cookie_attributes(settings)
    response.delete_cookie(ACCESS_TOKEN_COOKIE, **attributes)
    response.delete_cookie(REFRESH_TOKEN_COOKIE, **attributes)


def set_csrf_cookie(response: Response, csrf_token: str, settings: Settings) -> None:
    """Set the double-submit CSRF cookie (24 hours, host-only)."""
    response.set_cookie(
        CSRF_TOKEN_COOKIE,
        csrf_token,
        max_age=CSRF_TOKEN_MAX_AGE_SECONDS,
        httponly=True,
        secure=settings.is_production,
        samesite="strict",
        path="/",
    )
