"""API route definitions for health and CSRF bootstrap endpoints."""

import secrets
from datetime import datetime, timezone

from fastapi import APIRouter, Response

from src.api.cookies import set_csrf_cookie
from src.config import get_settings
from src.database import health_check as db_health_check
from src.models.auth import CsrfToken, CsrfTokenResponse
from src.services.redis_service import health_check as redis_health_check

router = APIRouter()


@router.get("/health")
async def health_check() -> dict:
    """Health check endpoint.

    Returns:
        Status, timestamp in ISO8601 format, and the state of Postgres and Redis
    """
    db_healthy = await db_health_check()
    redis_healthy = await redis_health_check()

    return {
        "status": "healthy" if db_healthy and redis_healthy else "degraded",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "database": "healthy" if db_healthy else "unavailable",
        "redis": "healthy" if redis_healthy else "unavailable",
    }


@router.get("/csrf-token")
async def csrf_token(response: Response) -> CsrfTokenResponse:
    """Issue a CSRF token as a cookie and in the body.

    Clients send the body value back in the X-CSRF-Token header on logout
    and profile updates.
    """
    token = secrets.token_hex(32)
    set_csrf_cookie(response, token, get_settings())
    return CsrfTokenResponse(data=CsrfToken(csrf_token=token))
