"""API package exports."""

from src.api.auth import router as auth_router
from src.api.middleware import RequestContextMiddleware
from src.api.routes import router
from src.api.users import router as users_router

__all__ = ["auth_router", "router", "users_router", "RequestContextMiddleware"]
