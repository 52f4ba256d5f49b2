"""Models package exports."""

from src.models.auth import (
    AuthCodeResponse,
    AuthResult,
    ExchangeCodeRequest,
    LoginRequest,
    LogoutResponse,
    OAuthStatePayload,
    RefreshRequest,
    RegisterRequest,
    SessionResponse,
    TokenPair,
    UpdateProfileRequest,
    UserProfileResponse,
)
from src.models.user import (
    AuthenticatedUser,
    OAuthProfile,
    PublicUser,
    RefreshTokenRecord,
    User,
)

__all__ = [
    "AuthCodeResponse",
    "AuthenticatedUser",
    "AuthResult",
    "ExchangeCodeRequest",
    "LoginRequest",
    "LogoutResponse",
    "OAuthProfile",
    "OAuthStatePayload",
    "PublicUser",
    "RefreshRequest",
    "RefreshTokenRecord",
    "RegisterRequest",
    "SessionResponse",
    "TokenPair",
    "UpdateProfileRequest",
    "User",
    "UserProfileResponse",
]
