"""Auth request and response models with validation."""

import re
from datetime import datetime
from typing import Literal, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from src.models.user import PublicUser

EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
PASSWORD_STRENGTH_PATTERN = re.compile(r"^(?=.*[a-z])(?=.*[A-Z])(?=.*\d)(?=.*[@$!%*?&])")

OAuthMode = Literal["signin", "signup"]


def _validate_email(v: str) -> str:
    stripped = v.strip()
    if not EMAIL_PATTERN.match(stripped):
        raise ValueError("Please enter a valid email address.")
    return stripped


class RegisterRequest(BaseModel):
    """Email/password sign-up.

    Attributes:
        email: Account email (normalized to lower case before storage)
        password: 8-128 chars with upper, lower, digit and a special character
        name: Optional display name (max 100 chars)
    """

    email: str = Field(..., max_length=254)
    password: str = Field(..., min_length=8, max_length=128)
    name: Optional[str] = Field(default=None, max_length=100)

    @field_validator("email")
    @classmethod
    def email_valid(cls, v: str) -> str:
        return _validate_email(v)

    @field_validator("password")
    @classmethod
    def password_strength(cls, v: str) -> str:
        """Require one uppercase, one lowercase, one digit and one of @$!%*?&."""
        if not PASSWORD_STRENGTH_PATTERN.match(v):
            raise ValueError(
                "Password must contain at least one uppercase letter, one lowercase "
                "letter, one number, and one special character (@$!%*?&)."
            )
        return v


class LoginRequest(BaseModel):
    """Email/password credentials."""

    email: str = Field(..., max_length=254)
    password: str = Field(..., min_length=1, max_length=128)

    @field_validator("email")
    @classmethod
    def email_valid(cls, v: str) -> str:
        return _validate_email(v)


class ExchangeCodeRequest(BaseModel):
    """Single-use authorization code returned by register, login or an OAuth callback."""

    code: str = Field(..., min_length=1, max_length=128)


class RefreshRequest(BaseModel):
    """Body fallback for clients that cannot send the refreshToken cookie."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    refresh_token: Optional[str] = None


class TokenPair(BaseModel):
    access_token: str
    refresh_token: str


class AuthResult(BaseModel):
    """Outcome of a session operation: a fresh token pair and the user it belongs to."""

    tokens: TokenPair
    user: PublicUser


class AuthCodeResponse(BaseModel):
    """Register/login response in code-handoff mode: no tokens, only the code."""

    code: str
    user: PublicUser


class SessionResponse(BaseModel):
    """Tokens are also set as httpOnly cookies; the body copy is a fallback
    for clients whose cookie jar is unreliable (some mobile webviews).
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    user: PublicUser
    access_token: str
    refresh_token: str


class CsrfToken(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    csrf_token: str


class CsrfTokenResponse(BaseModel):
    """Body of GET /csrf-token. The same value is set as the csrf-token cookie
    and must be echoed in the X-CSRF-Token header on guarded requests.
    """

    success: bool = True
    data: CsrfToken


class LogoutResponse(BaseModel):
    message: str = "Logged out successfully"
    sessions_revoked: int = Field(ge=0)


class OAuthStatePayload(BaseModel):
    """Signed data carried through a provider redirect in the `state` parameter.

    Attributes:
        mode: signin or signup
        nonce: 16 random bytes, hex encoded
        timestamp: Creation time in epoch milliseconds
    """

    mode: OAuthMode
    nonce: str
    timestamp: int


class UserProfileResponse(BaseModel):
    """Current user with the sign-in provider and whether the profile is editable."""

    id: UUID
    email: str
    name: Optional[str] = None
    avatar: Optional[str] = None
    created_at: datetime
    updated_at: datetime
    provider: Literal["google", "facebook", "email"]
    can_edit_profile: bool


class UpdateProfileRequest(BaseModel):
    """Profile update. Only provided fields are changed.

    Attributes:
        name: New display name (1-100 chars)
        avatar: New avatar URL (http/https, max 500 chars)
    """

    name: Optional[str] = Field(default=None, min_length=1, max_length=100)
    avatar: Optional[str] = Field(default=None, max_length=500)

    @field_validator("avatar")
    @classmethod
    def avatar_is_http_url(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return v
        if not re.match(r"^https?://[^\s/$.?#][^\s]*$", v):
            raise ValueError("Avatar URL must start with http:// or https://")
        return v
