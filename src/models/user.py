"""User and refresh-token models."""

from datetime import datetime
from typing import Literal, Optional
from uuid import UUID

from pydantic import BaseModel

OAuthProviderName = Literal["google", "facebook"]


class PublicUser(BaseModel):
    """User fields safe to return to clients. Never carries hashes or provider ids."""

    id: UUID
    email: str
    name: Optional[str] = None
    avatar: Optional[str] = None


class AuthenticatedUser(PublicUser):
    """The principal produced by the authentication dependency."""

    created_at: datetime
    updated_at: datetime


class User(BaseModel):
    """A stored user record, including credential columns."""

    id: UUID
    email: str
    password_hash: Optional[str] = None
    name: Optional[str] = None
    avatar: Optional[str] = None
    google_id: Optional[str] = None
    facebook_id: Optional[str] = None
    created_at: datetime
    updated_at: datetime

    @property
    def provider(self) -> str:
        """Which sign-in method created the account: google, facebook or email."""
        if self.google_id:
            return "google"
        if self.facebook_id:
            return "facebook"
        return "email"

    @property
    def is_oauth_account(self) -> bool:
        return bool(self.google_id or self.facebook_id)

    def provider_id(self, provider: OAuthProviderName) -> Optional[str]:
        return self.google_id if provider == "google" else self.facebook_id

    def to_public(self) -> PublicUser:
        return PublicUser(
            id=self.id,
            email=self.email,
            name=self.name,
            avatar=self.avatar,
        )

    def to_principal(self) -> AuthenticatedUser:
        return AuthenticatedUser(
            id=self.id,
            email=self.email,
            name=self.name,
            avatar=self.avatar,
            created_at=self.created_at,
            updated_at=self.updated_at,
        )


class RefreshTokenRecord(BaseModel):
    """A persisted, revocable session handle referenced by a refresh JWT."""

    id: UUID
    user_id: UUID
    token: str
    expires_at: datetime


class OAuthProfile(BaseModel):
    """A profile returned by an OAuth provider after code exchange."""

    provider: OAuthProviderName
    provider_id: str
    email: str
    display_name: Optional[str] = None
    photo_url: Optional[str] = None
