"""Session service: register, login, refresh, logout and OAuth account resolution."""

from datetime import datetime, timezone
from typing import Optional
from uuid import UUID

import asyncpg
import structlog

from src.models.auth import AuthResult, OAuthMode
from src.models.user import OAuthProfile, PublicUser, User
from src.services.errors import ConflictError, UnauthorizedError
from src.services.password_service import hash_password, verify_password
from src.services.sanitize import sanitize_email, sanitize_name
from src.services.token_service import TokenService
from src.services.user_service import UserService

logger = structlog.get_logger(__name__)

PROVIDER_LABELS = {
    "google": "Google",
    "facebook": "Facebook",
}

EMAIL_TAKEN_MESSAGE = (
    "An account with this email address already exists. "
    "Please sign in instead or use a different email address."
)


class AuthService:
    """Orchestrates credential checks, account creation and token issuance."""

    def __init__(self):
        self.user_service = UserService()
        self.token_service = TokenService()

    async def register_user(
        self, email: str, password: str, name: Optional[str] = None
    ) -> PublicUser:
        """Create an email/password account.

        Password policy is enforced at the HTTP boundary; this only hashes.

        Args:
            email: Account email (sanitized and lower-cased here)
            password: Plain-text password
            name: Optional display name

        Returns:
            Public view of the new user

        Raises:
            ConflictError: If the email is already registered
        """
        email = sanitize_email(email)
        name = sanitize_name(name) or None

        if await self.user_service.get_by_email(email) is not None:
            logger.info("register_email_taken")
            raise ConflictError(EMAIL_TAKEN_MESSAGE, code="email_taken")

        try:
            user = await self.user_service.create_user(
                email=email,
                password_hash=hash_password(password),
                name=name,
            )
        except asyncpg.UniqueViolationError:
            # Lost a race with a concurrent registration for the same email
            raise ConflictError(EMAIL_TAKEN_MESSAGE, code="email_taken")

        logger.info("user_registered", user_id=str(user.id))
        return user.to_public()

    async def authenticate(self, email: str, password: str) -> PublicUser:
        """Check email/password credentials.

        The three failure messages are deliberately distinct.

        Raises:
            UnauthorizedError: No account, OAuth-only account, or wrong password
        """
        user = await self.user_service.get_by_email(sanitize_email(email))

        if user is None:
            raise UnauthorizedError(
                "No account found with this email address. Please check your "
                "email or sign up to create an account.",
                code="account_not_found",
            )

        if not user.password_hash:
            raise UnauthorizedError(
                "This account was created with OAuth. Please sign in with OAuth.",
                code="wrong_auth_method",
            )

        if not verify_password(password, user.password_hash):
            logger.info("login_password_mismatch", user_id=str(user.id))
            raise UnauthorizedError(
                "Incorrect password. Please check your password and try again.",
                code="invalid_credentials",
            )

        logger.info("user_authenticated", user_id=str(user.id))
        return user.to_public()

    async def register(
        self, email: str, password: str, name: Optional[str] = None
    ) -> AuthResult:
        """Create an account and mint its first token pair."""
        user = await self.register_user(email, password, name)
        tokens = await self.token_service.issue_tokens(user.id, user.email)
        return AuthResult(tokens=tokens, user=user)

    async def login(self, email: str, password: str) -> AuthResult:
        """Check credentials and mint a token pair."""
        user = await self.authenticate(email, password)
        tokens = await self.token_service.issue_tokens(user.id, user.email)
        return AuthResult(tokens=tokens, user=user)

    async def issue_for_user_id(self, user_id: UUID | str) -> AuthResult:
        """Mint tokens for a user identified by an exchanged auth code.

        Raises:
            UnauthorizedError: If the user no longer exists
        """
        try:
            uid = user_id if isinstance(user_id, UUID) else UUID(str(user_id))
        except ValueError:
            raise UnauthorizedError("Invalid or expired authorization code", code="invalid_code")

        user = await self.user_service.get_by_id(uid)
        if user is None:
            logger.warning("auth_code_user_missing", user_id=str(uid))
            raise UnauthorizedError("Invalid or expired authorization code", code="invalid_code")

        tokens = await self.token_service.issue_tokens(user.id, user.email)
        return AuthResult(tokens=tokens, user=user.to_public())

    async def refresh(self, refresh_token: str) -> AuthResult:
        """Rotate a refresh token: consume its record, then mint a new pair.

        The record is deleted before new tokens exist, so replaying the old
        refresh token (or racing it) finds nothing.

        Raises:
            UnauthorizedError: If the JWT does not verify or its record is gone or expired
        """
        payload = self.token_service.decode_refresh_token(refresh_token)

        try:
            record_id = UUID(str(payload["tokenId"]))
        except ValueError:
            raise UnauthorizedError("Invalid refresh token", code="invalid_token")

        record = await self.token_service.consume_refresh_record(record_id)
        if record is None:
            raise UnauthorizedError("Invalid or expired refresh token", code="invalid_token")

        if str(record.user_id) != str(payload["sub"]):
            logger.warning("refresh_record_owner_mismatch", record_id=str(record_id))
            raise UnauthorizedError("Invalid or expired refresh token", code="invalid_token")

        if record.expires_at <= datetime.now(timezone.utc):
            logger.info("refresh_record_expired", record_id=str(record_id))
            raise UnauthorizedError("Invalid or expired refresh token", code="invalid_token")

        user = await self.user_service.get_by_id(record.user_id)
        if user is None:
            raise UnauthorizedError("Invalid or expired refresh token", code="invalid_token")

        tokens = await self.token_service.issue_tokens(user.id, user.email)
        logger.info("session_refreshed", user_id=str(user.id))
        return AuthResult(tokens=tokens, user=user.to_public())

    async def logout(self, user_id: UUID, token_id: Optional[UUID] = None) -> int:
        """Revoke one refresh-token record, or all of a user's records.

        Deleting nothing is not an error.

        Returns:
            Number of records deleted
        """
        if token_id is not None:
            deleted = await self.token_service.revoke_refresh_token(user_id, token_id)
        else:
            deleted = await self.token_service.revoke_all_user_tokens(user_id)
        logger.info("user_logged_out", user_id=str(user_id), deleted=deleted)
        return deleted

    async def resolve_oauth_user(
        self, profile: OAuthProfile, mode: OAuthMode
    ) -> PublicUser:
        """Find or create the account a verified provider profile signs into.

        Args:
            profile: Profile fetched from the provider
            mode: Verified signin/signup mode from the OAuth state

        Returns:
            Public view of the resolved user

        Raises:
            UnauthorizedError: account_not_found on signin without an account,
                wrong_auth_method when the account uses another sign-in method
        """
        provider = profile.provider
        label = PROVIDER_LABELS[provider]
        email = sanitize_email(profile.email)

        user = await self.user_service.find_for_provider(
            email, provider, profile.provider_id
        )

        if user is None:
            if mode != "signup":
                raise UnauthorizedError(
                    f"No account found with this {label} account. "
                    "Please sign up first to create your account.",
                    code="account_not_found",
                )
            user = await self.user_service.create_oauth_user(
                email=email,
                provider=provider,
                provider_id=profile.provider_id,
                name=sanitize_name(profile.display_name) or None,
                avatar=profile.photo_url,
            )
            logger.info("oauth_user_created", user_id=str(user.id), provider=provider)
            return user.to_public()

        _ensure_provider_matches(user, provider)

        if profile.photo_url and not user.avatar:
            user = await self.user_service.update_avatar(user.id, profile.photo_url) or user

        logger.info("oauth_user_signed_in", user_id=str(user.id), provider=provider)
        return user.to_public()


def _ensure_provider_matches(user: User, provider: str) -> None:
    if not user.is_oauth_account:
        raise UnauthorizedError(
            "This account was created with email/password. "
            "Please sign in with email/password.",
            code="wrong_auth_method",
        )

    if not user.provider_id(provider):
        other = "facebook" if provider == "google" else "google"
        other_label = PROVIDER_LABELS[other]
        raise UnauthorizedError(
            f"This account was created with {other_label}. "
            f"Please sign in with {other_label}.",
            code="wrong_auth_method",
        )
