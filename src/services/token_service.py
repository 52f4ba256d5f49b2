"""JWT issuance and the refresh-token record lifecycle."""

import secrets
from datetime import datetime, timedelta, timezone
from typing import Optional
from uuid import UUID, uuid4

import jwt
import structlog

from src.config import DURATION_PATTERN, get_settings
from src.database import get_pool
from src.models.auth import TokenPair
from src.models.user import RefreshTokenRecord
from src.services.errors import MisconfigurationError, UnauthorizedError

logger = structlog.get_logger(__name__)

JWT_ALGORITHM = "HS256"

DURATION_UNITS = {
    "s": "seconds",
    "m": "minutes",
    "h": "hours",
    "d": "days",
}


def parse_duration(value: str) -> timedelta:
    """Parse an expiration string such as "15m", "2h" or "7d".

    Args:
        value: Number followed by s, m, h or d

    Returns:
        The duration as a timedelta

    Raises:
        MisconfigurationError: If the string is not in the expected format
    """
    match = DURATION_PATTERN.match(value or "")
    if match is None:
        raise MisconfigurationError(f"Unparseable token lifetime: {value!r}")
    amount, unit = match.groups()
    return timedelta(**{DURATION_UNITS[unit]: int(amount)})


class TokenService:
    """Mints access/refresh token pairs and manages refresh-token records.

    Access and refresh tokens are signed with different secrets. A refresh
    JWT only names a record (`tokenId`); the record must still exist and be
    unexpired for the token to be honoured.
    """

    def __init__(self):
        self.settings = get_settings()

    def _secrets(self) -> tuple[str, str]:
        access_secret = self.settings.jwt_secret
        refresh_secret = self.settings.jwt_refresh_secret
        if not access_secret or not refresh_secret:
            raise MisconfigurationError("JWT secrets are not configured")
        return access_secret, refresh_secret

    def create_access_token(self, user_id: str, email: str) -> str:
        """Create a signed JWT access token.

        Args:
            user_id: User id (placed in 'sub' claim)
            email: User email

        Returns:
            Encoded JWT string
        """
        access_secret, _ = self._secrets()
        lifetime = parse_duration(self.settings.jwt_expires_in)
        now = datetime.now(timezone.utc)
        payload = {
            "sub": user_id,
            "email": email,
            "iat": now,
            "exp": now + lifetime,
        }
        return jwt.encode(payload, access_secret, algorithm=JWT_ALGORITHM)

    def validate_access_token(self, token: str) -> dict:
        """Decode and validate a JWT access token.

        Args:
            token: Encoded JWT string

        Returns:
            Decoded payload dict with sub, email, iat, exp

        Raises:
            UnauthorizedError: If the token is invalid, expired, or malformed
        """
        access_secret, _ = self._secrets()
        try:
            return jwt.decode(token, access_secret, algorithms=[JWT_ALGORITHM])
        except jwt.ExpiredSignatureError:
            raise UnauthorizedError("Access token has expired", code="token_expired")
        except jwt.InvalidTokenError:
            raise UnauthorizedError("Invalid access token", code="invalid_token")

    def decode_refresh_token(self, token: str) -> dict:
        """Verify a refresh JWT's signature and expiry.

        Returns:
            Payload with 'sub' and 'tokenId'

        Raises:
            UnauthorizedError: If the token does not verify or lacks claims
        """
        _, refresh_secret = self._secrets()
        try:
            payload = jwt.decode(
                token,
                refresh_secret,
                algorithms=[JWT_ALGORITHM],
                options={"require": ["sub", "exp"]},
            )
        except jwt.InvalidTokenError as e:
            logger.info("refresh_token_rejected", reason=type(e).__name__)
            raise UnauthorizedError("Invalid refresh token", code="invalid_token")

        if not payload.get("tokenId"):
            raise UnauthorizedError("Invalid refresh token", code="invalid_token")
        return payload

    async def issue_tokens(self, user_id: UUID, email: str) -> TokenPair:
        """Mint a matched access/refresh token pair.

        Persists one refresh-token record, then signs a refresh JWT naming it.

        Args:
            user_id: Owner of the new session
            email: Owner's email, embedded in the access token

        Returns:
            TokenPair with both encoded tokens

        Raises:
            ValueError: If user_id or email is empty
            MisconfigurationError: If secrets or lifetimes are missing/invalid
        """
        if not user_id or not email:
            raise ValueError("user_id and email are required to issue tokens")

        _, refresh_secret = self._secrets()
        refresh_lifetime = parse_duration(self.settings.jwt_refresh_expires_in)

        access_token = self.create_access_token(str(user_id), email)

        record_id = uuid4()
        now = datetime.now(timezone.utc)
        expires_at = now + refresh_lifetime

        pool = await get_pool()

        async with pool.acquire() as conn:
            await conn.execute(
                """
                INSERT INTO refresh_tokens (id, user_id, token, expires_at, created_at)
                VALUES ($1, $2, $3, $4, $5)
                """,
                record_id,
                user_id,
                secrets.token_hex(32),
                expires_at,
                now,
            )

        refresh_token = jwt.encode(
            {
                "sub": str(user_id),
                "tokenId": str(record_id),
                "iat": now,
                "exp": expires_at,
            },
            refresh_secret,
            algorithm=JWT_ALGORITHM,
        )

        logger.info(
            "session_tokens_issued",
            user_id=str(user_id),
            record_id=str(record_id),
            expires_at=expires_at.isoformat(),
        )

        return TokenPair(access_token=access_token, refresh_token=refresh_token)

    async def consume_refresh_record(
        self, record_id: UUID
    ) -> Optional[RefreshTokenRecord]:
        """Delete a refresh-token record and return what was deleted.

        Lookup and deletion are one statement, so of two concurrent callers
        naming the same record only one gets it back.

        Args:
            record_id: The 'tokenId' claim of a verified refresh JWT

        Returns:
            The deleted record, or None if it did not exist
        """
        pool = await get_pool()

        async with pool.acquire() as conn:
            row = await conn.fetchrow(
                """
                DELETE FROM refresh_tokens
                WHERE id = $1
                RETURNING id, user_id, token, expires_at
                """,
                record_id,
            )

        if row is None:
            logger.warning("refresh_record_not_found", record_id=str(record_id))
            return None

        logger.info(
            "refresh_record_consumed",
            record_id=str(record_id),
            user_id=str(row["user_id"]),
        )

        return RefreshTokenRecord(
            id=row["id"],
            user_id=row["user_id"],
            token=row["token"],
            expires_at=row["expires_at"],
        )

    async def revoke_refresh_token(self, user_id: UUID, record_id: UUID) -> int:
        """Delete one of a user's refresh-token records.

        Returns:
            Number of records deleted (0 or 1)
        """
        pool = await get_pool()

        async with pool.acquire() as conn:
            result = await conn.execute(
                """
                DELETE FROM refresh_tokens
                WHERE id = $1 AND user_id = $2
                """,
                record_id,
                user_id,
            )

        deleted = _affected_rows(result)
        logger.info(
            "refresh_record_revoked",
            user_id=str(user_id),
            record_id=str(record_id),
            deleted=deleted,
        )
        return deleted

    async def revoke_all_user_tokens(self, user_id: UUID) -> int:
        """Delete every refresh-token record owned by a user.

        Returns:
            Number of records deleted
        """
        pool = await get_pool()

        async with pool.acquire() as conn:
            result = await conn.execute(
                """
                DELETE FROM refresh_tokens
                WHERE user_id = $1
                """,
                user_id,
            )

        deleted = _affected_rows(result)
        logger.info("all_refresh_records_revoked", user_id=str(user_id), deleted=deleted)
        return deleted


def _affected_rows(status: Optional[str]) -> int:
    """Row count from an asyncpg command status such as 'DELETE 3'."""
    if not status:
        return 0
    try:
        return int(status.rsplit(" ", 1)[-1])
    except ValueError:
        return 0
