"""Single-use authorization codes that hand an authenticated user to the client.

Register, login and OAuth callbacks expose only a short-lived code; the
client trades it for tokens at the exchange endpoint, which is the one
place cookies get written. This avoids relying on cookie writes during
cross-site redirects, which some mobile browsers drop.
"""

import secrets
from typing import Optional
from uuid import UUID

import structlog
from redis.exceptions import RedisError

from src.services.errors import DependencyError
from src.services.redis_service import get_redis

logger = structlog.get_logger(__name__)

AUTH_CODE_PREFIX = "auth_code:"
AUTH_CODE_TTL_SECONDS = 60
AUTH_CODE_BYTES = 32


def _key(code: str) -> str:
    return f"{AUTH_CODE_PREFIX}{code}"


class AuthCodeService:
    """Redis-backed auth code broker: issue once, exchange at most once."""

    async def _client(self):
        client = await get_redis()
        if client is None:
            logger.error("auth_code_store_unavailable")
            raise DependencyError("Authorization code store is unavailable")
        return client

    async def create_auth_code(self, user_id: UUID | str) -> str:
        """Create a code mapping to a user id, valid for 60 seconds.

        Args:
            user_id: User the code authenticates

        Returns:
            64-character hex code

        Raises:
            DependencyError: If Redis is unavailable or the write fails
        """
        client = await self._client()
        code = secrets.token_hex(AUTH_CODE_BYTES)

        try:
            await client.setex(_key(code), AUTH_CODE_TTL_SECONDS, str(user_id))
        except RedisError as e:
            logger.error("auth_code_create_failed", error=str(e), user_id=str(user_id))
            raise DependencyError("Authorization code store is unavailable") from e

        logger.info(
            "auth_code_created",
            user_id=str(user_id),
            ttl_seconds=AUTH_CODE_TTL_SECONDS,
        )
        return code

    async def exchange_auth_code(self, code: str) -> Optional[str]:
        """Trade a code for its user id, consuming it.

        GETDEL reads and removes the key in one step, so concurrent
        exchanges of the same code yield the user id to exactly one caller.

        Args:
            code: Code returned by create_auth_code

        Returns:
            The user id, or None if the code is unknown, expired or already used

        Raises:
            DependencyError: If Redis is unavailable or the read fails
        """
        if not code:
            return None

        client = await self._client()

        try:
            user_id = await client.getdel(_key(code))
        except RedisError as e:
            logger.error("auth_code_exchange_failed", error=str(e))
            raise DependencyError("Authorization code store is unavailable") from e

        if not user_id:
            logger.warning("auth_code_invalid_or_expired")
            return None

        logger.info("auth_code_exchanged", user_id=user_id)
        return user_id
