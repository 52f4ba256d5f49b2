"""User persistence: email/password and OAuth-linked accounts."""

from datetime import datetime, timezone
from typing import Optional
from uuid import UUID, uuid4

import structlog

from src.database import get_pool
from src.models.user import OAuthProviderName, User

logger = structlog.get_logger(__name__)

USER_COLUMNS = (
    "id, email, password_hash, name, avatar, google_id, facebook_id, created_at, updated_at"
)

PROVIDER_COLUMNS = {
    "google": "google_id",
    "facebook": "facebook_id",
}


def _row_to_user(row) -> User:
    return User(
        id=row["id"],
        email=row["email"],
        password_hash=row["password_hash"],
        name=row["name"],
        avatar=row["avatar"],
        google_id=row["google_id"],
        facebook_id=row["facebook_id"],
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )


class UserService:
    """Service for user CRUD operations."""

    async def create_user(
        self,
        email: str,
        password_hash: str,
        name: Optional[str] = None,
    ) -> User:
        """Create an email/password user.

        Args:
            email: Normalized, unique email
            password_hash: Bcrypt hash (never the plain-text password)
            name: Optional display name

        Returns:
            Created User model

        Raises:
            asyncpg.UniqueViolationError: If the email is already taken
        """
        return await self._insert(
            email=email,
            password_hash=password_hash,
            name=name,
        )

    async def create_oauth_user(
        self,
        email: str,
        provider: OAuthProviderName,
        provider_id: str,
        name: Optional[str] = None,
        avatar: Optional[str] = None,
    ) -> User:
        """Create a user linked to an OAuth provider, with no password.

        Args:
            email: Normalized email from the provider profile
            provider: google or facebook
            provider_id: The provider's stable user id
            name: Display name from the profile
            avatar: Photo URL from the profile

        Returns:
            Created User model
        """
        return await self._insert(
            email=email,
            name=name,
            avatar=avatar,
            google_id=provider_id if provider == "google" else None,
            facebook_id=provider_id if provider == "facebook" else None,
        )

    async def _insert(
        self,
        email: str,
        password_hash: Optional[str] = None,
        name: Optional[str] = None,
        avatar: Optional[str] = None,
        google_id: Optional[str] = None,
        facebook_id: Optional[str] = None,
    ) -> User:
        user_id = uuid4()
        now = datetime.now(timezone.utc)

        pool = await get_pool()

        async with pool.acquire() as conn:
            await conn.execute(
                """
                INSERT INTO users (id, email, password_hash, name, avatar, google_id, facebook_id, created_at, updated_at)
                VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9)
                """,
                user_id,
                email,
                password_hash,
                name,
                avatar,
                google_id,
                facebook_id,
                now,
                now,
            )

        user = User(
            id=user_id,
            email=email,
            password_hash=password_hash,
            name=name,
            avatar=avatar,
            google_id=google_id,
            facebook_id=facebook_id,
            created_at=now,
            updated_at=now,
        )
        logger.info("user_created", user_id=str(user_id), provider=user.provider)
        return user

    async def get_by_email(self, email: str) -> Optional[User]:
        """Get a user by normalized email.

        Args:
            email: Lower-cased email

        Returns:
            User (including password hash) or None if not found
        """
        pool = await get_pool()

        async with pool.acquire() as conn:
            row = await conn.fetchrow(
                f"""
                SELECT {USER_COLUMNS}
                FROM users
                WHERE email = $1
                """,
                email,
            )

        return _row_to_user(row) if row is not None else None

    async def get_by_id(self, user_id: UUID) -> Optional[User]:
        """Get a user by UUID.

        Args:
            user_id: User UUID

        Returns:
            User model or None if not found
        """
        pool = await get_pool()

        async with pool.acquire() as conn:
            row = await conn.fetchrow(
                f"""
                SELECT {USER_COLUMNS}
                FROM users
                WHERE id = $1
                """,
                user_id,
            )

        return _row_to_user(row) if row is not None else None

    async def find_for_provider(
        self, email: str, provider: OAuthProviderName, provider_id: str
    ) -> Optional[User]:
        """Find the account an OAuth profile belongs to, by email or provider id."""
        column = PROVIDER_COLUMNS[provider]
        pool = await get_pool()

        async with pool.acquire() as conn:
            row = await conn.fetchrow(
                f"""
                SELECT {USER_COLUMNS}
                FROM users
                WHERE email = $1 OR {column} = $2
                ORDER BY ({column} = $2) DESC NULLS LAST
                LIMIT 1
                """,
                email,
                provider_id,
            )

        return _row_to_user(row) if row is not None else None

    async def update_avatar(self, user_id: UUID, avatar: str) -> Optional[User]:
        """Backfill a user's avatar."""
        return await self.update_profile(user_id, avatar=avatar)

    async def update_profile(
        self,
        user_id: UUID,
        name: Optional[str] = None,
        avatar: Optional[str] = None,
    ) -> Optional[User]:
        """Update name and/or avatar; fields left as None are unchanged.

        Returns:
            Updated User or None if the user does not exist
        """
        pool = await get_pool()
        now = datetime.now(timezone.utc)

        async with pool.acquire() as conn:
            row = await conn.fetchrow(
                f"""
                UPDATE users
                SET name = COALESCE($2, name),
                    avatar = COALESCE($3, avatar),
                    updated_at = $4
                WHERE id = $1
                RETURNING {USER_COLUMNS}
                """,
                user_id,
                name,
                avatar,
                now,
            )

        if row is None:
            return None

        logger.info(
            "user_profile_updated",
            user_id=str(user_id),
            name_changed=name is not None,
            avatar_changed=avatar is not None,
        )
        return _row_to_user(row)
