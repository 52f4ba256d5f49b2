"""Unit tests for UserService with a mocked asyncpg pool."""

from datetime import datetime, timezone
from unittest.mock import AsyncMock, patch
from uuid import uuid4

import pytest

from src.services.user_service import UserService


def _row(**overrides) -> dict:
    now = datetime.now(timezone.utc)
    row = {
        "id": uuid4(),
        "email": "student@example.com",
        "password_hash": None,
        "name": "Study Buddy",
        "avatar": None,
        "google_id": None,
        "facebook_id": None,
        "created_at": now,
        "updated_at": now,
    }
    row.update(overrides)
    return row


@pytest.fixture
def db(mock_pool):
    """Patch the pool used by UserService; yields the mocked connection."""
    pool, conn = mock_pool
    with patch("src.services.user_service.get_pool", new_callable=AsyncMock, return_value=pool):
        yield conn


class TestCreate:

    async def test_create_user(self, db):
        user = await UserService().create_user(
            email="student@example.com", password_hash="$2b$12$hash", name="Ada"
        )

        assert user.email == "student@example.com"
        assert user.password_hash == "$2b$12$hash"
        assert user.provider == "email"
        args = db.execute.call_args[0]
        assert "INSERT INTO users" in args[0]
        assert args[2:5] == ("student@example.com", "$2b$12$hash", "Ada")
        assert args[6:8] == (None, None)

    @pytest.mark.parametrize(
        "provider,column_index", [("google", 6), ("facebook", 7)]
    )
    async def test_create_oauth_user(self, db, provider, column_index):
        user = await UserService().create_oauth_user(
            email="student@example.com",
            provider=provider,
            provider_id="p-1",
            name="Ada",
            avatar="https://img/a.png",
        )

        assert user.password_hash is None
        assert user.provider == provider
        assert user.is_oauth_account
        args = db.execute.call_args[0]
        assert args[column_index] == "p-1"
        assert args[3] is None


class TestQueries:

    async def test_get_by_email(self, db):
        db.fetchrow.return_value = _row(password_hash="$2b$12$hash")

        user = await UserService().get_by_email("student@example.com")

        assert user.password_hash == "$2b$12$hash"
        assert db.fetchrow.call_args[0][1] == "student@example.com"

    async def test_get_by_email_missing(self, db):
        db.fetchrow.return_value = None
        assert await UserService().get_by_email("nobody@example.com") is None

    async def test_get_by_id(self, db):
        row = _row(google_id="g-1")
        db.fetchrow.return_value = row

        user = await UserService().get_by_id(row["id"])

        assert user.id == row["id"]
        assert user.to_public().model_dump().keys() == {"id", "email", "name", "avatar"}

    @pytest.mark.parametrize(
        "provider,column", [("google", "google_id"), ("facebook", "facebook_id")]
    )
    async def test_find_for_provider_matches_email_or_id(self, db, provider, column):
        db.fetchrow.return_value = None

        await UserService().find_for_provider("student@example.com", provider, "p-1")

        query, email, provider_id = db.fetchrow.call_args[0]
        assert f"OR {column} = $2" in query
        assert (email, provider_id) == ("student@example.com", "p-1")


class TestUpdateProfile:

    async def test_update_returns_new_values(self, db):
        row = _row(name="New Name", google_id="g-1")
        db.fetchrow.return_value = row

        user = await UserService().update_profile(row["id"], name="New Name")

        assert user.name == "New Name"
        query, user_id, name, avatar, _ = db.fetchrow.call_args[0]
        assert "COALESCE" in query
        assert (user_id, name, avatar) == (row["id"], "New Name", None)

    async def test_update_missing_user(self, db):
        db.fetchrow.return_value = None
        assert await UserService().update_profile(uuid4(), name="x") is None

    async def test_update_avatar(self, db):
        row = _row(avatar="https://img/a.png")
        db.fetchrow.return_value = row

        user = await UserService().update_avatar(row["id"], "https://img/a.png")

        assert user.avatar == "https://img/a.png"
        assert db.fetchrow.call_args[0][3] == "https://img/a.png"
