"""Unit tests for AuthService.

Credential checks and OAuth account resolution run against a mocked
UserService; session scenarios (rotation, replay, logout) run the real
TokenService against an in-memory refresh_tokens table.
"""

from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, MagicMock
from uuid import UUID, uuid4

import asyncpg
import pytest

from src.models.user import OAuthProfile, User
from src.services.auth_code_service import AuthCodeService
from src.services.auth_service import AuthService
from src.services.errors import ConflictError, UnauthorizedError
from src.services.password_service import hash_password, verify_password

PASSWORD = "Str0ng!Pass"


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _make_user(
    user_id=None,
    email="student@example.com",
    name="Study Buddy",
    password_hash=None,
    avatar=None,
    google_id=None,
    facebook_id=None,
):
    """Create a User model for test assertions."""
    now = datetime.now(timezone.utc)
    return User(
        id=user_id or uuid4(),
        email=email,
        password_hash=password_hash,
        name=name,
        avatar=avatar,
        google_id=google_id,
        facebook_id=facebook_id,
        created_at=now,
        updated_at=now,
    )


def _profile(provider="google", provider_id="g-123", email="student@example.com", photo=None):
    return OAuthProfile(
        provider=provider,
        provider_id=provider_id,
        email=email,
        display_name="Study Buddy",
        photo_url=photo,
    )


@pytest.fixture
def user_service():
    """Mocked UserService with every query returning nothing by default."""
    service = MagicMock()
    service.get_by_email = AsyncMock(return_value=None)
    service.get_by_id = AsyncMock(return_value=None)
    service.create_user = AsyncMock()
    service.create_oauth_user = AsyncMock()
    service.find_for_provider = AsyncMock(return_value=None)
    service.update_avatar = AsyncMock()
    return service


@pytest.fixture
def auth_service(user_service, refresh_table, fast_bcrypt):
    """AuthService with a mocked UserService and an in-memory token table."""
    service = AuthService()
    service.user_service = user_service
    return service


# ---------------------------------------------------------------------------
# register / login
# ---------------------------------------------------------------------------

class TestRegister:

    async def test_register_creates_user_and_tokens(self, auth_service, user_service, refresh_table):
        created = _make_user(email="new@example.com", password_hash="x")
        user_service.create_user.return_value = created

        result = await auth_service.register("New@Example.com", PASSWORD, "<b>Neo</b>")

        kwargs = user_service.create_user.call_args.kwargs
        assert kwargs["email"] == "new@example.com"
        assert kwargs["name"] == "Neo"
        assert kwargs["password_hash"] != PASSWORD
        assert kwargs["password_hash"].startswith("$2")

        assert result.user.id == created.id
        assert len(refresh_table.for_user(created.id)) == 1
        assert result.tokens.access_token
        assert result.tokens.refresh_token

    async def test_full_register_flow(self, auth_service, user_service, fake_redis):
        created = {}

        async def create_user(email, password_hash, name):
            created["user"] = _make_user(email=email, name=name, password_hash=password_hash)
            return created["user"]

        user_service.create_user.side_effect = create_user
        code_service = AuthCodeService()

        user = await auth_service.register_user("a@x.com", "Abcd1234", "Ann")
        code = await code_service.create_auth_code(user.id)

        stored = created["user"]
        assert stored.password_hash != "Abcd1234"
        assert verify_password("Abcd1234", stored.password_hash)

        user_id = await code_service.exchange_auth_code(code)
        assert user_id == str(stored.id)

        user_service.get_by_id.return_value = stored
        session = await auth_service.issue_for_user_id(user_id)
        assert session.user.email == "a@x.com"
        assert session.user.name == "Ann"
        assert await code_service.exchange_auth_code(code) is None

    async def test_register_duplicate_email(self, auth_service, user_service):
        user_service.get_by_email.return_value = _make_user(password_hash="x")

        with pytest.raises(ConflictError) as exc_info:
            await auth_service.register_user("student@example.com", PASSWORD)

        assert exc_info.value.code == "email_taken"
        user_service.create_user.assert_not_awaited()

    async def test_register_race_on_unique_index(self, auth_service, user_service):
        user_service.create_user.side_effect = asyncpg.UniqueViolationError("duplicate key")

        with pytest.raises(ConflictError):
            await auth_service.register_user("student@example.com", PASSWORD)


class TestLogin:

    async def test_login_success(self, auth_service, user_service, refresh_table):
        user = _make_user(password_hash=hash_password(PASSWORD))
        user_service.get_by_email.return_value = user

        result = await auth_service.login("Student@Example.com ", PASSWORD)

        user_service.get_by_email.assert_awaited_once_with("student@example.com")
        assert result.user.email == "student@example.com"
        assert len(refresh_table.for_user(user.id)) == 1

    async def test_unknown_email(self, auth_service):
        with pytest.raises(UnauthorizedError) as exc_info:
            await auth_service.login("nobody@example.com", PASSWORD)
        assert exc_info.value.code == "account_not_found"

    async def test_oauth_only_account(self, auth_service, user_service):
        user_service.get_by_email.return_value = _make_user(google_id="g-1")

        with pytest.raises(UnauthorizedError) as exc_info:
            await auth_service.login("student@example.com", PASSWORD)

        assert exc_info.value.code == "wrong_auth_method"
        assert "OAuth" in exc_info.value.message

    async def test_wrong_password(self, auth_service, user_service, refresh_table):
        user = _make_user(password_hash=hash_password(PASSWORD))
        user_service.get_by_email.return_value = user

        with pytest.raises(UnauthorizedError) as exc_info:
            await auth_service.login("student@example.com", "Wr0ng!Pass")

        assert exc_info.value.code == "invalid_credentials"
        assert refresh_table.for_user(user.id) == []


# ---------------------------------------------------------------------------
# Auth-code issuance
# ---------------------------------------------------------------------------

class TestIssueForUserId:

    async def test_issues_for_existing_user(self, auth_service, user_service):
        user = _make_user()
        user_service.get_by_id.return_value = user

        result = await auth_service.issue_for_user_id(str(user.id))

        assert result.user.id == user.id

    async def test_missing_user(self, auth_service):
        with pytest.raises(UnauthorizedError) as exc_info:
            await auth_service.issue_for_user_id(uuid4())
        assert exc_info.value.code == "invalid_code"

    async def test_malformed_id(self, auth_service):
        with pytest.raises(UnauthorizedError):
            await auth_service.issue_for_user_id("not-a-uuid")


# ---------------------------------------------------------------------------
# Refresh rotation and logout
# ---------------------------------------------------------------------------

class TestRefreshRotation:

    async def test_refresh_rotates_and_old_token_fails(self, auth_service, user_service, refresh_table):
        user = _make_user()
        user_service.get_by_id.return_value = user
        first = await auth_service.issue_for_user_id(user.id)

        second = await auth_service.refresh(first.tokens.refresh_token)

        assert second.tokens.refresh_token != first.tokens.refresh_token
        assert len(refresh_table.for_user(user.id)) == 1

        with pytest.raises(UnauthorizedError):
            await auth_service.refresh(first.tokens.refresh_token)

        # the rotated token still works
        third = await auth_service.refresh(second.tokens.refresh_token)
        assert third.user.id == user.id

    async def test_expired_record_rejected(self, auth_service, user_service, refresh_table):
        user = _make_user()
        user_service.get_by_id.return_value = user
        pair = await auth_service.issue_for_user_id(user.id)
        for row in refresh_table.rows.values():
            row["expires_at"] = datetime.now(timezone.utc) - timedelta(seconds=1)

        with pytest.raises(UnauthorizedError):
            await auth_service.refresh(pair.tokens.refresh_token)

        assert refresh_table.rows == {}

    async def test_record_owned_by_someone_else(self, auth_service, user_service, refresh_table):
        user = _make_user()
        user_service.get_by_id.return_value = user
        pair = await auth_service.issue_for_user_id(user.id)
        for row in refresh_table.rows.values():
            row["user_id"] = uuid4()

        with pytest.raises(UnauthorizedError):
            await auth_service.refresh(pair.tokens.refresh_token)

    async def test_deleted_user(self, auth_service, user_service):
        user = _make_user()
        user_service.get_by_id.return_value = user
        pair = await auth_service.issue_for_user_id(user.id)
        user_service.get_by_id.return_value = None

        with pytest.raises(UnauthorizedError):
            await auth_service.refresh(pair.tokens.refresh_token)

    async def test_garbage_token(self, auth_service):
        with pytest.raises(UnauthorizedError):
            await auth_service.refresh("garbage")


class TestLogout:

    async def test_logout_all_invalidates_every_session(self, auth_service, user_service, refresh_table):
        user = _make_user()
        user_service.get_by_id.return_value = user
        sessions = [await auth_service.issue_for_user_id(user.id) for _ in range(3)]

        assert await auth_service.logout(user.id) == 3

        for session in sessions:
            with pytest.raises(UnauthorizedError):
                await auth_service.refresh(session.tokens.refresh_token)

    async def test_logout_current_keeps_other_sessions(self, auth_service, user_service, refresh_table):
        user = _make_user()
        user_service.get_by_id.return_value = user
        laptop = await auth_service.issue_for_user_id(user.id)
        phone = await auth_service.issue_for_user_id(user.id)
        token_id = UUID(
            auth_service.token_service.decode_refresh_token(laptop.tokens.refresh_token)["tokenId"]
        )

        assert await auth_service.logout(user.id, token_id) == 1

        with pytest.raises(UnauthorizedError):
            await auth_service.refresh(laptop.tokens.refresh_token)
        assert (await auth_service.refresh(phone.tokens.refresh_token)).user.id == user.id

    async def test_logout_with_nothing_to_delete(self, auth_service):
        assert await auth_service.logout(uuid4()) == 0
        assert await auth_service.logout(uuid4(), uuid4()) == 0


# ---------------------------------------------------------------------------
# OAuth account resolution
# ---------------------------------------------------------------------------

class TestResolveOAuthUser:

    async def test_signup_creates_account(self, auth_service, user_service):
        created = _make_user(google_id="g-123")
        user_service.create_oauth_user.return_value = created

        user = await auth_service.resolve_oauth_user(_profile(photo="https://img/p.png"), "signup")

        assert user.id == created.id
        kwargs = user_service.create_oauth_user.call_args.kwargs
        assert kwargs["provider"] == "google"
        assert kwargs["provider_id"] == "g-123"
        assert kwargs["avatar"] == "https://img/p.png"

    async def test_signin_without_account(self, auth_service, user_service):
        with pytest.raises(UnauthorizedError) as exc_info:
            await auth_service.resolve_oauth_user(_profile(), "signin")

        assert exc_info.value.code == "account_not_found"
        assert "Google" in exc_info.value.message
        user_service.create_oauth_user.assert_not_awaited()

    async def test_existing_account_signs_in_either_mode(self, auth_service, user_service):
        existing = _make_user(google_id="g-123", avatar="https://img/old.png")
        user_service.find_for_provider.return_value = existing

        for mode in ("signin", "signup"):
            user = await auth_service.resolve_oauth_user(_profile(), mode)
            assert user.id == existing.id

        user_service.create_oauth_user.assert_not_awaited()
        user_service.update_avatar.assert_not_awaited()

    async def test_password_account_rejected(self, auth_service, user_service):
        user_service.find_for_provider.return_value = _make_user(password_hash="x")

        with pytest.raises(UnauthorizedError) as exc_info:
            await auth_service.resolve_oauth_user(_profile(), "signin")

        assert exc_info.value.code == "wrong_auth_method"
        assert "email/password" in exc_info.value.message

    async def test_other_provider_account_rejected(self, auth_service, user_service):
        user_service.find_for_provider.return_value = _make_user(facebook_id="fb-1")

        with pytest.raises(UnauthorizedError) as exc_info:
            await auth_service.resolve_oauth_user(_profile(), "signin")

        assert exc_info.value.code == "wrong_auth_method"
        assert "Facebook" in exc_info.value.message

    async def test_backfills_missing_avatar(self, auth_service, user_service):
        existing = _make_user(facebook_id="fb-1")
        updated = existing.model_copy(update={"avatar": "https://img/fb.png"})
        user_service.find_for_provider.return_value = existing
        user_service.update_avatar.return_value = updated

        user = await auth_service.resolve_oauth_user(
            _profile(provider="facebook", provider_id="fb-1", photo="https://img/fb.png"),
            "signin",
        )

        user_service.update_avatar.assert_awaited_once_with(existing.id, "https://img/fb.png")
        assert user.avatar == "https://img/fb.png"
