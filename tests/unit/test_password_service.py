"""Unit tests for bcrypt password hashing."""

from src.services.password_service import hash_password, verify_password


class TestPasswordHashing:
    """Tests for bcrypt hash_password / verify_password."""

    def test_hash_uses_twelve_rounds(self):
        hashed = hash_password("Str0ng!Pass")
        assert hashed.startswith("$2b$12$")
        assert len(hashed) == 60

    def test_hash_password_different_salts(self, fast_bcrypt):
        h1 = hash_password("same-password")
        h2 = hash_password("same-password")
        assert h1 != h2, "Each call should produce a unique salt"

    def test_verify_password_correct(self, fast_bcrypt):
        hashed = hash_password("correct-horse-battery")
        assert verify_password("correct-horse-battery", hashed) is True

    def test_verify_password_wrong(self, fast_bcrypt):
        hashed = hash_password("correct-horse-battery")
        assert verify_password("wrong-password", hashed) is False

    def test_empty_or_malformed_hash_is_mismatch(self):
        assert verify_password("anything", "") is False
        assert verify_password("anything", None) is False
        assert verify_password("anything", "not-a-bcrypt-hash") is False

    def test_long_passwords_hash_on_first_72_bytes(self, fast_bcrypt):
        long_password = "a" * 100
        hashed = hash_password(long_password)

        assert verify_password(long_password, hashed) is True
        assert verify_password("a" * 72 + "different-tail", hashed) is True
        assert verify_password("a" * 71, hashed) is False
