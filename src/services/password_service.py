"""Password hashing with bcrypt."""

import bcrypt
import structlog

logger = structlog.get_logger(__name__)

# bcrypt cost; 12 rounds keeps a verify well under 100ms on current hardware
BCRYPT_ROUNDS = 12

# bcrypt only reads the first 72 bytes of input
BCRYPT_MAX_BYTES = 72


def _encode(password: str) -> bytes:
    return password.encode("utf-8")[:BCRYPT_MAX_BYTES]


def hash_password(password: str) -> str:
    """Hash a password using bcrypt with a fresh salt.

    Args:
        password: Plain-text password to hash

    Returns:
        Bcrypt hash string
    """
    salt = bcrypt.gensalt(rounds=BCRYPT_ROUNDS)
    hashed = bcrypt.hashpw(_encode(password), salt)
    return hashed.decode("utf-8")


def verify_password(password: str, password_hash: str) -> bool:
    """Verify a password against a bcrypt hash.

    A malformed or empty hash is a mismatch, not an error.

    Args:
        password: Plain-text password to check
        password_hash: Bcrypt hash to verify against

    Returns:
        True if the password matches, False otherwise
    """
    if not password_hash:
        return False
    try:
        return bcrypt.checkpw(_encode(password), password_hash.encode("utf-8"))
    except ValueError:
        logger.warning("password_hash_malformed")
        return False
