"""Signed OAuth `state` values carrying the signin/signup mode through a provider redirect."""

import base64
import binascii
import hashlib
import hmac
import json
import secrets
import time
from typing import Optional

import structlog
from pydantic import ValidationError

from src.config import get_settings
from src.models.auth import OAuthStatePayload
from src.services.errors import MisconfigurationError

logger = structlog.get_logger(__name__)

STATE_MAX_AGE_MS = 10 * 60 * 1000
STATE_SEPARATOR = "."


def _b64url_encode(raw: bytes) -> str:
    return base64.urlsafe_b64encode(raw).rstrip(b"=").decode("ascii")


def _b64url_decode(data: str) -> bytes:
    padding = "=" * (-len(data) % 4)
    return base64.urlsafe_b64decode(data + padding)


def _now_ms() -> int:
    return int(time.time() * 1000)


class OAuthStateService:
    """Produces and verifies `<data>.<signature>` state strings.

    `data` is base64url JSON `{mode, nonce, timestamp}`; `signature` is
    base64url HMAC-SHA256 of `data`. Nonces are not tracked server side;
    the 10 minute window is the only replay bound.
    """

    def __init__(self, secret: Optional[str] = None):
        self.secret = secret or get_settings().state_secret
        if not self.secret:
            raise MisconfigurationError("OAuth state secret is not configured")

    def _sign(self, data: str) -> str:
        digest = hmac.new(
            self.secret.encode("utf-8"), data.encode("utf-8"), hashlib.sha256
        ).digest()
        return _b64url_encode(digest)

    def generate_state(self, mode: str) -> str:
        """Build a signed state string for the given mode.

        Args:
            mode: signin or signup

        Returns:
            "<data>.<signature>"
        """
        payload = OAuthStatePayload(
            mode=mode,
            nonce=secrets.token_hex(16),
            timestamp=_now_ms(),
        )
        data = _b64url_encode(
            json.dumps(payload.model_dump(), separators=(",", ":")).encode("utf-8")
        )
        return f"{data}{STATE_SEPARATOR}{self._sign(data)}"

    def verify_state(self, state: Optional[str]) -> Optional[OAuthStatePayload]:
        """Verify a state string and return its payload.

        Args:
            state: Value the provider relayed back

        Returns:
            The payload, or None if missing, tampered, malformed or older than 10 minutes
        """
        if not state:
            return None

        parts = state.split(STATE_SEPARATOR)
        if len(parts) != 2:
            return None
        data, signature = parts

        expected = self._sign(data).encode("ascii")
        try:
            provided = signature.encode("ascii")
        except UnicodeEncodeError:
            return None
        # compare_digest needs equal lengths to stay constant time
        if len(provided) != len(expected) or not hmac.compare_digest(provided, expected):
            logger.warning("oauth_state_signature_mismatch")
            return None

        try:
            payload = OAuthStatePayload.model_validate(json.loads(_b64url_decode(data)))
        except (binascii.Error, ValueError, ValidationError):
            logger.warning("oauth_state_malformed")
            return None

        if _now_ms() - payload.timestamp > STATE_MAX_AGE_MS:
            logger.info("oauth_state_expired", mode=payload.mode)
            return None

        return payload
