"""Input sanitation for user-supplied identity fields."""

import re
from typing import Optional

HTML_TAG_PATTERN = re.compile(r"<[^>]*>")
SCRIPT_BLOCK_PATTERN = re.compile(
    r"<script\b[^<]*(?:(?!</script>)<[^<]*)*</script>", re.IGNORECASE
)
JS_SCHEME_PATTERN = re.compile(r"javascript:", re.IGNORECASE)
EVENT_HANDLER_PATTERN = re.compile(r"\s*on\w+\s*=\s*[\"'][^\"']*[\"']", re.IGNORECASE)


def sanitize_input(value: Optional[str]) -> str:
    """Strip markup and script vectors from free text.

    Removes script blocks, HTML tags, `javascript:` schemes and inline
    `on*=` handlers, then trims whitespace.

    Args:
        value: Raw user input (None is treated as empty)

    Returns:
        Sanitized string
    """
    if not value or not isinstance(value, str):
        return ""

    sanitized = SCRIPT_BLOCK_PATTERN.sub("", value)
    sanitized = HTML_TAG_PATTERN.sub("", sanitized)
    sanitized = JS_SCHEME_PATTERN.sub("", sanitized)
    sanitized = EVENT_HANDLER_PATTERN.sub("", sanitized)
    return sanitized.strip()


def sanitize_email(email: Optional[str]) -> str:
    """Sanitize and case-normalize an email address."""
    return sanitize_input(email).lower()


def sanitize_name(name: Optional[str]) -> str:
    return sanitize_input(name or "")
