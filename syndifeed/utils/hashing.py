"""
Identity Hashing
================

Stable local keys for feeds and feed items.

Keys are unsalted SHA-256 hex digests: they only need to be unique and stable
across restarts, they are not a security boundary.
"""

import hashlib

from .exceptions import ValidationError, ErrorCode


KEY_LENGTH = 64


def identity_hash(value: str) -> str:
    """Hash an upstream identifier into a fixed-length local key.

    Args:
        value: Feed URL or item GUID

    Returns:
        64 character lowercase hex digest

    Raises:
        ValidationError: If value is empty or not a string
    """
    if not isinstance(value, str) or not value:
        raise ValidationError(
            "Identity value must be a non-empty string",
            error_code=ErrorCode.VALIDATION_REQUIRED_FIELD,
            field_name="identity",
        )

    return hashlib.sha256(value.encode("utf-8")).hexdigest()


def group_key_for(feed_url: str) -> str:
    """Group key for a feed. Depends on the feed URL only, never the title."""
    return identity_hash(feed_url)


def item_key_for(guid: str) -> str:
    """Item key for an upstream item. Depends on the GUID only."""
    return identity_hash(guid)
