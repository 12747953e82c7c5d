"""
SyndiFeed Input Validators
==========================

URL validation and sanitization utilities for feed configuration and
for links copied out of upstream feeds.
"""

import re
from urllib.parse import urlparse, urlunparse, quote

from .exceptions import ValidationError, ErrorCode


class URLValidator:
    """URL validation and sanitization utilities."""

    ALLOWED_SCHEMES = {"http", "https"}

    # Characters that never belong in a stored link
    UNSAFE_CHARACTERS = re.compile(r"[\s<>\"'`{}|\\^]")

    @classmethod
    def validate_feed_url(cls, url: str) -> str:
        """Validate and normalize a feed URL.

        Args:
            url: URL to validate

        Returns:
            Normalized URL

        Raises:
            ValidationError: If URL is invalid
        """
        if not url or not isinstance(url, str):
            raise ValidationError(
                "URL is required and must be a string",
                error_code=ErrorCode.VALIDATION_REQUIRED_FIELD,
                field_name="url",
            )

        url = url.strip()

        try:
            parsed = urlparse(url)
        except ValueError as e:
            raise ValidationError(
                f"Invalid URL format: {str(e)}",
                error_code=ErrorCode.VALIDATION_INVALID_FORMAT,
                field_name="url",
            ) from e

        if parsed.scheme.lower() not in cls.ALLOWED_SCHEMES:
            raise ValidationError(
                f"URL scheme must be {' or '.join(sorted(cls.ALLOWED_SCHEMES))}",
                error_code=ErrorCode.VALIDATION_INVALID_FORMAT,
                field_name="url",
            )

        if not parsed.netloc:
            raise ValidationError(
                "URL must include a hostname",
                error_code=ErrorCode.VALIDATION_INVALID_FORMAT,
                field_name="url",
            )

        return urlunparse(
            parsed._replace(
                scheme=parsed.scheme.lower(),
                netloc=parsed.netloc.lower(),
                path=parsed.path or "/",
                fragment="",
            )
        )

    @classmethod
    def sanitize_url(cls, url: str) -> str:
        """Clean a link taken from feed data for storage.

        Unlike validate_feed_url this never raises: anything that is not an
        http(s) URL sanitizes to an empty string.

        Args:
            url: Raw link value

        Returns:
            Sanitized URL or ""
        """
        if not url or not isinstance(url, str):
            return ""

        url = url.strip()
        try:
            parsed = urlparse(url)
        except ValueError:
            return ""

        if parsed.scheme.lower() not in cls.ALLOWED_SCHEMES or not parsed.netloc:
            return ""

        return cls.encode_unsafe(url)

    @classmethod
    def encode_unsafe(cls, url: str) -> str:
        """Percent-encode stray unsafe characters rather than dropping the link."""
        return cls.UNSAFE_CHARACTERS.sub(lambda m: quote(m.group(0)), url)


def validate_url(url: str) -> bool:
    """Check whether a string is a usable http(s) URL."""
    try:
        URLValidator.validate_feed_url(url)
        return True
    except ValidationError:
        return False
