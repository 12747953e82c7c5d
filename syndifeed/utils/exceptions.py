"""
SyndiFeed Custom Exceptions
===========================

Every error raised by SyndiFeed carries an error code, a context dict and a
recoverable flag. The flag tells the scheduler whether the next poll of the
same feed can be expected to do better.

Subclasses declare their defaults and the keyword arguments that are folded
into the context dict::

    FeedFetchError("timed out", feed_url=url, error_code=ErrorCode.FEED_FETCH_TIMEOUT)
"""

from typing import Optional, Dict, Any, Tuple, Type
from enum import Enum


class ErrorCode(str, Enum):
    """Error codes for categorizing exceptions."""

    # Configuration (C0xx)
    CONFIG_INVALID = "C001"
    CONFIG_MISSING = "C002"

    # Storage (D0xx)
    DATABASE_CONNECTION = "D001"
    DATABASE_SCHEMA = "D002"
    DATABASE_ERROR = "D006"
    GROUP_PERSIST_FAILED = "D007"
    ITEM_PERSIST_FAILED = "D008"

    # Upstream feeds (F0xx)
    FEED_INVALID_URL = "F001"
    FEED_FETCH_TIMEOUT = "F002"
    FEED_PARSE_ERROR = "F003"
    FEED_NETWORK_ERROR = "F004"
    FEED_ACCESS_DENIED = "F005"
    FEED_NOT_FOUND = "F006"
    FEED_NOT_CONFIGURED = "F007"

    # Validation (V0xx)
    VALIDATION_REQUIRED_FIELD = "V001"
    VALIDATION_INVALID_FORMAT = "V002"

    # Host system (S0xx)
    SYSTEM_RESOURCE_EXHAUSTED = "S001"
    SYSTEM_PERMISSION_DENIED = "S002"
    SYSTEM_MEMORY_ERROR = "S004"


class SyndiFeedError(Exception):
    """Base exception for all SyndiFeed errors."""

    default_code: Optional[ErrorCode] = None
    default_recoverable: bool = False
    # Keyword arguments copied into ``context`` and exposed as attributes
    context_fields: Tuple[str, ...] = ()

    def __init__(
        self,
        message: str,
        error_code: Optional[ErrorCode] = None,
        context: Optional[Dict[str, Any]] = None,
        recoverable: Optional[bool] = None,
        **fields: Any,
    ):
        unknown = set(fields) - set(self.context_fields)
        if unknown:
            raise TypeError(
                f"{type(self).__name__} got unexpected arguments: {sorted(unknown)}"
            )

        super().__init__(message)
        self.error_code = error_code or self.default_code
        self.recoverable = (
            self.default_recoverable if recoverable is None else recoverable
        )
        self.context = dict(context or {})

        for name in self.context_fields:
            value = fields.get(name)
            setattr(self, name, value)
            if value is not None:
                self.context[name] = value

    def to_dict(self) -> Dict[str, Any]:
        """Serializable form, used as log ``extra`` and in poll results."""
        return {
            "error_type": type(self).__name__,
            "error_code": self.error_code.value if self.error_code else None,
            "error_message": str(self),
            "context": self.context,
            "recoverable": self.recoverable,
        }

    def __str__(self) -> str:
        message = super().__str__()
        if self.error_code:
            return f"[{self.error_code.value}] {message}"
        return message


class ConfigurationError(SyndiFeedError):
    """Invalid or missing settings."""

    default_code = ErrorCode.CONFIG_INVALID
    context_fields = ("config_key",)


class ValidationError(SyndiFeedError):
    """A value failed validation."""

    default_code = ErrorCode.VALIDATION_INVALID_FORMAT
    context_fields = ("field_name",)


class DatabaseError(SyndiFeedError):
    """SQLite access failed."""

    default_code = ErrorCode.DATABASE_CONNECTION
    default_recoverable = True
    context_fields = ("query",)


class GroupPersistError(DatabaseError):
    """Creating or updating a source group failed."""

    default_code = ErrorCode.GROUP_PERSIST_FAILED
    context_fields = ("query", "group_key")


class ItemPersistError(DatabaseError):
    """A single syndicated item write failed.

    Collected into the reconciliation report, never propagated out of a poll.
    """

    default_code = ErrorCode.ITEM_PERSIST_FAILED
    context_fields = ("query", "item_key")


class FeedError(SyndiFeedError):
    """Feed fetching and parsing errors.

    Any FeedError aborts the poll of that feed before a single write happens.
    """

    default_code = ErrorCode.FEED_NETWORK_ERROR
    default_recoverable = True
    context_fields = ("feed_url",)


class FeedFetchError(FeedError):
    """Network or transport failure reaching the feed."""


class FeedParseError(FeedError):
    """Malformed feed payload."""

    default_code = ErrorCode.FEED_PARSE_ERROR


class ConfigDrift(FeedError):
    """A scheduled feed URL is no longer in the feed registry.

    Not a failure: the orchestrator reacts by cancelling the feed's trigger.
    """

    default_code = ErrorCode.FEED_NOT_CONFIGURED
    default_recoverable = False


# Exception handling utilities

# Builtin exception -> (wrapper class, code, recoverable, message prefix)
_BUILTIN_MAPPING: Tuple[Tuple[Tuple[Type[BaseException], ...], Type[SyndiFeedError], Optional[ErrorCode], bool, str], ...] = (
    ((ConnectionError, TimeoutError), SyndiFeedError, ErrorCode.FEED_NETWORK_ERROR, True, "Network error"),
    ((PermissionError,), SyndiFeedError, ErrorCode.SYSTEM_PERMISSION_DENIED, False, "Permission denied"),
    ((FileNotFoundError,), ConfigurationError, ErrorCode.CONFIG_MISSING, False, "Required file not found"),
    ((MemoryError,), SyndiFeedError, ErrorCode.SYSTEM_MEMORY_ERROR, True, "Memory exhausted"),
)

RETRYABLE_CODES = frozenset({
    ErrorCode.FEED_NETWORK_ERROR,
    ErrorCode.FEED_FETCH_TIMEOUT,
    ErrorCode.FEED_PARSE_ERROR,
    ErrorCode.DATABASE_CONNECTION,
    ErrorCode.GROUP_PERSIST_FAILED,
    ErrorCode.ITEM_PERSIST_FAILED,
    ErrorCode.SYSTEM_RESOURCE_EXHAUSTED,
})


def handle_exception(
    exception: Exception,
    logger,
    operation: str,
    context: Optional[Dict[str, Any]] = None,
) -> SyndiFeedError:
    """Log an exception and return it as a SyndiFeedError.

    SyndiFeed errors are returned unchanged. Builtin errors are wrapped with
    a code chosen by type, anything else becomes a recoverable SyndiFeedError.

    Args:
        exception: Original exception
        logger: Logger instance for error logging
        operation: Operation that was being performed
        context: Additional context information

    Returns:
        SyndiFeed exception with proper categorization
    """
    if isinstance(exception, SyndiFeedError):
        error = exception
    else:
        context = {
            **(context or {}),
            "operation": operation,
            "original_exception_type": type(exception).__name__,
        }
        for types, error_class, code, recoverable, prefix in _BUILTIN_MAPPING:
            if isinstance(exception, types):
                break
        else:
            error_class, code, recoverable, prefix = SyndiFeedError, None, True, "Unexpected error"

        error = error_class(
            f"{prefix} during {operation}: {exception}",
            error_code=code,
            context=context,
            recoverable=recoverable,
        )

    logger.error(f"Operation '{operation}' failed", extra=error.to_dict())
    return error


def is_retryable_error(exception: SyndiFeedError) -> bool:
    """Whether the next scheduled poll may succeed where this one failed."""
    return exception.recoverable and exception.error_code in RETRYABLE_CODES
