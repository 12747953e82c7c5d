"""
SyndiFeed Logging Configuration
===============================

Logging for poll runs. Every record emitted through a component logger
carries the component name and, where known, the feed URL and the group or
item key it concerns, so one poll can be followed through the JSON log file.
"""

import logging
import logging.handlers
import sys
import json
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, Any, Optional


# Attributes every LogRecord has; anything else on a record came in via `extra`
_RESERVED_RECORD_FIELDS = set(
    logging.LogRecord("", 0, "", 0, "", (), None).__dict__
) | {"message", "asctime", "taskName"}

# Context keys promoted to top-level JSON fields
CONTEXT_FIELDS = ("component", "feed_url", "group_key", "item_key")


def _record_extras(record: logging.LogRecord) -> Dict[str, Any]:
    return {
        key: value
        for key, value in record.__dict__.items()
        if key not in _RESERVED_RECORD_FIELDS
    }


class StructuredFormatter(logging.Formatter):
    """One JSON object per line, with poll context lifted to the top level."""

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "timestamp": datetime.fromtimestamp(
                record.created, tz=timezone.utc
            ).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }

        extras = _record_extras(record)
        for key in CONTEXT_FIELDS:
            if key in extras:
                log_data[key] = extras.pop(key)

        if extras:
            log_data["extra"] = extras

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_data, ensure_ascii=False, default=str)


class ColoredConsoleFormatter(logging.Formatter):
    """Compact colored lines for interactive use.

    The component and, when present, the short form of the group or item
    key are shown in brackets after the level.
    """

    COLORS = {
        "DEBUG": "\033[36m",
        "INFO": "\033[32m",
        "WARNING": "\033[33m",
        "ERROR": "\033[31m",
        "CRITICAL": "\033[35m",
    }
    RESET = "\033[0m"
    KEY_PREFIX = 8

    def format(self, record: logging.LogRecord) -> str:
        color = self.COLORS.get(record.levelname, self.RESET)
        timestamp = datetime.fromtimestamp(record.created).strftime("%H:%M:%S")

        tags = [getattr(record, "component", record.name)]
        for key in ("group_key", "item_key"):
            value = getattr(record, key, None)
            if value:
                tags.append(f"{key[0]}:{str(value)[:self.KEY_PREFIX]}")

        formatted = (
            f"{color}[{timestamp}] {record.levelname:8}{self.RESET} "
            f"[{' '.join(tags)}] {record.getMessage()}"
        )

        if record.exc_info:
            formatted += "\n" + self.formatException(record.exc_info)

        return formatted


def setup_logger(
    name: str = "syndifeed",
    level: str = "INFO",
    log_file: Optional[str] = None,
    console: bool = True,
    structured: bool = False,
    max_file_size: int = 10 * 1024 * 1024,
    backup_count: int = 5,
) -> logging.Logger:
    """Attach console and rotating file handlers to a logger.

    Calling it again replaces the handlers rather than stacking them.

    Args:
        name: Logger name
        level: Level name (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_file: Path to the JSON log file, or None for no file
        console: Whether to log to stdout
        structured: JSON on the console too, instead of colored lines
        max_file_size: Rotation size in bytes
        backup_count: Rotated files to keep

    Returns:
        The configured logger
    """
    logger = logging.getLogger(name)
    logger.setLevel(getattr(logging, level.upper()))

    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    if console:
        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setFormatter(
            StructuredFormatter() if structured else ColoredConsoleFormatter()
        )
        logger.addHandler(console_handler)

    if log_file:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)

        file_handler = logging.handlers.RotatingFileHandler(
            log_path, maxBytes=max_file_size, backupCount=backup_count, encoding="utf-8"
        )
        file_handler.setFormatter(StructuredFormatter())
        logger.addHandler(file_handler)

    return logger


class LoggerAdapter(logging.LoggerAdapter):
    """Adds the component context to every record without overriding call-site extras."""

    def process(self, msg: Any, kwargs: Dict[str, Any]) -> tuple:
        kwargs["extra"] = {**self.extra, **kwargs.get("extra", {})}
        return msg, kwargs

    def bind(self, **context: Any) -> "LoggerAdapter":
        """Derive an adapter with additional context, e.g. for one item."""
        return LoggerAdapter(
            self.logger,
            {**self.extra, **{k: v for k, v in context.items() if v is not None}},
        )


def get_logger_for_component(
    component_name: str,
    feed_url: Optional[str] = None,
    group_key: Optional[str] = None,
    item_key: Optional[str] = None,
) -> LoggerAdapter:
    """Get a logger adapter with component-specific context.

    Args:
        component_name: Name of the component (e.g., 'syndication', 'sweeper')
        feed_url: Associated feed URL (optional)
        group_key: Associated source group key (optional)
        item_key: Associated item key (optional)

    Returns:
        Logger adapter under the ``syndifeed.<component>`` logger
    """
    return LoggerAdapter(
        logging.getLogger(f"syndifeed.{component_name}"),
        {"component": component_name},
    ).bind(feed_url=feed_url, group_key=group_key, item_key=item_key)


def configure_application_logging(
    log_level: str = "INFO",
    log_file: Optional[str] = "logs/syndifeed.log",
    enable_console: bool = True,
    structured_logging: bool = False,
    max_file_size_mb: int = 10,
    backup_count: int = 5,
) -> None:
    """Configure the ``syndifeed`` logger tree and quiet the HTTP libraries."""
    setup_logger(
        name="syndifeed",
        level=log_level,
        log_file=log_file,
        console=enable_console,
        structured=structured_logging,
        max_file_size=max_file_size_mb * 1024 * 1024,
        backup_count=backup_count,
    )

    for noisy in ("urllib3", "requests", "aiohttp", "feedparser"):
        logging.getLogger(noisy).setLevel(logging.WARNING)


def configure_logging_from_settings(settings, debug: bool = False) -> None:
    """Apply the ``logging`` section of SyndiFeedSettings."""
    configure_application_logging(
        log_level="DEBUG" if debug else settings.get_effective_log_level(),
        log_file=settings.logging.file_path,
        enable_console=settings.logging.console_logging,
        structured_logging=settings.logging.structured_logging,
        max_file_size_mb=settings.logging.max_file_size_mb,
        backup_count=settings.logging.backup_count,
    )


def get_syndication_logger(
    feed_url: Optional[str] = None, group_key: Optional[str] = None
) -> LoggerAdapter:
    """Get logger for reconciliation components."""
    return get_logger_for_component(
        "syndication", feed_url=feed_url, group_key=group_key
    )


def get_scheduler_logger(feed_url: Optional[str] = None) -> LoggerAdapter:
    """Get logger for the poll orchestrator."""
    return get_logger_for_component("scheduler", feed_url=feed_url)


class PerformanceLogger:
    """Times a block and logs its outcome.

    Counts recorded with ``note()`` inside the block are attached to the
    completion record::

        with PerformanceLogger(logger, "expiry sweep") as perf:
            perf.note(deleted=deleted)
    """

    def __init__(self, logger, operation: str, **kwargs):
        self.logger = logger
        self.operation = operation
        self.context = dict(kwargs)
        self.start_time: Optional[datetime] = None
        self.duration: Optional[float] = None

    def note(self, **results: Any) -> None:
        self.context.update(results)

    def __enter__(self) -> "PerformanceLogger":
        self.start_time = datetime.now(timezone.utc)
        self.logger.debug(f"Starting {self.operation}", extra=dict(self.context))
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.duration = (datetime.now(timezone.utc) - self.start_time).total_seconds()
        context = {
            **self.context,
            "duration_seconds": self.duration,
            "success": exc_type is None,
        }

        if exc_type:
            self.logger.error(
                f"Failed {self.operation} after {self.duration:.3f}s: {exc_val}", extra=context
            )
        else:
            self.logger.info(
                f"Completed {self.operation} in {self.duration:.3f}s", extra=context
            )
