"""
SyndiFeed Configuration System
==============================

Simple configuration management with environment variables and Pydantic models.
Environment variables override Field defaults with clear precedence.
"""

from pathlib import Path
from typing import List, Optional
from enum import Enum

from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings

from ..database.models import FeedConfig
from ..utils.exceptions import ConfigurationError, ErrorCode


class LogLevel(str, Enum):
    """Available log levels."""
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class SyndicationSettings(BaseModel):
    """Installation-wide syndication behaviour."""
    ingest_full_content: bool = Field(
        default=False,
        description="Store the item's full content as the body instead of its description"
    )
    expired_retention_days: int = Field(
        default=30, ge=1, le=3650,
        description="Days an expired item is kept before the sweeper deletes it"
    )
    poll_interval_seconds: int = Field(
        default=3600, ge=60,
        description="Seconds between polls of a single feed"
    )
    sweep_interval_seconds: int = Field(
        default=86400, ge=60,
        description="Seconds between expiry sweeps"
    )


class ProcessingSettings(BaseModel):
    """Poll execution configuration."""
    parallel_feeds: int = Field(default=5, ge=1, le=20, description="Concurrent feed polls")
    service_tick_seconds: int = Field(
        default=60, ge=1, le=3600,
        description="How often the service loop looks for due triggers"
    )


class FetchSettings(BaseModel):
    """HTTP behaviour of the feed fetcher."""
    request_timeout: int = Field(default=30, ge=5, le=300, description="Seconds before a fetch times out")
    max_retries: int = Field(default=3, ge=0, le=10, description="Retries of the blocking transport")
    user_agent: Optional[str] = Field(default=None, description="User-Agent header, defaults to app_name/version")


class DatabaseSettings(BaseModel):
    """Database configuration."""
    path: str = Field(default="data/syndifeed.db", description="SQLite database file path")
    pool_size: int = Field(default=5, ge=1, le=20, description="Connection pool size")


class LoggingSettings(BaseModel):
    """Logging configuration."""
    level: LogLevel = Field(default=LogLevel.INFO, description="Global log level")
    file_path: Optional[str] = Field(default="logs/syndifeed.log", description="Log file path")
    max_file_size_mb: int = Field(default=10, ge=1, le=100, description="Max log file size in MB")
    backup_count: int = Field(default=5, ge=1, le=20, description="Number of log backup files")
    structured_logging: bool = Field(default=False, description="Use structured JSON logging")
    console_logging: bool = Field(default=True, description="Enable console logging")


def default_feeds() -> List[FeedConfig]:
    """Feeds syndicated when nothing else is configured."""
    return [
        FeedConfig(
            title="bbPress",
            feed_url="https://bbpress.org/blog/feed/",
            site_link="https://bbpress.org/",
        ),
        FeedConfig(
            title="WordPress News",
            feed_url="https://wordpress.org/news/feed/",
            site_link="https://wordpress.org/news/",
        ),
        FeedConfig(
            title="WordPress Developer Blog",
            feed_url="https://developer.wordpress.org/news/feed/",
            site_link="https://developer.wordpress.org/news/",
        ),
        FeedConfig(
            title="Gutenberg Times",
            feed_url="https://gutenbergtimes.com/feed/",
            site_link="https://gutenbergtimes.com/",
        ),
        FeedConfig(
            title="WordCamp Central",
            feed_url="https://central.wordcamp.org/feed/",
            site_link="https://central.wordcamp.org/",
        ),
        FeedConfig(
            title="WordPress Tavern",
            feed_url="https://wptavern.com/feed/",
            site_link="https://wptavern.com/",
        ),
        FeedConfig(
            title="Matt",
            feed_url="https://ma.tt/feed/?cat=-49",
            site_link="https://ma.tt/",
        ),
    ]


class SyndiFeedSettings(BaseSettings):
    """Main application settings."""

    syndication: SyndicationSettings = Field(default_factory=SyndicationSettings)
    processing: ProcessingSettings = Field(default_factory=ProcessingSettings)
    fetch: FetchSettings = Field(default_factory=FetchSettings)
    database: DatabaseSettings = Field(default_factory=DatabaseSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)
    feeds: List[FeedConfig] = Field(default_factory=default_feeds)

    app_name: str = Field(default="SyndiFeed", description="Application name")
    version: str = Field(default="1.0.0", description="Application version")
    debug: bool = Field(default=False, description="Enable debug mode")

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "case_sensitive": False,
        "env_nested_delimiter": "__",
        "env_prefix": "SYNDIFEED_"
    }

    @field_validator("feeds")
    @classmethod
    def validate_unique_feed_urls(cls, v):
        """A feed URL is the feed's identity, so it may only appear once."""
        seen = set()
        for feed in v:
            if feed.feed_url in seen:
                raise ValueError(f"Duplicate feed URL in configuration: {feed.feed_url}")
            seen.add(feed.feed_url)
        return v

    def validate_configuration(self) -> None:
        """Validate complete configuration."""
        errors = []

        try:
            db_path = Path(self.database.path)
            db_path.parent.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            errors.append(f"Invalid database path: {e}")

        if self.logging.file_path:
            try:
                log_path = Path(self.logging.file_path)
                log_path.parent.mkdir(parents=True, exist_ok=True)
            except OSError as e:
                errors.append(f"Invalid log file path: {e}")

        if self.syndication.sweep_interval_seconds < self.syndication.poll_interval_seconds:
            errors.append("sweep_interval_seconds should not be shorter than poll_interval_seconds")

        if errors:
            raise ConfigurationError(
                f"Configuration validation failed: {'; '.join(errors)}",
                error_code=ErrorCode.CONFIG_INVALID
            )

    def get_effective_log_level(self) -> str:
        """Get effective log level considering debug mode."""
        if self.debug:
            return "DEBUG"
        return self.logging.level.value


def load_settings() -> SyndiFeedSettings:
    """Load settings from environment variables and defaults.

    Returns:
        Loaded and validated settings

    Raises:
        ConfigurationError: If configuration is invalid
    """
    from dotenv import load_dotenv
    load_dotenv()

    try:
        # Precedence: environment, then .env, then Field defaults
        settings = SyndiFeedSettings()
        settings.validate_configuration()
        return settings

    except ConfigurationError:
        raise
    except Exception as e:
        raise ConfigurationError(
            f"Failed to initialize settings: {e}",
            error_code=ErrorCode.CONFIG_INVALID
        ) from e


_settings: Optional[SyndiFeedSettings] = None


def get_settings(reload: bool = False) -> SyndiFeedSettings:
    """Get global settings instance (singleton pattern).

    Args:
        reload: Force reload of settings

    Returns:
        Global settings instance
    """
    global _settings

    if _settings is None or reload:
        _settings = load_settings()

    return _settings
