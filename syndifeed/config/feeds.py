"""
Feed Source Registry
====================

Resolves feed URLs to their configuration. The registry is the single answer
to "is this feed still configured?", so a scheduled poll for a URL that has
been removed can cancel itself.
"""

import logging
import threading
from typing import Dict, Iterable, List, Optional

from ..database.models import FeedConfig
from ..utils.exceptions import ConfigDrift, ConfigurationError, ErrorCode


logger = logging.getLogger(__name__)


class FeedRegistry:
    """In-memory registry of configured feeds keyed by feed URL."""

    def __init__(self, feeds: Optional[Iterable[FeedConfig]] = None):
        self._feeds: Dict[str, FeedConfig] = {}
        self._lock = threading.Lock()

        for feed in feeds or []:
            self.add(feed)

    @classmethod
    def from_settings(cls, settings=None) -> "FeedRegistry":
        """Build a registry from application settings."""
        if settings is None:
            from .settings import get_settings
            settings = get_settings()
        return cls(settings.feeds)

    def add(self, feed: FeedConfig) -> None:
        """Register a feed.

        Raises:
            ConfigurationError: If the feed URL is already registered
        """
        with self._lock:
            if feed.feed_url in self._feeds:
                raise ConfigurationError(
                    f"Feed already configured: {feed.feed_url}",
                    config_key="feeds",
                    error_code=ErrorCode.CONFIG_INVALID,
                )
            self._feeds[feed.feed_url] = feed
        logger.debug(f"Registered feed {feed.title}: {feed.feed_url}")

    def remove(self, feed_url: str) -> bool:
        """Unregister a feed. Returns True if it was registered."""
        with self._lock:
            removed = self._feeds.pop(feed_url, None)
        if removed:
            logger.info(f"Removed feed from registry: {feed_url}")
        return removed is not None

    def get(self, feed_url: str) -> Optional[FeedConfig]:
        return self._feeds.get(feed_url)

    def require(self, feed_url: str) -> FeedConfig:
        """Look up a feed that must be configured.

        Raises:
            ConfigDrift: If the feed URL is no longer in the registry
        """
        feed = self.get(feed_url)
        if feed is None:
            raise ConfigDrift(
                f"Feed is no longer configured: {feed_url}",
                feed_url=feed_url,
            )
        return feed

    def all(self) -> List[FeedConfig]:
        return list(self._feeds.values())

    def feed_urls(self) -> List[str]:
        return list(self._feeds.keys())

    def displayed(self) -> List[FeedConfig]:
        """Feeds whose items should be shown."""
        return [feed for feed in self._feeds.values() if feed.display]

    def hidden(self) -> List[FeedConfig]:
        """Feeds whose items are kept but not shown."""
        return [feed for feed in self._feeds.values() if not feed.display]

    def __contains__(self, feed_url: str) -> bool:
        return feed_url in self._feeds

    def __len__(self) -> int:
        return len(self._feeds)
