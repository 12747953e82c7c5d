"""
Feed Parser
===========

Turns a raw RSS/Atom payload into channel metadata and a list of upstream
items using feedparser.

A payload that cannot be read as a feed raises FeedParseError. This matters
more than it looks: an unreadable payload must never be mistaken for a feed
that legitimately has zero items, since the latter expires everything.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, List, Optional

import feedparser

from ..database.models import FeedMetadata, UpstreamItem
from ..utils.logging import get_logger_for_component
from ..utils.exceptions import FeedParseError


@dataclass
class ParsedFeed:
    """Result of parsing one feed payload."""

    metadata: FeedMetadata
    items: List[UpstreamItem] = field(default_factory=list)
    skipped_entries: int = 0


class FeedParser:
    """feedparser wrapper producing UpstreamItem records."""

    DATE_FIELDS = ("published_parsed", "updated_parsed", "created_parsed")

    def __init__(self):
        self.logger = get_logger_for_component("feed_parser")

    def parse(self, payload: bytes, feed_url: str = "") -> ParsedFeed:
        """Parse a feed payload.

        Args:
            payload: Raw response body
            feed_url: Feed URL, for logging and errors

        Returns:
            ParsedFeed with metadata and items in document order

        Raises:
            FeedParseError: If the payload is not a readable feed
        """
        parsed = feedparser.parse(payload)

        if not parsed.get("version"):
            if parsed.get("bozo"):
                cause = parsed.get("bozo_exception", "Invalid XML structure")
                raise FeedParseError(
                    f"Feed parse error for {feed_url}: {cause}", feed_url=feed_url
                )
            raise FeedParseError(
                f"Payload is not a recognized feed format: {feed_url}", feed_url=feed_url
            )

        if parsed.get("bozo"):
            # Many feeds have minor formatting issues
            self.logger.warning(
                f"Feed parsing warning for {feed_url}: {parsed.get('bozo_exception')}"
            )

        metadata = self._extract_feed_metadata(parsed.feed)

        result = ParsedFeed(metadata=metadata)
        for entry in parsed.entries:
            item = self._extract_item(entry)
            if item is None:
                result.skipped_entries += 1
                self.logger.warning(
                    f"Skipping entry without guid or link in {feed_url}",
                    extra={"entry_title": entry.get("title", "")},
                )
                continue
            result.items.append(item)

        self.logger.debug(f"Parsed {len(result.items)} items from {feed_url}")
        return result

    def _extract_feed_metadata(self, feed_data: Any) -> FeedMetadata:
        return FeedMetadata(
            title=feed_data.get("title", "") or "",
            link=feed_data.get("link", "") or "",
            description=feed_data.get("subtitle", "") or feed_data.get("description", "") or "",
        )

    def _extract_item(self, entry: Any) -> Optional[UpstreamItem]:
        """Map one entry, or None if it has no usable identifier.

        feedparser exposes RSS <guid> and Atom <id> as ``id``; the link is the
        fallback identifier, matching what feed readers do.
        """
        guid = (entry.get("id") or entry.get("guid") or entry.get("link") or "").strip()
        if not guid:
            return None

        description = entry.get("summary", "") or entry.get("description", "") or ""

        content = ""
        if entry.get("content"):
            content = entry.content[0].get("value", "") or ""
        if not content:
            content = description

        return UpstreamItem(
            guid=guid,
            title=entry.get("title", "") or "",
            description=description,
            content=content,
            permalink=entry.get("link", "") or "",
            date=self._parse_date(entry),
        )

    def _parse_date(self, entry: Any) -> Optional[datetime]:
        """Parse publication date from entry as a UTC datetime."""
        for date_field in self.DATE_FIELDS:
            date_tuple = entry.get(date_field)
            if date_tuple:
                try:
                    return datetime(*date_tuple[:6], tzinfo=timezone.utc)
                except (ValueError, TypeError):
                    continue
        return None


def parse_feed(payload: bytes, feed_url: str = "") -> ParsedFeed:
    """Quick function to parse a feed payload."""
    return FeedParser().parse(payload, feed_url)
