"""
PyTest Configuration and Fixtures
=================================

Shared fixtures and configuration for SyndiFeed tests.
"""

import os
import tempfile
from datetime import datetime, timezone
from pathlib import Path
from typing import List, Optional
from xml.sax.saxutils import escape

import pytest

# Set test environment variables before any imports
_TEST_DIR = Path(tempfile.gettempdir()) / "syndifeed_tests"
os.environ["SYNDIFEED_DEBUG"] = "true"
os.environ["SYNDIFEED_DATABASE__PATH"] = str(_TEST_DIR / "syndifeed_settings.db")
os.environ["SYNDIFEED_LOGGING__FILE_PATH"] = str(_TEST_DIR / "syndifeed_test.log")


FEED_URL = "https://example.com/feed/"
SITE_LINK = "https://example.com/"


# ============================================================================
# Database Fixtures
# ============================================================================


@pytest.fixture
def temp_db(tmp_path):
    """Fresh database file with the full schema."""
    from syndifeed.database.schema import DatabaseSchema

    db_path = tmp_path / "syndifeed_test.db"
    DatabaseSchema(str(db_path)).create_tables()
    return str(db_path)


@pytest.fixture
def db_connection(temp_db):
    """Create a database connection manager for testing."""
    from syndifeed.database.connection import DatabaseConnection

    connection = DatabaseConnection(temp_db, pool_size=2)
    yield connection

    connection.close_all_connections()


@pytest.fixture
def group_repo(db_connection):
    from syndifeed.storage.group_repository import SourceGroupRepository

    return SourceGroupRepository(db_connection)


@pytest.fixture
def item_repo(db_connection):
    from syndifeed.storage.item_repository import SyndicatedItemRepository

    return SyndicatedItemRepository(db_connection)


@pytest.fixture
def schedule_repo(db_connection):
    from syndifeed.storage.schedule_repository import ScheduleRepository

    return ScheduleRepository(db_connection)


@pytest.fixture
def set_modified_at(db_connection):
    """Backdate an item's modified_at, as if it was last written long ago."""
    from syndifeed.database.models import to_db_timestamp

    def _set(item_id: int, when: datetime) -> None:
        with db_connection.get_connection() as conn:
            conn.execute(
                "UPDATE syndicated_items SET modified_at = ? WHERE id = ?",
                (to_db_timestamp(when), item_id),
            )
            conn.commit()

    return _set


# ============================================================================
# Domain Fixtures
# ============================================================================


@pytest.fixture
def feed_config():
    from syndifeed.database.models import FeedConfig

    return FeedConfig(title="Example Blog", feed_url=FEED_URL, site_link=SITE_LINK)


@pytest.fixture
def paused_feed_config(feed_config):
    """Same feed with ingest turned off."""
    return feed_config.model_copy(update={"ingest": False})


@pytest.fixture
def source_group(group_repo, feed_config):
    """Stored source group for the example feed."""
    from syndifeed.database.models import SourceGroup
    from syndifeed.utils.hashing import group_key_for

    return group_repo.create(
        SourceGroup(
            group_key=group_key_for(feed_config.feed_url),
            display_name=feed_config.title,
            source_link=feed_config.site_link,
        )
    )


@pytest.fixture
def make_item():
    """Factory for upstream items with sensible defaults."""
    from syndifeed.database.models import UpstreamItem

    def _make(
        guid: str,
        title: Optional[str] = None,
        description: Optional[str] = None,
        content: Optional[str] = None,
        permalink: Optional[str] = None,
        date: Optional[datetime] = None,
    ) -> UpstreamItem:
        return UpstreamItem(
            guid=guid,
            title=title if title is not None else f"Post {guid}",
            description=description if description is not None else f"<p>Summary of {guid}</p>",
            content=content if content is not None else f"<p>Full text of {guid}</p>",
            permalink=permalink if permalink is not None else f"https://example.com/{guid}/",
            date=date or datetime(2024, 1, 15, 12, 0, tzinfo=timezone.utc),
        )

    return _make


def build_rss(items: List[dict], title: str = "Example Blog", link: str = SITE_LINK) -> bytes:
    """Render a small RSS 2.0 document.

    Each item dict may hold guid, title, link, description, content and pubDate.
    """
    entries = []
    for item in items:
        parts = []
        if item.get("guid"):
            parts.append(f"<guid isPermaLink=\"false\">{escape(item['guid'])}</guid>")
        if "title" in item:
            parts.append(f"<title>{escape(item['title'])}</title>")
        if "link" in item:
            parts.append(f"<link>{escape(item['link'])}</link>")
        if "description" in item:
            parts.append(f"<description>{escape(item['description'])}</description>")
        if "content" in item:
            parts.append(f"<content:encoded><![CDATA[{item['content']}]]></content:encoded>")
        if "pubDate" in item:
            parts.append(f"<pubDate>{item['pubDate']}</pubDate>")
        entries.append("<item>" + "".join(parts) + "</item>")

    return (
        '<?xml version="1.0" encoding="UTF-8"?>'
        '<rss version="2.0" xmlns:content="http://purl.org/rss/1.0/modules/content/">'
        "<channel>"
        f"<title>{escape(title)}</title>"
        f"<link>{escape(link)}</link>"
        "<description>Test feed</description>"
        + "".join(entries)
        + "</channel></rss>"
    ).encode("utf-8")


@pytest.fixture
def rss_builder():
    return build_rss
