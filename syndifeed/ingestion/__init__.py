"""
SyndiFeed Ingestion Module
==========================

Feed fetching, parsing and content cleaning.
"""

from .content_cleaner import ContentCleaner, strip_all_tags, sanitize_html
from .feed_fetcher import FeedFetcher
from .feed_parser import FeedParser, ParsedFeed, parse_feed

__all__ = [
    "ContentCleaner",
    "strip_all_tags",
    "sanitize_html",
    "FeedFetcher",
    "FeedParser",
    "ParsedFeed",
    "parse_feed",
]
