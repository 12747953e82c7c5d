"""
Feed Fetcher
============

HTTP retrieval of raw feed payloads.

Two transports share one error contract: a blocking ``requests`` session with
urllib3 retry for the CLI and one-off polls, and an ``aiohttp`` session for
the orchestrator's concurrent polls. Either one returns the payload bytes or
raises FeedFetchError; nothing is parsed here.
"""

import asyncio
import ssl
import time
from contextlib import asynccontextmanager
from typing import Optional

import aiohttp
import certifi
import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from ..utils.logging import get_logger_for_component
from ..utils.exceptions import FeedFetchError, ErrorCode


ACCEPT_HEADER = "application/rss+xml, application/atom+xml, application/xml, text/xml, */*"


def _error_code_for_status(status: int) -> ErrorCode:
    if status == 404 or status == 410:
        return ErrorCode.FEED_NOT_FOUND
    if status in (401, 403):
        return ErrorCode.FEED_ACCESS_DENIED
    return ErrorCode.FEED_NETWORK_ERROR


class FeedFetcher:
    """Fetches feed payloads over HTTP."""

    def __init__(
        self,
        timeout: Optional[int] = None,
        max_retries: Optional[int] = None,
        max_concurrent: Optional[int] = None,
        user_agent: Optional[str] = None,
    ):
        """Initialize feed fetcher.

        Args:
            timeout: Request timeout in seconds (default from config)
            max_retries: Retries for the blocking transport (default from config)
            max_concurrent: Connection limit for the async transport (default from config)
            user_agent: User-Agent header value
        """
        if timeout is None or max_retries is None or max_concurrent is None:
            from ..config.settings import get_settings
            settings = get_settings()
            timeout = timeout if timeout is not None else settings.fetch.request_timeout
            max_retries = max_retries if max_retries is not None else settings.fetch.max_retries
            max_concurrent = max_concurrent or settings.processing.parallel_feeds
            user_agent = user_agent or settings.fetch.user_agent or f"{settings.app_name}/{settings.version}"

        self.timeout = timeout
        self.max_concurrent = max_concurrent
        self.logger = get_logger_for_component("feed_fetcher")
        self.headers = {
            "User-Agent": user_agent or "SyndiFeed/1.0",
            "Accept": ACCEPT_HEADER,
        }

        self.session = requests.Session()
        retry_strategy = Retry(
            total=max_retries,
            backoff_factor=1,
            status_forcelist=[429, 500, 502, 503, 504],
            allowed_methods=["HEAD", "GET", "OPTIONS"],
            raise_on_status=False,
        )
        adapter = HTTPAdapter(max_retries=retry_strategy)
        self.session.mount("http://", adapter)
        self.session.mount("https://", adapter)
        self.session.headers.update(self.headers)

        self.ssl_context = ssl.create_default_context(cafile=certifi.where())

    def fetch(self, feed_url: str) -> bytes:
        """Fetch a feed payload.

        Args:
            feed_url: Feed URL exactly as configured

        Returns:
            Raw response body

        Raises:
            FeedFetchError: On timeout, connection failure or non-2xx status
        """
        self.logger.info(f"Fetching feed: {feed_url}")
        start_time = time.time()

        try:
            response = self.session.get(feed_url, timeout=self.timeout)
        except requests.Timeout as e:
            raise FeedFetchError(
                f"Timed out after {self.timeout}s fetching {feed_url}",
                feed_url=feed_url,
                error_code=ErrorCode.FEED_FETCH_TIMEOUT,
            ) from e
        except requests.RequestException as e:
            raise FeedFetchError(
                f"Failed to fetch feed {feed_url}: {e}",
                feed_url=feed_url,
            ) from e

        if not response.ok:
            raise FeedFetchError(
                f"HTTP {response.status_code} fetching {feed_url}",
                feed_url=feed_url,
                error_code=_error_code_for_status(response.status_code),
                context={"status": response.status_code},
            )

        self.logger.debug(
            f"Feed fetched in {time.time() - start_time:.2f}s, size: {len(response.content)} bytes"
        )
        return response.content

    @asynccontextmanager
    async def get_session(self):
        """Get configured aiohttp session."""
        connector = aiohttp.TCPConnector(
            ssl=self.ssl_context,
            limit=self.max_concurrent * 2,
            limit_per_host=5,
        )
        timeout = aiohttp.ClientTimeout(total=self.timeout)

        async with aiohttp.ClientSession(
            connector=connector, timeout=timeout, headers=self.headers
        ) as session:
            yield session

    async def fetch_async(self, feed_url: str, session: aiohttp.ClientSession) -> bytes:
        """Async version of fetch for concurrent polls.

        Raises:
            FeedFetchError: On timeout, connection failure or non-2xx status
        """
        self.logger.info(f"Fetching feed (async): {feed_url}")
        start_time = time.time()

        try:
            async with session.get(feed_url) as response:
                if response.status >= 400:
                    raise FeedFetchError(
                        f"HTTP {response.status} fetching {feed_url}",
                        feed_url=feed_url,
                        error_code=_error_code_for_status(response.status),
                        context={"status": response.status},
                    )
                content = await response.read()

        except asyncio.TimeoutError as e:
            raise FeedFetchError(
                f"Timed out after {self.timeout}s fetching {feed_url}",
                feed_url=feed_url,
                error_code=ErrorCode.FEED_FETCH_TIMEOUT,
            ) from e
        except aiohttp.ClientError as e:
            raise FeedFetchError(
                f"Failed to fetch feed {feed_url}: {e}",
                feed_url=feed_url,
            ) from e

        self.logger.debug(
            f"Feed fetched (async) in {time.time() - start_time:.2f}s, size: {len(content)} bytes"
        )
        return content

    def close(self) -> None:
        self.session.close()
