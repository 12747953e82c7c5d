"""
End-to-End Syndication Tests for SyndiFeed
==========================================

Drives the orchestrator through a sequence of upstream feed versions and
checks the local store after each poll. Only the HTTP transport is faked;
parsing, cleaning, reconciliation, sweeping and SQLite are real.
"""

from contextlib import asynccontextmanager
from datetime import datetime, timezone, timedelta
from unittest.mock import AsyncMock, Mock

import pytest

from syndifeed.config.feeds import FeedRegistry
from syndifeed.config.settings import SyndiFeedSettings
from syndifeed.database.models import FeedConfig, ItemState
from syndifeed.ingestion.feed_fetcher import FeedFetcher
from syndifeed.scheduler.poll_scheduler import PollOrchestrator, PollStatus
from syndifeed.syndication.visibility import VisibilityFilter
from syndifeed.utils.hashing import group_key_for, item_key_for


pytestmark = pytest.mark.integration

BLOG_URL = "https://blog.example.com/feed/"
NEWS_URL = "https://news.example.com/feed/"


class UpstreamFeeds:
    """Serves whatever each feed currently publishes."""

    def __init__(self, rss_builder):
        self.build = rss_builder
        self.items = {BLOG_URL: [], NEWS_URL: []}
        self.titles = {BLOG_URL: "Example Blog", NEWS_URL: "Example News"}

    def payload(self, url: str) -> bytes:
        return self.build(self.items[url], title=self.titles[url])

    def fetcher(self) -> Mock:
        @asynccontextmanager
        async def session():
            yield Mock()

        fetcher = Mock(spec=FeedFetcher)
        fetcher.fetch.side_effect = self.payload
        fetcher.fetch_async = AsyncMock(side_effect=lambda url, _session: self.payload(url))
        fetcher.get_session = session
        return fetcher


def _post(guid: str, title: str, body: str = "", pub_date: str = "Mon, 15 Jan 2024 12:00:00 +0000") -> dict:
    return {
        "guid": guid,
        "title": title,
        "link": f"https://blog.example.com/{guid}/",
        "description": f"<p>{body or title}</p>",
        "content": f"<p>{body or title}</p><p>More.</p>",
        "pubDate": pub_date,
    }


class TestSyndicationFlow:
    """Full poll lifecycle over two feeds."""

    @pytest.fixture
    def feeds(self):
        return [
            FeedConfig(title="Example Blog", feed_url=BLOG_URL, site_link="https://blog.example.com/"),
            FeedConfig(
                title="Example News",
                feed_url=NEWS_URL,
                site_link="https://news.example.com/",
                display=False,
            ),
        ]

    @pytest.fixture
    def upstream(self, rss_builder):
        return UpstreamFeeds(rss_builder)

    @pytest.fixture
    def orchestrator(self, feeds, upstream, db_connection):
        return PollOrchestrator(
            FeedRegistry(feeds),
            db_connection,
            SyndiFeedSettings(feeds=feeds),
            fetcher=upstream.fetcher(),
        )

    def _stored(self, orchestrator, feed_url, guid):
        return orchestrator.item_repository.find_by_item_key(group_key_for(feed_url), item_key_for(guid))

    def test_item_lifecycle(self, orchestrator, upstream, set_modified_at):
        # Poll 1: two posts appear
        upstream.items[BLOG_URL] = [_post("p1", "Hello"), _post("p2", "Second")]
        result = orchestrator.syndicate_feed(BLOG_URL)
        assert result.status == PollStatus.SUCCESS
        assert result.report.created == 2

        first = self._stored(orchestrator, BLOG_URL, "p1")
        assert first.body == "<p>Hello</p>"
        assert first.published_at == datetime(2024, 1, 15, 12, 0, tzinfo=timezone.utc)

        # Poll 2: nothing changed upstream
        assert orchestrator.syndicate_feed(BLOG_URL).report.total_writes == 0

        # Poll 3: p1 edited, p2 dropped, p3 added
        upstream.items[BLOG_URL] = [_post("p1", "Hello again"), _post("p3", "Third")]
        report = orchestrator.syndicate_feed(BLOG_URL).report
        assert (report.created, report.updated, report.expired) == (1, 1, 1)
        assert self._stored(orchestrator, BLOG_URL, "p1").id == first.id
        assert self._stored(orchestrator, BLOG_URL, "p2").state == ItemState.EXPIRED

        # Poll 4: p2 returns and is republished with its original date
        upstream.items[BLOG_URL] = [
            _post("p1", "Hello again"),
            _post("p2", "Second, revised", pub_date="Thu, 01 Feb 2024 09:00:00 +0000"),
            _post("p3", "Third"),
        ]
        report = orchestrator.syndicate_feed(BLOG_URL).report
        assert report.republished == 1
        returned = self._stored(orchestrator, BLOG_URL, "p2")
        assert returned.state == ItemState.PUBLISHED
        assert returned.title == "Second, revised"
        assert returned.published_at == datetime(2024, 1, 15, 12, 0, tzinfo=timezone.utc)

        # Poll 5: the feed empties and everything expires
        upstream.items[BLOG_URL] = []
        assert orchestrator.syndicate_feed(BLOG_URL).report.expired == 3

        # A month later the sweep removes them
        now = datetime.now(timezone.utc)
        for item in orchestrator.item_repository.find(group_key_for(BLOG_URL)):
            set_modified_at(item.id, now - timedelta(days=31))
        assert orchestrator.run_sweep(now) == 3
        assert orchestrator.item_repository.find(group_key_for(BLOG_URL)) == []

    def test_local_edits_survive_polls(self, orchestrator, upstream):
        upstream.items[BLOG_URL] = [_post("p1", "Hello"), _post("p2", "Second")]
        orchestrator.syndicate_feed(BLOG_URL)

        repo = orchestrator.item_repository
        repo.set_local_state(self._stored(orchestrator, BLOG_URL, "p1").id, ItemState.PRIVATE)
        repo.trash(self._stored(orchestrator, BLOG_URL, "p2").id)

        upstream.items[BLOG_URL] = [_post("p1", "Hello, edited"), _post("p2", "Second, edited")]
        report = orchestrator.syndicate_feed(BLOG_URL).report

        assert report.protected == 2
        assert report.total_writes == 0
        assert self._stored(orchestrator, BLOG_URL, "p1").title == "Hello"
        assert self._stored(orchestrator, BLOG_URL, "p2").state == ItemState.TRASH
        assert len(repo.find(group_key_for(BLOG_URL))) == 2

    def test_paused_feed(self, orchestrator, upstream):
        upstream.items[BLOG_URL] = [_post("p1", "Hello"), _post("p2", "Second")]
        orchestrator.syndicate_feed(BLOG_URL)

        paused = orchestrator.registry.require(BLOG_URL).model_copy(update={"ingest": False})
        orchestrator.registry.remove(BLOG_URL)
        orchestrator.registry.add(paused)

        upstream.items[BLOG_URL] = [_post("p1", "Hello, edited"), _post("p3", "New")]
        report = orchestrator.syndicate_feed(BLOG_URL).report

        assert report.created == 0
        assert report.expired == 2
        assert self._stored(orchestrator, BLOG_URL, "p1").state == ItemState.EXPIRED
        assert self._stored(orchestrator, BLOG_URL, "p2").state == ItemState.EXPIRED
        assert self._stored(orchestrator, BLOG_URL, "p3") is None

    def test_feed_rename_keeps_group(self, orchestrator, upstream):
        upstream.items[BLOG_URL] = [_post("p1", "Hello")]
        orchestrator.syndicate_feed(BLOG_URL)

        renamed = orchestrator.registry.require(BLOG_URL).model_copy(update={"title": "Renamed Blog"})
        orchestrator.registry.remove(BLOG_URL)
        orchestrator.registry.add(renamed)
        orchestrator.syndicate_feed(BLOG_URL)

        groups = orchestrator.group_repository.list_all()
        assert [group.display_name for group in groups] == ["Renamed Blog"]
        assert len(orchestrator.item_repository.find(groups[0].group_key)) == 1

    @pytest.mark.asyncio
    async def test_scheduled_run_with_hidden_feed(self, orchestrator, upstream):
        upstream.items[BLOG_URL] = [_post("p1", "Blog post")]
        upstream.items[NEWS_URL] = [_post("n1", "News item")]
        now = datetime(2024, 1, 15, 12, 0, tzinfo=timezone.utc)
        orchestrator.register_triggers(now)

        run = await orchestrator.run_due(now)

        assert {poll.feed_url: poll.status for poll in run.polls} == {
            BLOG_URL: PollStatus.SUCCESS,
            NEWS_URL: PollStatus.SUCCESS,
        }
        visibility = VisibilityFilter(orchestrator.registry, orchestrator.group_repository)
        visible = visibility.visible_items(orchestrator.item_repository)
        assert [item.title for item in visible] == ["Blog post"]
        assert orchestrator.item_repository.count_by_state() == {"published": 2}

        # Dropping a feed cancels its trigger on the next scheduled run
        orchestrator.registry.remove(NEWS_URL)
        run = await orchestrator.run_due(now + timedelta(hours=1))

        assert {poll.feed_url: poll.status for poll in run.polls} == {
            BLOG_URL: PollStatus.SUCCESS,
            NEWS_URL: PollStatus.DRIFT,
        }
        assert [s.arg for s in orchestrator.schedules.list_all() if s.hook == "syndicate_feed"] == [BLOG_URL]
