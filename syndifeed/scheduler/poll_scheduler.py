"""
SyndiFeed Poll Orchestrator
===========================

Keeps the recurring triggers in the schedules table and runs them:

- one ``syndicate_feed`` trigger per configured feed URL (hourly by default)
- one ``sweep_expired`` trigger (daily by default)

Each feed poll handles exactly one feed: fetch, parse, ensure the source
group, reconcile items. A trigger whose feed has left the registry clears
itself. A failed fetch, parse or group write ends the poll before any item
write; the next trigger is the retry.
"""

import asyncio
import threading
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from typing import Any, Dict, List, Optional, Set

import aiohttp

from ..config.feeds import FeedRegistry
from ..config.settings import SyndiFeedSettings, get_settings
from ..database.connection import DatabaseConnection, get_db_manager
from ..database.models import FeedConfig, ReconciliationReport, Schedule, utc_now
from ..ingestion.content_cleaner import ContentCleaner
from ..ingestion.feed_fetcher import FeedFetcher
from ..ingestion.feed_parser import FeedParser
from ..storage.group_repository import SourceGroupRepository
from ..storage.item_repository import SyndicatedItemRepository
from ..storage.schedule_repository import ScheduleRepository
from ..syndication.groups import SourceGroupReconciler
from ..syndication.reconciler import ItemReconciler
from ..syndication.sweeper import ExpirySweeper
from ..utils.logging import get_scheduler_logger
from ..utils.exceptions import (
    ConfigDrift,
    FeedError,
    GroupPersistError,
    SyndiFeedError,
    handle_exception,
)


SYNDICATE_HOOK = "syndicate_feed"
SWEEP_HOOK = "sweep_expired"


class PollStatus(str, Enum):
    SUCCESS = "success"
    PARTIAL = "partial"  # reconciled, some item writes failed
    FAILED = "failed"  # aborted before any item write
    DRIFT = "drift"  # feed no longer configured, trigger cleared
    BUSY = "busy"  # a poll of this feed is already running


@dataclass
class PollResult:
    """Outcome of one feed poll."""

    feed_url: str
    status: PollStatus
    report: Optional[ReconciliationReport] = None
    error: Optional[SyndiFeedError] = None
    started_at: datetime = field(default_factory=utc_now)
    finished_at: Optional[datetime] = None

    @property
    def success(self) -> bool:
        return self.status in (PollStatus.SUCCESS, PollStatus.PARTIAL)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "feed_url": self.feed_url,
            "status": self.status.value,
            "report": self.report.to_dict() if self.report else None,
            "error": self.error.to_dict() if self.error else None,
            "started_at": self.started_at.isoformat(),
            "finished_at": self.finished_at.isoformat() if self.finished_at else None,
        }


@dataclass
class DueRun:
    """What one pass over the due triggers did."""

    polls: List[PollResult] = field(default_factory=list)
    swept: Optional[int] = None


class PollOrchestrator:
    """Schedules and runs feed polls and expiry sweeps."""

    def __init__(
        self,
        registry: FeedRegistry,
        db_manager: Optional[DatabaseConnection] = None,
        settings: Optional[SyndiFeedSettings] = None,
        fetcher: Optional[FeedFetcher] = None,
        parser: Optional[FeedParser] = None,
    ):
        self.settings = settings or get_settings()
        self.registry = registry
        self.db = db_manager or get_db_manager(
            self.settings.database.path, self.settings.database.pool_size
        )
        self.logger = get_scheduler_logger()

        self.fetcher = fetcher or FeedFetcher(
            timeout=self.settings.fetch.request_timeout,
            max_retries=self.settings.fetch.max_retries,
            max_concurrent=self.settings.processing.parallel_feeds,
            user_agent=self.settings.fetch.user_agent or f"{self.settings.app_name}/{self.settings.version}",
        )
        self.parser = parser or FeedParser()

        cleaner = ContentCleaner()
        self.group_repository = SourceGroupRepository(self.db)
        self.item_repository = SyndicatedItemRepository(self.db)
        self.schedules = ScheduleRepository(self.db)

        self.groups = SourceGroupReconciler(self.group_repository, cleaner)
        self.reconciler = ItemReconciler(
            self.item_repository,
            ingest_full_content=self.settings.syndication.ingest_full_content,
            cleaner=cleaner,
        )
        self.sweeper = ExpirySweeper(
            self.item_repository,
            retention_days=self.settings.syndication.expired_retention_days,
        )

        self._in_flight: Set[str] = set()
        self._in_flight_lock = threading.Lock()

    # Triggers

    def register_triggers(self, now: Optional[datetime] = None) -> int:
        """Ensure a poll trigger per configured feed and the sweep trigger.

        Existing triggers keep their next run time.

        Returns:
            Number of triggers created
        """
        now = now or utc_now()
        created = 0

        for feed in self.registry.all():
            _, was_created = self.schedules.ensure(
                SYNDICATE_HOOK,
                feed.feed_url,
                self.settings.syndication.poll_interval_seconds,
                first_run_at=now,
            )
            created += int(was_created)

        _, was_created = self.schedules.ensure(
            SWEEP_HOOK,
            "",
            self.settings.syndication.sweep_interval_seconds,
            first_run_at=now,
        )
        created += int(was_created)

        if created:
            self.logger.info(f"Registered {created} new triggers")
        return created

    def clear_triggers(self) -> int:
        """Remove every trigger this orchestrator owns."""
        cleared = 0
        for schedule in self.schedules.list_all():
            if schedule.hook in (SYNDICATE_HOOK, SWEEP_HOOK):
                cleared += int(self.schedules.clear(schedule.hook, schedule.arg))
        self.logger.info(f"Cleared {cleared} triggers")
        return cleared

    def remove_feed(self, feed_url: str) -> bool:
        """Drop a feed from the registry and cancel its trigger.

        Stored groups and items are left as they are.
        """
        removed = self.registry.remove(feed_url)
        self.schedules.clear(SYNDICATE_HOOK, feed_url)
        return removed

    # Feed polls

    def syndicate_feed(self, feed_url: str) -> PollResult:
        """Poll one feed with the blocking transport."""
        result = PollResult(feed_url=feed_url, status=PollStatus.FAILED)

        feed = self._resolve(feed_url, result)
        if feed is None:
            return result
        if not self._claim(feed_url, result):
            return result

        try:
            payload = self.fetcher.fetch(feed_url)
            self._process_payload(feed, payload, result)
        except Exception as e:
            self._record_failure(e, result)
        finally:
            self._release(feed_url, result)

        return result

    async def syndicate_feed_async(
        self, feed_url: str, session: aiohttp.ClientSession
    ) -> PollResult:
        """Poll one feed with the async transport.

        Parsing and store work runs in a worker thread so polls of different
        feeds overlap.
        """
        result = PollResult(feed_url=feed_url, status=PollStatus.FAILED)

        feed = self._resolve(feed_url, result)
        if feed is None:
            return result
        if not self._claim(feed_url, result):
            return result

        try:
            payload = await self.fetcher.fetch_async(feed_url, session)
            await asyncio.to_thread(self._process_payload, feed, payload, result)
        except Exception as e:
            self._record_failure(e, result)
        finally:
            self._release(feed_url, result)

        return result

    def _resolve(self, feed_url: str, result: PollResult) -> Optional[FeedConfig]:
        """Look the feed up, clearing its trigger if it is gone."""
        try:
            return self.registry.require(feed_url)
        except ConfigDrift as drift:
            cleared = self.schedules.clear(SYNDICATE_HOOK, feed_url)
            self.logger.info(
                f"Feed no longer configured, trigger cleared: {feed_url}",
                extra={"feed_url": feed_url, "trigger_cleared": cleared},
            )
            result.status = PollStatus.DRIFT
            result.error = drift
            result.finished_at = utc_now()
            return None

    def _claim(self, feed_url: str, result: PollResult) -> bool:
        with self._in_flight_lock:
            if feed_url in self._in_flight:
                self.logger.warning(
                    f"Poll already running, skipping: {feed_url}", extra={"feed_url": feed_url}
                )
                result.status = PollStatus.BUSY
                result.finished_at = utc_now()
                return False
            self._in_flight.add(feed_url)
            return True

    def _release(self, feed_url: str, result: PollResult) -> None:
        with self._in_flight_lock:
            self._in_flight.discard(feed_url)
        result.finished_at = utc_now()

    def _process_payload(self, feed: FeedConfig, payload: bytes, result: PollResult) -> None:
        parsed = self.parser.parse(payload, feed.feed_url)
        group = self.groups.ensure_group(feed)
        report = self.reconciler.reconcile(parsed.items, feed, group)

        result.report = report
        result.status = PollStatus.PARTIAL if report.has_errors else PollStatus.SUCCESS

    def _record_failure(self, error: Exception, result: PollResult) -> None:
        if isinstance(error, (FeedError, GroupPersistError)):
            self.logger.error(
                f"Poll aborted for {result.feed_url}: {error}",
                extra={"feed_url": result.feed_url, "error": error.to_dict()},
            )
            result.error = error
        else:
            result.error = handle_exception(
                error, self.logger, "syndicate_feed", {"feed_url": result.feed_url}
            )
        result.status = PollStatus.FAILED

    # Sweeps

    def run_sweep(self, now: Optional[datetime] = None) -> int:
        """Delete items expired longer than the retention window."""
        return self.sweeper.sweep(now=now)

    # Running due triggers

    async def run_due(self, now: Optional[datetime] = None) -> DueRun:
        """Run every trigger whose time has come.

        Triggers are registered first, so a feed added to the registry
        while the service runs gets its first poll on this pass. Feed polls
        run concurrently up to ``processing.parallel_feeds``; a feed already
        being polled is not started again. Each trigger that still exists
        afterwards is moved to ``now + interval``.
        """
        now = now or utc_now()
        self.register_triggers(now)
        due = self.schedules.due(now)
        run = DueRun()
        if not due:
            return run

        self.logger.info(f"Running {len(due)} due triggers")

        poll_schedules = [s for s in due if s.hook == SYNDICATE_HOOK]
        sweep_schedules = [s for s in due if s.hook == SWEEP_HOOK]

        if poll_schedules:
            semaphore = asyncio.Semaphore(self.settings.processing.parallel_feeds)

            async with self.fetcher.get_session() as session:

                async def poll_with_semaphore(schedule: Schedule) -> PollResult:
                    async with semaphore:
                        return await self.syndicate_feed_async(schedule.arg, session)

                run.polls = list(
                    await asyncio.gather(*(poll_with_semaphore(s) for s in poll_schedules))
                )

        if sweep_schedules:
            try:
                run.swept = await asyncio.to_thread(self.run_sweep, now)
            except SyndiFeedError as e:
                self.logger.error(f"Expiry sweep failed: {e}", extra={"error": e.to_dict()})

        for schedule in due:
            self.schedules.reschedule(
                schedule.id, ran_at=now, next_run_at=now + timedelta(seconds=schedule.interval_seconds)
            )

        return run

    def check_status(self) -> Dict[str, Any]:
        """Summarize triggers and stored items."""
        return {
            "feeds_configured": len(self.registry),
            "groups": len(self.group_repository.list_all()),
            "items_by_state": self.item_repository.count_by_state(),
            "triggers": [
                {
                    "hook": schedule.hook,
                    "arg": schedule.arg,
                    "interval_seconds": schedule.interval_seconds,
                    "next_run_at": schedule.next_run_at.isoformat(),
                    "last_run_at": schedule.last_run_at.isoformat() if schedule.last_run_at else None,
                }
                for schedule in self.schedules.list_all()
            ],
        }
