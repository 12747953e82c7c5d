"""
Poll Service
============

Long-running loop around the poll orchestrator for Docker/systemd style
deployments: run whatever is due every tick. Each pass registers triggers
for feeds added since the last one.
"""

import asyncio
from typing import Optional

from .poll_scheduler import PollOrchestrator, PollStatus
from ..utils.logging import get_logger_for_component


class PollService:
    """Service wrapper for PollOrchestrator that handles continuous operation."""

    def __init__(self, orchestrator: PollOrchestrator, tick_seconds: Optional[int] = None):
        self.orchestrator = orchestrator
        self.tick_seconds = tick_seconds or orchestrator.settings.processing.service_tick_seconds
        self.logger = get_logger_for_component("scheduler_service")
        self._stop = asyncio.Event()

    def stop(self) -> None:
        self._stop.set()

    async def run_once(self) -> None:
        run = await self.orchestrator.run_due()
        failed = [poll for poll in run.polls if poll.status == PollStatus.FAILED]
        if run.polls:
            self.logger.info(
                f"Polled {len(run.polls)} feeds, {len(failed)} failed",
                extra={"failed_feeds": [poll.feed_url for poll in failed]},
            )
        if run.swept is not None:
            self.logger.info(f"Sweep removed {run.swept} expired items")

    async def run_service(self) -> None:
        """Run until stop() is called."""
        self.logger.info("Starting poll service")

        while not self._stop.is_set():
            try:
                await self.run_once()
            except Exception as e:
                self.logger.error(f"Service error: {e}", exc_info=True)

            try:
                await asyncio.wait_for(self._stop.wait(), timeout=self.tick_seconds)
            except asyncio.TimeoutError:
                pass

        self.logger.info("Poll service stopped")
