#!/usr/bin/env python3
"""
SyndiFeed Scheduler Runner
==========================

Main entry point for running the SyndiFeed poll scheduler.
Handles initialization, startup, and graceful shutdown.
"""

import sys
import asyncio
import argparse
import signal

from syndifeed.config.feeds import FeedRegistry
from syndifeed.config.settings import get_settings
from syndifeed.database.connection import get_db_manager
from syndifeed.database.schema import DatabaseSchema
from syndifeed.scheduler.poll_scheduler import PollOrchestrator, PollStatus
from syndifeed.scheduler.service import PollService
from syndifeed.utils.logging import configure_logging_from_settings, get_logger_for_component


async def main():
    """Main entry point for the scheduler service."""
    parser = argparse.ArgumentParser(description='SyndiFeed Poll Scheduler')
    parser.add_argument('--check-status', action='store_true',
                        help='Print trigger status and exit')
    parser.add_argument('--service', action='store_true',
                        help='Run as continuous service (for Docker/systemd)')
    parser.add_argument('--debug', action='store_true', help='Enable debug logging')

    args = parser.parse_args()

    settings = get_settings()
    configure_logging_from_settings(settings, debug=args.debug)
    logger = get_logger_for_component("scheduler_runner")

    logger.info("Starting SyndiFeed scheduler...")

    DatabaseSchema(settings.database.path).create_tables()
    db_manager = get_db_manager(settings.database.path, settings.database.pool_size)
    orchestrator = PollOrchestrator(FeedRegistry.from_settings(settings), db_manager, settings)

    if args.check_status:
        status = orchestrator.check_status()
        print(f"Feeds configured: {status['feeds_configured']}")
        print(f"Items by state: {status['items_by_state']}")
        for trigger in status["triggers"]:
            print(f"  {trigger['hook']}({trigger['arg']}) next at {trigger['next_run_at']}")
        sys.exit(0)

    if args.service:
        service = PollService(orchestrator)

        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(sig, service.stop)

        print("SyndiFeed poll service starting, press Ctrl+C to stop.")
        await service.run_service()
        return

    # One-time mode: run whatever is due, registering triggers first
    run = await orchestrator.run_due()

    failed = [poll for poll in run.polls if poll.status == PollStatus.FAILED]
    for poll in run.polls:
        print(f"{poll.status.value:8} {poll.feed_url}")
    if run.swept is not None:
        print(f"Swept {run.swept} expired items")

    logger.info(f"One-time run finished: {len(run.polls)} polls, {len(failed)} failed")
    sys.exit(1 if failed else 0)


if __name__ == "__main__":
    asyncio.run(main())
