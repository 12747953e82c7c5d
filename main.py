#!/usr/bin/env python3
"""
SyndiFeed - RSS Syndication Reconciliation
==========================================

Main application entry point with CLI interface for management and testing.

Usage:
    python main.py --help                    # Show all commands
    python main.py check-config              # Validate configuration
    python main.py init-db                   # Initialize database
    python main.py list-feeds                # Show configured feeds
    python main.py poll FEED_URL             # Poll one configured feed now
    python main.py poll-all                  # Poll every configured feed now
    python main.py sweep --days 30           # Delete long-expired items
    python main.py schedule                  # Register poll and sweep triggers
    python main.py status                    # Show triggers and item counts
    python main.py items                     # Show visible syndicated items
    python main.py run                       # Run the poll service
"""

import sys
import asyncio
import logging

import click
from rich.console import Console
from rich.table import Table

from syndifeed.config.feeds import FeedRegistry
from syndifeed.config.settings import get_settings
from syndifeed.database.schema import DatabaseSchema
from syndifeed.database.connection import get_db_manager
from syndifeed.scheduler.poll_scheduler import PollOrchestrator, PollResult, PollStatus
from syndifeed.scheduler.service import PollService
from syndifeed.syndication.visibility import VisibilityFilter
from syndifeed.utils.logging import configure_logging_from_settings
from syndifeed.utils.exceptions import SyndiFeedError

console = Console()
logger = logging.getLogger(__name__)


STATUS_ICONS = {
    PollStatus.SUCCESS: "✅",
    PollStatus.PARTIAL: "⚠️",
    PollStatus.FAILED: "❌",
    PollStatus.DRIFT: "🚫",
    PollStatus.BUSY: "⏳",
}


@click.group(invoke_without_command=True)
@click.option('--debug', is_flag=True, help='Enable debug mode')
@click.pass_context
def cli(ctx, debug):
    """SyndiFeed - keeps local syndicated items in step with upstream feeds."""
    ctx.ensure_object(dict)
    ctx.obj['debug'] = debug

    if ctx.invoked_subcommand is None:
        click.echo(ctx.get_help())


def _setup(ctx) -> PollOrchestrator:
    """Load settings, configure logging, ensure the schema and build the orchestrator."""
    settings = get_settings()
    configure_logging_from_settings(settings, debug=ctx.obj.get('debug', False))

    DatabaseSchema(settings.database.path).create_tables()
    db_manager = get_db_manager(settings.database.path, settings.database.pool_size)
    return PollOrchestrator(FeedRegistry.from_settings(settings), db_manager, settings)


def _print_poll_results(results) -> None:
    table = Table(title="Poll Results")
    table.add_column("Status")
    table.add_column("Feed", style="cyan")
    table.add_column("Created", justify="right")
    table.add_column("Updated", justify="right")
    table.add_column("Expired", justify="right")
    table.add_column("Republished", justify="right")
    table.add_column("Unchanged", justify="right")
    table.add_column("Errors", style="red")

    for result in results:
        report = result.report
        if report:
            counts = [report.created, report.updated, report.expired, report.republished, report.unchanged]
            errors = str(len(report.errors)) if report.errors else ""
        else:
            counts = ["-"] * 5
            errors = str(result.error) if result.error else ""

        table.add_row(
            f"{STATUS_ICONS[result.status]} {result.status.value}",
            result.feed_url,
            *[str(count) for count in counts],
            errors,
        )

    console.print(table)


@cli.command()
def check_config():
    """Validate configuration and environment variables."""
    console.print("[bold blue]🔧 Checking SyndiFeed Configuration[/bold blue]")

    try:
        settings = get_settings()
    except SyndiFeedError as e:
        console.print(f"[bold red]❌ Configuration error: {e}[/bold red]")
        sys.exit(1)

    table = Table(title="Configuration Status")
    table.add_column("Component", style="cyan")
    table.add_column("Details")

    table.add_row("Database", f"Path: {settings.database.path}, pool: {settings.database.pool_size}")
    table.add_row(
        "Logging",
        f"Level: {settings.logging.level.value}, file: {settings.logging.file_path}, "
        f"structured: {settings.logging.structured_logging}",
    )
    table.add_row(
        "Syndication",
        f"Full content: {settings.syndication.ingest_full_content}, "
        f"retention: {settings.syndication.expired_retention_days} days",
    )
    table.add_row(
        "Scheduling",
        f"Poll every {settings.syndication.poll_interval_seconds}s, "
        f"sweep every {settings.syndication.sweep_interval_seconds}s, "
        f"{settings.processing.parallel_feeds} feeds in parallel",
    )
    table.add_row("Feeds", f"{len(settings.feeds)} configured")

    console.print(table)
    console.print("[bold green]✅ All configuration checks passed![/bold green]")


@cli.command()
def init_db():
    """Initialize database with schema."""
    console.print("[bold blue]🗄️ Initializing SyndiFeed Database[/bold blue]")

    try:
        settings = get_settings()
        schema = DatabaseSchema(settings.database.path)
        schema.create_tables()

        if not schema.verify_schema():
            console.print("[bold red]❌ Database schema verification failed[/bold red]")
            sys.exit(1)

        console.print("[bold green]✅ Database initialized successfully![/bold green]")

        info = get_db_manager(settings.database.path, settings.database.pool_size).get_database_info()

        info_table = Table(title="Database Information")
        info_table.add_column("Property", style="cyan")
        info_table.add_column("Value", style="green")
        info_table.add_row("Database Path", settings.database.path)
        info_table.add_row("Size", f"{info['database_size_mb']:.2f} MB")
        info_table.add_row("Page Size", f"{info['page_size']} bytes")
        info_table.add_row("Connection Pool", f"{info['total_connections']} connections")
        console.print(info_table)

    except SyndiFeedError as e:
        console.print(f"[bold red]❌ Database initialization error: {e}[/bold red]")
        sys.exit(1)


@cli.command()
def list_feeds():
    """Show configured feeds."""
    settings = get_settings()

    feeds_table = Table(title="Configured Feeds")
    feeds_table.add_column("Title", style="cyan")
    feeds_table.add_column("Feed URL", style="blue")
    feeds_table.add_column("Site", style="blue")
    feeds_table.add_column("Ingest")
    feeds_table.add_column("Display")

    for feed in settings.feeds:
        feeds_table.add_row(
            feed.title,
            feed.feed_url,
            feed.site_link,
            "✅" if feed.ingest else "⏸️",
            "👁️" if feed.display else "🙈",
        )

    console.print(feeds_table)


@cli.command()
@click.argument('feed_url')
@click.pass_context
def poll(ctx, feed_url):
    """Poll one configured feed now."""
    console.print(f"[bold blue]📡 Polling feed: {feed_url}[/bold blue]")

    orchestrator = _setup(ctx)
    result = orchestrator.syndicate_feed(feed_url)
    _print_poll_results([result])

    if result.status == PollStatus.FAILED:
        sys.exit(1)


@cli.command()
@click.pass_context
def poll_all(ctx):
    """Poll every configured feed now, concurrently."""
    orchestrator = _setup(ctx)
    console.print(f"[bold blue]📡 Polling {len(orchestrator.registry)} feeds[/bold blue]")

    async def run_polls():
        semaphore = asyncio.Semaphore(orchestrator.settings.processing.parallel_feeds)

        async with orchestrator.fetcher.get_session() as session:

            async def poll_one(feed_url: str) -> PollResult:
                async with semaphore:
                    return await orchestrator.syndicate_feed_async(feed_url, session)

            return await asyncio.gather(*(poll_one(url) for url in orchestrator.registry.feed_urls()))

    results = asyncio.run(run_polls())
    _print_poll_results(results)

    failed = sum(1 for result in results if result.status == PollStatus.FAILED)
    if failed:
        console.print(f"[bold red]❌ {failed} feeds failed[/bold red]")
        sys.exit(1)
    console.print("[bold green]✅ All feeds polled[/bold green]")


@cli.command()
@click.option('--days', type=int, default=None, help='Retention in days (default from config)')
@click.pass_context
def sweep(ctx, days):
    """Delete items that have been expired longer than the retention window."""
    orchestrator = _setup(ctx)
    deleted = orchestrator.sweeper.sweep(retention_days=days)
    console.print(f"[bold green]🧹 Deleted {deleted} expired items[/bold green]")


@cli.command()
@click.pass_context
def schedule(ctx):
    """Register poll triggers for every configured feed and the sweep trigger."""
    orchestrator = _setup(ctx)
    created = orchestrator.register_triggers()
    console.print(f"[bold green]⏰ {created} new triggers registered[/bold green]")


@cli.command()
@click.pass_context
def status(ctx):
    """Show triggers and stored item counts."""
    orchestrator = _setup(ctx)
    summary = orchestrator.check_status()

    console.print(
        f"Feeds configured: {summary['feeds_configured']}, source groups: {summary['groups']}"
    )

    counts_table = Table(title="Items by State")
    counts_table.add_column("State", style="cyan")
    counts_table.add_column("Count", justify="right")
    for state, count in sorted(summary["items_by_state"].items()):
        counts_table.add_row(state, str(count))
    console.print(counts_table)

    triggers_table = Table(title="Triggers")
    triggers_table.add_column("Hook", style="cyan")
    triggers_table.add_column("Argument", style="blue")
    triggers_table.add_column("Every")
    triggers_table.add_column("Next Run")
    triggers_table.add_column("Last Run")
    for trigger in summary["triggers"]:
        triggers_table.add_row(
            trigger["hook"],
            trigger["arg"] or "-",
            f"{trigger['interval_seconds']}s",
            trigger["next_run_at"],
            trigger["last_run_at"] or "Never",
        )
    console.print(triggers_table)


@cli.command()
@click.option('--limit', type=int, default=20, help='Number of items to show')
@click.pass_context
def items(ctx, limit):
    """Show the newest published items from displayed feeds."""
    orchestrator = _setup(ctx)
    visibility = VisibilityFilter(orchestrator.registry, orchestrator.group_repository)
    visible = visibility.visible_items(orchestrator.item_repository, limit=limit)

    if not visible:
        console.print("[yellow]⚠️ No published items[/yellow]")
        return

    items_table = Table(title="Syndicated Items")
    items_table.add_column("Published")
    items_table.add_column("Title", style="cyan")
    items_table.add_column("Permalink", style="blue")
    for item in visible:
        title = item.title[:50] + "..." if len(item.title) > 50 else item.title
        items_table.add_row(
            item.published_at.strftime("%Y-%m-%d %H:%M") if item.published_at else "-",
            title,
            item.source_permalink,
        )
    console.print(items_table)


@cli.command()
@click.pass_context
def run(ctx):
    """Run the poll service until interrupted."""
    orchestrator = _setup(ctx)
    service = PollService(orchestrator)
    console.print("[bold blue]🚀 Starting SyndiFeed poll service[/bold blue]")
    asyncio.run(service.run_service())


if __name__ == "__main__":
    try:
        cli()
    except KeyboardInterrupt:
        console.print("\n[yellow]👋 SyndiFeed interrupted by user[/yellow]")
        sys.exit(130)
