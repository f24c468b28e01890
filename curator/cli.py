"""
Command-line interface for curator.

Usage:
    curator init-db            # Create tables
    curator curate USER_ID     # Run one curation for a user and save it
    curator schedule           # Run the daily scheduler until interrupted
    curator quota USER_ID      # Show today's social call usage
    curator parse-feed URL     # Fetch and print a feed
    curator health             # Check database connectivity
    curator cleanup --days 30  # Remove old content items
"""

import asyncio
import signal
import sys

import click

from curator.config.settings import get_settings
from curator.observability.logging import get_logger, setup_logging


@click.group()
@click.option("--debug", is_flag=True, help="Enable debug logging")
def main(debug: bool) -> None:
    """Curator - personalized football content curation."""
    setup_logging(level="DEBUG" if debug else None)


@main.command("init-db")
def init_db() -> None:
    """Initialize the database schema."""
    from curator.services.container import build_services
    from curator.storage.database import Database

    async def run():
        db = Database()
        await db.connect()

        try:
            services = build_services(db)
            await services.create_tables()
            click.echo("Database initialized successfully")
        finally:
            await db.close()

    asyncio.run(run())


@main.command()
@click.argument("user_id")
@click.option(
    "--priority",
    type=click.IntRange(1, 3),
    default=None,
    help="Only curate sources of this priority tier",
)
@click.option("--dry-run", is_flag=True, help="Curate without saving")
def curate(user_id: str, priority: int | None, dry_run: bool) -> None:
    """Run a curation for USER_ID and save new items."""
    from curator.ingestion.errors import CurationError
    from curator.services.container import build_services
    from curator.storage.database import Database

    async def run() -> int:
        db = Database()
        await db.connect()

        try:
            services = build_services(db)
            orchestrator = services.orchestrator

            if dry_run:
                result = await orchestrator.run(user_id, on_progress=click.echo, priority=priority)
                for item in result.items:
                    flag = "!" if item.is_breaking_news else " "
                    click.echo(f"  {flag} [{item.content_type}] {item.content_text[:100]}")
                return 0

            return await orchestrator.curate_and_save(
                user_id, on_progress=click.echo, priority=priority
            )
        finally:
            await db.close()

    try:
        saved = asyncio.run(run())
    except CurationError as e:
        click.echo(click.style(f"Error: {e}", fg="red"), err=True)
        sys.exit(1)
    except Exception as e:
        logger = get_logger(__name__)
        logger.error("Manual curation failed", user_id=user_id, error=str(e))
        click.echo(click.style(f"Error: {e}", fg="red"), err=True)
        sys.exit(1)

    if not dry_run:
        click.echo(f"Saved {saved} new items")


@main.command()
@click.argument("user_ids", nargs=-1)
@click.option("--all-users", is_flag=True, help="Schedule every user with active sources")
@click.option("--metrics/--no-metrics", default=None, help="Enable metrics server")
def schedule(user_ids: tuple[str, ...], all_users: bool, metrics: bool | None) -> None:
    """Run the daily tiered scheduler until interrupted."""
    from curator.observability.metrics import CurationMetrics
    from curator.services.container import build_services
    from curator.storage.database import Database

    settings = get_settings()
    metrics_enabled = settings.metrics_enabled if metrics is None else metrics

    async def run():
        db = Database()
        await db.connect()

        try:
            collector = CurationMetrics() if metrics_enabled else None
            if collector:
                collector.start_server()

            services = build_services(db, metrics=collector)
            scheduler = services.scheduler

            targets = list(user_ids)
            if all_users:
                targets.extend(await services.sources.get_users_with_active_sources())
            if not targets:
                click.echo("No users to schedule (pass USER_IDS or --all-users)")
                return

            for user_id in dict.fromkeys(targets):
                for job in scheduler.schedule_user(user_id):
                    click.echo(
                        f"  {user_id}: priority {job.priority} at "
                        f"{job.scheduled_for:%Y-%m-%d %H:%M %Z}"
                    )

            stop_event = asyncio.Event()
            loop = asyncio.get_running_loop()
            for sig in (signal.SIGTERM, signal.SIGINT):
                loop.add_signal_handler(sig, stop_event.set)

            scheduler.start()
            click.echo("Scheduler running, press Ctrl+C to stop")
            await stop_event.wait()
            await scheduler.stop()
        finally:
            await db.close()

    asyncio.run(run())


@main.command()
@click.argument("user_id")
def quota(user_id: str) -> None:
    """Show today's social call usage for USER_ID."""
    from curator.services.container import build_services
    from curator.storage.database import Database

    async def run():
        db = Database()
        await db.connect()

        try:
            services = build_services(db)
            stats = await services.scheduler.get_user_stats(user_id)
            check = await services.orchestrator.can_curate(user_id)
            remaining = await services.orchestrator.remaining_calls(user_id)
        finally:
            await db.close()

        click.echo(f"\nQuota for {user_id}:")
        click.echo("-" * 40)
        click.echo(f"  Calls used today: {stats.calls_used_today}/{stats.daily_limit}")
        click.echo(f"  Social calls remaining: {remaining['twitter']}")
        click.echo(f"  Feed calls remaining: {remaining['rss']}")
        if check.allowed:
            click.echo(click.style("  Can curate: yes", fg="green"))
        else:
            click.echo(click.style(f"  Can curate: no ({check.reason})", fg="red"))
        click.echo("-" * 40)

    asyncio.run(run())


@main.command("parse-feed")
@click.argument("url")
@click.option("--limit", default=10, help="Maximum items to print")
def parse_feed_command(url: str, limit: int) -> None:
    """Fetch and parse the RSS or Atom feed at URL."""
    from curator.ingestion.errors import CurationError
    from curator.ingestion.feed_client import FeedClient

    async def run():
        async with FeedClient() as client:
            return await client.fetch_feed(url)

    try:
        feed = asyncio.run(run())
    except CurationError as e:
        click.echo(click.style(f"Error: {e}", fg="red"), err=True)
        sys.exit(1)

    click.echo(f"\n{feed.title} ({feed.dialect}, {len(feed.items)} items)")
    click.echo("-" * 60)
    for item in feed.items[:limit]:
        click.echo(f"- {item.title}")
        if item.published:
            click.echo(f"    {item.published}")
        if item.link:
            click.echo(f"    {item.link}")


@main.command()
def health() -> None:
    """Check database connectivity and API configuration."""
    logger = get_logger(__name__)

    async def check():
        results: dict[str, bool] = {}

        try:
            from curator.storage.database import Database
            db = Database()
            await db.connect()
            results["postgres"] = await db.health_check()
            await db.close()
        except Exception as e:
            results["postgres"] = False
            logger.error("Postgres health check failed", error=str(e))

        results["twitter_configured"] = get_settings().twitter_configured

        click.echo("\nHealth Check Results:")
        click.echo("-" * 40)
        for name, status in results.items():
            icon = "✓" if status else "✗"
            color = "green" if status else "red"
            click.echo(click.style(f"  {icon} {name}: {status}", fg=color))
        click.echo("-" * 40)

        sys.exit(0 if results["postgres"] else 1)

    asyncio.run(check())


@main.command()
@click.option("--days", default=30, help="Days of content to keep")
def cleanup(days: int) -> None:
    """Remove content items posted more than --days ago."""
    from curator.storage.database import Database
    from curator.storage.repository import ContentRepository

    async def run():
        db = Database()
        await db.connect()

        try:
            deleted = await ContentRepository(db).delete_older_than(days)
            click.echo(f"\nDeleted {deleted} content items older than {days} days")
        finally:
            await db.close()

    asyncio.run(run())


if __name__ == "__main__":
    main()
