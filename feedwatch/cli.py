"""
Command-line interface for feedwatch.

Usage:
    feedwatch run                        # Run all platform schedulers
    feedwatch run --platform live-stream # Run one platform
    feedwatch sweep --platform video-feed
    feedwatch init-db                    # Create the PostgreSQL schema
    feedwatch cleanup --days 30          # Drop old delivery outcomes
    feedwatch health                     # Check configuration and store
    feedwatch render "{title} {link}" -v title=Hi -v link=https://x
"""

import asyncio
import signal
import sys
from datetime import datetime, timedelta, timezone

import click
import structlog

from feedwatch.config.settings import get_settings
from feedwatch.observability.logging import setup_logging
from feedwatch.observability.metrics import get_metrics
from feedwatch.upstream.schemas import Platform

PLATFORM_CHOICE = click.Choice([p.value for p in Platform])


@click.group()
@click.option("--debug", is_flag=True, help="Enable debug logging")
def main(debug: bool) -> None:
    """feedwatch - new-content detection and webhook dispatch."""
    if debug:
        import os
        os.environ["LOG_LEVEL"] = "DEBUG"
        get_settings.cache_clear()

    setup_logging()


@main.command()
@click.option(
    "--platform", "platforms", multiple=True, type=PLATFORM_CHOICE,
    help="Platform to poll (can repeat; default all)",
)
@click.option("--metrics/--no-metrics", default=True, help="Enable metrics server")
def run(platforms: tuple[str, ...], metrics: bool) -> None:
    """Run the poll schedulers until SIGINT/SIGTERM."""
    from feedwatch.services.watch_service import WatchService
    from feedwatch.storage.factory import create_store

    logger = structlog.get_logger("feedwatch.cli")

    async def run_service():
        store = await create_store()
        service = WatchService(store, platforms=[Platform(p) for p in platforms] or None)

        if metrics:
            get_metrics().start_server()

        stop_requested = asyncio.Event()
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGTERM, signal.SIGINT):
            loop.add_signal_handler(sig, stop_requested.set)

        try:
            await service.start()
            await stop_requested.wait()
            logger.info("Shutdown requested")
        finally:
            await service.stop()
            await store.close()

    asyncio.run(run_service())


@main.command()
@click.option("--platform", required=True, type=PLATFORM_CHOICE, help="Platform to sweep")
def sweep(platform: str) -> None:
    """Run a single sweep immediately and print its summary."""
    from feedwatch.services.watch_service import WatchService
    from feedwatch.storage.factory import create_store

    async def run_sweep():
        store = await create_store()
        service = WatchService(store, platforms=[Platform(platform)])
        try:
            return await service.run_once(Platform(platform))
        finally:
            await service.close()
            await store.close()

    summary = asyncio.run(run_sweep())

    click.echo(f"\nSweep {summary.sweep_id} ({summary.platform}): {summary.outcome}")
    click.echo("-" * 40)
    for key in ("targets", "denied", "notified", "filtered", "unchanged", "absent", "errors", "skipped"):
        click.echo(f"  {key:<10} {getattr(summary, key)}")
    click.echo(f"  {'elapsed':<10} {summary.elapsed_seconds}s")

    if summary.outcome not in ("completed", "unconfigured"):
        sys.exit(1)


@main.command("init-db")
def init_db() -> None:
    """Initialize the database schema."""
    from feedwatch.storage.database import Database
    from feedwatch.storage.repository import PostgresStore

    async def run_init():
        db = Database()
        await db.connect()
        try:
            await PostgresStore(db).create_tables()
        finally:
            await db.close()

    asyncio.run(run_init())
    click.echo("Database initialized successfully")


@main.command()
@click.option("--days", default=None, type=int, help="Days of delivery outcomes to keep")
def cleanup(days: int | None) -> None:
    """Delete delivery outcomes older than the retention window."""
    from feedwatch.storage.factory import create_store

    days = days or get_settings().outcome_retention_days
    cutoff = datetime.now(timezone.utc) - timedelta(days=days)

    async def run_cleanup():
        store = await create_store()
        try:
            return await store.delete_outcomes_before(cutoff)
        finally:
            await store.close()

    deleted = asyncio.run(run_cleanup())
    click.echo(f"\nDeleted {deleted} delivery outcomes older than {days} days")
    click.echo(f"Cutoff: {cutoff.isoformat()}")


@main.command()
def health() -> None:
    """Check platform configuration and store health."""
    from feedwatch.storage.factory import create_store

    logger = structlog.get_logger("feedwatch.cli")
    settings = get_settings()

    async def check():
        try:
            store = await create_store()
        except Exception as e:
            logger.error("Store unavailable", backend=settings.store_backend, error=str(e))
            return False
        try:
            return await store.health_check()
        finally:
            await store.close()

    store_healthy = asyncio.run(check())
    results = {
        f"store ({settings.store_backend})": store_healthy,
        "video-feed configured": settings.youtube_configured,
        "live-stream configured": settings.twitch_configured,
    }

    click.echo("\nHealth Check Results:")
    click.echo("-" * 40)
    for name, status in results.items():
        icon = "✓" if status else "✗"
        color = "green" if status else "red"
        click.echo(click.style(f"  {icon} {name}: {status}", fg=color))
    click.echo("-" * 40)

    if store_healthy:
        click.echo(click.style("Store healthy", fg="green"))
    else:
        click.echo(click.style("Store unhealthy!", fg="red"))
        sys.exit(1)


@main.command()
@click.argument("template")
@click.option("-v", "--var", "variables", multiple=True, help="Variable as key=value (can repeat)")
def render(template: str, variables: tuple[str, ...]) -> None:
    """Preview a message template with the given variables."""
    from feedwatch.notifications.templates import render as render_template

    values: dict[str, str] = {}
    for entry in variables:
        key, sep, value = entry.partition("=")
        if not sep or not key:
            raise click.BadParameter(f"expected key=value, got {entry!r}", param_hint="--var")
        values[key] = value

    click.echo(render_template(template, values))


if __name__ == "__main__":
    main()
