"""CLI commands for the analytics service."""

import asyncio
import json
import logging
import sys

import click

from interaction_analytics.config import get_settings
from interaction_analytics.logging_config import configure_logging
from interaction_analytics.utils import HOUR_MS, now_ms

logger = logging.getLogger(__name__)


@click.group()
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose output")
def cli(verbose: bool) -> None:
    """Interaction Analytics CLI."""
    configure_logging("DEBUG" if verbose else get_settings().LOG_LEVEL)


@cli.command("init-db")
def init_db_command() -> None:
    """Create database tables."""
    asyncio.run(_init_db())


async def _init_db() -> None:
    """Async implementation of init-db command."""
    from interaction_analytics.db import create_engine, init_db_with_retry

    settings = get_settings()
    engine = create_engine(settings.DATABASE_URL)
    try:
        await init_db_with_retry(engine, attempts=settings.DB_CONNECT_ATTEMPTS)
    finally:
        await engine.dispose()
    click.echo("Database initialized")


@cli.command()
@click.option("--host", default="0.0.0.0", show_default=True, help="Bind address")
@click.option("--port", "-p", default=8000, show_default=True, help="Bind port")
@click.option("--reload", is_flag=True, help="Reload on code changes (development)")
def serve(host: str, port: int, reload: bool) -> None:
    """Run the HTTP API with the evaluation scheduler."""
    import uvicorn

    uvicorn.run(
        "interaction_analytics.main:create_app",
        factory=True,
        host=host,
        port=port,
        reload=reload,
        log_config=None,
    )


@cli.command()
@click.option("--batches", "-n", default=1, show_default=True, help="Number of batches to run")
def evaluate(batches: int) -> None:
    """Run the batch classifier over queued queries."""
    asyncio.run(_evaluate(batches))


async def _evaluate(batches: int) -> None:
    """Async implementation of evaluate command."""
    from interaction_analytics.db import init_db_with_retry
    from interaction_analytics.services import Services

    settings = get_settings()
    services = Services.from_settings(settings)
    try:
        await init_db_with_retry(services.engine, attempts=settings.DB_CONNECT_ATTEMPTS)
        for _ in range(batches):
            report = await services.classifier.run_batch()
            click.echo(json.dumps(report.to_dict()))
            if report.listed == 0:
                break
    except Exception as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)
    finally:
        await services.close()


@cli.command("enqueue-pending")
@click.option("--hours", default=24, show_default=True, help="Look back this many hours")
@click.option("--limit", "-l", default=500, show_default=True, help="Max queries to enqueue")
def enqueue_pending(hours: int, limit: int) -> None:
    """Queue recent queries that have no evaluation yet."""
    asyncio.run(_enqueue_pending(hours, limit))


async def _enqueue_pending(hours: int, limit: int) -> None:
    """Async implementation of enqueue-pending command."""
    from interaction_analytics.services import Services
    from interaction_analytics.store import query_event_from_row

    settings = get_settings()
    services = Services.from_settings(settings)
    try:
        since = now_ms() - hours * HOUR_MS
        rows = await services.store.list_unevaluated_queries(since, limit=limit)
        for row in rows:
            event = query_event_from_row(row)
            await services.queue.put(event.id, event.to_wire())
        click.echo(f"Enqueued {len(rows)} queries for evaluation")
    except Exception as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)
    finally:
        await services.close()


if __name__ == "__main__":
    cli()
