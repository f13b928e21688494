"""
Command-line interface for dropfeed.

Provides commands to run the API, the ingest worker and the scheduler,
initialize the database, and run one-shot maintenance passes.

Usage:
    dropfeed serve              # Run the API server
    dropfeed worker             # Run the ingest worker
    dropfeed scheduler          # Run the source scheduler
    dropfeed run-once           # One scheduler tick + drain the queue
    dropfeed init-db            # Initialize database
    dropfeed health             # Check service health
"""

import asyncio
import json
import signal
import sys

import click

from dropfeed.config.settings import get_settings
from dropfeed.observability.logging import setup_logging
from dropfeed.observability.metrics import get_metrics


@click.group()
@click.option("--debug", is_flag=True, help="Enable debug logging")
def main(debug: bool) -> None:
    """dropfeed - content ingestion and personalized feed ranking."""
    setup_logging(level="DEBUG" if debug else None)

    settings = get_settings()
    if settings.tracing_enabled:
        from dropfeed.observability.tracing import setup_tracing

        setup_tracing(
            service_name=settings.otel_service_name,
            otlp_endpoint=settings.otel_exporter_otlp_endpoint,
        )


def _install_signal_handlers(stop) -> None:
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(sig, lambda: asyncio.create_task(stop()))


@main.command("init-db")
@click.option("--seed/--no-seed", default=True, help="Seed sources when the table is empty")
def init_db(seed: bool) -> None:
    """Initialize the database schema."""
    from dropfeed.sources.service import SourcesService
    from dropfeed.storage.database import Database
    from dropfeed.storage.schema import create_tables

    async def run():
        db = Database()
        await db.connect()
        try:
            tables = await create_tables(db)
            click.echo(f"Database initialized ({len(tables)} tables)")

            if seed:
                service = SourcesService(db)
                if await service.repository.count() == 0:
                    count = await service.seed_from_json()
                    click.echo(f"Seeded {count} sources")
                else:
                    click.echo("Sources already present, skipping seed")
        finally:
            await db.close()

    asyncio.run(run())


@main.command()
@click.option("--host", default=None, help="API server host")
@click.option("--port", default=None, type=int, help="API server port")
@click.option("--reload", is_flag=True, help="Enable auto-reload (dev only)")
@click.option("--metrics-port", default=None, type=int, help="Metrics server port")
def serve(host: str | None, port: int | None, reload: bool, metrics_port: int | None) -> None:
    """Start the API server."""
    import uvicorn

    settings = get_settings()
    host = host or settings.api_host
    port = port or settings.api_port
    metrics_port = metrics_port or settings.metrics_port

    get_metrics().start_server(port=metrics_port)

    click.echo(f"Starting API server on {host}:{port}")
    click.echo(f"Metrics available on http://localhost:{metrics_port}/metrics")
    click.echo(f"API docs available on http://localhost:{port}/docs")

    uvicorn.run(
        "dropfeed.api.app:create_app",
        factory=True,
        host=host,
        port=port,
        reload=reload,
        log_level="info",
    )


@main.command()
@click.option("--metrics/--no-metrics", default=True, help="Enable metrics server")
@click.option("--metrics-port", default=None, type=int, help="Metrics server port")
def worker(metrics: bool, metrics_port: int | None) -> None:
    """Run the ingest worker until interrupted."""
    from dropfeed.workers.ingest_worker import IngestWorker

    async def run():
        service = IngestWorker()

        if metrics:
            get_metrics().start_server(port=metrics_port)

        _install_signal_handlers(service.stop)
        await service.start()

    asyncio.run(run())


@main.command()
@click.option("--metrics/--no-metrics", default=True, help="Enable metrics server")
@click.option("--metrics-port", default=None, type=int, help="Metrics server port")
def scheduler(metrics: bool, metrics_port: int | None) -> None:
    """Run the source scheduler until interrupted."""
    from dropfeed.scheduler.service import SourceScheduler

    async def run():
        service = SourceScheduler()

        if metrics:
            get_metrics().start_server(port=metrics_port)

        _install_signal_handlers(service.stop)
        await service.start()

    asyncio.run(run())


@main.command("run-once")
@click.option(
    "--source-id",
    "source_ids",
    multiple=True,
    type=int,
    help="Run these sources instead of the due ones (repeatable)",
)
@click.option("--max-batches", default=20, show_default=True, help="Worker batches to drain")
def run_once(source_ids: tuple[int, ...], max_batches: int) -> None:
    """Run one scheduler pass, then drain the queue with the worker.

    Without --source-id the scheduler runs every due source; with it,
    the named sources run immediately regardless of cadence.
    """
    from dropfeed.scheduler.service import SourceScheduler
    from dropfeed.storage.database import Database
    from dropfeed.workers.ingest_worker import IngestWorker

    async def run():
        db = Database()
        await db.connect()
        try:
            sched = SourceScheduler(database=db)
            if source_ids:
                outcomes = await sched.run_now(list(source_ids), wait=True)
            else:
                outcomes = await sched.tick()

            click.echo("\nSources:")
            if not outcomes:
                click.echo("  No sources due")
            for outcome in outcomes:
                line = f"  {outcome.source_id}: {outcome.status} ({outcome.items_ingested} ingested)"
                if outcome.error:
                    line += f" - {outcome.error}"
                click.echo(line)

            ingest = IngestWorker(database=db)
            batches = 0
            claimed = 0
            while batches < max_batches:
                count = await ingest.run_once()
                if count == 0:
                    break
                claimed += count
                batches += 1

            click.echo(f"\nQueue items processed: {claimed} in {batches} batch(es)")
        finally:
            await db.close()

    asyncio.run(run())


@main.command()
def sweep() -> None:
    """Release stale claims and requeue retry-eligible errors."""
    from dropfeed.queue.maintenance import QueueMaintenance
    from dropfeed.queue.repository import IngestionQueueRepository
    from dropfeed.storage.database import Database

    async def run():
        db = Database()
        await db.connect()
        try:
            maintenance = QueueMaintenance(IngestionQueueRepository(db))
            released = await maintenance.release_stale_claims()
            requeued = await maintenance.sweep()
            click.echo(f"Released stale claims: {len(released)}")
            click.echo(f"Requeued errors:       {len(requeued)}")
        finally:
            await db.close()

    asyncio.run(run())


@main.command("clear-errors")
@click.option("--force", is_flag=True, help="Clear every examined error row")
@click.option("--limit", default=1000, show_default=True, help="Error rows to examine")
@click.option("--dry-run", is_flag=True, help="Show what would be cleared")
def clear_errors(force: bool, limit: int, dry_run: bool) -> None:
    """Move unrecoverable error rows to failed."""
    from collections import Counter

    from dropfeed.queue.maintenance import QueueMaintenance
    from dropfeed.queue.repository import IngestionQueueRepository
    from dropfeed.storage.database import Database

    async def run():
        db = Database()
        await db.connect()
        try:
            repo = IngestionQueueRepository(db)
            maintenance = QueueMaintenance(repo)

            if dry_run:
                items = await repo.list_errors(limit=limit)
                reasons: Counter[str] = Counter()
                for item in items:
                    reason = maintenance.classify(item) or ("forced" if force else None)
                    if reason is not None:
                        reasons[reason] += 1
                click.echo(f"[DRY RUN] Examined {len(items)} error rows")
                click.echo(f"Would clear: {sum(reasons.values())}")
                for reason, count in sorted(reasons.items()):
                    click.echo(f"  {reason}: {count}")
                return

            result = await maintenance.clear_errors(force=force, limit=limit)
            click.echo(f"Examined: {result.examined}")
            click.echo(f"Cleared:  {result.cleared}")
            click.echo(f"Kept:     {result.kept}")
            for reason, count in sorted(result.reasons.items()):
                click.echo(f"  {reason}: {count}")
        finally:
            await db.close()

    asyncio.run(run())


def _echo_pass(title: str, result) -> None:
    click.echo(f"\n{title}")
    click.echo("-" * 40)
    click.echo(f"  Examined: {result.examined}")
    click.echo(f"  Updated:  {result.updated}")
    click.echo(f"  Skipped:  {result.skipped}")
    click.echo(f"  Failed:   {result.failed}")
    if result.stopped_early:
        click.echo(click.style("  Stopped early after repeated failures", fg="yellow"))


@main.command("reprocess-youtube")
@click.option("--limit", default=50, show_default=True, help="Video drops to examine")
def reprocess_youtube(limit: int) -> None:
    """Re-enrich video drops with placeholder metadata."""
    from dropfeed.drops.repository import DropRepository
    from dropfeed.storage.database import Database
    from dropfeed.workers.reprocess import YouTubeReprocessor

    async def run():
        db = Database()
        await db.connect()
        try:
            result = await YouTubeReprocessor(DropRepository(db)).run(limit=limit)
            _echo_pass("YouTube reprocess", result)
        finally:
            await db.close()

    asyncio.run(run())


@main.command()
@click.option("--limit", default=25, show_default=True, help="Untagged drops to examine")
def retag(limit: int) -> None:
    """Tag drops that were stored without tags."""
    from dropfeed.drops.repository import DropRepository
    from dropfeed.storage.database import Database
    from dropfeed.tagging.client import TaggingService
    from dropfeed.tagging.repository import TaggingParamsRepository, TopicRepository
    from dropfeed.workers.reprocess import RetagWorker

    async def run():
        db = Database()
        await db.connect()
        try:
            tagging = TaggingService(TaggingParamsRepository(db), TopicRepository(db))
            result = await RetagWorker(DropRepository(db), tagging).run_once(limit=limit)
            _echo_pass("Retag", result)
        finally:
            await db.close()

    asyncio.run(run())


@main.command()
@click.option("--json", "as_json", is_flag=True, help="Print the raw snapshot")
def status(as_json: bool) -> None:
    """Show pipeline status, coverage and alerts."""
    from dropfeed.status.service import StatusService
    from dropfeed.storage.database import Database

    async def run():
        db = Database()
        await db.connect()
        try:
            snapshot = await StatusService(db).snapshot()
        finally:
            await db.close()

        if as_json:
            click.echo(json.dumps(snapshot.to_dict(), indent=2, default=str))
            return

        color = {"healthy": "green", "warning": "yellow", "critical": "red"}[snapshot.overall]
        click.echo(click.style(f"\nOverall: {snapshot.overall}", fg=color))
        click.echo("-" * 40)

        queue = snapshot.queue
        click.echo("Queue:")
        for name, count in sorted(queue.get("counts", {}).items()):
            click.echo(f"  {name}: {count}")
        if queue.get("oldest_pending_age_seconds") is not None:
            click.echo(f"  oldest pending: {queue['oldest_pending_age_seconds']}s")

        coverage = snapshot.coverage
        click.echo(
            f"Coverage: {coverage.get('tagged', 0)}/{coverage.get('total', 0)} drops tagged"
        )

        click.echo("Sources:")
        for name, count in sorted(snapshot.source_counts.items()):
            click.echo(f"  {name}: {count}")
        stale = [e.source_id for e in snapshot.sources.values() if e.stale]
        if stale:
            click.echo(click.style(f"  stale runs: {stale}", fg="yellow"))

        if snapshot.alerts:
            click.echo("Alerts:")
            for alert in snapshot.alerts:
                fg = "red" if alert.severity == "critical" else "yellow"
                click.echo(click.style(f"  [{alert.severity}] {alert.message}", fg=fg))
        for rec in snapshot.recommendations:
            click.echo(f"  -> {rec}")

    asyncio.run(run())


@main.command()
def health() -> None:
    """Check health of all dependencies."""
    import redis.asyncio as redis
    import structlog

    from dropfeed.storage.database import Database

    logger = structlog.get_logger()

    async def check():
        results: dict[str, bool] = {}

        # Check PostgreSQL
        try:
            db = Database()
            await db.connect()
            results["postgres"] = await db.health_check()
            await db.close()
        except Exception as e:
            results["postgres"] = False
            logger.error("Postgres health check failed", error=str(e))

        # Check Redis
        client = redis.from_url(str(get_settings().redis_url))
        try:
            results["redis"] = bool(await client.ping())
        except (redis.RedisError, OSError) as e:
            results["redis"] = False
            logger.error("Redis health check failed", error=str(e))
        finally:
            await client.close()

        click.echo("\nHealth Check Results:")
        click.echo("-" * 40)

        all_healthy = True
        for name, ok in results.items():
            icon = "✓" if ok else "✗"
            color = "green" if ok else "red"
            click.echo(click.style(f"  {icon} {name}: {ok}", fg=color))
            if not ok:
                all_healthy = False

        click.echo("-" * 40)

        if all_healthy:
            click.echo(click.style("All core services healthy!", fg="green"))
            sys.exit(0)
        else:
            click.echo(click.style("Some services unhealthy!", fg="red"))
            sys.exit(1)

    asyncio.run(check())


if __name__ == "__main__":
    main()
