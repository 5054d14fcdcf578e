"""
Command-line interface for aquaguard.

Provides commands to run the ingestion worker and digest scheduler,
sweep offline devices, initialize the database, and run diagnostic checks.

Usage:
    aquaguard ingest          # Run the ingestion worker
    aquaguard digests         # Run the digest scheduler
    aquaguard digests --once  # Run one digest cycle
    aquaguard check-offline   # Mark silent devices offline
    aquaguard publish ID JSON # Publish a sensor message
    aquaguard init-db         # Initialize database
    aquaguard serve           # Start the API server
    aquaguard health          # Check service health
"""

import asyncio
import json
import signal
import sys

import click

from aquaguard.config.settings import get_settings
from aquaguard.observability.logging import setup_logging
from aquaguard.observability.metrics import get_metrics


@click.group()
@click.option("--debug", is_flag=True, help="Enable debug logging")
def main(debug: bool) -> None:
    """AquaGuard - water-quality telemetry alerting."""
    setup_logging("DEBUG" if debug else None)


@main.command()
@click.option("--batch-size", default=None, type=int, help="Messages to process per batch")
@click.option("--metrics/--no-metrics", default=True, help="Enable metrics server")
@click.option("--metrics-port", default=None, type=int, help="Metrics server port")
def ingest(batch_size: int | None, metrics: bool, metrics_port: int | None) -> None:
    """Run the ingestion worker."""
    from aquaguard.ingestion.worker import IngestionWorker

    async def run():
        worker = IngestionWorker(batch_size=batch_size)

        if metrics:
            get_metrics().start_server(port=metrics_port)

        loop = asyncio.get_running_loop()
        for sig in (signal.SIGTERM, signal.SIGINT):
            loop.add_signal_handler(sig, lambda: asyncio.create_task(worker.stop()))

        await worker.start()

    asyncio.run(run())


@main.command()
@click.option("--once", is_flag=True, help="Run a single cycle and exit")
@click.option("--metrics/--no-metrics", default=True, help="Enable metrics server")
@click.option("--metrics-port", default=8001, help="Metrics server port")
def digests(once: bool, metrics: bool, metrics_port: int) -> None:
    """Run the digest scheduler."""
    from aquaguard.digests.config import DigestConfig
    from aquaguard.digests.repository import DigestRepository
    from aquaguard.digests.scheduler import DigestScheduler
    from aquaguard.notifications.senders import create_sender
    from aquaguard.storage.database import Database

    config = DigestConfig()
    if not config.enabled:
        click.echo("Digests are disabled (DIGESTS_ENABLED=false)")
        return

    async def run():
        db = Database()
        await db.connect()
        scheduler = DigestScheduler(
            DigestRepository(db),
            create_sender(),
            base_url=get_settings().public_base_url,
            config=config,
        )

        try:
            if once:
                result = await scheduler.run_cycle()
                click.echo(
                    f"Digest cycle: examined={result.examined} "
                    f"sent={result.sent} failed={result.failed}"
                )
                return

            if metrics:
                get_metrics().start_server(port=metrics_port)

            loop = asyncio.get_running_loop()
            for sig in (signal.SIGTERM, signal.SIGINT):
                loop.add_signal_handler(sig, lambda: asyncio.create_task(scheduler.stop()))

            await scheduler.run_forever()
        finally:
            await db.close()

    asyncio.run(run())


@main.command("check-offline")
@click.option("--loop", "run_loop", is_flag=True, help="Repeat on the configured interval")
def check_offline(run_loop: bool) -> None:
    """Mark devices offline that have not reported recently."""
    from aquaguard.devices.presence import check_offline_devices
    from aquaguard.devices.repository import DeviceRepository
    from aquaguard.ingestion.config import IngestionConfig
    from aquaguard.storage.database import Database

    interval = IngestionConfig().offline_check_interval_minutes

    async def run():
        db = Database()
        await db.connect()
        repository = DeviceRepository(db)
        try:
            while True:
                device_ids = await check_offline_devices(repository, interval)
                click.echo(f"Marked {len(device_ids)} device(s) offline")
                if not run_loop:
                    break
                await asyncio.sleep(interval * 60)
        finally:
            await db.close()

    asyncio.run(run())


@main.command()
@click.argument("device_id")
@click.argument("payload")
def publish(device_id: str, payload: str) -> None:
    """Publish a sensor message (JSON reading or {"readings": [...]})."""
    from aquaguard.ingestion.queue import SensorReadingQueue

    try:
        data = json.loads(payload)
    except json.JSONDecodeError as e:
        raise click.BadParameter(f"not valid JSON: {e}", param_hint="PAYLOAD")

    async def run():
        async with SensorReadingQueue() as queue:
            message_id = await queue.publish(device_id, data)
        click.echo(f"Published {message_id}")

    asyncio.run(run())


@main.command("init-db")
def init_db() -> None:
    """Initialize the database schema."""
    from aquaguard.storage.database import Database
    from aquaguard.storage.schema import create_tables

    async def run():
        db = Database()
        await db.connect()
        try:
            await create_tables(db)
            click.echo("Database initialized successfully")
        finally:
            await db.close()

    asyncio.run(run())


@main.command()
def health() -> None:
    """Check health of all dependencies."""
    import structlog

    logger = structlog.get_logger()

    async def check():
        results: dict[str, bool] = {}

        try:
            from aquaguard.ingestion.queue import SensorReadingQueue

            queue = SensorReadingQueue()
            await queue.connect()
            results["redis"] = await queue.health_check()
            await queue.close()
        except Exception as e:
            results["redis"] = False
            logger.error("Redis health check failed", error=str(e))

        try:
            from aquaguard.storage.database import Database

            db = Database()
            await db.connect()
            results["postgres"] = await db.health_check()
            await db.close()
        except Exception as e:
            results["postgres"] = False
            logger.error("Postgres health check failed", error=str(e))

        results["mail_configured"] = get_settings().mail_configured

        click.echo("\nHealth Check Results:")
        click.echo("-" * 40)

        all_healthy = True
        for name, status in results.items():
            icon = "✓" if status else "✗"
            color = "green" if status else "red"
            click.echo(click.style(f"  {icon} {name}: {status}", fg=color))
            if name in ("redis", "postgres") and not status:
                all_healthy = False

        click.echo("-" * 40)

        if all_healthy:
            click.echo(click.style("All core services healthy!", fg="green"))
            sys.exit(0)
        else:
            click.echo(click.style("Some services unhealthy!", fg="red"))
            sys.exit(1)

    asyncio.run(check())


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
        "aquaguard.api.app:create_app",
        factory=True,
        host=host,
        port=port,
        reload=reload,
        log_level="info",
    )


if __name__ == "__main__":
    main()
