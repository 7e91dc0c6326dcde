"""
Command-line interface for the alert relay.

Usage:
    alert-relay listen            # Run the relay until SIGTERM/SIGINT
    alert-relay health            # Check Redis, PostgreSQL and FCM config
    alert-relay publish-warning dev1 --category GAS   # Send a test warning
"""

import asyncio
import json
import signal
import sys

import click

from alert_relay.config.settings import get_settings
from alert_relay.observability.logging import setup_logging
from alert_relay.observability.metrics import get_metrics


@click.group()
@click.option("--debug", is_flag=True, help="Enable debug logging")
def main(debug: bool) -> None:
    """Alert Relay - deduplicated push notifications for device warnings."""
    setup_logging(level="DEBUG" if debug else None)


@main.command()
@click.option("--metrics/--no-metrics", default=True, help="Enable metrics server")
@click.option("--metrics-port", default=None, type=int, help="Metrics server port")
def listen(metrics: bool, metrics_port: int | None) -> None:
    """Run the alert relay."""
    from alert_relay.alerts.service import AlertRelayService

    async def run():
        service = AlertRelayService.from_settings()

        if metrics:
            get_metrics().start_server(port=metrics_port)

        # Handle shutdown signals
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGTERM, signal.SIGINT):
            loop.add_signal_handler(sig, lambda: asyncio.create_task(service.stop()))

        await service.start()

    asyncio.run(run())


@main.command()
def health() -> None:
    """Check health of all dependencies."""
    import structlog
    logger = structlog.get_logger()

    async def check():
        results: dict[str, bool] = {}
        settings = get_settings()

        # Check Redis
        try:
            from alert_relay.events.source import RedisEventSource
            source = RedisEventSource(redis_url=str(settings.redis_url))
            await source.connect()
            results["redis"] = await source.health_check()
            await source.close()
        except Exception as e:
            results["redis"] = False
            logger.error("Redis health check failed", error=str(e))

        # Check PostgreSQL
        try:
            from alert_relay.storage.database import Database
            db = Database()
            await db.connect()
            results["postgres"] = await db.health_check()
            await db.close()
        except Exception as e:
            results["postgres"] = False
            logger.error("Postgres health check failed", error=str(e))

        results["firebase_configured"] = settings.firebase_configured

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


@main.command("publish-warning")
@click.argument("device_id")
@click.option("--category", default="GAS", help="Alert category (FIRE, GAS, INTRUSION, ...)")
@click.option("--severity", default="high", help="Severity passed through to the app")
@click.option("--message", default=None, help="Notification body")
def publish_warning(device_id: str, category: str, severity: str, message: str | None) -> None:
    """Publish a test warning for DEVICE_ID onto its warning channel."""
    from alert_relay.alerts.config import AlertConfig
    from alert_relay.events.source import RedisEventSource

    topic = f"{AlertConfig().topic_prefix}/{device_id}/warning"
    payload: dict[str, str] = {"alertCategory": category, "severity": severity}
    if message:
        payload["message"] = message

    async def run() -> int:
        source = RedisEventSource(redis_url=str(get_settings().redis_url))
        await source.connect()
        try:
            return await source.publish(topic, json.dumps(payload))
        finally:
            await source.close()

    receivers = asyncio.run(run())
    click.echo(f"Published to {topic} ({receivers} subscriber(s))")


if __name__ == "__main__":
    main()
