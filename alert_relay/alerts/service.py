"""Alert relay service: owns and wires the pipeline components.

Builds one CooldownStore for the process lifetime and hands it to the
listener and the janitor; nothing else touches cooldown state. Teardown
drops the store's contents since nothing is persisted.
"""

import asyncio
import time
from collections.abc import Callable

import structlog

from alert_relay.alerts.config import AlertConfig
from alert_relay.alerts.cooldown import CooldownStore
from alert_relay.alerts.dispatcher import NotificationDispatcher
from alert_relay.alerts.entitlements import (
    EntitlementResolver,
    EntitlementStore,
    PostgresEntitlementStore,
)
from alert_relay.alerts.janitor import CooldownJanitor
from alert_relay.alerts.listener import AlertListener
from alert_relay.alerts.providers import FirebasePushProvider, PushProvider
from alert_relay.config.settings import Settings, get_settings
from alert_relay.events.source import EventSource, RedisEventSource
from alert_relay.observability.metrics import MetricsCollector
from alert_relay.storage.database import Database

logger = structlog.get_logger(__name__)


class AlertRelayService:
    """
    Long-running alert relay.

    Usage:
        service = AlertRelayService.from_settings()
        await service.start()  # Runs until stop() or subscription loss
    """

    def __init__(
        self,
        source: EventSource,
        entitlement_store: EntitlementStore,
        provider: PushProvider,
        config: AlertConfig | None = None,
        clock: Callable[[], float] = time.monotonic,
        database: Database | None = None,
        metrics: MetricsCollector | None = None,
    ) -> None:
        self._config = config or AlertConfig()
        self._database = database
        self._stopped: asyncio.Event | None = None
        self._stopping = False

        self.store = CooldownStore(sweep_batch_size=self._config.sweep_batch_size)
        self.resolver = EntitlementResolver(
            entitlement_store, timeout=self._config.resolve_timeout_seconds,
        )
        self.dispatcher = NotificationDispatcher(
            provider, timeout=self._config.dispatch_timeout_seconds,
        )
        self.listener = AlertListener(
            source=source,
            store=self.store,
            resolver=self.resolver,
            dispatcher=self.dispatcher,
            config=self._config,
            clock=clock,
            metrics=metrics,
        )
        self.janitor = CooldownJanitor(
            store=self.store,
            window=self._config.cooldown_seconds,
            interval=self._config.sweep_interval_seconds,
            clock=clock,
            metrics=metrics,
        )

    @classmethod
    def from_settings(
        cls,
        settings: Settings | None = None,
        config: AlertConfig | None = None,
    ) -> "AlertRelayService":
        """Build the service with Redis, PostgreSQL and FCM collaborators."""
        settings = settings or get_settings()
        config = config or AlertConfig()
        database = Database(
            database_url=str(settings.database_url),
            min_size=settings.db_pool_min_size,
            max_size=settings.db_pool_max_size,
            command_timeout=settings.db_command_timeout,
        )
        return cls(
            source=RedisEventSource(redis_url=str(settings.redis_url)),
            entitlement_store=PostgresEntitlementStore(database),
            provider=FirebasePushProvider(
                credentials_path=settings.firebase_credentials_path,
                project_id=settings.firebase_project_id,
                android_channel_id=config.android_channel_id,
            ),
            config=config,
            database=database,
        )

    async def start(self) -> None:
        """Start the janitor, then run the listener until it returns."""
        logger.info(
            "Starting alert relay",
            cooldown_seconds=self._config.cooldown_seconds,
            sweep_interval_seconds=self._config.sweep_interval_seconds,
            pattern=self._config.subscription_pattern,
        )
        self._stopped = asyncio.Event()
        self._stopping = False
        try:
            if self._database is not None:
                await self._database.connect()
            await self.janitor.start()
            # stop() may have arrived before the listener was started
            if not self._stopping:
                await self.listener.start()
        finally:
            await self._shutdown()

    async def stop(self) -> None:
        """Stop consuming; returns once in-flight alerts are drained and teardown is done."""
        logger.info("Stopping alert relay")
        self._stopping = True
        await self.listener.stop()
        if self._stopped is not None:
            await self._stopped.wait()

    async def _shutdown(self) -> None:
        try:
            await self.janitor.stop()
            if self._database is not None:
                await self._database.close()
            self.store.clear()
            logger.info("Alert relay stopped")
        finally:
            self._stopped.set()
