"""Alert ingestion listener: drives each warning through the pipeline.

Per message: parse → device id → cooldown check-and-reserve → resolve
recipients → multicast dispatch. Every per-event failure is logged and
contained; only losing the subscription for good stops the listener.

The cooldown slot is reserved before any I/O and is never given back:
a resolution failure, an empty recipient list or a failed dispatch all
still consume the window for that (device, category) lane.

Each inbound message gets its own task, bounded by a semaphore so that a
burst cannot fan out without limit. However consumption ends, ``start()``
drains in-flight tasks and closes the event source before it returns;
``stop()`` only signals it and waits for that to finish.
"""

import asyncio
import enum
import time
from collections.abc import Callable

import structlog

from alert_relay.alerts.config import AlertConfig
from alert_relay.alerts.cooldown import CooldownStore
from alert_relay.alerts.dispatcher import NotificationDispatcher
from alert_relay.alerts.entitlements import EntitlementResolver
from alert_relay.alerts.schemas import AlertEvent, NotificationContent, parse_warning
from alert_relay.errors import (
    DispatchError,
    InvalidDeviceError,
    ParseError,
    ResolutionError,
)
from alert_relay.events.source import EventSource, RawMessage
from alert_relay.observability.logging import bind_context, clear_context
from alert_relay.observability.metrics import MetricsCollector, get_metrics

logger = structlog.get_logger(__name__)


class ListenerState(enum.Enum):
    """Connection state of the listener's subscription."""
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    SUBSCRIBED = "subscribed"


class ProcessingOutcome(str, enum.Enum):
    """Terminal state of one warning event."""
    DROPPED_MALFORMED = "dropped_malformed"
    DROPPED_INVALID_DEVICE = "dropped_invalid_device"
    SUPPRESSED = "suppressed"
    RESOLUTION_FAILED = "resolution_failed"
    NO_RECIPIENTS = "no_recipients"
    DISPATCHED = "dispatched"
    DISPATCH_FAILED = "dispatch_failed"
    FAILED = "failed"


class AlertListener:
    """Subscribes to device warnings and fans alerts out to entitled users.

    Lifecycle:
        1. ``start()`` - connect, subscribe, consume until stopped
        2. ``stop()`` - stop consuming; returns once ``start()`` has drained
           in-flight events and closed the source
    """

    def __init__(
        self,
        source: EventSource,
        store: CooldownStore,
        resolver: EntitlementResolver,
        dispatcher: NotificationDispatcher,
        config: AlertConfig | None = None,
        clock: Callable[[], float] = time.monotonic,
        metrics: MetricsCollector | None = None,
    ) -> None:
        self._source = source
        self._store = store
        self._resolver = resolver
        self._dispatcher = dispatcher
        self._config = config or AlertConfig()
        self._clock = clock
        self._metrics = metrics or get_metrics()

        self._state = ListenerState.DISCONNECTED
        self._running = False
        self._consumer_task: asyncio.Task | None = None
        self._stopped: asyncio.Event | None = None
        self._tasks: set[asyncio.Task] = set()
        self._semaphore: asyncio.Semaphore | None = None

    @property
    def state(self) -> ListenerState:
        return self._state

    @property
    def inflight(self) -> int:
        """Number of events currently being processed."""
        return len(self._tasks)

    def _set_state(self, state: ListenerState) -> None:
        if state is not self._state:
            logger.info(
                "Listener state change",
                from_state=self._state.value,
                to_state=state.value,
            )
            self._state = state

    async def start(self) -> None:
        """Connect, subscribe and consume until ``stop()`` is called.

        Returns only after in-flight events have been drained and the
        event source closed, whichever way consumption ended.

        Raises:
            EventSourceConnectionError: If the subscription is lost and the
                event source gives up reconnecting.
        """
        if self._running:
            return

        self._running = True
        self._stopped = asyncio.Event()
        self._semaphore = asyncio.Semaphore(self._config.max_concurrent_events)

        try:
            self._set_state(ListenerState.CONNECTING)
            await self._source.connect()
            self._set_state(ListenerState.CONNECTED)
            await self._source.subscribe(self._config.subscription_pattern)
            self._set_state(ListenerState.SUBSCRIBED)

            # stop() may have been called while connecting
            if self._running:
                self._consumer_task = asyncio.create_task(
                    self._consume(), name="alert-listener-consumer",
                )
                await self._consumer_task
        except asyncio.CancelledError:
            if self._running:
                raise
        except Exception as e:
            logger.error("Listener stopped on subscription failure", error=str(e))
            raise
        finally:
            self._running = False
            self._consumer_task = None
            try:
                await self.drain(self._config.drain_timeout_seconds)
                await self._source.close()
            finally:
                self._set_state(ListenerState.DISCONNECTED)
                self._stopped.set()
                logger.info("Listener stopped")

    async def stop(self) -> None:
        """Stop consuming and wait until ``start()`` has drained and closed."""
        if self._stopped is None:
            return
        self._running = False

        consumer = self._consumer_task
        if consumer is not None:
            consumer.cancel()
        await self._stopped.wait()

    async def _consume(self) -> None:
        async for message in self._source.messages():
            if not self._running:
                break
            await self._semaphore.acquire()
            task = asyncio.create_task(self._process(message))
            self._tasks.add(task)
            self._metrics.set_inflight(len(self._tasks))
            task.add_done_callback(self._task_done)

    def _task_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        self._semaphore.release()
        self._metrics.set_inflight(len(self._tasks))

    async def _process(self, message: RawMessage) -> None:
        bind_context(topic=message.topic)
        try:
            await self.handle_message(message.topic, message.payload)
        finally:
            clear_context()

    async def drain(self, timeout: float) -> int:
        """Wait for in-flight events; cancel whatever is left after timeout.

        Returns:
            Number of events cancelled.
        """
        pending = set(self._tasks)
        if not pending:
            return 0

        logger.info("Draining in-flight events", count=len(pending))
        _, still_pending = await asyncio.wait(pending, timeout=timeout)
        for task in still_pending:
            task.cancel()
        if still_pending:
            await asyncio.gather(*still_pending, return_exceptions=True)
            logger.warning("In-flight events cancelled at shutdown", count=len(still_pending))
        return len(still_pending)

    async def handle_message(self, topic: str, payload: bytes | str) -> ProcessingOutcome:
        """Run one raw message through the pipeline. Never raises."""
        received_at = self._clock()
        started = time.monotonic()
        self._metrics.record_event_received()

        try:
            outcome = await self._handle(topic, payload, received_at)
        except Exception as e:
            logger.exception("Unexpected error processing warning", topic=topic, error=str(e))
            outcome = ProcessingOutcome.FAILED

        self._metrics.record_outcome(outcome.value, time.monotonic() - started)
        return outcome

    async def _handle(
        self,
        topic: str,
        payload: bytes | str,
        received_at: float,
    ) -> ProcessingOutcome:
        try:
            event = parse_warning(topic, payload, received_at, self._config.topic_prefix)
        except ParseError as e:
            logger.warning("Alert dropped", reason="malformed_payload", topic=topic, error=str(e))
            return ProcessingOutcome.DROPPED_MALFORMED
        except InvalidDeviceError:
            logger.warning("Alert dropped", reason="invalid_device", topic=topic)
            return ProcessingOutcome.DROPPED_INVALID_DEVICE

        return await self.process_event(event)

    async def process_event(self, event: AlertEvent) -> ProcessingOutcome:
        """Cooldown, resolve and dispatch a validated event.

        Args:
            event: Parsed warning; ``received_at`` is used as the cooldown clock.

        Returns:
            Terminal outcome for the event.
        """
        reservation = self._store.check_and_reserve(
            event.cooldown_key, event.received_at, self._config.cooldown_seconds,
        )
        if not reservation.allowed:
            logger.debug(
                "Alert suppressed",
                device_id=event.device_id,
                alert_category=event.alert_category,
                retry_after=round(reservation.retry_after, 3),
            )
            return ProcessingOutcome.SUPPRESSED

        self._metrics.set_cooldown_entries(len(self._store))

        try:
            recipients = await self._resolver.resolve(event.device_id)
        except ResolutionError as e:
            logger.error(
                "Alert abandoned: entitlement lookup failed",
                device_id=event.device_id,
                alert_category=event.alert_category,
                error=str(e),
            )
            return ProcessingOutcome.RESOLUTION_FAILED

        if not recipients:
            logger.info(
                "Alert has no recipients with push tokens",
                device_id=event.device_id,
                alert_category=event.alert_category,
            )
            return ProcessingOutcome.NO_RECIPIENTS

        content = NotificationContent.from_event(event)
        try:
            result = await self._dispatcher.dispatch(recipients, content)
        except DispatchError as e:
            logger.error(
                "Alert dispatch failed",
                device_id=event.device_id,
                alert_category=event.alert_category,
                recipients=len(recipients),
                error=str(e),
            )
            return ProcessingOutcome.DISPATCH_FAILED

        self._metrics.record_delivery(result.succeeded, result.failed)
        logger.info(
            "Alert processed",
            device_id=event.device_id,
            alert_category=event.alert_category,
            severity=event.severity,
            attempted=result.attempted,
            succeeded=result.succeeded,
            failed=result.failed,
        )
        return ProcessingOutcome.DISPATCHED
