"""Periodic eviction of expired cooldown entries.

Purely a memory bound: dedup decisions never depend on whether an
expired entry has been swept yet.
"""

import asyncio
import time
from collections.abc import Callable

import structlog

from alert_relay.alerts.cooldown import CooldownStore
from alert_relay.observability.metrics import MetricsCollector, get_metrics

logger = structlog.get_logger(__name__)


class CooldownJanitor:
    """Runs ``CooldownStore.sweep`` on a fixed interval in a background task."""

    def __init__(
        self,
        store: CooldownStore,
        window: float,
        interval: float = 300.0,
        clock: Callable[[], float] = time.monotonic,
        metrics: MetricsCollector | None = None,
    ) -> None:
        if interval <= 0:
            raise ValueError(f"Sweep interval must be positive, got {interval!r}")
        self._store = store
        self._window = window
        self._interval = interval
        self._clock = clock
        self._metrics = metrics or get_metrics()
        self._task: asyncio.Task | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def run_once(self) -> int:
        """Sweep now; returns the number of entries removed."""
        removed = self._store.sweep(self._clock(), self._window)
        remaining = len(self._store)
        self._metrics.record_sweep(removed, remaining)
        logger.info(
            "Cooldown sweep",
            removed=removed,
            remaining=remaining,
            devices=self._store.device_count,
        )
        return removed

    async def start(self) -> None:
        """Spawn the sweep loop (no-op if already running)."""
        if self.running:
            return
        self._task = asyncio.create_task(self._loop(), name="cooldown-janitor")
        logger.info("Cooldown janitor started", interval=self._interval, window=self._window)

    async def stop(self) -> None:
        """Cancel the sweep loop and wait for it to exit."""
        task, self._task = self._task, None
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        logger.info("Cooldown janitor stopped")

    async def _loop(self) -> None:
        while True:
            await asyncio.sleep(self._interval)
            try:
                self.run_once()
            except Exception as e:
                logger.error("Cooldown sweep failed", error=str(e))
