"""In-memory cooldown store for alert deduplication.

Holds ``device_id -> {alert_category -> last_fired_at}`` for the lifetime
of the process. Test-and-stamp happens in one critical section so that two
events racing on the same key can never both be allowed through.

The lock is a ``threading.Lock``: every method is synchronous and never
awaits, so it is safe to call from event-loop tasks and worker threads
alike, and the lock can never be held across an I/O suspension point.
"""

import threading
from collections.abc import Iterator

import structlog

from alert_relay.alerts.schemas import CooldownKey, Reservation

logger = structlog.get_logger(__name__)


def _check_window(window: float) -> None:
    if window < 0:
        raise ValueError(f"Cooldown window must be non-negative, got {window!r}")


class CooldownStore:
    """Concurrency-safe map of cooldown lanes to their last firing time.

    The store is the only owner of cooldown state. The listener writes via
    ``check_and_reserve``; the janitor evicts via ``sweep``. An absent entry
    behaves exactly like one older than the window, so eviction timing never
    changes dedup decisions.

    Usage:
        store = CooldownStore()
        if store.check_and_reserve(event.cooldown_key, now, 60.0).allowed:
            ...
    """

    def __init__(self, sweep_batch_size: int = 256) -> None:
        if sweep_batch_size < 1:
            raise ValueError("sweep_batch_size must be >= 1")
        self._entries: dict[str, dict[str, float]] = {}
        self._size = 0
        self._lock = threading.Lock()
        self._sweep_batch_size = sweep_batch_size

    def check_and_reserve(
        self,
        key: CooldownKey,
        now: float,
        window: float,
    ) -> Reservation:
        """Atomically test the lane and claim it if free.

        Args:
            key: (device_id, alert_category) lane.
            now: Current clock reading in seconds.
            window: Cooldown window in seconds.

        Returns:
            Reservation with ``allowed=True`` if the lane was free (and is
            now stamped with ``now``), otherwise ``allowed=False`` and the
            seconds remaining. A suppressed call leaves the entry untouched.

        Raises:
            ValueError: If window is negative.
        """
        _check_window(window)
        device_id, category = key

        with self._lock:
            bucket = self._entries.get(device_id)
            last = bucket.get(category) if bucket is not None else None

            if last is not None:
                elapsed = now - last
                if elapsed < window:
                    return Reservation(allowed=False, retry_after=window - elapsed)

            if bucket is None:
                bucket = self._entries[device_id] = {}
            if last is None:
                self._size += 1
            # elapsed >= window here, so the stamp never moves backwards
            bucket[category] = now
            return Reservation(allowed=True)

    def sweep(self, now: float, window: float) -> int:
        """Evict every entry whose age is at least ``window``.

        Devices are processed in batches, taking the lock once per batch so
        that reservations are not stalled behind a long sweep. A device
        bucket left empty is removed.

        Args:
            now: Current clock reading in seconds.
            window: Cooldown window in seconds.

        Returns:
            Number of entries removed.

        Raises:
            ValueError: If window is negative.
        """
        _check_window(window)

        with self._lock:
            device_ids = list(self._entries)

        removed = 0
        for batch in self._batches(device_ids):
            with self._lock:
                for device_id in batch:
                    bucket = self._entries.get(device_id)
                    if bucket is None:
                        continue
                    expired = [c for c, last in bucket.items() if now - last >= window]
                    for category in expired:
                        del bucket[category]
                    removed += len(expired)
                    self._size -= len(expired)
                    if not bucket:
                        del self._entries[device_id]

        return removed

    def _batches(self, device_ids: list[str]) -> Iterator[list[str]]:
        size = self._sweep_batch_size
        for start in range(0, len(device_ids), size):
            yield device_ids[start:start + size]

    def last_fired_at(self, key: CooldownKey) -> float | None:
        """Return the stamp for a lane, or None if absent."""
        with self._lock:
            bucket = self._entries.get(key.device_id)
            return bucket.get(key.alert_category) if bucket else None

    @property
    def device_count(self) -> int:
        """Number of devices with at least one live entry."""
        with self._lock:
            return len(self._entries)

    def __len__(self) -> int:
        with self._lock:
            return self._size

    def clear(self) -> None:
        """Drop all state (process teardown)."""
        with self._lock:
            self._entries.clear()
            self._size = 0
        logger.debug("Cooldown store cleared")
