"""
Bounded exponential backoff for resubscribing to the event source.

The delay before reconnect attempt ``n`` (0-based) is
``min(base * multiplier**n, max_delay)`` with +/- ``jitter_range`` relative
jitter. After ``max_attempts`` consecutive failures the policy is
exhausted and the caller gives up.
"""

import random


class ExponentialBackoff:
    """
    Exponential backoff with jitter and an attempt budget.

    Usage:
        backoff = ExponentialBackoff(base_delay=1.0, max_delay=60.0, max_attempts=10)
        while not backoff.exhausted:
            await asyncio.sleep(backoff.next_delay())
            try:
                await resubscribe()
            except ConnectionError:
                continue
            backoff.reset()
            break
    """

    def __init__(
        self,
        base_delay: float = 1.0,
        max_delay: float = 60.0,
        multiplier: float = 2.0,
        jitter_range: float = 0.5,
        max_attempts: int | None = None,
    ):
        self.base_delay = base_delay
        self.max_delay = max_delay
        self.multiplier = multiplier
        self.jitter_range = jitter_range
        self.max_attempts = max_attempts
        self._attempt = 0

    @property
    def attempt(self) -> int:
        """Attempts made since the last reset."""
        return self._attempt

    @property
    def exhausted(self) -> bool:
        """True once the attempt budget is spent (never, if unbounded)."""
        return self.max_attempts is not None and self._attempt >= self.max_attempts

    def next_delay(self) -> float:
        """Return the delay before the next attempt and count the attempt."""
        delay = min(
            self.base_delay * (self.multiplier ** self._attempt),
            self.max_delay,
        )
        jitter = delay * random.uniform(-self.jitter_range, self.jitter_range)
        self._attempt += 1
        return max(0.0, delay + jitter)

    def reset(self) -> None:
        """Zero the attempt counter after a successful reconnect."""
        self._attempt = 0
