"""Fixtures for alert pipeline tests: in-memory collaborators and a manual clock."""

import asyncio
from collections.abc import AsyncIterator

import pytest

from alert_relay.alerts.config import AlertConfig
from alert_relay.alerts.cooldown import CooldownStore
from alert_relay.alerts.dispatcher import NotificationDispatcher
from alert_relay.alerts.entitlements import EntitlementResolver, EntitlementStore
from alert_relay.alerts.listener import AlertListener
from alert_relay.alerts.providers import PushProvider
from alert_relay.alerts.schemas import (
    MulticastResponse,
    NotificationContent,
    Recipient,
    TokenOutcome,
)
from alert_relay.events.source import EventSource, RawMessage


class ManualClock:
    """Callable clock whose reading only moves when a test says so."""

    def __init__(self, now: float = 0.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now


class FakeEntitlementStore(EntitlementStore):
    def __init__(
        self,
        recipients: dict[str, list[Recipient]] | None = None,
        error: Exception | None = None,
        delay: float = 0.0,
    ) -> None:
        self.recipients = recipients or {}
        self.error = error
        self.delay = delay
        self.calls: list[str] = []

    async def fetch_recipients(self, device_id: str) -> list[Recipient]:
        self.calls.append(device_id)
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return list(self.recipients.get(device_id, []))


class FakePushProvider(PushProvider):
    def __init__(
        self,
        rejected: set[str] | None = None,
        error: Exception | None = None,
        delay: float = 0.0,
        gate: asyncio.Event | None = None,
    ) -> None:
        self.rejected = rejected or set()
        self.error = error
        self.delay = delay
        self.gate = gate
        self.calls: list[tuple[list[str], NotificationContent]] = []
        self.active = 0
        self.max_active = 0
        self.completed = 0

    @property
    def name(self) -> str:
        return "fake"

    async def send_multicast(
        self,
        tokens: list[str],
        content: NotificationContent,
    ) -> MulticastResponse:
        self.calls.append((list(tokens), content))
        self.active += 1
        self.max_active = max(self.max_active, self.active)
        try:
            if self.gate is not None:
                await self.gate.wait()
            if self.delay:
                await asyncio.sleep(self.delay)
            if self.error is not None:
                raise self.error
            self.completed += 1
            return MulticastResponse(outcomes=[
                TokenOutcome(
                    token=t,
                    success=t not in self.rejected,
                    error="registration-token-not-registered" if t in self.rejected else None,
                )
                for t in tokens
            ])
        finally:
            self.active -= 1


class FakeEventSource(EventSource):
    """Queue-backed event source; ``close()`` ends the message stream."""

    _CLOSED = object()

    def __init__(self, fail_with: Exception | None = None) -> None:
        self.queue: asyncio.Queue = asyncio.Queue()
        self.fail_with = fail_with
        self.connected = False
        self.closed = False
        self.patterns: list[str] = []

    def push(self, topic: str, payload: bytes | str) -> None:
        if isinstance(payload, str):
            payload = payload.encode("utf-8")
        self.queue.put_nowait(RawMessage(topic=topic, payload=payload))

    async def connect(self) -> None:
        self.connected = True

    async def subscribe(self, pattern: str) -> None:
        self.patterns.append(pattern)

    async def messages(self) -> AsyncIterator[RawMessage]:
        while True:
            item = await self.queue.get()
            if item is self._CLOSED:
                return
            if isinstance(item, Exception):
                raise item
            yield item

    async def close(self) -> None:
        self.closed = True
        self.queue.put_nowait(self._CLOSED)


def warning_topic(device_id: str, prefix: str = "smart_home") -> str:
    return f"{prefix}/{device_id}/warning"


async def wait_until(predicate, timeout: float = 2.0) -> None:
    """Poll until predicate() is true or fail the test."""
    deadline = asyncio.get_running_loop().time() + timeout
    while not predicate():
        if asyncio.get_running_loop().time() > deadline:
            raise AssertionError("condition not met before timeout")
        await asyncio.sleep(0.005)


@pytest.fixture
def clock():
    return ManualClock()


@pytest.fixture
def config():
    return AlertConfig(cooldown_seconds=60.0, drain_timeout_seconds=2.0)


@pytest.fixture
def store():
    return CooldownStore()


@pytest.fixture
def entitlements():
    return FakeEntitlementStore({
        "dev1": [Recipient("u1", "tokenA"), Recipient("u2", "tokenB")],
        "dev2": [Recipient("u3", "tokenC")],
    })


@pytest.fixture
def provider():
    return FakePushProvider()


@pytest.fixture
def source():
    return FakeEventSource()


@pytest.fixture
def listener(source, store, entitlements, provider, config, clock):
    return AlertListener(
        source=source,
        store=store,
        resolver=EntitlementResolver(entitlements, timeout=1.0),
        dispatcher=NotificationDispatcher(provider, timeout=1.0),
        config=config,
        clock=clock,
    )
