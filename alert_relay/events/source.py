"""Event source delivering raw device warnings.

Devices publish to ``{prefix}/{deviceId}/warning``. The production source
is a Redis pattern subscription; MQTT-style ``+`` wildcards in the
subscription pattern are translated to Redis globs.

Lifecycle:
    1. ``connect()`` - open the client and verify it answers
    2. ``subscribe(pattern)`` - pattern-subscribe to the warning channels
    3. ``messages()`` - async iterator of RawMessage, reconnecting on failure
    4. ``close()`` - unsubscribe and release the connection
"""

import asyncio
from abc import ABC, abstractmethod
from collections.abc import AsyncIterator
from dataclasses import dataclass
from typing import Any

import redis.asyncio as redis
import structlog
from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import TimeoutError as RedisTimeoutError

from alert_relay.errors import EventSourceConnectionError
from alert_relay.events.backoff import ExponentialBackoff
from alert_relay.events.config import EventSourceConfig

logger = structlog.get_logger(__name__)

_TRANSIENT_ERRORS = (RedisConnectionError, RedisTimeoutError, OSError)


def topic_to_glob(pattern: str) -> str:
    """Translate an MQTT-style topic filter to a Redis PSUBSCRIBE glob."""
    return "/".join("*" if part in ("+", "#") else part for part in pattern.split("/"))


@dataclass(frozen=True)
class RawMessage:
    """An undecoded message as delivered by the event source."""

    topic: str
    payload: bytes


class EventSource(ABC):
    """Abstract subscription to device warning channels."""

    @abstractmethod
    async def connect(self) -> None:
        """Open the underlying connection."""

    @abstractmethod
    async def subscribe(self, pattern: str) -> None:
        """Subscribe to every topic matching an MQTT-style filter."""

    @abstractmethod
    def messages(self) -> AsyncIterator[RawMessage]:
        """Iterate inbound messages until closed.

        Raises:
            EventSourceConnectionError: If the subscription is lost for good.
        """

    @abstractmethod
    async def close(self) -> None:
        """Unsubscribe and release resources."""

    async def health_check(self) -> bool:
        return True


class RedisEventSource(EventSource):
    """Redis pub/sub event source with bounded reconnect."""

    def __init__(
        self,
        redis_url: str | None = None,
        config: EventSourceConfig | None = None,
        client: Any | None = None,
    ) -> None:
        self._redis_url = redis_url
        self._config = config or EventSourceConfig()
        self._redis: Any | None = client
        self._pubsub: Any | None = None
        self._glob: str | None = None
        self._closed = False
        self._backoff = ExponentialBackoff(
            base_delay=self._config.backoff_base_delay,
            max_delay=self._config.backoff_max_delay,
            max_attempts=self._config.max_reconnect_attempts,
        )

    async def connect(self) -> None:
        if self._redis is None:
            if self._redis_url is None:
                from alert_relay.config.settings import get_settings

                self._redis_url = str(get_settings().redis_url)
            self._redis = redis.from_url(self._redis_url)
        await self._redis.ping()
        self._closed = False
        logger.info("Event source connected")

    async def subscribe(self, pattern: str) -> None:
        if self._redis is None:
            raise RuntimeError("Event source not connected. Call connect() first.")
        self._glob = topic_to_glob(pattern)
        self._pubsub = self._redis.pubsub()
        await self._pubsub.psubscribe(self._glob)
        logger.info("Event source subscribed", pattern=pattern, glob=self._glob)

    async def messages(self) -> AsyncIterator[RawMessage]:
        if self._pubsub is None:
            raise RuntimeError("Event source not subscribed. Call subscribe() first.")

        while not self._closed:
            try:
                message = await self._pubsub.get_message(
                    ignore_subscribe_messages=True,
                    timeout=self._config.poll_timeout_seconds,
                )
            except asyncio.CancelledError:
                raise
            except _TRANSIENT_ERRORS as e:
                if self._closed:
                    break
                await self._reconnect(e)
                continue

            if message is None or message.get("type") != "pmessage":
                continue

            yield RawMessage(
                topic=_as_text(message["channel"]),
                payload=_as_bytes(message["data"]),
            )

    async def _reconnect(self, cause: Exception) -> None:
        """Re-establish the pattern subscription, or give up.

        Raises:
            EventSourceConnectionError: After ``max_reconnect_attempts``
                consecutive failures.
        """
        logger.warning("Event source subscription lost", error=str(cause))
        await self._close_pubsub()

        while not self._backoff.exhausted:
            delay = self._backoff.next_delay()
            logger.info(
                "Event source reconnecting",
                attempt=self._backoff.attempt,
                delay=round(delay, 2),
            )
            await asyncio.sleep(delay)
            try:
                await self._redis.ping()
                self._pubsub = self._redis.pubsub()
                await self._pubsub.psubscribe(self._glob)
            except _TRANSIENT_ERRORS as e:
                logger.warning("Event source reconnect failed", error=str(e))
                await self._close_pubsub()
                continue

            self._backoff.reset()
            logger.info("Event source resubscribed", glob=self._glob)
            return

        raise EventSourceConnectionError(
            f"Gave up resubscribing to {self._glob!r} after "
            f"{self._config.max_reconnect_attempts} attempts"
        ) from cause

    async def publish(self, topic: str, payload: bytes | str) -> int:
        """Publish a message; returns the number of receiving subscribers."""
        if self._redis is None:
            raise RuntimeError("Event source not connected. Call connect() first.")
        return await self._redis.publish(topic, payload)

    async def health_check(self) -> bool:
        try:
            return bool(await self._redis.ping())
        except Exception:
            return False

    async def _close_pubsub(self) -> None:
        if self._pubsub is None:
            return
        pubsub, self._pubsub = self._pubsub, None
        try:
            await pubsub.aclose()
        except Exception as e:
            logger.debug("Error closing pub/sub", error=str(e))

    async def close(self) -> None:
        self._closed = True
        if self._pubsub is not None and self._glob is not None:
            try:
                await self._pubsub.punsubscribe(self._glob)
            except Exception as e:
                logger.warning("Error unsubscribing", error=str(e))
        await self._close_pubsub()
        if self._redis is not None:
            try:
                await self._redis.aclose()
            except Exception as e:
                logger.warning("Error closing Redis client", error=str(e))
            self._redis = None
        logger.info("Event source closed")


def _as_text(value: bytes | str) -> str:
    return value.decode("utf-8", errors="replace") if isinstance(value, bytes) else value


def _as_bytes(value: bytes | str) -> bytes:
    return value if isinstance(value, bytes) else value.encode("utf-8")
