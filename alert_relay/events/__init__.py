"""Event source: subscription to device warning channels."""

from alert_relay.events.backoff import ExponentialBackoff
from alert_relay.events.config import EventSourceConfig
from alert_relay.events.source import EventSource, RawMessage, RedisEventSource, topic_to_glob

__all__ = [
    "EventSource",
    "EventSourceConfig",
    "ExponentialBackoff",
    "RawMessage",
    "RedisEventSource",
    "topic_to_glob",
]
