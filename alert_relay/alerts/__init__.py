"""Alert deduplication and push notification fan-out.

Components:
- CooldownStore: Atomic per-(device, category) suppression lanes
- EntitlementResolver / EntitlementStore: Who may receive a device's alerts
- NotificationDispatcher / PushProvider: Single multicast push per alert
- AlertListener: Event-source consumer driving the pipeline
- CooldownJanitor: Periodic eviction of expired cooldown entries
- AlertRelayService: Owns and wires all of the above
- AlertConfig: Pydantic settings for windows, timeouts and concurrency
"""

from alert_relay.alerts.config import AlertConfig
from alert_relay.alerts.cooldown import CooldownStore
from alert_relay.alerts.dispatcher import NotificationDispatcher
from alert_relay.alerts.entitlements import (
    EntitlementResolver,
    EntitlementStore,
    PostgresEntitlementStore,
)
from alert_relay.alerts.janitor import CooldownJanitor
from alert_relay.alerts.listener import AlertListener, ListenerState, ProcessingOutcome
from alert_relay.alerts.providers import FirebasePushProvider, PushProvider
from alert_relay.alerts.schemas import (
    AlertEvent,
    CooldownKey,
    DispatchResult,
    NotificationContent,
    Recipient,
    Reservation,
)
from alert_relay.alerts.service import AlertRelayService

__all__ = [
    "AlertConfig",
    "AlertEvent",
    "AlertListener",
    "AlertRelayService",
    "CooldownJanitor",
    "CooldownKey",
    "CooldownStore",
    "DispatchResult",
    "EntitlementResolver",
    "EntitlementStore",
    "FirebasePushProvider",
    "ListenerState",
    "NotificationContent",
    "NotificationDispatcher",
    "ProcessingOutcome",
    "PostgresEntitlementStore",
    "PushProvider",
    "Recipient",
    "Reservation",
]
