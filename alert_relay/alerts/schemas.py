"""Schema definitions for the warning pipeline.

Nothing here is persisted. ``WarningPayload`` validates the raw JSON a
device publishes; ``AlertEvent`` is the typed event the listener carries
through the pipeline; the remaining types are the values passed between
the cooldown store, entitlement resolver and dispatcher.
"""

from dataclasses import dataclass, field
from typing import NamedTuple

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, ValidationError

from alert_relay.errors import InvalidDeviceError, ParseError

UNKNOWN_CATEGORY = "UNKNOWN"
UNKNOWN_DEVICE = "unknown"
DEFAULT_TOPIC_PREFIX = "smart_home"
WARNING_SUFFIX = "warning"

ALERT_TITLES: dict[str, str] = {
    "FIRE": "FIRE ALERT",
    "GAS": "GAS LEAK ALERT",
    "INTRUSION": "INTRUSION ALERT",
}
DEFAULT_TITLE = "SYSTEM ALERT"
DEFAULT_BODY = "Abnormal activity detected by your device"
CLICK_ACTION = "FLUTTER_NOTIFICATION_CLICK"


class WarningPayload(BaseModel):
    """JSON body of a ``{prefix}/{deviceId}/warning`` message.

    Older controller firmware publishes the category as ``alertType``;
    both spellings are accepted.
    """

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    alert_category: str | None = Field(
        default=None,
        validation_alias=AliasChoices("alertCategory", "alertType"),
    )
    severity: str | int | float | None = None
    message: str | None = None


class CooldownKey(NamedTuple):
    """One suppression lane."""

    device_id: str
    alert_category: str


@dataclass(frozen=True)
class Reservation:
    """Outcome of ``CooldownStore.check_and_reserve``.

    Attributes:
        allowed: True if the caller now holds the window for this key.
        retry_after: Seconds until the key frees up (0.0 when allowed).
    """

    allowed: bool
    retry_after: float = 0.0


@dataclass
class AlertEvent:
    """A validated inbound warning.

    Attributes:
        device_id: Controller key taken from the topic.
        alert_category: Category from the payload, ``UNKNOWN`` if absent.
        severity: Opaque severity passthrough.
        message: Free text shown as the notification body.
        received_at: Clock reading (seconds) when the message arrived.
        topic: Raw topic the message was published on.
    """

    device_id: str
    alert_category: str = UNKNOWN_CATEGORY
    severity: str | int | float | None = None
    message: str | None = None
    received_at: float = 0.0
    topic: str = ""

    @property
    def cooldown_key(self) -> CooldownKey:
        return CooldownKey(self.device_id, self.alert_category)


@dataclass(frozen=True)
class Recipient:
    """A user entitled to a device's alerts."""

    user_id: str
    push_token: str | None = None

    @property
    def has_token(self) -> bool:
        return bool(self.push_token and self.push_token.strip())


@dataclass(frozen=True)
class NotificationContent:
    """Title, body and routing data for one multicast push."""

    title: str
    body: str
    data: dict[str, str] = field(default_factory=dict)

    @classmethod
    def from_event(cls, event: AlertEvent) -> "NotificationContent":
        """Build the push content for an alert event.

        Every ``data`` value is a string; FCM rejects anything else.
        """
        severity = "" if event.severity is None else str(event.severity)
        return cls(
            title=ALERT_TITLES.get(event.alert_category, DEFAULT_TITLE),
            body=event.message or DEFAULT_BODY,
            data={
                "click_action": CLICK_ACTION,
                "alertCategory": event.alert_category,
                "severity": severity,
                "deviceId": event.device_id,
            },
        )


@dataclass(frozen=True)
class TokenOutcome:
    """Provider verdict for a single push token."""

    token: str
    success: bool
    error: str | None = None


@dataclass(frozen=True)
class MulticastResponse:
    """Raw per-token outcome of one multicast call."""

    outcomes: list[TokenOutcome]

    @property
    def success_count(self) -> int:
        return sum(1 for o in self.outcomes if o.success)

    @property
    def failure_count(self) -> int:
        return sum(1 for o in self.outcomes if not o.success)


@dataclass
class DispatchResult:
    """Summary of one dispatch, logged and discarded."""

    attempted: int
    succeeded: int
    failed: int
    failures: dict[str, str] = field(default_factory=dict)

    @property
    def all_failed(self) -> bool:
        return self.attempted > 0 and self.succeeded == 0


def device_id_from_topic(topic: str, prefix: str = DEFAULT_TOPIC_PREFIX) -> str:
    """Extract the device id from ``{prefix}/{deviceId}/warning``.

    The prefix may itself contain ``/``. The device id is exactly one
    level; the Redis glob the listener subscribes with also matches
    deeper topics, so those are rejected here.

    Raises:
        InvalidDeviceError: If the topic is not a warning topic under
            ``prefix``, or the device segment is blank, nested or ``unknown``.
    """
    head = prefix.rstrip("/") + "/"
    tail = "/" + WARNING_SUFFIX
    if len(topic) < len(head) + len(tail) or not (
        topic.startswith(head) and topic.endswith(tail)
    ):
        raise InvalidDeviceError(f"{topic!r} is not a warning topic under {prefix!r}")

    device_id = topic[len(head):len(topic) - len(tail)].strip()
    if not device_id or "/" in device_id or device_id == UNKNOWN_DEVICE:
        raise InvalidDeviceError(f"No usable device id in topic {topic!r}")
    return device_id


def parse_warning(
    topic: str,
    payload: bytes | str,
    received_at: float,
    topic_prefix: str = DEFAULT_TOPIC_PREFIX,
) -> AlertEvent:
    """Validate a raw message into an AlertEvent.

    The payload is validated before the topic, so a malformed body is
    always reported as a ParseError.

    Args:
        topic: Topic the message arrived on.
        payload: Raw message body (UTF-8 JSON object).
        received_at: Ingestion clock reading.
        topic_prefix: Prefix the warning topics live under.

    Returns:
        Validated AlertEvent.

    Raises:
        ParseError: Body is not a JSON object matching WarningPayload.
        InvalidDeviceError: Topic has no usable device id.
    """
    try:
        body = WarningPayload.model_validate_json(payload)
    except ValidationError as e:
        raise ParseError(f"Malformed warning payload on {topic!r}: {e.error_count()} error(s)") from e

    device_id = device_id_from_topic(topic, topic_prefix)

    return AlertEvent(
        device_id=device_id,
        alert_category=body.alert_category or UNKNOWN_CATEGORY,
        severity=body.severity,
        message=body.message,
        received_at=received_at,
        topic=topic,
    )
