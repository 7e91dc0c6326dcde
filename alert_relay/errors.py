"""Error taxonomy for the alert relay.

Every per-event error is contained inside ``AlertListener.handle_message``;
only ``EventSourceConnectionError`` escapes the listener.
"""


class AlertRelayError(Exception):
    """Base class for relay errors."""


class ParseError(AlertRelayError):
    """Inbound payload is not a well-formed warning message."""


class InvalidDeviceError(AlertRelayError):
    """Topic is not a warning topic, or its device segment is blank, nested or ``unknown``."""


class ResolutionError(AlertRelayError):
    """Entitlement store could not be queried."""


class DispatchError(AlertRelayError):
    """Push provider rejected the whole multicast call."""


class EventSourceConnectionError(AlertRelayError, ConnectionError):
    """Event source subscription lost and reconnection exhausted."""
