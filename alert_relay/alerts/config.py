"""Alert relay configuration.

Controls the cooldown window, janitor cadence, per-event concurrency, and
collaborator timeouts. All settings can be overridden via ``ALERTS_*``
environment variables.
"""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from alert_relay.alerts.schemas import DEFAULT_TOPIC_PREFIX, WARNING_SUFFIX


class AlertConfig(BaseSettings):
    """Configuration for the alert dedup and fan-out pipeline."""

    model_config = SettingsConfigDict(
        env_prefix="ALERTS_",
        case_sensitive=False,
        extra="ignore",
    )

    # Deduplication: suppress repeated (device_id, alert_category) pairs
    cooldown_seconds: float = Field(
        default=60.0,
        ge=0.0,
        description="Minimum seconds between two dispatches for the same device + category",
    )

    # Janitor
    sweep_interval_seconds: float = Field(
        default=300.0,
        gt=0.0,
        description="Seconds between cooldown store sweeps",
    )
    sweep_batch_size: int = Field(
        default=256,
        ge=1,
        description="Devices examined per lock acquisition during a sweep",
    )

    # Event source
    topic_prefix: str = Field(
        default=DEFAULT_TOPIC_PREFIX,
        min_length=1,
        description="Leading segment(s) of the {prefix}/{deviceId}/warning topic",
    )

    # Per-event task pool
    max_concurrent_events: int = Field(
        default=64,
        ge=1,
        description="Warning events processed concurrently",
    )
    drain_timeout_seconds: float = Field(
        default=10.0,
        ge=0.0,
        description="Seconds to wait for in-flight events on shutdown",
    )

    # Collaborator timeouts
    resolve_timeout_seconds: float = Field(
        default=5.0,
        gt=0.0,
        description="Timeout for one entitlement lookup",
    )
    dispatch_timeout_seconds: float = Field(
        default=15.0,
        gt=0.0,
        description="Timeout for one multicast push call",
    )

    # Push content
    android_channel_id: str = Field(
        default="smart_home_alerts",
        description="Android notification channel the mobile app registers",
    )

    @property
    def subscription_pattern(self) -> str:
        """Topic pattern covering every device's warning channel."""
        return f"{self.topic_prefix.rstrip('/')}/+/{WARNING_SUFFIX}"
