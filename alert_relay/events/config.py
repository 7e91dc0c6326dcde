"""
Event source configuration.

Controls polling and the reconnect policy used when the Redis
subscription drops. Override via ``EVENTS_*`` environment variables.
"""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class EventSourceConfig(BaseSettings):
    """Reconnect and polling behaviour for the warning subscription."""

    model_config = SettingsConfigDict(
        env_prefix="EVENTS_",
        case_sensitive=False,
        extra="ignore",
    )

    poll_timeout_seconds: float = Field(
        default=1.0,
        gt=0.0,
        description="Max seconds a single get_message() call blocks",
    )
    max_reconnect_attempts: int = Field(
        default=10,
        ge=1,
        description="Consecutive failed reconnects before the subscription is declared lost",
    )
    backoff_base_delay: float = Field(default=1.0, ge=0.0)
    backoff_max_delay: float = Field(default=60.0, ge=0.0)
