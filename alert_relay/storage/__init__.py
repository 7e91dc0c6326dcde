"""Storage layer - PostgreSQL connection management."""

from alert_relay.storage.database import Database

__all__ = ["Database"]
