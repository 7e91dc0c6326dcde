"""Real-time device alert relay: cooldown dedup and push notification fan-out."""

__version__ = "0.1.0"
