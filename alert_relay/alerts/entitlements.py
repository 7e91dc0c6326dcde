"""Entitlement lookup: which users receive alerts for a device.

``EntitlementStore`` is the read-only boundary to the user/device tables
owned by the API service; ``EntitlementResolver`` wraps it with a timeout,
error mapping and push-token filtering. Results are never cached because
sharing and tokens can change between alerts.
"""

import asyncio
from abc import ABC, abstractmethod

import structlog

from alert_relay.alerts.schemas import Recipient
from alert_relay.errors import ResolutionError
from alert_relay.storage.database import Database

logger = structlog.get_logger(__name__)


class EntitlementStore(ABC):
    """Abstract source of device entitlements."""

    @abstractmethod
    async def fetch_recipients(self, device_id: str) -> list[Recipient]:
        """Return every active user entitled to the device.

        Args:
            device_id: Controller key the alert originated from.

        Returns:
            Recipients, possibly with missing push tokens.
        """


class PostgresEntitlementStore(EntitlementStore):
    """Reads entitlements from the API service's PostgreSQL schema.

    A user is entitled if they own the controller or are a member of any
    device attached to it. Inactive accounts and controllers are excluded.
    """

    QUERY = """
        SELECT u.id AS user_id, u.fcm_token AS push_token
        FROM controllers c
        JOIN users u ON u.id = c.owner_id
        WHERE c.controller_key = $1
          AND c.is_active = true
          AND u.is_active = true
        UNION
        SELECT u.id AS user_id, u.fcm_token AS push_token
        FROM devices d
        JOIN device_members dm ON dm.device_id = d.id
        JOIN users u ON u.id = dm.user_id
        WHERE d.controller_key = $1
          AND u.is_active = true
    """

    def __init__(self, database: Database) -> None:
        self._db = database

    async def fetch_recipients(self, device_id: str) -> list[Recipient]:
        rows = await self._db.fetch(self.QUERY, device_id)
        return [
            Recipient(user_id=str(row["user_id"]), push_token=row["push_token"])
            for row in rows
        ]


class EntitlementResolver:
    """Resolves a device id to the recipients that can be pushed to."""

    def __init__(self, store: EntitlementStore, timeout: float = 5.0) -> None:
        self._store = store
        self._timeout = timeout

    async def resolve(self, device_id: str) -> list[Recipient]:
        """Fetch recipients with a usable push token.

        Recipients whose token is None or blank are dropped, and a token
        shared by several users is only returned once.

        Args:
            device_id: Controller key the alert originated from.

        Returns:
            Recipients to notify; empty if nobody is entitled.

        Raises:
            ResolutionError: If the store fails or times out.
        """
        try:
            recipients = await asyncio.wait_for(
                self._store.fetch_recipients(device_id), timeout=self._timeout,
            )
        except asyncio.TimeoutError as e:
            raise ResolutionError(
                f"Entitlement lookup for {device_id} timed out after {self._timeout}s"
            ) from e
        except Exception as e:
            raise ResolutionError(f"Entitlement lookup for {device_id} failed: {e}") from e

        seen: set[str] = set()
        usable: list[Recipient] = []
        for recipient in recipients:
            if not recipient.has_token:
                continue
            token = recipient.push_token.strip()
            if token in seen:
                continue
            seen.add(token)
            usable.append(Recipient(user_id=recipient.user_id, push_token=token))

        skipped = len(recipients) - len(usable)
        if skipped:
            logger.debug(
                "Recipients without usable token skipped",
                device_id=device_id,
                skipped=skipped,
            )
        return usable
