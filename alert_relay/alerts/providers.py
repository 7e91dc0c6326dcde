"""Push notification providers.

Provides an ABC for multicast push delivery plus a Firebase Cloud
Messaging implementation backed by ``firebase_admin``.
"""

import asyncio
import threading
from abc import ABC, abstractmethod
from typing import Any

import firebase_admin
import structlog
from firebase_admin import credentials, messaging

from alert_relay.alerts.schemas import MulticastResponse, NotificationContent, TokenOutcome
from alert_relay.errors import DispatchError

logger = structlog.get_logger(__name__)

# FCM rejects multicast messages addressed to more tokens than this.
FCM_MAX_TOKENS = 500


class PushProvider(ABC):
    """Abstract base for multicast push providers."""

    @property
    @abstractmethod
    def name(self) -> str:
        """Unique identifier for this provider (e.g. 'fcm')."""

    @abstractmethod
    async def send_multicast(
        self,
        tokens: list[str],
        content: NotificationContent,
    ) -> MulticastResponse:
        """Deliver one notification to many tokens in a single call.

        Args:
            tokens: Device push tokens.
            content: Title, body and data map.

        Returns:
            Per-token outcomes, in token order.

        Raises:
            Exception: Any error that prevents the call as a whole.
        """


class FirebasePushProvider(PushProvider):
    """Delivers notifications through Firebase Cloud Messaging.

    ``firebase_admin`` is blocking, so each multicast runs in a worker
    thread. The app is initialized once from a service-account file.
    """

    def __init__(
        self,
        credentials_path: str | None = None,
        project_id: str | None = None,
        android_channel_id: str = "smart_home_alerts",
        app: Any | None = None,
    ) -> None:
        self._credentials_path = credentials_path
        self._project_id = project_id
        self._android_channel_id = android_channel_id
        self._app = app
        self._app_lock = threading.Lock()

    @property
    def name(self) -> str:
        return "fcm"

    def _get_app(self) -> Any:
        with self._app_lock:
            if self._app is not None:
                return self._app
            try:
                self._app = firebase_admin.get_app()
            except ValueError:
                cred = (
                    credentials.Certificate(self._credentials_path)
                    if self._credentials_path
                    else credentials.ApplicationDefault()
                )
                options = {"projectId": self._project_id} if self._project_id else None
                self._app = firebase_admin.initialize_app(cred, options)
                logger.info("Firebase app initialized", project_id=self._project_id)
            return self._app

    def _build_message(self, tokens: list[str], content: NotificationContent) -> Any:
        """Build the FCM multicast message, matching the mobile app's channel."""
        return messaging.MulticastMessage(
            tokens=tokens,
            notification=messaging.Notification(title=content.title, body=content.body),
            android=messaging.AndroidConfig(
                priority="high",
                notification=messaging.AndroidNotification(
                    sound="default",
                    channel_id=self._android_channel_id,
                ),
            ),
            data=dict(content.data),
        )

    def _send_blocking(self, tokens: list[str], content: NotificationContent) -> MulticastResponse:
        app = self._get_app()
        batch = messaging.send_each_for_multicast(
            self._build_message(tokens, content), app=app,
        )
        outcomes = [
            TokenOutcome(
                token=token,
                success=resp.success,
                error=None if resp.success else str(resp.exception),
            )
            for token, resp in zip(tokens, batch.responses)
        ]
        return MulticastResponse(outcomes=outcomes)

    async def send_multicast(
        self,
        tokens: list[str],
        content: NotificationContent,
    ) -> MulticastResponse:
        if len(tokens) > FCM_MAX_TOKENS:
            raise DispatchError(
                f"FCM multicast accepts at most {FCM_MAX_TOKENS} tokens, got {len(tokens)}"
            )
        return await asyncio.to_thread(self._send_blocking, tokens, content)
