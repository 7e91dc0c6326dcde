"""Notification dispatcher: one multicast push per alert.

Delivery is best-effort and single-attempt. Tokens the provider rejects
are recorded in the DispatchResult and never retried; only a failure of
the call as a whole raises.

Pattern: Orchestrator over a stateless PushProvider.
"""

import asyncio

import structlog

from alert_relay.alerts.providers import PushProvider
from alert_relay.alerts.schemas import DispatchResult, NotificationContent, Recipient
from alert_relay.errors import DispatchError

logger = structlog.get_logger(__name__)


class NotificationDispatcher:
    """Sends alert notifications to a recipient list via a PushProvider."""

    def __init__(self, provider: PushProvider, timeout: float = 15.0) -> None:
        self._provider = provider
        self._timeout = timeout

    @property
    def provider(self) -> PushProvider:
        return self._provider

    async def dispatch(
        self,
        recipients: list[Recipient],
        content: NotificationContent,
    ) -> DispatchResult:
        """Push ``content`` to every recipient's token in one provider call.

        Args:
            recipients: Non-empty list of recipients with usable tokens.
            content: Notification to deliver.

        Returns:
            DispatchResult with per-token failure reasons.

        Raises:
            ValueError: If recipients is empty.
            DispatchError: If the provider call fails or times out.
        """
        if not recipients:
            raise ValueError("dispatch() requires at least one recipient")

        tokens = [r.push_token for r in recipients]
        logger.info(
            "Dispatch attempted",
            provider=self._provider.name,
            recipients=len(tokens),
            device_id=content.data.get("deviceId"),
        )

        try:
            response = await asyncio.wait_for(
                self._provider.send_multicast(tokens, content), timeout=self._timeout,
            )
        except DispatchError:
            raise
        except asyncio.TimeoutError as e:
            raise DispatchError(
                f"{self._provider.name} multicast timed out after {self._timeout}s"
            ) from e
        except Exception as e:
            raise DispatchError(f"{self._provider.name} multicast failed: {e}") from e

        failures = {
            o.token: o.error or "unknown error"
            for o in response.outcomes
            if not o.success
        }
        succeeded = response.success_count
        result = DispatchResult(
            attempted=len(tokens),
            succeeded=succeeded,
            failed=len(tokens) - succeeded,
            failures=failures,
        )
        self._record_delivery(result)
        return result

    def _record_delivery(self, result: DispatchResult) -> None:
        """Log delivery results."""
        if result.all_failed:
            logger.error(
                "Dispatch result: every token rejected",
                provider=self._provider.name,
                attempted=result.attempted,
                reasons=sorted(set(result.failures.values())),
            )
        elif result.failed:
            logger.warning(
                "Dispatch result: partial delivery",
                provider=self._provider.name,
                succeeded=result.succeeded,
                failed=result.failed,
            )
        else:
            logger.info(
                "Dispatch result: delivered",
                provider=self._provider.name,
                succeeded=result.succeeded,
            )
