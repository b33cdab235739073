"""Notification dispatcher: deliver once, log the outcome.

The dispatcher performs a single webhook call per notification and appends
a DeliveryOutcome before returning. It never retries; a failed delivery is
recorded with status ``error`` and the caller moves on.

Outcome-log write failures are logged and never propagate, so a broken log
store cannot turn a delivered notification into a pipeline error.
"""

import logging
from typing import Protocol

from feedwatch.notifications.channels import WebhookChannel
from feedwatch.notifications.schemas import DeliveryOutcome, DeliveryResult
from feedwatch.observability.metrics import get_metrics
from feedwatch.upstream.schemas import FetchedItem, WatchTarget

logger = logging.getLogger(__name__)


class OutcomeLog(Protocol):
    async def append_delivery_outcome(self, outcome: DeliveryOutcome) -> None: ...


class NotificationDispatcher:
    """Delivers rendered messages and records one outcome per attempt."""

    def __init__(self, channel: WebhookChannel, outcome_log: OutcomeLog) -> None:
        self._channel = channel
        self._log = outcome_log

    @property
    def channel(self) -> WebhookChannel:
        return self._channel

    async def deliver(
        self,
        target: WatchTarget,
        item: FetchedItem,
        message: str,
    ) -> DeliveryResult:
        """
        Send ``message`` to the target's webhook and log the outcome.

        Args:
            target: Watch target owning the webhook.
            item: Item the notification is about.
            message: Rendered message body.

        Returns:
            DeliveryResult of the single attempt.
        """
        try:
            result = await self._channel.send(target.webhook_url, message)
        except Exception as e:
            logger.error("Unexpected webhook error for target %s: %s", target.id, e)
            result = DeliveryResult(success=False, detail=f"{type(e).__name__}: {e}")

        outcome = DeliveryOutcome(
            target_id=target.id,
            platform=target.platform.value,
            content_type=item.content_type.value,
            message=message,
            status="success" if result.success else "error",
            content_id=item.content_id,
            error_detail=None if result.success else result.detail,
        )
        await self._record(outcome)
        return result

    async def _record(self, outcome: DeliveryOutcome) -> None:
        get_metrics().record_delivery(outcome.platform, outcome.status)

        if outcome.status == "error":
            logger.warning(
                "Delivery failed for target %s (%s): %s",
                outcome.target_id, outcome.content_id, outcome.error_detail,
            )
        else:
            logger.debug(
                "Delivered %s notification for target %s",
                outcome.content_type, outcome.target_id,
            )

        try:
            await self._log.append_delivery_outcome(outcome)
        except Exception as e:
            logger.error(
                "Failed to record delivery outcome %s for target %s: %s",
                outcome.outcome_id, outcome.target_id, e,
            )
