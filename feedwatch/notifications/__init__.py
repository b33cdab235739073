"""Notification rendering and delivery.

Components:
- render / render_item: placeholder substitution for tenant templates
- WebhookChannel: single JSON POST to a tenant webhook
- NotificationDispatcher: deliver once and append a DeliveryOutcome
- DeliveryOutcome / DeliveryResult: outcome records
"""

from feedwatch.notifications.channels import WebhookChannel
from feedwatch.notifications.dispatcher import NotificationDispatcher, OutcomeLog
from feedwatch.notifications.schemas import (
    VALID_STATUSES,
    DeliveryOutcome,
    DeliveryResult,
    DeliveryStatus,
)
from feedwatch.notifications.templates import build_variables, render, render_item

__all__ = [
    "DeliveryOutcome",
    "DeliveryResult",
    "DeliveryStatus",
    "NotificationDispatcher",
    "OutcomeLog",
    "VALID_STATUSES",
    "WebhookChannel",
    "build_variables",
    "render",
    "render_item",
]
