"""Webhook event log type definitions."""

from datetime import datetime
from enum import Enum
from typing import TypedDict


class WebhookEventStatus(str, Enum):
    """Processing outcome recorded for each delivered gateway event."""

    RECEIVED = "received"
    PROCESSED = "processed"
    IGNORED = "ignored"
    FAILED = "failed"


class WebhookEvent(TypedDict):
    """webhook_events table row.

    The id is the gateway's event id and doubles as the duplicate-delivery
    guard through the primary key constraint.
    """

    id: str
    type: str
    status: str
    order_id: str | None
    error: str | None
    received_at: datetime
    processed_at: datetime | None
