"""Database model type definitions."""

from drip_checkout.models.discount import Discount, DiscountCreate, DiscountType
from drip_checkout.models.order import (
    Order,
    OrderCreate,
    OrderItem,
    OrderStatus,
    PaymentStatus,
)
from drip_checkout.models.webhook_event import WebhookEvent, WebhookEventStatus

__all__ = [
    "Discount",
    "DiscountCreate",
    "DiscountType",
    "Order",
    "OrderCreate",
    "OrderItem",
    "OrderStatus",
    "PaymentStatus",
    "WebhookEvent",
    "WebhookEventStatus",
]
