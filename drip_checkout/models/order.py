"""Order model type definitions for database operations."""

from datetime import datetime
from enum import Enum
from typing import TypedDict


class OrderStatus(str, Enum):
    """Fulfilment status of an order, matching the orders.status column."""

    PENDING = "PENDING"
    PROCESSING = "PROCESSING"
    SHIPPED = "SHIPPED"
    DELIVERED = "DELIVERED"
    CANCELLED = "CANCELLED"


class PaymentStatus(str, Enum):
    """Payment status of an order, matching the orders.payment_status column."""

    PENDING = "PENDING"
    PAID = "PAID"
    REFUNDED = "REFUNDED"


class OrderItem(TypedDict):
    """Snapshot of a single cart line taken at checkout time.

    Stored as part of the line_items JSONB array. Never updated after
    the order row is inserted, so catalog price changes do not leak in.
    """

    product_id: int | None
    product_title: str
    product_handle: str
    main_image: str | None
    quantity: int
    unit_price: str
    selected_size: str | None
    selected_color: str | None
    variant_sku: str | None


class Order(TypedDict):
    """Order table row representation.

    Maps directly to the database schema.
    """

    id: str
    order_number: int
    customer_name: str
    customer_email: str
    currency: str
    original_total: str
    discount_code: str | None
    discount_code_attempted: str | None
    discount_amount: str | None
    total: str
    status: str
    payment_status: str
    stripe_session_id: str | None
    stripe_payment_intent_id: str | None
    shipping_name: str | None
    shipping_phone: str | None
    shipping_address1: str | None
    shipping_address2: str | None
    shipping_city: str | None
    shipping_zip: str | None
    shipping_state: str | None
    shipping_country: str | None
    line_items: list[OrderItem]
    paid_at: datetime | None
    created_at: datetime
    updated_at: datetime


class OrderCreate(TypedDict, total=False):
    """Data required to create a new order.

    Used when inserting a new order during checkout-intent creation.
    """

    customer_name: str
    customer_email: str
    currency: str
    original_total: str
    discount_code: str | None
    discount_code_attempted: str | None
    discount_amount: str
    total: str
    shipping_name: str | None
    shipping_phone: str | None
    shipping_address1: str | None
    shipping_address2: str | None
    shipping_city: str | None
    shipping_zip: str | None
    shipping_state: str | None
    shipping_country: str | None


# Columns safe to hand to an unauthenticated caller holding only the order id
MINIMAL_ORDER_COLUMNS = "id,total,currency,status,payment_status,created_at"
