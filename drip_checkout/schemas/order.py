"""Admin order Pydantic schemas."""

from datetime import datetime
from typing import Any

from pydantic import Field, field_validator

from drip_checkout.models.order import OrderStatus, PaymentStatus
from drip_checkout.schemas.common import CamelModel


class OrderItemResponse(CamelModel):
    """Line item snapshot as shown in the admin dashboard."""

    product_id: int | None = None
    product_title: str
    product_handle: str
    main_image: str | None = None
    quantity: int
    unit_price: str
    selected_size: str | None = None
    selected_color: str | None = None
    variant_sku: str | None = None


class CustomerResponse(CamelModel):
    name: str
    email: str


class ShippingResponse(CamelModel):
    name: str | None = None
    phone: str | None = None
    address1: str | None = None
    address2: str | None = None
    city: str | None = None
    zip: str | None = None
    state: str | None = None
    country: str | None = None


class AdminOrderSummary(CamelModel):
    """Row of the admin order list."""

    id: str
    order_number: str
    customer: CustomerResponse
    total: str
    currency: str
    discount_code: str | None = None
    discount_amount: str | None = None
    status: str = Field(description="Lower-case fulfilment status")
    payment_status: str = Field(description="Lower-case payment status")
    created_at: datetime


class AdminOrderDetail(AdminOrderSummary):
    """Full order view for the admin dashboard."""

    original_total: str | None = None
    discount_code_attempted: str | None = None
    stripe_session_id: str | None = None
    stripe_payment_intent_id: str | None = None
    paid_at: datetime | None = None
    updated_at: datetime
    shipping: ShippingResponse
    items: list[OrderItemResponse]


class AdminOrderUpdate(CamelModel):
    """Schema for PATCH /admin/orders/{id}. Values are case-insensitive."""

    status: OrderStatus | None = None
    payment_status: PaymentStatus | None = None

    @field_validator("status", "payment_status", mode="before")
    @classmethod
    def upper_case(cls, value: Any) -> Any:
        return value.upper() if isinstance(value, str) else value


class AdminOrderUpdateResponse(CamelModel):
    """Authoritative state after an admin update."""

    ok: bool = True
    id: str
    status: str
    payment_status: str
    changed: bool
