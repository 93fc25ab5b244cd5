"""Checkout and payment Pydantic schemas for API request/response models."""

from datetime import datetime

from pydantic import Field

from drip_checkout.schemas.common import CamelModel


class CheckoutItem(CamelModel):
    """A cart line as sent by the storefront. Prices are never trusted from here."""

    product_id: int = Field(description="Catalog product id")
    quantity: int = Field(description="Quantity ordered (>= 1)")
    selected_size: str | None = Field(default=None, description="Chosen size (variant option1)")
    selected_color: str | None = Field(default=None, description="Chosen color (variant option2)")


class ShippingPayload(CamelModel):
    """Shipping address fields; address1, city, zip and country are required at checkout."""

    name: str | None = None
    phone: str | None = None
    address1: str | None = None
    address2: str | None = None
    city: str | None = None
    zip: str | None = None
    state: str | None = None
    country: str | None = None


class CheckoutIntentCreate(CamelModel):
    """Schema for POST /checkout/intent.

    Presence checks happen in the service so every missing field is
    reported together as a ValidationError.
    """

    customer_name: str = Field(default="", description="Customer full name")
    customer_email: str = Field(default="", description="Customer email")
    items: list[CheckoutItem] = Field(default_factory=list, description="Cart lines")
    discount_code: str | None = Field(default=None, description="Optional promotional code")
    shipping: ShippingPayload | None = Field(default=None, description="Shipping address")


class CheckoutIntentResponse(CamelModel):
    """Schema for checkout intent creation response."""

    order_id: str = Field(description="Created order UUID")
    redirect_url: str = Field(description="Hosted payment page to redirect the customer to")


class PayRequest(CamelModel):
    """Schema for POST /pay."""

    order_id: str = Field(default="", description="Order to collect payment for")


class PayResponse(CamelModel):
    """Schema for POST /pay response."""

    url: str = Field(description="Hosted payment page URL")
    session_id: str = Field(description="Stripe Checkout Session ID")


class OrderMinimalResponse(CamelModel):
    """PII-free order view for unauthenticated status polling."""

    id: str
    total: float
    currency: str
    status: str
    payment_status: str
    created_at: datetime


class PaymentConfirmationResponse(CamelModel):
    """Schema for GET /pay/confirm."""

    paid: bool = Field(description="Whether the order is paid")
    payment_status: str | None = Field(default=None, description="Gateway payment status when unpaid")
    order_id: str | None = Field(default=None, description="Correlated order id")
    order: OrderMinimalResponse | None = Field(default=None, description="Order status once paid")
