"""Discount Pydantic schemas for API request/response models."""

from datetime import datetime
from typing import Any

from pydantic import Field

from drip_checkout.schemas.common import CamelModel


class DiscountPreviewRequest(CamelModel):
    """Schema for POST /discounts/preview.

    subtotal is parsed by the route so a bad value yields a 400 with the
    same error shape as other validation failures.
    """

    subtotal: Any = Field(default=None, description="Cart subtotal in major units")
    discount_code: str | None = Field(default=None, description="Code typed by the customer")


class DiscountPreviewResponse(CamelModel):
    """Discount evaluator output."""

    valid: bool
    applied_code: str | None = None
    discount_amount: float
    total: float
    reason: str | None = None


class DiscountResponse(CamelModel):
    """Discount as shown in the admin dashboard."""

    id: str
    code: str
    type: str = Field(description="'percentage' or 'fixed'")
    value: float
    usage_count: int
    usage_limit: int | None = None
    expires_at: datetime | None = None
    active: bool


class DiscountCreateRequest(CamelModel):
    """Schema for POST /admin/discounts."""

    code: str = ""
    type: str = Field(default="", description="'percentage' or 'fixed'")
    value: Any = None
    usage_limit: int | None = Field(default=None, ge=1)
    expires_at: datetime | None = None
    active: bool = True


class DiscountUpdateRequest(CamelModel):
    """Schema for PATCH /admin/discounts/{id}. Omitted fields are left unchanged."""

    type: str | None = None
    value: Any = None
    usage_limit: int | None = Field(default=None, ge=1)
    expires_at: datetime | None = None
    active: bool | None = None


class DiscountCreatedResponse(CamelModel):
    id: str


class OkResponse(CamelModel):
    ok: bool = True
