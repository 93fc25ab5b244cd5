"""Discount model type definitions for database operations."""

from datetime import datetime
from enum import Enum
from typing import TypedDict


class DiscountType(str, Enum):
    """How a discount's value is applied to a subtotal."""

    PERCENTAGE = "PERCENTAGE"
    FIXED = "FIXED"


class Discount(TypedDict):
    """Discounts table row representation."""

    id: str
    code: str
    type: str
    value: str
    usage_count: int
    usage_limit: int | None
    expires_at: datetime | None
    active: bool
    created_at: datetime
    updated_at: datetime


class DiscountCreate(TypedDict, total=False):
    """Data required to create a new discount."""

    code: str
    type: str
    value: str
    usage_limit: int | None
    expires_at: str | None
    active: bool
