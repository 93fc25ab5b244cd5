"""Discount preview and admin discount management routes."""

from decimal import InvalidOperation
from typing import Any
from uuid import UUID

from fastapi import APIRouter, status

from drip_checkout.api.deps import CurrentAdmin
from drip_checkout.api.middleware.error_handler import ValidationError
from drip_checkout.core.money import to_decimal
from drip_checkout.schemas.discount import (
    DiscountCreatedResponse,
    DiscountCreateRequest,
    DiscountPreviewRequest,
    DiscountPreviewResponse,
    DiscountResponse,
    DiscountUpdateRequest,
    OkResponse,
)
from drip_checkout.services.discount_service import DiscountService

router = APIRouter(prefix="/discounts", tags=["discounts"])


@router.post(
    "/preview",
    response_model=DiscountPreviewResponse,
    summary="Preview a discount code",
    description="Evaluates a code against a cart subtotal without recording any usage.",
)
async def preview_discount(data: DiscountPreviewRequest) -> DiscountPreviewResponse:
    """Preview what a discount code would do to a subtotal.

    Raises:
        ValidationError: 400 if subtotal is missing, not a number or negative.
    """
    try:
        subtotal = to_decimal(data.subtotal)
    except InvalidOperation as e:
        raise ValidationError(
            "Invalid subtotal",
            details=[{"loc": ["subtotal"], "msg": "Must be a number", "type": "value_error"}],
        ) from e
    if not subtotal.is_finite():
        raise ValidationError(
            "Invalid subtotal",
            details=[{"loc": ["subtotal"], "msg": "Must be a number", "type": "value_error"}],
        )

    evaluation = await DiscountService().evaluate(subtotal, data.discount_code)
    return DiscountPreviewResponse(
        valid=evaluation.valid,
        applied_code=evaluation.applied_code,
        discount_amount=float(evaluation.discount_amount),
        total=float(evaluation.total),
        reason=evaluation.reason.value if evaluation.reason else None,
    )


# Admin router - requires an admin Bearer token
admin_router = APIRouter(prefix="/admin/discounts", tags=["admin"])


def _discount_response(discount: dict[str, Any]) -> DiscountResponse:
    return DiscountResponse(
        id=str(discount["id"]),
        code=discount["code"],
        type=str(discount["type"]).lower(),
        value=float(to_decimal(discount["value"])),
        usage_count=int(discount.get("usage_count") or 0),
        usage_limit=discount.get("usage_limit"),
        expires_at=discount.get("expires_at"),
        active=bool(discount.get("active")),
    )


@admin_router.get(
    "",
    response_model=list[DiscountResponse],
    summary="List discounts",
)
async def list_discounts(admin: CurrentAdmin) -> list[DiscountResponse]:
    """List every discount code, newest first."""
    discounts = await DiscountService().list_discounts()
    return [_discount_response(d) for d in discounts]


@admin_router.post(
    "",
    response_model=DiscountCreatedResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create a discount",
)
async def create_discount(data: DiscountCreateRequest, admin: CurrentAdmin) -> DiscountCreatedResponse:
    """Create a discount code.

    Codes are stored upper-case. A duplicate code is rejected with 400.
    """
    discount = await DiscountService().create_discount(
        code=data.code,
        discount_type=data.type,
        value=data.value,
        usage_limit=data.usage_limit,
        expires_at=data.expires_at,
        active=data.active,
    )
    return DiscountCreatedResponse(id=str(discount["id"]))


@admin_router.patch(
    "/{discount_id}",
    response_model=DiscountResponse,
    summary="Update a discount",
)
async def update_discount(
    discount_id: UUID,
    data: DiscountUpdateRequest,
    admin: CurrentAdmin,
) -> DiscountResponse:
    """Partially update a discount. Explicit nulls clear usageLimit or expiresAt."""
    changes = data.model_dump(exclude_unset=True)
    discount = await DiscountService().update_discount(str(discount_id), changes)
    return _discount_response(discount)


@admin_router.delete(
    "/{discount_id}",
    response_model=OkResponse,
    summary="Delete a discount",
)
async def delete_discount(discount_id: UUID, admin: CurrentAdmin) -> OkResponse:
    """Delete a discount code."""
    await DiscountService().delete_discount(str(discount_id))
    return OkResponse()
