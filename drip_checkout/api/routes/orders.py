"""Admin order management routes."""

from typing import Any

from fastapi import APIRouter, Query

from drip_checkout.api.deps import CurrentAdmin
from drip_checkout.api.middleware.error_handler import ValidationError
from drip_checkout.models.order import OrderStatus, PaymentStatus
from drip_checkout.schemas.order import (
    AdminOrderDetail,
    AdminOrderSummary,
    AdminOrderUpdate,
    AdminOrderUpdateResponse,
    CustomerResponse,
    OrderItemResponse,
    ShippingResponse,
)
from drip_checkout.services.checkout_service import CheckoutService
from drip_checkout.services.order_service import OrderService

router = APIRouter(prefix="/admin/orders", tags=["admin"])


def _summary_fields(order: dict[str, Any]) -> dict[str, Any]:
    return {
        "id": str(order["id"]),
        "order_number": f"#{order.get('order_number') or str(order['id'])[:8]}",
        "customer": CustomerResponse(name=order["customer_name"], email=order["customer_email"]),
        "total": str(order["total"]),
        "currency": order["currency"],
        "discount_code": order.get("discount_code"),
        "discount_amount": str(order["discount_amount"]) if order.get("discount_amount") is not None else None,
        "status": str(order["status"]).lower(),
        "payment_status": str(order["payment_status"]).lower(),
        "created_at": order["created_at"],
    }


def _detail(order: dict[str, Any]) -> AdminOrderDetail:
    return AdminOrderDetail(
        **_summary_fields(order),
        original_total=str(order["original_total"]) if order.get("original_total") is not None else None,
        discount_code_attempted=order.get("discount_code_attempted"),
        stripe_session_id=order.get("stripe_session_id"),
        stripe_payment_intent_id=order.get("stripe_payment_intent_id"),
        paid_at=order.get("paid_at"),
        updated_at=order["updated_at"],
        shipping=ShippingResponse(
            name=order.get("shipping_name"),
            phone=order.get("shipping_phone"),
            address1=order.get("shipping_address1"),
            address2=order.get("shipping_address2"),
            city=order.get("shipping_city"),
            zip=order.get("shipping_zip"),
            state=order.get("shipping_state"),
            country=order.get("shipping_country"),
        ),
        items=[OrderItemResponse(**item) for item in order.get("line_items") or []],
    )


def _parse_filter(enum_cls: type[OrderStatus] | type[PaymentStatus], value: str | None, field: str) -> str | None:
    if not value:
        return None
    try:
        return enum_cls(value.upper()).value
    except ValueError as e:
        raise ValidationError(
            f"Invalid {field} filter",
            details=[{"loc": [field], "msg": value, "type": "value_error"}],
        ) from e


@router.get(
    "",
    response_model=list[AdminOrderSummary],
    summary="List orders",
    description="Lists orders newest first, optionally filtered by status and payment status.",
)
async def list_orders(
    admin: CurrentAdmin,
    status: str | None = Query(default=None, description="Fulfilment status filter"),
    payment_status: str | None = Query(default=None, alias="paymentStatus", description="Payment status filter"),
) -> list[AdminOrderSummary]:
    """List orders for the admin dashboard."""
    orders = await OrderService().list_orders(
        status=_parse_filter(OrderStatus, status, "status"),
        payment_status=_parse_filter(PaymentStatus, payment_status, "paymentStatus"),
    )
    return [AdminOrderSummary(**_summary_fields(order)) for order in orders]


@router.get(
    "/{order_id}",
    response_model=AdminOrderDetail,
    summary="Get order detail",
)
async def get_order(order_id: str, admin: CurrentAdmin) -> AdminOrderDetail:
    """Full order view including shipping address and line items.

    Raises:
        NotFoundError: 404 if the order does not exist.
    """
    order = await OrderService().require_order(order_id)
    return _detail(order)


@router.patch(
    "/{order_id}",
    response_model=AdminOrderUpdateResponse,
    summary="Update order status",
    description="Moves an order through the fulfilment and payment state machine.",
)
async def update_order(order_id: str, data: AdminOrderUpdate, admin: CurrentAdmin) -> AdminOrderUpdateResponse:
    """Apply an admin status change.

    Illegal moves (un-paying a PAID order, cancelling a paid order without
    a refund, skipping fulfilment steps) are rejected with 409 and the
    current state in the error details. Marking a pending payment paid
    confirms it like the gateway does and counts the discount once.
    """
    if data.status is None and data.payment_status is None:
        raise ValidationError(
            "Nothing to update",
            details=[{"loc": ["status"], "msg": "Provide status and/or paymentStatus", "type": "missing"}],
        )

    result = await CheckoutService().update_order_status(
        order_id,
        status=data.status.value if data.status else None,
        payment_status=data.payment_status.value if data.payment_status else None,
    )
    order = result.order
    return AdminOrderUpdateResponse(
        id=str(order["id"]),
        status=str(order["status"]).lower(),
        payment_status=str(order["payment_status"]).lower(),
        changed=result.changed,
    )
