"""Checkout and payment API routes for the storefront."""

from typing import Any

from fastapi import APIRouter, Query, status

from drip_checkout.api.middleware.error_handler import NotFoundError
from drip_checkout.core.money import to_decimal
from drip_checkout.schemas.checkout import (
    CheckoutIntentCreate,
    CheckoutIntentResponse,
    OrderMinimalResponse,
    PaymentConfirmationResponse,
    PayRequest,
    PayResponse,
)
from drip_checkout.services.checkout_service import CheckoutService
from drip_checkout.services.order_service import OrderService

router = APIRouter(tags=["checkout"])


def _minimal_response(order: dict[str, Any]) -> OrderMinimalResponse:
    return OrderMinimalResponse(
        id=str(order["id"]),
        total=float(to_decimal(order["total"])),
        currency=order["currency"],
        status=order["status"],
        payment_status=order["payment_status"],
        created_at=order["created_at"],
    )


@router.post(
    "/checkout/intent",
    response_model=CheckoutIntentResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create checkout intent",
    description="Creates a PENDING order from the cart and a hosted Stripe Checkout session.",
)
async def create_checkout_intent(data: CheckoutIntentCreate) -> CheckoutIntentResponse:
    """Create an order and its payment session.

    Prices come from the catalog, never from the request. An unusable
    discount code does not block checkout; the order is charged full price.

    Args:
        data: Customer, shipping, cart lines and optional discount code.

    Returns:
        CheckoutIntentResponse: The order id and the URL to redirect to.
    """
    service = CheckoutService()
    result = await service.create_checkout_intent(data)
    return CheckoutIntentResponse(order_id=result["order_id"], redirect_url=result["redirect_url"])


@router.post(
    "/pay",
    response_model=PayResponse,
    summary="Pay for an existing order",
    description="Creates a fresh Stripe Checkout session for an unpaid PENDING order.",
)
async def pay_order(data: PayRequest) -> PayResponse:
    """Create a new payment session for an order created earlier."""
    service = CheckoutService()
    result = await service.create_payment_session(data.order_id)
    return PayResponse(url=result["url"], session_id=result["session_id"])


@router.get(
    "/pay/confirm",
    response_model=PaymentConfirmationResponse,
    response_model_exclude_none=True,
    summary="Confirm payment on return",
    description="Checks the Stripe session after redirect and records the payment if it succeeded.",
)
async def confirm_payment(
    session_id: str = Query(default="", description="Stripe Checkout Session ID"),
) -> PaymentConfirmationResponse:
    """Confirm-on-return fallback for delayed or lost webhooks.

    Applies the same idempotent PAID transition as the webhook, so the two
    paths can race safely.
    """
    service = CheckoutService()
    result = await service.confirm_payment(session_id)
    order = result.get("order")
    return PaymentConfirmationResponse(
        paid=result["paid"],
        payment_status=result.get("payment_status"),
        order_id=result.get("order_id"),
        order=_minimal_response(order) if order else None,
    )


# Orders router - public, PII-free status polling
orders_router = APIRouter(prefix="/orders", tags=["orders"])


@orders_router.get(
    "/{order_id}/min",
    response_model=OrderMinimalResponse,
    summary="Get order status",
    description="Returns only id, total, currency, status, payment status and creation time.",
)
async def get_order_minimal(order_id: str) -> OrderMinimalResponse:
    """Return the minimal order view.

    Raises:
        NotFoundError: 404 if the order does not exist or the id is not a UUID.
    """
    order = await OrderService().get_minimal(order_id)
    if not order:
        raise NotFoundError("Order not found")
    return _minimal_response(order)
