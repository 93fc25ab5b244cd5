"""Checkout and payment business logic service."""

import logging
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Any

from drip_checkout.api.middleware.error_handler import (
    GatewayError,
    NotFoundError,
    ProductNotFoundError,
    StateConflictError,
    ValidationError,
)
from drip_checkout.core.config import get_settings
from drip_checkout.core.money import format_money, quantize_money, to_cents, to_decimal
from drip_checkout.models.order import OrderCreate, OrderItem, OrderStatus, PaymentStatus
from drip_checkout.schemas.checkout import CheckoutIntentCreate
from drip_checkout.services.catalog_service import CatalogService, pick_variant
from drip_checkout.services.discount_service import DiscountService
from drip_checkout.services.order_service import OrderService, TransitionResult
from drip_checkout.services.payment_gateway import CheckoutSessionInfo, GatewayLineItem, PaymentGateway

logger = logging.getLogger(__name__)

REQUIRED_SHIPPING_FIELDS = ("address1", "city", "zip", "country")


def _is_valid_email(email: str) -> bool:
    """Require a local part, an '@' and a dotted domain."""
    local, sep, domain = email.partition("@")
    if not (local and sep and domain) or " " in email:
        return False
    host, dot, tld = domain.rpartition(".")
    return bool(host and dot and tld)


def validate_checkout_intent(data: CheckoutIntentCreate) -> None:
    """Check customer, shipping and cart fields.

    Raises:
        ValidationError: Listing every missing or invalid field.
    """
    errors: list[dict[str, Any]] = []

    if not data.customer_name.strip():
        errors.append({"loc": ["customerName"], "msg": "Required", "type": "missing"})

    email = data.customer_email.strip()
    if not email:
        errors.append({"loc": ["customerEmail"], "msg": "Required", "type": "missing"})
    elif not _is_valid_email(email):
        errors.append({"loc": ["customerEmail"], "msg": "Invalid email address", "type": "value_error"})

    shipping = data.shipping.model_dump() if data.shipping else {}
    for field_name in REQUIRED_SHIPPING_FIELDS:
        if not (shipping.get(field_name) or "").strip():
            errors.append({"loc": ["shipping", field_name], "msg": "Required", "type": "missing"})

    if not data.items:
        errors.append({"loc": ["items"], "msg": "Cart is empty", "type": "missing"})
    for index, item in enumerate(data.items):
        if item.quantity < 1:
            errors.append({"loc": ["items", str(index), "quantity"], "msg": "Must be at least 1", "type": "value_error"})

    if errors:
        fields = ", ".join(".".join(e["loc"]) for e in errors)
        raise ValidationError(f"Invalid checkout data: {fields}", details=errors)


class CheckoutService:
    """Service turning carts into orders and reconciling their payment."""

    def __init__(self) -> None:
        """Initialize checkout service with its collaborators."""
        self.settings = get_settings()
        self.orders = OrderService()
        self.discounts = DiscountService()
        self.catalog = CatalogService()
        self.gateway = PaymentGateway()

    async def create_checkout_intent(self, data: CheckoutIntentCreate) -> dict[str, Any]:
        """Create a PENDING order and a hosted payment session for a cart.

        Args:
            data: Customer, shipping, cart lines and optional discount code.

        Returns:
            dict: Contains order_id and redirect_url.

        Raises:
            ValidationError: If input is incomplete or the total cannot be charged.
            ProductNotFoundError: If a cart line's product is gone.
            GatewayError: If the payment session could not be created.
        """
        validate_checkout_intent(data)

        items, subtotal = await self._snapshot_items(data)

        discount_code = None
        discount_code_attempted = None
        discount_amount = Decimal("0")
        total = subtotal
        if data.discount_code and data.discount_code.strip():
            evaluation = await self.discounts.evaluate(subtotal, data.discount_code)
            if evaluation.valid:
                discount_code = evaluation.applied_code
                # Stored amounts are cents, so total == original_total - discount_amount on the row
                discount_amount = quantize_money(evaluation.discount_amount)
                total = max(subtotal - discount_amount, Decimal("0"))
            else:
                discount_code_attempted = evaluation.code
                logger.info(
                    "Discount code %s not applied (%s); checking out at full price",
                    evaluation.code,
                    evaluation.reason.value if evaluation.reason else "unknown",
                )

        total = quantize_money(total)
        self._ensure_chargeable(total)

        shipping = data.shipping.model_dump() if data.shipping else {}
        customer_name = data.customer_name.strip()
        order_data: OrderCreate = {
            "customer_name": customer_name,
            "customer_email": data.customer_email.strip(),
            "currency": self.settings.checkout_currency.upper(),
            "original_total": format_money(subtotal),
            "discount_code": discount_code,
            "discount_code_attempted": discount_code_attempted,
            "discount_amount": format_money(discount_amount),
            "total": format_money(total),
            "shipping_name": shipping.get("name") or customer_name,
            "shipping_phone": shipping.get("phone"),
            "shipping_address1": shipping.get("address1"),
            "shipping_address2": shipping.get("address2"),
            "shipping_city": shipping.get("city"),
            "shipping_zip": shipping.get("zip"),
            "shipping_state": shipping.get("state"),
            "shipping_country": shipping.get("country"),
        }
        order = await self.orders.create_order(order_data, items)

        try:
            session = self._open_session(order)
        except GatewayError as e:
            # The order stays PENDING; the client retries through /pay
            logger.warning("Payment session creation failed for order %s", order["id"])
            raise GatewayError(
                e.message,
                details=[{"loc": ["orderId"], "msg": str(order["id"]), "type": "retry_with_pay"}],
            ) from e

        await self.orders.update_status(order["id"], session_ref=session.session_id)
        return {"order_id": str(order["id"]), "redirect_url": session.redirect_url}

    async def create_payment_session(self, order_id: str) -> dict[str, str]:
        """Open a new hosted payment session for an existing unpaid order.

        Args:
            order_id: The order's UUID.

        Returns:
            dict: Contains url and session_id.

        Raises:
            NotFoundError: If the order does not exist.
            StateConflictError: If the order is already paid or no longer payable.
            GatewayError: If the gateway call fails; the order stays PENDING.
        """
        if not order_id:
            raise ValidationError(
                "Missing orderId",
                details=[{"loc": ["orderId"], "msg": "Required", "type": "missing"}],
            )
        order = await self.orders.require_order(order_id)

        if order["payment_status"] == PaymentStatus.PAID.value:
            raise StateConflictError(
                "Order already paid",
                current_status=order["status"],
                current_payment_status=order["payment_status"],
            )
        if order["status"] != OrderStatus.PENDING.value or order["payment_status"] != PaymentStatus.PENDING.value:
            raise StateConflictError(
                "Order can no longer be paid",
                current_status=order["status"],
                current_payment_status=order["payment_status"],
            )

        self._ensure_chargeable(to_decimal(order["total"]))
        session = self._open_session(order)
        await self.orders.update_status(order["id"], session_ref=session.session_id)
        return {"url": session.redirect_url, "session_id": session.session_id}

    async def confirm_payment(self, session_id: str) -> dict[str, Any]:
        """Synchronous confirm-on-return, the fallback to webhook delivery.

        Args:
            session_id: Checkout session id from the success redirect.

        Returns:
            dict: ``paid`` plus either the gateway payment status or the
            minimal order view.

        Raises:
            ValidationError: If session_id is missing.
            NotFoundError: If no order correlates to the session.
            GatewayError: If the session cannot be retrieved.
        """
        if not session_id:
            raise ValidationError(
                "Missing session_id",
                details=[{"loc": ["session_id"], "msg": "Required", "type": "missing"}],
            )

        info = self.gateway.retrieve_session(session_id)
        order_id = info.order_id
        if not order_id:
            order = await self.orders.get_order_by_session(session_id)
            if not order:
                raise NotFoundError("No order for this payment session")
            order_id = str(order["id"])

        if not info.is_paid:
            return {"paid": False, "payment_status": info.payment_status, "order_id": order_id}

        await self.record_payment(order_id, session_ref=info.session_id, payment_intent_id=info.payment_intent_id)
        return {"paid": True, "order_id": order_id, "order": await self.orders.get_minimal(order_id)}

    async def record_payment(
        self,
        order_id: str,
        session_ref: str | None = None,
        payment_intent_id: str | None = None,
    ) -> TransitionResult:
        """Mark an order PAID and count its discount once.

        Shared by the webhook reconciler and confirm-on-return. Whichever
        caller's conditional update wins the PENDING -> PAID move is the
        only one that increments discount usage.
        """
        result = await self.orders.mark_paid(order_id, session_ref=session_ref, payment_intent_id=payment_intent_id)
        await self._count_discount(order_id, result)
        return result

    async def update_order_status(
        self,
        order_id: str,
        status: str | None = None,
        payment_status: str | None = None,
    ) -> TransitionResult:
        """Apply an admin status change.

        An admin marking the payment PAID confirms it exactly as the gateway
        would, including the one-time discount usage increment.
        """
        result = await self.orders.update_status(order_id, status=status, payment_status=payment_status)
        await self._count_discount(order_id, result)
        return result

    async def reconcile_pending_orders(self, max_age_hours: int = 48, limit: int = 100) -> dict[str, int]:
        """Poll the gateway for PENDING orders whose webhooks never arrived.

        Orders that never got a payment session are cancelled once they are
        older than the gateway session lifetime.

        Args:
            max_age_hours: Only orders created within this window are polled.
            limit: Maximum orders to check per kind.

        Returns:
            dict: Counters for checked, paid, cancelled, pending and errors.
        """
        now = datetime.now(timezone.utc)
        counts = {"checked": 0, "paid": 0, "cancelled": 0, "pending": 0, "errors": 0}

        stale_before = now - timedelta(hours=self.settings.stripe_session_lifetime_hours)
        for order in await self.orders.list_pending_without_session(stale_before, limit):
            counts["checked"] += 1
            result = await self.orders.cancel_if_pending(str(order["id"]))
            if result.changed:
                logger.info("Cancelled order %s that never reached the payment gateway", order["id"])
            counts["cancelled" if result.changed else "pending"] += 1

        orders = await self.orders.list_pending_with_session(now - timedelta(hours=max_age_hours), limit)
        for order in orders:
            counts["checked"] += 1
            try:
                info = self.gateway.retrieve_session(order["stripe_session_id"])
            except GatewayError:
                counts["errors"] += 1
                continue

            if info.is_paid:
                result = await self.record_payment(
                    str(order["id"]), session_ref=info.session_id, payment_intent_id=info.payment_intent_id
                )
                counts["paid" if result.changed else "pending"] += 1
            elif info.status == "expired":
                result = await self.orders.cancel_if_pending(str(order["id"]))
                counts["cancelled" if result.changed else "pending"] += 1
            else:
                counts["pending"] += 1

        logger.info("Pending order reconciliation finished: %s", counts)
        return counts

    async def _count_discount(self, order_id: str, result: TransitionResult) -> None:
        """Increment discount usage for the caller that confirmed payment.

        The order is already PAID at this point; a failed increment is logged
        and never turns the payment into an error.
        """
        code = result.order.get("discount_code")
        if not (result.confirmed_payment and code):
            return
        try:
            await self.discounts.increment_usage(code)
        except Exception:
            logger.error(
                "Order %s paid but usage of discount %s was not counted",
                order_id,
                code,
                exc_info=True,
            )

    async def _snapshot_items(self, data: CheckoutIntentCreate) -> tuple[list[OrderItem], Decimal]:
        """Resolve cart lines to server-side prices and catalog snapshots."""
        products = await self.catalog.get_products_by_ids([item.product_id for item in data.items])

        items: list[OrderItem] = []
        subtotal = Decimal("0")
        for line in data.items:
            product = products.get(line.product_id)
            if not product:
                raise ProductNotFoundError(line.product_id)

            variant = pick_variant(product["variants"], line.selected_size, line.selected_color)
            if variant is None or variant.get("price") is None:
                logger.warning("Product %s has no purchasable variant", line.product_id)
                raise ProductNotFoundError(line.product_id)

            unit_price = quantize_money(to_decimal(variant["price"]))
            subtotal += unit_price * line.quantity
            images = product["images"]
            items.append(
                {
                    "product_id": product["id"],
                    "product_title": product["title"],
                    "product_handle": product["handle"],
                    "main_image": images[0]["src"] if images else None,
                    "quantity": line.quantity,
                    "unit_price": format_money(unit_price),
                    "selected_size": line.selected_size,
                    "selected_color": line.selected_color,
                    "variant_sku": variant.get("sku"),
                }
            )

        return items, subtotal

    def _ensure_chargeable(self, total: Decimal) -> None:
        if to_cents(total) < self.settings.stripe_min_charge_cents:
            raise ValidationError(
                "Order total is below the minimum chargeable amount",
                details=[{"loc": ["total"], "msg": format_money(total), "type": "below_minimum"}],
            )

    def _open_session(self, order: dict[str, Any]) -> CheckoutSessionInfo:
        """Create the hosted session for an order's current total."""
        order_id = str(order["id"])
        order_number = order.get("order_number")
        name = f"Magic City Drip Order #{order_number}" if order_number else f"Magic City Drip Order {order_id[:8]}"
        return self.gateway.create_checkout_session(
            order_id=order_id,
            line_items=[GatewayLineItem(name=name, unit_amount_cents=to_cents(to_decimal(order["total"])))],
            success_url=self.settings.checkout_success_url.replace("{ORDER_ID}", order_id),
            cancel_url=self.settings.checkout_cancel_url.replace("{ORDER_ID}", order_id),
            currency=order.get("currency") or self.settings.checkout_currency,
            customer_email=order.get("customer_email"),
        )
