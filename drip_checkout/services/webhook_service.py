"""Stripe webhook reconciliation service.

Each verified event is first written to the ``webhook_events`` log, whose
primary key on the Stripe event id turns redelivery into a no-op. The
event is then dispatched on its type and the outcome stored on the log row.
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import Any

from postgrest.exceptions import APIError as PostgrestAPIError

from drip_checkout.api.middleware.error_handler import StateConflictError, ValidationError
from drip_checkout.core.supabase import get_supabase_client
from drip_checkout.models.order import PaymentStatus
from drip_checkout.models.webhook_event import WebhookEventStatus
from drip_checkout.schemas.webhook import (
    ChargeRefunded,
    CheckoutSessionAsyncPaymentFailed,
    CheckoutSessionAsyncPaymentSucceeded,
    CheckoutSessionCompleted,
    CheckoutSessionExpired,
    CheckoutSessionObject,
    GatewayEvent,
    parse_gateway_event,
)
from drip_checkout.services.checkout_service import CheckoutService
from drip_checkout.services.order_service import OrderService
from drip_checkout.services.payment_gateway import PaymentGateway

logger = logging.getLogger(__name__)

WEBHOOK_EVENTS_TABLE = "webhook_events"

UNIQUE_VIOLATION = "23505"

# A RECEIVED row older than this is treated as abandoned by a crashed worker
WEBHOOK_RECEIPT_LEASE = timedelta(minutes=5)


class WebhookService:
    """Service applying Stripe events to orders exactly once."""

    def __init__(self) -> None:
        """Initialize webhook service with Supabase client and collaborators."""
        self.client = get_supabase_client()
        self.gateway = PaymentGateway()
        self.orders = OrderService()
        self.checkout = CheckoutService()

    async def handle(self, payload: bytes, sig_header: str | None) -> dict[str, Any]:
        """Verify, log and apply one webhook delivery.

        Args:
            payload: Raw request body.
            sig_header: Stripe-Signature header value.

        Returns:
            dict: ``received`` plus the recorded outcome.

        Raises:
            SignatureError: If the delivery is not authentic. Nothing is written.
            ValidationError: If the signed payload carries no event id.
            postgrest.exceptions.APIError: If the event log cannot be written,
                so the gateway redelivers.
        """
        raw = self.gateway.verify_webhook_signature(payload, sig_header)
        event_id = raw.get("id")
        event_type = str(raw.get("type", ""))
        if not event_id:
            raise ValidationError("Webhook event has no id")

        if not await self._record_receipt(event_id, event_type):
            logger.info("Duplicate webhook event %s (%s) acknowledged", event_id, event_type)
            return {"received": True, "duplicate": True}

        try:
            event = parse_gateway_event(raw)
            outcome, order_id = await self.dispatch(event)
        except Exception as e:
            # Processing failures are acked and kept in the event log
            logger.error("Failed to process webhook event %s (%s): %s", event_id, event_type, str(e), exc_info=True)
            await self._record_outcome(event_id, WebhookEventStatus.FAILED, error=str(e))
            return {"received": True, "status": WebhookEventStatus.FAILED.value}

        await self._record_outcome(event_id, outcome, order_id=order_id)
        return {"received": True, "status": outcome.value}

    async def dispatch(self, event: GatewayEvent) -> tuple[WebhookEventStatus, str | None]:
        """Apply a parsed event to its order.

        Returns:
            tuple: Log status and the correlated order id, if any.
        """
        if isinstance(event, (CheckoutSessionCompleted, CheckoutSessionAsyncPaymentSucceeded)):
            session = event.data.object
            order_id = await self._correlate_session(session)
            if not order_id:
                return self._uncorrelated(event.id, event.type)

            try:
                if isinstance(event, CheckoutSessionAsyncPaymentSucceeded) or session.is_paid:
                    await self.checkout.record_payment(
                        order_id, session_ref=session.id, payment_intent_id=session.payment_intent
                    )
                else:
                    # Delayed payment method: async events settle the order
                    await self.orders.update_status(order_id, session_ref=session.id)
            except StateConflictError as e:
                return self._conflict(event.id, order_id, e)
            return WebhookEventStatus.PROCESSED, order_id

        if isinstance(event, (CheckoutSessionAsyncPaymentFailed, CheckoutSessionExpired)):
            session = event.data.object
            order_id = await self._correlate_session(session)
            if not order_id:
                return self._uncorrelated(event.id, event.type)

            result = await self.orders.cancel_if_pending(order_id)
            if not result.changed:
                logger.info(
                    "Event %s left order %s unchanged (%s/%s)",
                    event.type,
                    order_id,
                    result.order["status"],
                    result.order["payment_status"],
                )
            return WebhookEventStatus.PROCESSED, order_id

        if isinstance(event, ChargeRefunded):
            charge = event.data.object
            order = None
            if charge.payment_intent:
                order = await self.orders.get_order_by_payment_intent(charge.payment_intent)
            if not order:
                return self._uncorrelated(event.id, event.type)
            if not charge.refunded:
                logger.info("Partial refund on charge %s for order %s; payment status kept", charge.id, order["id"])
                return WebhookEventStatus.IGNORED, str(order["id"])

            try:
                await self.orders.update_status(str(order["id"]), payment_status=PaymentStatus.REFUNDED.value)
            except StateConflictError as e:
                return self._conflict(event.id, str(order["id"]), e)
            return WebhookEventStatus.PROCESSED, str(order["id"])

        logger.info("Ignoring unhandled webhook event type %s (%s)", event.type, event.id)
        return WebhookEventStatus.IGNORED, None

    async def _correlate_session(self, session: CheckoutSessionObject) -> str | None:
        """Order id from session metadata, else from the stored session id."""
        if session.order_id:
            return session.order_id
        order = await self.orders.get_order_by_session(session.id)
        return str(order["id"]) if order else None

    def _uncorrelated(self, event_id: str, event_type: str) -> tuple[WebhookEventStatus, None]:
        logger.warning("Webhook event %s (%s) matches no order", event_id, event_type)
        return WebhookEventStatus.IGNORED, None

    def _conflict(
        self, event_id: str, order_id: str, error: StateConflictError
    ) -> tuple[WebhookEventStatus, str]:
        logger.info("Webhook event %s is a no-op for order %s: %s", event_id, order_id, error.message)
        return WebhookEventStatus.IGNORED, order_id

    async def _record_receipt(self, event_id: str, event_type: str) -> bool:
        """Insert the event into the log.

        Returns:
            bool: False if the event was already logged and must not be
            processed again. An event whose earlier attempt FAILED is retried,
            as is one left RECEIVED for longer than the receipt lease by a
            worker that never recorded an outcome.
        """
        now = datetime.now(timezone.utc)
        row = {
            "id": event_id,
            "type": event_type,
            "status": WebhookEventStatus.RECEIVED.value,
            "received_at": now.isoformat(),
        }
        try:
            self.client.table(WEBHOOK_EVENTS_TABLE).insert(row).execute()
            return True
        except PostgrestAPIError as e:
            if e.code != UNIQUE_VIOLATION:
                raise

        response = (
            self.client.table(WEBHOOK_EVENTS_TABLE)
            .update({"status": WebhookEventStatus.RECEIVED.value, "received_at": now.isoformat(), "error": None})
            .eq("id", event_id)
            .eq("status", WebhookEventStatus.FAILED.value)
            .execute()
        )
        if response.data:
            logger.info("Retrying previously failed webhook event %s", event_id)
            return True

        response = (
            self.client.table(WEBHOOK_EVENTS_TABLE)
            .update({"received_at": now.isoformat(), "error": None})
            .eq("id", event_id)
            .eq("status", WebhookEventStatus.RECEIVED.value)
            .lt("received_at", (now - WEBHOOK_RECEIPT_LEASE).isoformat())
            .execute()
        )
        if response.data:
            logger.warning("Reclaiming webhook event %s left unprocessed past its lease", event_id)
            return True

        existing = (
            self.client.table(WEBHOOK_EVENTS_TABLE)
            .select("status")
            .eq("id", event_id)
            .maybe_single()
            .execute()
        )
        if existing and existing.data and existing.data.get("status") == WebhookEventStatus.RECEIVED.value:
            logger.warning("Webhook event %s redelivered while still being processed", event_id)
        return False

    async def _record_outcome(
        self,
        event_id: str,
        status: WebhookEventStatus,
        order_id: str | None = None,
        error: str | None = None,
    ) -> None:
        update: dict[str, Any] = {
            "status": status.value,
            "error": error,
            "processed_at": datetime.now(timezone.utc).isoformat(),
        }
        if order_id:
            update["order_id"] = order_id
        self.client.table(WEBHOOK_EVENTS_TABLE).update(update).eq("id", event_id).execute()
