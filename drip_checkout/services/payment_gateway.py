"""Stripe Checkout adapter.

Wraps the three gateway calls the checkout core needs: hosted session
creation, session retrieval for confirm-on-return, and webhook signature
verification. Stripe exceptions never leave this module; callers see
``GatewayError`` or ``SignatureError``.
"""

import json
import logging
from dataclasses import dataclass
from typing import Any

import stripe

from drip_checkout.api.middleware.error_handler import GatewayError, SignatureError
from drip_checkout.core.config import get_settings
from drip_checkout.core.stripe import get_stripe

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class GatewayLineItem:
    """A line as shown on the hosted payment page."""

    name: str
    unit_amount_cents: int
    quantity: int = 1


@dataclass(frozen=True)
class CheckoutSessionInfo:
    """Identifiers of a freshly created hosted session."""

    session_id: str
    redirect_url: str


@dataclass(frozen=True)
class SessionInfo:
    """State of an existing hosted session."""

    session_id: str
    status: str | None
    payment_status: str | None
    order_id: str | None
    payment_intent_id: str | None

    @property
    def is_paid(self) -> bool:
        return self.payment_status in ("paid", "no_payment_required")


def _as_id(value: Any) -> str | None:
    """Stripe returns either an id string or an expanded object."""
    if value is None or isinstance(value, str):
        return value
    return getattr(value, "id", None)


class PaymentGateway:
    """Adapter over the Stripe SDK."""

    def __init__(self) -> None:
        """Initialize the adapter with the configured Stripe module."""
        self.stripe = get_stripe()
        self.settings = get_settings()

    def _require_secret_key(self) -> None:
        if not self.settings.stripe_secret_key:
            raise GatewayError("Stripe is not configured. Please set STRIPE_SECRET_KEY environment variable.")

    def create_checkout_session(
        self,
        order_id: str,
        line_items: list[GatewayLineItem],
        success_url: str,
        cancel_url: str,
        currency: str,
        customer_email: str | None = None,
    ) -> CheckoutSessionInfo:
        """Create a hosted Stripe Checkout session for an order.

        Args:
            order_id: Order UUID; carried in metadata as the primary correlation key.
            line_items: Lines to charge.
            success_url: Redirect after payment.
            cancel_url: Redirect if the customer abandons.
            currency: ISO currency code.
            customer_email: Pre-fills the payment page.

        Returns:
            CheckoutSessionInfo: Session id and hosted page URL.

        Raises:
            GatewayError: If Stripe is unconfigured, unreachable, or rejects the session.
        """
        self._require_secret_key()

        params: dict[str, Any] = {
            "mode": "payment",
            "line_items": [
                {
                    "quantity": item.quantity,
                    "price_data": {
                        "currency": currency.lower(),
                        "unit_amount": item.unit_amount_cents,
                        "product_data": {"name": item.name},
                    },
                }
                for item in line_items
            ],
            "success_url": success_url,
            "cancel_url": cancel_url,
            "client_reference_id": str(order_id),
            "metadata": {"order_id": str(order_id)},
        }
        if customer_email:
            params["customer_email"] = customer_email

        try:
            session = self.stripe.checkout.Session.create(**params)
        except stripe.StripeError as e:
            logger.error("Stripe error creating checkout session for order %s: %s", order_id, str(e))
            raise GatewayError("Payment provider rejected the checkout session. Please retry.") from e

        logger.info("Created Stripe session %s for order %s", session.id, order_id)
        return CheckoutSessionInfo(session_id=session.id, redirect_url=session.url)

    def retrieve_session(self, session_id: str) -> SessionInfo:
        """Fetch a session's payment state.

        Raises:
            GatewayError: If Stripe is unconfigured or the call fails.
        """
        self._require_secret_key()
        try:
            session = self.stripe.checkout.Session.retrieve(session_id)
        except stripe.StripeError as e:
            logger.error("Stripe error retrieving session %s: %s", session_id, str(e))
            raise GatewayError("Could not retrieve payment session. Please retry.") from e

        metadata = getattr(session, "metadata", None)
        order_id = metadata["order_id"] if metadata and "order_id" in metadata else None
        order_id = order_id or getattr(session, "client_reference_id", None)
        return SessionInfo(
            session_id=session.id,
            status=getattr(session, "status", None),
            payment_status=getattr(session, "payment_status", None),
            order_id=order_id,
            payment_intent_id=_as_id(getattr(session, "payment_intent", None)),
        )

    def verify_webhook_signature(self, payload: bytes, sig_header: str | None) -> dict[str, Any]:
        """Verify a webhook delivery and return the event payload.

        Args:
            payload: Raw request body, byte for byte as received.
            sig_header: Stripe-Signature header value.

        Returns:
            dict: The verified event as plain JSON data.

        Raises:
            SignatureError: If the header is missing, the secret is unset,
                or the signature does not match.
        """
        if not sig_header:
            raise SignatureError("Missing Stripe-Signature header")
        if not self.settings.stripe_webhook_secret:
            logger.error("Stripe webhook secret is not configured; rejecting webhook")
            raise SignatureError("Webhook secret not configured")

        try:
            self.stripe.Webhook.construct_event(payload, sig_header, self.settings.stripe_webhook_secret)
        except stripe.SignatureVerificationError as e:
            logger.warning("Invalid webhook signature: %s", str(e))
            raise SignatureError("Invalid signature") from e
        except ValueError as e:
            logger.warning("Unparseable webhook payload: %s", str(e))
            raise SignatureError("Invalid payload") from e

        # The signature covers these exact bytes, so the parsed body is trusted
        return json.loads(payload)
