"""Webhook API routes for Stripe."""

import logging
from typing import Any

from fastapi import APIRouter, Request, status

from drip_checkout.services.webhook_service import WebhookService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/stripe", tags=["webhooks"])


@router.post(
    "/webhook",
    status_code=status.HTTP_200_OK,
    summary="Handle Stripe webhooks",
    description="Receives and reconciles Stripe webhook events. Requires a valid signature.",
)
async def stripe_webhook(request: Request) -> dict[str, Any]:
    """Handle Stripe webhook events.

    The signature is checked against the raw body before anything is
    read or written.

    Handles:
    - checkout.session.completed: marks the order PAID/PROCESSING when paid
    - checkout.session.async_payment_succeeded: delayed payment settled, PAID/PROCESSING
    - checkout.session.async_payment_failed: cancels a still PENDING order
    - checkout.session.expired: cancels a still PENDING order
    - charge.refunded: marks payment REFUNDED

    Returns:
        dict: Acknowledgment. Processing failures are still acknowledged.

    Raises:
        SignatureError: 400 if the signature is missing or invalid.
    """
    # Raw body for signature verification
    payload = await request.body()
    sig_header = request.headers.get("stripe-signature")
    logger.debug("Received webhook payload of %d bytes", len(payload))

    service = WebhookService()
    return await service.handle(payload, sig_header)
