#!/usr/bin/env python
"""Script to reconcile PENDING orders against Stripe.

Catches up on webhooks that never arrived. For every PENDING order that
already has a Stripe Checkout session, the session is fetched and:
1. paid sessions mark the order PAID and count its discount code once
2. expired sessions cancel the order
3. anything else is left PENDING

Usage:
    python scripts/reconcile_pending_orders.py [--hours 48] [--max 100]

Requirements:
    - STRIPE_SECRET_KEY, SUPABASE_URL and SUPABASE_SECRET_KEY must be set

Note:
    - Safe to run concurrently with live webhooks; every write is a
      conditional state transition
"""

import argparse
import asyncio
import logging
import sys
from pathlib import Path

# Add the project root to the path
sys.path.insert(0, str(Path(__file__).parent.parent))

from drip_checkout.core.config import get_settings
from drip_checkout.core.stripe import configure_stripe
from drip_checkout.services.checkout_service import CheckoutService

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Reconcile PENDING orders against Stripe")
    parser.add_argument("--hours", type=int, default=48, help="Only orders created within the last N hours")
    parser.add_argument("--max", type=int, default=100, help="Maximum orders to check")
    return parser.parse_args(argv)


async def main(argv: list[str] | None = None) -> int:
    """Run one reconciliation sweep.

    Returns:
        int: Process exit code, non-zero if any session could not be fetched.
    """
    args = parse_args(argv)
    settings = get_settings()
    if not settings.stripe_secret_key:
        logger.error("STRIPE_SECRET_KEY is not set")
        return 1

    configure_stripe()
    logger.info("Reconciling PENDING orders from the last %d hours (max %d)", args.hours, args.max)

    counts = await CheckoutService().reconcile_pending_orders(max_age_hours=args.hours, limit=args.max)

    logger.info(
        "Checked %d orders: %d paid, %d cancelled, %d still pending, %d errors",
        counts["checked"],
        counts["paid"],
        counts["cancelled"],
        counts["pending"],
        counts["errors"],
    )
    return 1 if counts["errors"] else 0


if __name__ == "__main__":
    sys.exit(asyncio.run(main()))
