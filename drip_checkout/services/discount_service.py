"""Discount code evaluation and administration service."""

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any

from postgrest.exceptions import APIError as PostgrestAPIError

from drip_checkout.api.middleware.error_handler import NotFoundError, ValidationError
from drip_checkout.core.money import to_decimal
from drip_checkout.core.supabase import get_supabase_client
from drip_checkout.models.discount import DiscountType

logger = logging.getLogger(__name__)

DISCOUNTS_TABLE = "discounts"

MAX_USAGE_INCREMENT_ATTEMPTS = 5

# Postgres unique_violation
UNIQUE_VIOLATION = "23505"


class DiscountReason(str, Enum):
    """Why a code did not apply."""

    EMPTY = "EMPTY"
    NOT_FOUND = "NOT_FOUND"
    INACTIVE = "INACTIVE"
    EXPIRED = "EXPIRED"
    LIMIT_REACHED = "LIMIT_REACHED"


@dataclass(frozen=True)
class DiscountEvaluation:
    """Result of applying a code to a subtotal.

    ``code`` is the normalized code the customer typed, kept even when the
    evaluation failed so the attempt can be recorded.
    """

    valid: bool
    applied_code: str | None
    discount_amount: Decimal
    total: Decimal
    reason: DiscountReason | None
    code: str = ""


def normalize_code(raw: str | None) -> str:
    """Codes are case-insensitive and stored upper-case."""
    return (raw or "").strip().upper()


def parse_timestamp(value: Any) -> datetime | None:
    """Parse a PostgREST timestamp; naive values are taken as UTC."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        parsed = value
    else:
        parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def evaluate_discount(
    subtotal: Decimal,
    code: str,
    discount: dict[str, Any] | None,
    now: datetime | None = None,
) -> DiscountEvaluation:
    """Apply a looked-up discount row to a subtotal.

    Pure: never writes, so it is safe to call on every keystroke.
    Amounts are exact; callers that persist them round to cents.

    Args:
        subtotal: Non-negative cart subtotal.
        code: Normalized code as typed by the customer.
        discount: The discounts row for ``code``, or None if there is none.
        now: Clock override for tests.

    Returns:
        DiscountEvaluation: Validity, amounts and failure reason.
    """

    def rejected(reason: DiscountReason) -> DiscountEvaluation:
        return DiscountEvaluation(
            valid=False,
            applied_code=None,
            discount_amount=Decimal("0"),
            total=subtotal,
            reason=reason,
            code=code,
        )

    if not code:
        return rejected(DiscountReason.EMPTY)
    if discount is None:
        return rejected(DiscountReason.NOT_FOUND)

    now = now or datetime.now(timezone.utc)
    expires_at = parse_timestamp(discount.get("expires_at"))
    # Expiry is checked first: an expired code reports EXPIRED whatever its other flags
    if expires_at is not None and expires_at < now:
        return rejected(DiscountReason.EXPIRED)

    value = to_decimal(discount.get("value"), default=Decimal("0"))
    if not discount.get("active") or value <= 0:
        return rejected(DiscountReason.INACTIVE)

    usage_limit = discount.get("usage_limit")
    if usage_limit is not None and int(discount.get("usage_count") or 0) >= int(usage_limit):
        return rejected(DiscountReason.LIMIT_REACHED)

    if discount.get("type") == DiscountType.PERCENTAGE.value:
        discount_amount = subtotal * value / 100
    else:
        discount_amount = value

    return DiscountEvaluation(
        valid=True,
        applied_code=code,
        discount_amount=discount_amount,
        total=max(subtotal - discount_amount, Decimal("0")),
        reason=None,
        code=code,
    )


def _parse_type(raw: str) -> str:
    try:
        return DiscountType(str(raw).strip().upper()).value
    except ValueError as e:
        raise ValidationError(
            "Invalid discount type",
            details=[{"loc": ["type"], "msg": "Expected 'percentage' or 'fixed'", "type": "value_error"}],
        ) from e


def _parse_value(raw: Any) -> str:
    try:
        value = to_decimal(raw)
    except InvalidOperation as e:
        raise ValidationError(
            "Invalid discount value",
            details=[{"loc": ["value"], "msg": "Must be a number", "type": "value_error"}],
        ) from e
    if value <= 0:
        raise ValidationError(
            "Invalid discount value",
            details=[{"loc": ["value"], "msg": "Must be greater than zero", "type": "value_error"}],
        )
    return str(value)


class DiscountService:
    """Service for discount lookup, preview and admin management."""

    def __init__(self) -> None:
        """Initialize discount service with Supabase client."""
        self.client = get_supabase_client()

    async def get_by_code(self, code: str) -> dict[str, Any] | None:
        """Look up a discount by its normalized code."""
        if not code:
            return None
        response = (
            self.client.table(DISCOUNTS_TABLE)
            .select("*")
            .eq("code", code)
            .maybe_single()
            .execute()
        )
        return response.data if response and response.data else None

    async def evaluate(self, subtotal: Decimal, raw_code: str | None) -> DiscountEvaluation:
        """Evaluate a code against a subtotal (read-only).

        Args:
            subtotal: Cart subtotal, must be >= 0.
            raw_code: Code as typed by the customer.

        Returns:
            DiscountEvaluation: Evaluation result.

        Raises:
            ValidationError: If subtotal is negative.
        """
        if subtotal < 0:
            raise ValidationError(
                "Invalid subtotal",
                details=[{"loc": ["subtotal"], "msg": "Must be zero or greater", "type": "value_error"}],
            )
        code = normalize_code(raw_code)
        discount = await self.get_by_code(code) if code else None
        return evaluate_discount(subtotal, code, discount)

    async def increment_usage(self, code: str) -> int | None:
        """Count one paid order against a discount.

        Called only by the writer that confirmed the payment, so each paid
        order counts once. Uses compare-and-set on usage_count.

        Args:
            code: The applied discount code.

        Returns:
            int | None: New usage count, or None if the code no longer exists.
        """
        for _ in range(MAX_USAGE_INCREMENT_ATTEMPTS):
            discount = await self.get_by_code(code)
            if not discount:
                logger.warning("Cannot count usage of deleted discount %s", code)
                return None

            current = int(discount.get("usage_count") or 0)
            response = (
                self.client.table(DISCOUNTS_TABLE)
                .update(
                    {
                        "usage_count": current + 1,
                        "updated_at": datetime.now(timezone.utc).isoformat(),
                    }
                )
                .eq("id", discount["id"])
                .eq("usage_count", current)
                .execute()
            )
            if response.data:
                usage_limit = discount.get("usage_limit")
                if usage_limit is not None and current + 1 > int(usage_limit):
                    logger.warning("Discount %s used beyond its limit (%d/%s)", code, current + 1, usage_limit)
                logger.info("Discount %s usage count now %d", code, current + 1)
                return current + 1

        logger.error("Gave up incrementing usage of discount %s after contention", code)
        return None

    async def list_discounts(self) -> list[dict[str, Any]]:
        """List all discounts, newest first."""
        response = (
            self.client.table(DISCOUNTS_TABLE)
            .select("*")
            .order("created_at", desc=True)
            .execute()
        )
        return response.data or []

    async def get_discount(self, discount_id: str) -> dict[str, Any]:
        """Get a discount by id or raise NotFoundError."""
        response = (
            self.client.table(DISCOUNTS_TABLE)
            .select("*")
            .eq("id", str(discount_id))
            .maybe_single()
            .execute()
        )
        if not response or not response.data:
            raise NotFoundError("Discount not found")
        return response.data

    async def create_discount(
        self,
        code: str,
        discount_type: str,
        value: Any,
        usage_limit: int | None = None,
        expires_at: datetime | None = None,
        active: bool = True,
    ) -> dict[str, Any]:
        """Create a discount code.

        Raises:
            ValidationError: On missing code, bad type/value, or duplicate code.
        """
        normalized = normalize_code(code)
        if not normalized:
            raise ValidationError(
                "Missing discount code",
                details=[{"loc": ["code"], "msg": "Required", "type": "missing"}],
            )

        now = datetime.now(timezone.utc).isoformat()
        row = {
            "code": normalized,
            "type": _parse_type(discount_type),
            "value": _parse_value(value),
            "usage_count": 0,
            "usage_limit": usage_limit,
            "expires_at": expires_at.isoformat() if expires_at else None,
            "active": active,
            "created_at": now,
            "updated_at": now,
        }
        try:
            response = self.client.table(DISCOUNTS_TABLE).insert(row).execute()
        except PostgrestAPIError as e:
            if e.code == UNIQUE_VIOLATION:
                raise ValidationError(
                    "Discount code already exists",
                    details=[{"loc": ["code"], "msg": normalized, "type": "duplicate"}],
                ) from e
            raise
        logger.info("Created discount %s", normalized)
        return response.data[0]

    async def update_discount(self, discount_id: str, changes: dict[str, Any]) -> dict[str, Any]:
        """Partially update a discount.

        Args:
            discount_id: Discount id.
            changes: Any of type, value, usage_limit, expires_at, active.
                Keys present with a None value clear nullable columns.

        Returns:
            dict: The updated row.
        """
        await self.get_discount(discount_id)

        update: dict[str, Any] = {}
        if changes.get("type") is not None:
            update["type"] = _parse_type(changes["type"])
        if changes.get("value") is not None:
            update["value"] = _parse_value(changes["value"])
        if "usage_limit" in changes:
            update["usage_limit"] = changes["usage_limit"]
        if "expires_at" in changes:
            expires_at = changes["expires_at"]
            update["expires_at"] = expires_at.isoformat() if expires_at else None
        if changes.get("active") is not None:
            update["active"] = bool(changes["active"])
        update["updated_at"] = datetime.now(timezone.utc).isoformat()

        response = (
            self.client.table(DISCOUNTS_TABLE)
            .update(update)
            .eq("id", str(discount_id))
            .execute()
        )
        return response.data[0]

    async def delete_discount(self, discount_id: str) -> None:
        """Delete a discount. Orders keep their applied code as a plain string."""
        await self.get_discount(discount_id)
        self.client.table(DISCOUNTS_TABLE).delete().eq("id", str(discount_id)).execute()
        logger.info("Deleted discount %s", discount_id)
