"""Order persistence and state transition service."""

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable
from uuid import UUID

from drip_checkout.api.middleware.error_handler import NotFoundError, StateConflictError
from drip_checkout.core.supabase import get_supabase_client
from drip_checkout.models.order import (
    MINIMAL_ORDER_COLUMNS,
    OrderCreate,
    OrderItem,
    OrderStatus,
    PaymentStatus,
)
from drip_checkout.services.order_state import (
    TransitionPlan,
    plan_expiry,
    plan_payment_confirmation,
    plan_update,
)

logger = logging.getLogger(__name__)

ORDERS_TABLE = "orders"

# Compare-and-set attempts before giving up on a contended order row
MAX_TRANSITION_ATTEMPTS = 3


@dataclass
class TransitionResult:
    """Result of an order state update.

    Attributes:
        order: The order row as it is after the call.
        changed: True only if this call moved status or payment_status.
        plan: The plan that was applied (or found to be a no-op).
    """

    order: dict[str, Any]
    changed: bool
    plan: TransitionPlan

    @property
    def confirmed_payment(self) -> bool:
        """True when this very call recorded the PENDING -> PAID move."""
        return self.changed and self.plan.confirms_payment


class OrderService:
    """Service owning the orders table.

    Every status or payment_status write goes through ``_transition``,
    which performs a conditional update filtered on the state it read, so
    two writers racing on the same order cannot both apply a transition.
    """

    def __init__(self) -> None:
        """Initialize order service with Supabase client."""
        self.client = get_supabase_client()

    async def create_order(self, order_data: OrderCreate, items: list[OrderItem]) -> dict[str, Any]:
        """Insert a new PENDING/PENDING order with its item snapshots.

        Items live in the order row's line_items column, so the order and
        its items are written by a single insert.

        Args:
            order_data: Customer, shipping and pricing columns.
            items: Line item snapshots.

        Returns:
            dict: The created order row.
        """
        now = datetime.now(timezone.utc).isoformat()
        row = {
            **order_data,
            "line_items": items,
            "status": OrderStatus.PENDING.value,
            "payment_status": PaymentStatus.PENDING.value,
            "stripe_session_id": None,
            "created_at": now,
            "updated_at": now,
        }
        response = self.client.table(ORDERS_TABLE).insert(row).execute()
        order = response.data[0]
        logger.info("Created order %s (total=%s %s)", order["id"], order.get("total"), order.get("currency"))
        return order

    async def get_order(self, order_id: str) -> dict[str, Any] | None:
        """Get an order by ID.

        Args:
            order_id: The order's UUID.

        Returns:
            dict | None: The order data or None if not found.
        """
        if not _is_uuid(order_id):
            return None
        response = (
            self.client.table(ORDERS_TABLE)
            .select("*")
            .eq("id", str(order_id))
            .maybe_single()
            .execute()
        )
        return response.data if response and response.data else None

    async def require_order(self, order_id: str) -> dict[str, Any]:
        """Get an order by ID or raise NotFoundError."""
        order = await self.get_order(order_id)
        if not order:
            raise NotFoundError("Order not found")
        return order

    async def get_minimal(self, order_id: str) -> dict[str, Any] | None:
        """Get the PII-free status view of an order.

        Args:
            order_id: The order's UUID.

        Returns:
            dict | None: id, total, currency, status, payment_status and
            created_at, or None if not found.
        """
        if not _is_uuid(order_id):
            return None
        response = (
            self.client.table(ORDERS_TABLE)
            .select(MINIMAL_ORDER_COLUMNS)
            .eq("id", str(order_id))
            .maybe_single()
            .execute()
        )
        return response.data if response and response.data else None

    async def get_order_by_session(self, session_id: str) -> dict[str, Any] | None:
        """Fallback correlation from a gateway session id to its order."""
        response = (
            self.client.table(ORDERS_TABLE)
            .select("*")
            .eq("stripe_session_id", session_id)
            .maybe_single()
            .execute()
        )
        return response.data if response and response.data else None

    async def get_order_by_payment_intent(self, payment_intent_id: str) -> dict[str, Any] | None:
        """Correlate a refund or charge event to its order."""
        response = (
            self.client.table(ORDERS_TABLE)
            .select("*")
            .eq("stripe_payment_intent_id", payment_intent_id)
            .maybe_single()
            .execute()
        )
        return response.data if response and response.data else None

    async def list_orders(
        self,
        status: str | None = None,
        payment_status: str | None = None,
        limit: int = 200,
    ) -> list[dict[str, Any]]:
        """List orders, newest first.

        Args:
            status: Optional fulfilment status filter.
            payment_status: Optional payment status filter.
            limit: Maximum number of rows.

        Returns:
            list[dict]: Order rows.
        """
        query = self.client.table(ORDERS_TABLE).select("*")
        if status:
            query = query.eq("status", status)
        if payment_status:
            query = query.eq("payment_status", payment_status)
        response = query.order("created_at", desc=True).limit(limit).execute()
        return response.data or []

    async def list_pending_with_session(self, created_after: datetime, limit: int) -> list[dict[str, Any]]:
        """PENDING orders that reached the gateway, oldest first."""
        response = (
            self.client.table(ORDERS_TABLE)
            .select("*")
            .eq("payment_status", PaymentStatus.PENDING.value)
            .eq("status", OrderStatus.PENDING.value)
            .not_.is_("stripe_session_id", "null")
            .gte("created_at", created_after.isoformat())
            .order("created_at")
            .limit(limit)
            .execute()
        )
        return response.data or []

    async def list_pending_without_session(self, created_before: datetime, limit: int) -> list[dict[str, Any]]:
        """PENDING orders that never got a payment session, oldest first."""
        response = (
            self.client.table(ORDERS_TABLE)
            .select("*")
            .eq("payment_status", PaymentStatus.PENDING.value)
            .eq("status", OrderStatus.PENDING.value)
            .is_("stripe_session_id", "null")
            .lt("created_at", created_before.isoformat())
            .order("created_at")
            .limit(limit)
            .execute()
        )
        return response.data or []

    async def update_status(
        self,
        order_id: str,
        status: str | None = None,
        payment_status: str | None = None,
        session_ref: str | None = None,
        extra: dict[str, Any] | None = None,
    ) -> TransitionResult:
        """Apply a status and/or payment status change.

        Args:
            order_id: The order's UUID.
            status: Requested fulfilment status.
            payment_status: Requested payment status.
            session_ref: Gateway session id to store on the order.
            extra: Additional non-state columns to write alongside.

        Returns:
            TransitionResult: The resulting order and whether state changed.

        Raises:
            NotFoundError: If the order does not exist.
            StateConflictError: If the transition is illegal.
        """
        return await self._transition(
            order_id,
            lambda s, p: plan_update(s, p, status=status, payment_status=payment_status),
            _fields(session_ref, extra),
        )

    async def mark_paid(
        self,
        order_id: str,
        session_ref: str | None = None,
        payment_intent_id: str | None = None,
    ) -> TransitionResult:
        """Record a confirmed payment. Idempotent.

        A second confirmation for the same order, whether from a duplicate
        webhook or from the customer's return redirect, is a no-op.
        """
        extra: dict[str, Any] = {}
        if payment_intent_id:
            extra["stripe_payment_intent_id"] = payment_intent_id
        return await self._transition(order_id, plan_payment_confirmation, _fields(session_ref, extra))

    async def cancel_if_pending(self, order_id: str, session_ref: str | None = None) -> TransitionResult:
        """Cancel an abandoned checkout; never touches a paid order."""
        return await self._transition(order_id, plan_expiry, _fields(session_ref, None))

    async def _transition(
        self,
        order_id: str,
        planner: Callable[[str, str], TransitionPlan],
        fields: dict[str, Any],
    ) -> TransitionResult:
        """Read, plan and conditionally write, retrying on lost races."""
        for attempt in range(1, MAX_TRANSITION_ATTEMPTS + 1):
            order = await self.require_order(order_id)
            plan = planner(order["status"], order["payment_status"])

            pending_fields = {k: v for k, v in fields.items() if order.get(k) != v}
            if plan.is_noop and not pending_fields:
                return TransitionResult(order=order, changed=False, plan=plan)

            update = {
                **pending_fields,
                **plan.changes,
                "updated_at": datetime.now(timezone.utc).isoformat(),
            }
            if plan.confirms_payment:
                update["paid_at"] = update["updated_at"]

            response = (
                self.client.table(ORDERS_TABLE)
                .update(update)
                .eq("id", str(order_id))
                .eq("status", order["status"])
                .eq("payment_status", order["payment_status"])
                .execute()
            )
            if response.data:
                updated = response.data[0]
                if plan.changes:
                    logger.info(
                        "Order %s: %s/%s -> %s/%s",
                        order_id,
                        plan.current_status.value,
                        plan.current_payment_status.value,
                        plan.status.value,
                        plan.payment_status.value,
                    )
                return TransitionResult(order=updated, changed=not plan.is_noop, plan=plan)

            logger.info("Order %s changed concurrently, retrying transition (attempt %d)", order_id, attempt)

        order = await self.require_order(order_id)
        raise StateConflictError(
            "Order is being updated concurrently",
            current_status=order["status"],
            current_payment_status=order["payment_status"],
        )


def _is_uuid(value: Any) -> bool:
    try:
        UUID(str(value))
    except ValueError:
        return False
    return True


def _fields(session_ref: str | None, extra: dict[str, Any] | None) -> dict[str, Any]:
    fields = dict(extra or {})
    if session_ref:
        fields["stripe_session_id"] = session_ref
    return fields
