"""Order and payment status transition rules.

Pure functions: they look at an order's current state and a requested
change and either return the columns to write or raise
``StateConflictError``. Requests whose targets already hold come back as
a no-op plan, which is what makes duplicate webhook delivery harmless.
"""

import logging
from dataclasses import dataclass, field

from drip_checkout.api.middleware.error_handler import StateConflictError
from drip_checkout.models.order import OrderStatus, PaymentStatus

logger = logging.getLogger(__name__)

PAYMENT_TRANSITIONS: dict[PaymentStatus, frozenset[PaymentStatus]] = {
    PaymentStatus.PENDING: frozenset({PaymentStatus.PAID, PaymentStatus.REFUNDED}),
    PaymentStatus.PAID: frozenset({PaymentStatus.REFUNDED}),
    PaymentStatus.REFUNDED: frozenset(),
}

STATUS_TRANSITIONS: dict[OrderStatus, frozenset[OrderStatus]] = {
    OrderStatus.PENDING: frozenset({OrderStatus.PROCESSING, OrderStatus.CANCELLED}),
    OrderStatus.PROCESSING: frozenset({OrderStatus.SHIPPED, OrderStatus.CANCELLED}),
    OrderStatus.SHIPPED: frozenset({OrderStatus.DELIVERED}),
    OrderStatus.DELIVERED: frozenset(),
    OrderStatus.CANCELLED: frozenset(),
}


@dataclass(frozen=True)
class TransitionPlan:
    """Outcome of planning a transition against a known current state."""

    current_status: OrderStatus
    current_payment_status: PaymentStatus
    status: OrderStatus
    payment_status: PaymentStatus
    changes: dict[str, str] = field(default_factory=dict)

    @property
    def is_noop(self) -> bool:
        return not self.changes

    @property
    def confirms_payment(self) -> bool:
        """True when this plan moves payment from PENDING to PAID."""
        return (
            self.current_payment_status == PaymentStatus.PENDING
            and self.payment_status == PaymentStatus.PAID
        )


def plan_transition(
    current_status: str,
    current_payment_status: str,
    status: str | None = None,
    payment_status: str | None = None,
) -> TransitionPlan:
    """Validate a requested status/payment change.

    Args:
        current_status: Persisted orders.status.
        current_payment_status: Persisted orders.payment_status.
        status: Requested fulfilment status, or None to leave as is.
        payment_status: Requested payment status, or None to leave as is.

    Returns:
        TransitionPlan: Columns to write; empty when nothing changes.

    Raises:
        StateConflictError: If the move is not allowed from the current state.
    """
    cur_s = OrderStatus(current_status)
    cur_p = PaymentStatus(current_payment_status)
    new_s = OrderStatus(status) if status else cur_s
    new_p = PaymentStatus(payment_status) if payment_status else cur_p

    def conflict(message: str) -> StateConflictError:
        return StateConflictError(
            message,
            current_status=cur_s.value,
            current_payment_status=cur_p.value,
        )

    if new_p != cur_p and new_p not in PAYMENT_TRANSITIONS[cur_p]:
        raise conflict(f"Payment status cannot change from {cur_p.value} to {new_p.value}")

    if new_s != cur_s and new_s not in STATUS_TRANSITIONS[cur_s]:
        # Money captured after the order was cancelled still has to land
        late_payment = (
            cur_s == OrderStatus.CANCELLED
            and new_s == OrderStatus.PROCESSING
            and cur_p == PaymentStatus.PENDING
            and new_p == PaymentStatus.PAID
        )
        if not late_payment:
            raise conflict(f"Order status cannot change from {cur_s.value} to {new_s.value}")
        logger.warning("Reviving cancelled order on late payment confirmation")

    if new_s == OrderStatus.CANCELLED and new_s != cur_s and new_p == PaymentStatus.PAID:
        raise conflict("A paid order cannot be cancelled without a refund")

    changes: dict[str, str] = {}
    if new_s != cur_s:
        changes["status"] = new_s.value
    if new_p != cur_p:
        changes["payment_status"] = new_p.value

    return TransitionPlan(
        current_status=cur_s,
        current_payment_status=cur_p,
        status=new_s,
        payment_status=new_p,
        changes=changes,
    )


def plan_payment_confirmation(current_status: str, current_payment_status: str) -> TransitionPlan:
    """Plan the PAID transition driven by the gateway or confirm-on-return.

    Already PAID or REFUNDED orders yield a no-op. Orders past PROCESSING
    keep their fulfilment status.
    """
    cur_p = PaymentStatus(current_payment_status)
    if cur_p != PaymentStatus.PENDING:
        return plan_transition(current_status, current_payment_status)

    cur_s = OrderStatus(current_status)
    target = OrderStatus.PROCESSING if cur_s in (OrderStatus.PENDING, OrderStatus.CANCELLED) else None
    return plan_transition(
        current_status,
        current_payment_status,
        status=target.value if target else None,
        payment_status=PaymentStatus.PAID.value,
    )


def plan_expiry(current_status: str, current_payment_status: str) -> TransitionPlan:
    """Plan cancellation of an abandoned checkout.

    Only an order that is PENDING on both axes is cancelled; anything else,
    a paid order in particular, is left untouched.
    """
    if (
        OrderStatus(current_status) == OrderStatus.PENDING
        and PaymentStatus(current_payment_status) == PaymentStatus.PENDING
    ):
        return plan_transition(current_status, current_payment_status, status=OrderStatus.CANCELLED.value)
    return plan_transition(current_status, current_payment_status)


def plan_update(
    current_status: str,
    current_payment_status: str,
    status: str | None = None,
    payment_status: str | None = None,
) -> TransitionPlan:
    """Plan a requested change, as made by an admin.

    Marking a PENDING payment PAID without naming a status is the same
    payment confirmation the gateway performs, so the order moves on to
    PROCESSING exactly as it would from a webhook.
    """
    if (
        status is None
        and payment_status == PaymentStatus.PAID.value
        and PaymentStatus(current_payment_status) == PaymentStatus.PENDING
    ):
        return plan_payment_confirmation(current_status, current_payment_status)
    return plan_transition(current_status, current_payment_status, status=status, payment_status=payment_status)
