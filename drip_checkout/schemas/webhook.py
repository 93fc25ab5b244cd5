"""Typed views of the Stripe webhook events the reconciler acts on.

Known event types form a closed discriminated union on ``type``; anything
else parses to ``UnhandledEvent`` and is acknowledged without action.
"""

from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter


class CheckoutSessionObject(BaseModel):
    """The subset of a Checkout Session the reconciler reads."""

    model_config = ConfigDict(extra="ignore")

    id: str
    metadata: dict[str, str] | None = None
    client_reference_id: str | None = None
    payment_status: str | None = None
    payment_intent: str | None = None

    @property
    def order_id(self) -> str | None:
        """Order id from metadata, falling back to client_reference_id."""
        return (self.metadata or {}).get("order_id") or self.client_reference_id

    @property
    def is_paid(self) -> bool:
        return self.payment_status in ("paid", "no_payment_required")


class ChargeObject(BaseModel):
    """The subset of a Charge the reconciler reads."""

    model_config = ConfigDict(extra="ignore")

    id: str
    payment_intent: str | None = None
    refunded: bool = False
    metadata: dict[str, str] | None = None


class _SessionData(BaseModel):
    object: CheckoutSessionObject


class _ChargeData(BaseModel):
    object: ChargeObject


class CheckoutSessionCompleted(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str
    type: Literal["checkout.session.completed"]
    data: _SessionData


class CheckoutSessionAsyncPaymentSucceeded(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str
    type: Literal["checkout.session.async_payment_succeeded"]
    data: _SessionData


class CheckoutSessionAsyncPaymentFailed(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str
    type: Literal["checkout.session.async_payment_failed"]
    data: _SessionData


class CheckoutSessionExpired(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str
    type: Literal["checkout.session.expired"]
    data: _SessionData


class ChargeRefunded(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str
    type: Literal["charge.refunded"]
    data: _ChargeData


class UnhandledEvent(BaseModel):
    """Any authenticated event type the reconciler does not act on."""

    model_config = ConfigDict(extra="ignore")

    id: str
    type: str


KnownEvent = Annotated[
    Union[
        CheckoutSessionCompleted,
        CheckoutSessionAsyncPaymentSucceeded,
        CheckoutSessionAsyncPaymentFailed,
        CheckoutSessionExpired,
        ChargeRefunded,
    ],
    Field(discriminator="type"),
]

GatewayEvent = Union[
    CheckoutSessionCompleted,
    CheckoutSessionAsyncPaymentSucceeded,
    CheckoutSessionAsyncPaymentFailed,
    CheckoutSessionExpired,
    ChargeRefunded,
    UnhandledEvent,
]

KNOWN_EVENT_TYPES = frozenset(
    {
        "checkout.session.completed",
        "checkout.session.async_payment_succeeded",
        "checkout.session.async_payment_failed",
        "checkout.session.expired",
        "charge.refunded",
    }
)

_known_event_adapter: TypeAdapter[Any] = TypeAdapter(KnownEvent)


def parse_gateway_event(raw: dict[str, Any]) -> GatewayEvent:
    """Parse a verified event payload into its typed variant.

    Raises:
        pydantic.ValidationError: If a known event type is malformed.
    """
    if raw.get("type") in KNOWN_EVENT_TYPES:
        return _known_event_adapter.validate_python(raw)
    return UnhandledEvent(id=str(raw.get("id", "")), type=str(raw.get("type", "")))
