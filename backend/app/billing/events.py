"""Stripe webhook events — signature verification and typed parsing.

Known event types parse into one pydantic model each (a discriminated union
on ``type``); anything else becomes ``UnknownEvent`` so the dispatcher can
acknowledge it without acting.
"""

import json
import logging
import time
from datetime import datetime
from typing import Annotated, Any, Generic, Literal, TypeVar, Union

import stripe
from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError, field_validator

from app.billing.stripe_client import ts_to_naive
from app.config import Settings

logger = logging.getLogger(__name__)


class EventParseError(ValueError):
    """The webhook body is not a well-formed Stripe event."""


class WebhookNotConfigured(Exception):
    """No webhook secret is configured and verification cannot be skipped."""


def _id_of(value: Any) -> Any:
    # Expandable fields arrive either as an id or as the expanded object
    if isinstance(value, dict):
        return value.get("id")
    return value


class _StripeModel(BaseModel):
    model_config = ConfigDict(extra="ignore")


# --- Event payload objects ---


class PriceRef(_StripeModel):
    id: str
    product: str | None = None

    @field_validator("product", mode="before")
    @classmethod
    def expand_product(cls, value: Any) -> Any:
        return _id_of(value)


class SubscriptionItem(_StripeModel):
    price: PriceRef
    current_period_start: int | None = None
    current_period_end: int | None = None


class SubscriptionItemList(_StripeModel):
    data: list[SubscriptionItem] = []


class SubscriptionObject(_StripeModel):
    id: str
    customer: str
    status: str
    items: SubscriptionItemList = Field(default_factory=SubscriptionItemList)
    # Top-level period bounds predate Stripe API 2025-08-27 (basil)
    current_period_start: int | None = None
    current_period_end: int | None = None

    @field_validator("customer", mode="before")
    @classmethod
    def expand_customer(cls, value: Any) -> Any:
        return _id_of(value)

    @property
    def first_item(self) -> SubscriptionItem | None:
        return self.items.data[0] if self.items.data else None

    @property
    def price_id(self) -> str | None:
        item = self.first_item
        return item.price.id if item else None

    @property
    def product_id(self) -> str | None:
        item = self.first_item
        return item.price.product if item else None

    def period(self) -> tuple[datetime | None, datetime | None]:
        """Current period bounds as naive UTC, preferring the item-level values."""
        item = self.first_item
        start = item.current_period_start if item else None
        end = item.current_period_end if item else None
        if start is None:
            start = self.current_period_start
        if end is None:
            end = self.current_period_end
        return ts_to_naive(start), ts_to_naive(end)


class InvoiceObject(_StripeModel):
    id: str
    customer: str | None = None
    subscription: str | None = None
    amount_paid: int = 0
    amount_due: int = 0
    currency: str | None = None

    @field_validator("customer", "subscription", mode="before")
    @classmethod
    def expand_ids(cls, value: Any) -> Any:
        return _id_of(value)


class PaymentMethodObject(_StripeModel):
    id: str
    customer: str | None = None
    type: str | None = None

    @field_validator("customer", mode="before")
    @classmethod
    def expand_customer(cls, value: Any) -> Any:
        return _id_of(value)


# --- Events ---

ObjectT = TypeVar("ObjectT", bound=BaseModel)


class EventData(_StripeModel, Generic[ObjectT]):
    object: ObjectT


class _Event(_StripeModel):
    id: str
    created: int | None = None
    livemode: bool = False


class SubscriptionCreatedEvent(_Event):
    type: Literal["customer.subscription.created"]
    data: EventData[SubscriptionObject]


class SubscriptionUpdatedEvent(_Event):
    type: Literal["customer.subscription.updated"]
    data: EventData[SubscriptionObject]


class SubscriptionDeletedEvent(_Event):
    type: Literal["customer.subscription.deleted"]
    data: EventData[SubscriptionObject]


class InvoicePaymentSucceededEvent(_Event):
    type: Literal["invoice.payment_succeeded"]
    data: EventData[InvoiceObject]


class InvoicePaymentFailedEvent(_Event):
    type: Literal["invoice.payment_failed"]
    data: EventData[InvoiceObject]


class PaymentMethodAttachedEvent(_Event):
    type: Literal["payment_method.attached"]
    data: EventData[PaymentMethodObject]


class UnknownEvent(_Event):
    """Any event type the gateway does not act on."""

    type: str


KnownEvent = Annotated[
    Union[
        SubscriptionCreatedEvent,
        SubscriptionUpdatedEvent,
        SubscriptionDeletedEvent,
        InvoicePaymentSucceededEvent,
        InvoicePaymentFailedEvent,
        PaymentMethodAttachedEvent,
    ],
    Field(discriminator="type"),
]

WebhookEvent = Union[
    SubscriptionCreatedEvent,
    SubscriptionUpdatedEvent,
    SubscriptionDeletedEvent,
    InvoicePaymentSucceededEvent,
    InvoicePaymentFailedEvent,
    PaymentMethodAttachedEvent,
    UnknownEvent,
]

KNOWN_EVENT_TYPES = frozenset(
    {
        "customer.subscription.created",
        "customer.subscription.updated",
        "customer.subscription.deleted",
        "invoice.payment_succeeded",
        "invoice.payment_failed",
        "payment_method.attached",
    }
)

_known_event_adapter: TypeAdapter[Any] = TypeAdapter(KnownEvent)


def parse_event(payload: bytes) -> WebhookEvent:
    """Parse a raw webhook body into a typed event.

    Raises ``EventParseError`` when the body is not JSON, lacks an ``id`` or
    ``type``, or a known event type carries a malformed object.
    """
    try:
        raw = json.loads(payload)
    except (ValueError, UnicodeDecodeError) as e:
        raise EventParseError("Webhook body is not valid JSON") from e
    if not isinstance(raw, dict) or not isinstance(raw.get("type"), str):
        raise EventParseError("Webhook body is not a Stripe event")

    try:
        if raw["type"] in KNOWN_EVENT_TYPES:
            return _known_event_adapter.validate_python(raw)
        return UnknownEvent.model_validate(raw)
    except ValidationError as e:
        raise EventParseError(f"Malformed {raw['type']} event: {e.error_count()} error(s)") from e


def _signature_timestamp(sig_header: str) -> int | None:
    for part in sig_header.split(","):
        key, _, value = part.strip().partition("=")
        if key == "t":
            try:
                return int(value)
            except ValueError:
                return None
    return None


def verify_signature(payload: bytes, sig_header: str, secret: str, tolerance: int) -> None:
    """Check the ``Stripe-Signature`` header against ``payload``.

    Stripe's verifier computes HMAC-SHA256 over ``"<t>.<body>"``, compares it
    in constant time to each ``v1`` signature and rejects stale timestamps.
    Timestamps too far in the future are rejected here as well.
    """
    try:
        body = payload.decode("utf-8")
    except UnicodeDecodeError as e:
        raise EventParseError("Webhook body is not UTF-8") from e

    stripe.WebhookSignature.verify_header(body, sig_header, secret, tolerance)

    timestamp = _signature_timestamp(sig_header)
    if timestamp is not None and timestamp > time.time() + tolerance:
        raise stripe.SignatureVerificationError(
            "Timestamp is too far in the future", sig_header, body
        )


def construct_event(payload: bytes, sig_header: str, settings: Settings) -> WebhookEvent:
    """Verify (when a secret is configured) and parse a webhook delivery.

    Without a secret, production refuses every delivery with
    ``WebhookNotConfigured``; other environments skip verification.
    """
    secret = settings.stripe_webhook_secret
    if secret:
        verify_signature(payload, sig_header, secret, settings.webhook_tolerance_seconds)
    elif settings.is_production:
        raise WebhookNotConfigured("STRIPE_WEBHOOK_SECRET is not configured")
    else:
        logger.warning("STRIPE_WEBHOOK_SECRET not set; accepting webhook without verification")
    return parse_event(payload)
