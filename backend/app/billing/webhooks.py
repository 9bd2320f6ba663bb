"""Stripe webhook event handlers — reconcile the subscription ledger.

Each known event type has exactly one handler. Handlers return a short
outcome string for the acknowledgement; soft failures (unknown customer,
missing line item, lineage conflict) are logged and acknowledged rather than
raised, so Stripe does not retry deliveries that can never succeed.
"""

import logging
from collections.abc import Awaitable, Callable
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from app.billing.events import (
    InvoicePaymentFailedEvent,
    InvoicePaymentSucceededEvent,
    PaymentMethodAttachedEvent,
    SubscriptionCreatedEvent,
    SubscriptionDeletedEvent,
    SubscriptionUpdatedEvent,
    UnknownEvent,
    WebhookEvent,
)
from app.billing.status import SubscriptionStatus
from app.services.customer_service import get_customer_by_stripe_id
from app.services.errors import LedgerConflict
from app.services.subscription_service import (
    UpdateOutcome,
    update_subscription_status,
    upsert_subscription,
)

logger = logging.getLogger(__name__)

PROCESSED = "processed"
IGNORED = "ignored"
SKIPPED = "skipped"


async def handle_subscription_created(db: AsyncSession, event: SubscriptionCreatedEvent) -> str:
    """Handle customer.subscription.created — record the subscription."""
    sub = event.data.object

    customer = await get_customer_by_stripe_id(db, sub.customer)
    if customer is None:
        logger.warning(
            "No local customer for Stripe customer %s (subscription %s, event %s)",
            sub.customer,
            sub.id,
            event.id,
        )
        return SKIPPED

    price_id, product_id = sub.price_id, sub.product_id
    if not price_id or not product_id:
        logger.warning("Subscription %s has no priced line item, skipping (event %s)", sub.id, event.id)
        return SKIPPED

    status = SubscriptionStatus.parse(sub.status)
    if not status.storable:
        logger.warning("Subscription %s created with unrecognized status %r, skipping", sub.id, sub.status)
        return SKIPPED

    period_start, period_end = sub.period()
    try:
        outcome = await upsert_subscription(
            db,
            project_id=customer.project_id,
            customer_id=customer.id,
            user_id=customer.user_id,
            product_id=product_id,
            price_id=price_id,
            stripe_subscription_id=sub.id,
            status=status,
            period_start=period_start,
            period_end=period_end,
        )
    except LedgerConflict as e:
        logger.error("Ledger conflict recording subscription %s (event %s): %s", sub.id, event.id, e)
        return SKIPPED

    logger.info("Subscription %s created event %s: %s", sub.id, event.id, outcome.value)
    return PROCESSED


async def handle_subscription_updated(db: AsyncSession, event: SubscriptionUpdatedEvent) -> str:
    """Handle customer.subscription.updated — move status and period end forward."""
    sub = event.data.object
    status = SubscriptionStatus.parse(sub.status)
    if not status.storable:
        logger.warning(
            "Subscription %s reported unrecognized status %r, ledger left unchanged (event %s)",
            sub.id,
            sub.status,
            event.id,
        )
        return SKIPPED

    _, period_end = sub.period()
    outcome = await update_subscription_status(db, sub.id, status, period_end)
    return SKIPPED if outcome is UpdateOutcome.MISSING else PROCESSED


async def handle_subscription_deleted(db: AsyncSession, event: SubscriptionDeletedEvent) -> str:
    """Handle customer.subscription.deleted — mark canceled, keep the row."""
    sub = event.data.object
    _, period_end = sub.period()
    outcome = await update_subscription_status(db, sub.id, SubscriptionStatus.CANCELED, period_end)
    return SKIPPED if outcome is UpdateOutcome.MISSING else PROCESSED


async def handle_invoice_payment_succeeded(
    db: AsyncSession, event: InvoicePaymentSucceededEvent
) -> str:
    """Handle invoice.payment_succeeded — logged only."""
    invoice = event.data.object
    logger.info(
        "Invoice %s paid: %d %s (subscription %s)",
        invoice.id,
        invoice.amount_paid,
        invoice.currency or "",
        invoice.subscription,
    )
    return PROCESSED


async def handle_invoice_payment_failed(db: AsyncSession, event: InvoicePaymentFailedEvent) -> str:
    """Handle invoice.payment_failed — logged only; status follows the subscription events."""
    invoice = event.data.object
    logger.warning(
        "Invoice %s payment failed: %d %s due (subscription %s)",
        invoice.id,
        invoice.amount_due,
        invoice.currency or "",
        invoice.subscription,
    )
    return PROCESSED


async def handle_payment_method_attached(
    db: AsyncSession, event: PaymentMethodAttachedEvent
) -> str:
    """Handle payment_method.attached — logged only."""
    method = event.data.object
    logger.info("Payment method %s attached to customer %s", method.id, method.customer)
    return PROCESSED


async def handle_unknown_event(db: AsyncSession, event: UnknownEvent) -> str:
    logger.debug("Unhandled webhook event type: %s (id=%s)", event.type, event.id)
    return IGNORED


# Map event models to handler functions; covers every member of WebhookEvent
EVENT_HANDLERS: dict[type, Callable[[AsyncSession, Any], Awaitable[str]]] = {
    SubscriptionCreatedEvent: handle_subscription_created,
    SubscriptionUpdatedEvent: handle_subscription_updated,
    SubscriptionDeletedEvent: handle_subscription_deleted,
    InvoicePaymentSucceededEvent: handle_invoice_payment_succeeded,
    InvoicePaymentFailedEvent: handle_invoice_payment_failed,
    PaymentMethodAttachedEvent: handle_payment_method_attached,
    UnknownEvent: handle_unknown_event,
}


async def dispatch_event(db: AsyncSession, event: WebhookEvent) -> str:
    """Route ``event`` to its handler and return the acknowledgement status."""
    handler = EVENT_HANDLERS[type(event)]
    if not isinstance(event, UnknownEvent):
        logger.info("Processing webhook event: %s (id=%s)", event.type, event.id)
    return await handler(db, event)
