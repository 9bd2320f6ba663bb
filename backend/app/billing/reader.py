"""Subscription reader — ledger row first, live Stripe state when reachable."""

import logging
import uuid

import stripe
from sqlalchemy.ext.asyncio import AsyncSession
from stripe import StripeClient

from app.billing.status import SubscriptionStatus
from app.billing.stripe_client import expandable_id, get_period, get_subscription
from app.schemas.subscription import SubscriptionStatusResponse
from app.services.subscription_service import SubscriptionView, get_subscription_status

logger = logging.getLogger(__name__)


def _from_ledger(view: SubscriptionView) -> SubscriptionStatusResponse:
    return SubscriptionStatusResponse(
        exists=True,
        subscription_id=view.stripe_subscription_id,
        status=view.status.value,
        customer_id=str(view.customer_id) if view.customer_id else None,
        current_period_end=view.current_period_end,
        source="ledger",
    )


async def read_subscription_status(
    db: AsyncSession,
    client: StripeClient | None,
    project_id: uuid.UUID,
    user_id: str,
    product_id: str,
) -> SubscriptionStatusResponse:
    """Answer a status query without writing to the ledger.

    No ledger row means ``exists=False``. With a row, Stripe is asked for the
    live subscription; if that fails the ledger's last known values are
    returned unchanged. Drift is repaired by webhooks, never here.
    """
    view = await get_subscription_status(db, project_id, user_id, product_id)
    if not view.exists or not view.stripe_subscription_id:
        return SubscriptionStatusResponse(exists=False)

    if client is None:
        return _from_ledger(view)

    try:
        live = await get_subscription(client, view.stripe_subscription_id)
    except stripe.StripeError as e:
        logger.warning(
            "Stripe lookup for subscription %s failed (%s); answering from ledger",
            view.stripe_subscription_id,
            e.code or type(e).__name__,
        )
        return _from_ledger(view)

    status = SubscriptionStatus.parse(getattr(live, "status", None))
    if status is not view.status:
        logger.info(
            "Subscription %s: Stripe reports %s, ledger has %s",
            view.stripe_subscription_id,
            status.value,
            view.status.value,
        )
    _, period_end = get_period(live)
    return SubscriptionStatusResponse(
        exists=True,
        subscription_id=live.id,
        status=status.value,
        customer_id=expandable_id(getattr(live, "customer", None)),
        current_period_end=period_end,
        source="stripe",
    )
