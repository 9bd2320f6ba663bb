"""Customer resolver — map (project, user) to a Stripe customer id."""

import logging
import uuid

from sqlalchemy.ext.asyncio import AsyncSession
from stripe import StripeClient

from app.billing.stripe_client import create_customer
from app.services.customer_service import bind_stripe_customer, find_or_create_customer
from app.services.errors import LedgerConflict

logger = logging.getLogger(__name__)


async def resolve_customer(
    db: AsyncSession,
    client: StripeClient,
    project_id: uuid.UUID,
    user_id: str,
    email: str,
) -> str:
    """Return the Stripe customer id for (project, user), creating it if needed.

    Two concurrent first-touch calls may both create a Stripe customer. The
    database lets one bind win; the other adopts the winner's id and leaves
    its own Stripe customer orphaned (tagged with the same user metadata).
    Raises ``stripe.StripeError`` when Stripe rejects the customer creation.
    """
    ref = await find_or_create_customer(db, project_id, user_id, email)
    if ref.stripe_customer_id:
        return ref.stripe_customer_id

    customer = await create_customer(
        client,
        email=email,
        user_id=user_id,
        project_id=str(project_id),
    )
    try:
        return await bind_stripe_customer(db, project_id, user_id, customer.id)
    except LedgerConflict as e:
        if not e.existing:
            raise
        logger.warning(
            "Lost customer bind race for project %s user %s; Stripe customer %s is orphaned, using %s",
            project_id,
            user_id,
            customer.id,
            e.existing,
        )
        return e.existing
