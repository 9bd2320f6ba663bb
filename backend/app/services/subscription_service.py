"""Subscription service — webhook-driven ledger writes and status reads.

Writes follow two rules so that webhook replays and out-of-order deliveries
converge on one state per Stripe subscription:

* ``current_period_end`` never moves backwards.
* A canceled row only accepts further cancellations, except that a new
  Stripe subscription for the same (project, user, product) replaces it.
"""

import enum
import logging
import uuid
from dataclasses import dataclass
from datetime import datetime

from sqlalchemy import and_, func, or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.billing.status import SubscriptionStatus
from app.database import upsert_insert
from app.models.subscription import Subscription
from app.services.errors import LedgerConflict

logger = logging.getLogger(__name__)

_CANCELED = SubscriptionStatus.CANCELED.value


class UpsertOutcome(str, enum.Enum):
    APPLIED = "applied"
    REPLACED = "replaced"
    STALE = "stale"


class UpdateOutcome(str, enum.Enum):
    UPDATED = "updated"
    STALE = "stale"
    MISSING = "missing"


@dataclass(frozen=True, slots=True)
class SubscriptionView:
    """Ledger answer for a status read. ``exists=False`` means no row."""

    exists: bool
    stripe_subscription_id: str | None = None
    customer_id: uuid.UUID | None = None
    status: SubscriptionStatus = SubscriptionStatus.NONE
    current_period_end: datetime | None = None

    @classmethod
    def missing(cls) -> "SubscriptionView":
        return cls(exists=False)


def _period_not_older(incoming_end: datetime | None):
    """SQL guard: the stored period end is unset or not after ``incoming_end``."""
    if incoming_end is None:
        return Subscription.current_period_end.is_(None)
    return or_(
        Subscription.current_period_end.is_(None),
        Subscription.current_period_end <= incoming_end,
    )


async def get_subscription(
    db: AsyncSession, project_id: uuid.UUID, user_id: str, product_id: str
) -> Subscription | None:
    result = await db.execute(
        select(Subscription)
        .where(
            Subscription.project_id == project_id,
            Subscription.user_id == user_id,
            Subscription.product_id == product_id,
        )
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def get_subscription_by_stripe_id(
    db: AsyncSession, stripe_subscription_id: str
) -> Subscription | None:
    """Look up subscription by Stripe subscription ID (used by webhooks)."""
    result = await db.execute(
        select(Subscription)
        .where(Subscription.stripe_subscription_id == stripe_subscription_id)
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def get_subscription_status(
    db: AsyncSession, project_id: uuid.UUID, user_id: str, product_id: str
) -> SubscriptionView:
    """Read the ledger row for (project, user, product); absence is a value."""
    subscription = await get_subscription(db, project_id, user_id, product_id)
    if subscription is None:
        return SubscriptionView.missing()
    return SubscriptionView(
        exists=True,
        stripe_subscription_id=subscription.stripe_subscription_id,
        customer_id=subscription.customer_id,
        status=SubscriptionStatus.parse(subscription.status),
        current_period_end=subscription.current_period_end,
    )


async def upsert_subscription(
    db: AsyncSession,
    *,
    project_id: uuid.UUID,
    customer_id: uuid.UUID,
    user_id: str,
    product_id: str,
    price_id: str,
    stripe_subscription_id: str,
    status: SubscriptionStatus,
    period_start: datetime | None,
    period_end: datetime | None,
) -> UpsertOutcome:
    """Insert or update the subscription keyed by (project, user, product).

    An existing row is only overwritten when it belongs to the same Stripe
    subscription, is not canceled, and its period end is not newer than
    ``period_end``. Otherwise the row is re-read to tell a stale replay from
    a lineage conflict.
    """
    if not status.storable:
        raise ValueError(f"Status {status.value!r} cannot be stored")

    stmt = upsert_insert(db, Subscription).values(
        id=uuid.uuid4(),
        project_id=project_id,
        customer_id=customer_id,
        user_id=user_id,
        product_id=product_id,
        price_id=price_id,
        stripe_subscription_id=stripe_subscription_id,
        status=status.value,
        current_period_start=period_start,
        current_period_end=period_end,
    )
    stmt = stmt.on_conflict_do_update(
        index_elements=["project_id", "user_id", "product_id"],
        set_={
            "customer_id": stmt.excluded.customer_id,
            "price_id": stmt.excluded.price_id,
            "status": stmt.excluded.status,
            "current_period_start": stmt.excluded.current_period_start,
            "current_period_end": stmt.excluded.current_period_end,
            "updated_at": func.now(),
        },
        where=and_(
            Subscription.stripe_subscription_id == stmt.excluded.stripe_subscription_id,
            Subscription.status != _CANCELED,
            _period_not_older(period_end),
        ),
    ).returning(Subscription.id)

    try:
        async with db.begin_nested():
            written = (await db.execute(stmt)).first()
    except IntegrityError as e:
        # stripe_subscription_id already belongs to another (project, user, product)
        raise LedgerConflict(
            f"Stripe subscription {stripe_subscription_id} is already recorded for another key"
        ) from e

    if written is not None:
        logger.info(
            "Recorded subscription %s (project %s, user %s, product %s): %s",
            stripe_subscription_id,
            project_id,
            user_id,
            product_id,
            status.value,
        )
        return UpsertOutcome.APPLIED

    existing = await get_subscription(db, project_id, user_id, product_id)
    if existing is None:
        # The conflicting row vanished between statements; rows are never
        # hard-deleted, so this only happens on a project cascade.
        raise LedgerConflict(f"Subscription row for {stripe_subscription_id} disappeared")

    if existing.stripe_subscription_id == stripe_subscription_id:
        logger.info(
            "Ignoring stale write for subscription %s (stored status=%s, period_end=%s)",
            stripe_subscription_id,
            existing.status,
            existing.current_period_end,
        )
        return UpsertOutcome.STALE

    if existing.status != _CANCELED:
        raise LedgerConflict(
            f"Subscription {existing.id} is bound to {existing.stripe_subscription_id}, "
            f"refusing {stripe_subscription_id}",
            existing=existing.stripe_subscription_id,
        )

    # Resubscription: a new lineage takes over the canceled row
    try:
        async with db.begin_nested():
            result = await db.execute(
                update(Subscription)
                .where(Subscription.id == existing.id, Subscription.status == _CANCELED)
                .values(
                    stripe_subscription_id=stripe_subscription_id,
                    customer_id=customer_id,
                    price_id=price_id,
                    status=status.value,
                    current_period_start=period_start,
                    current_period_end=period_end,
                    updated_at=func.now(),
                )
                .execution_options(synchronize_session=False)
            )
    except IntegrityError as e:
        raise LedgerConflict(
            f"Stripe subscription {stripe_subscription_id} is already recorded for another key"
        ) from e

    if result.rowcount != 1:
        raise LedgerConflict(f"Subscription {existing.id} changed while being replaced")
    logger.info(
        "Subscription %s replaced canceled %s for user %s product %s",
        stripe_subscription_id,
        existing.stripe_subscription_id,
        user_id,
        product_id,
    )
    return UpsertOutcome.REPLACED


async def update_subscription_status(
    db: AsyncSession,
    stripe_subscription_id: str,
    status: SubscriptionStatus,
    period_end: datetime | None,
) -> UpdateOutcome:
    """Update status (and period end) of the row with this Stripe id.

    Missing rows are a no-op. Writes with an older period end, and non-cancel
    writes to a canceled row, are refused as stale.
    """
    if not status.storable:
        raise ValueError(f"Status {status.value!r} cannot be stored")

    values: dict = {"status": status.value, "updated_at": func.now()}
    conditions = [Subscription.stripe_subscription_id == stripe_subscription_id]
    if period_end is not None:
        values["current_period_end"] = period_end
        conditions.append(_period_not_older(period_end))
    if status is not SubscriptionStatus.CANCELED:
        conditions.append(Subscription.status != _CANCELED)

    result = await db.execute(
        update(Subscription)
        .where(*conditions)
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount:
        logger.info("Subscription %s is now %s", stripe_subscription_id, status.value)
        return UpdateOutcome.UPDATED

    existing = await get_subscription_by_stripe_id(db, stripe_subscription_id)
    if existing is None:
        logger.info("No ledger row for subscription %s, nothing to update", stripe_subscription_id)
        return UpdateOutcome.MISSING

    logger.info(
        "Ignoring stale %s update for subscription %s (stored status=%s, period_end=%s)",
        status.value,
        stripe_subscription_id,
        existing.status,
        existing.current_period_end,
    )
    return UpdateOutcome.STALE
