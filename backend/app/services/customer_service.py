"""Customer service — per-project customer rows and their Stripe binding."""

import logging
import uuid
from dataclasses import dataclass

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.database import upsert_insert
from app.models.customer import Customer
from app.services.errors import LedgerConflict, LedgerNotFound

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class CustomerRef:
    """Identity of a customer row as returned by ``find_or_create_customer``."""

    id: uuid.UUID
    stripe_customer_id: str | None


async def find_or_create_customer(
    db: AsyncSession, project_id: uuid.UUID, user_id: str, email: str
) -> CustomerRef:
    """Upsert the customer for (project_id, user_id) in a single statement.

    A new row starts without a Stripe id. An existing row gets the new email
    and keeps its Stripe id. Concurrent first-touch calls converge on one row.
    """
    stmt = upsert_insert(db, Customer).values(
        id=uuid.uuid4(),
        project_id=project_id,
        user_id=user_id,
        email=email,
    )
    stmt = stmt.on_conflict_do_update(
        index_elements=["project_id", "user_id"],
        set_={"email": stmt.excluded.email, "updated_at": func.now()},
    ).returning(Customer.id, Customer.stripe_customer_id)
    row = (await db.execute(stmt)).one()
    return CustomerRef(id=row.id, stripe_customer_id=row.stripe_customer_id)


async def get_customer_by_user(
    db: AsyncSession, project_id: uuid.UUID, user_id: str
) -> Customer | None:
    result = await db.execute(
        select(Customer)
        .where(Customer.project_id == project_id, Customer.user_id == user_id)
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def get_customer_by_stripe_id(
    db: AsyncSession, stripe_customer_id: str
) -> Customer | None:
    """Look up a customer by Stripe customer ID (used by webhooks)."""
    result = await db.execute(
        select(Customer)
        .where(Customer.stripe_customer_id == stripe_customer_id)
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def bind_stripe_customer(
    db: AsyncSession, project_id: uuid.UUID, user_id: str, stripe_customer_id: str
) -> str:
    """Attach ``stripe_customer_id`` to the customer if it has none yet.

    Returns the bound id. Raises ``LedgerConflict`` (with ``existing`` set when
    the row already holds another id) and ``LedgerNotFound`` when the row is
    missing.
    """
    try:
        async with db.begin_nested():
            result = await db.execute(
                update(Customer)
                .where(
                    Customer.project_id == project_id,
                    Customer.user_id == user_id,
                    Customer.stripe_customer_id.is_(None),
                )
                .values(stripe_customer_id=stripe_customer_id, updated_at=func.now())
                .execution_options(synchronize_session=False)
            )
    except IntegrityError as e:
        raise LedgerConflict(
            f"Stripe customer {stripe_customer_id} is already bound to another customer"
        ) from e

    if result.rowcount == 1:
        logger.info(
            "Bound Stripe customer %s to project %s user %s",
            stripe_customer_id,
            project_id,
            user_id,
        )
        return stripe_customer_id

    current = await get_customer_by_user(db, project_id, user_id)
    if current is None:
        raise LedgerNotFound(f"No customer for project {project_id} user {user_id}")
    if current.stripe_customer_id == stripe_customer_id:
        return stripe_customer_id
    raise LedgerConflict(
        f"Customer {current.id} is already bound to a different Stripe customer",
        existing=current.stripe_customer_id,
    )
