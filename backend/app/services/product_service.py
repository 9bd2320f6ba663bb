"""Product service — ledger rows for registered Stripe products."""

import logging

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.registered_product import RegisteredProduct

logger = logging.getLogger(__name__)


async def get_registered_product(
    db: AsyncSession, project_name: str, plan_name: str
) -> RegisteredProduct | None:
    result = await db.execute(
        select(RegisteredProduct).where(
            RegisteredProduct.project_name == project_name,
            RegisteredProduct.plan_name == plan_name,
        )
    )
    return result.scalar_one_or_none()


async def list_registered_products(db: AsyncSession, project_name: str) -> list[RegisteredProduct]:
    """Registered products of a project, newest first."""
    result = await db.execute(
        select(RegisteredProduct)
        .where(RegisteredProduct.project_name == project_name)
        .order_by(RegisteredProduct.created_at.desc(), RegisteredProduct.plan_name)
    )
    return list(result.scalars().all())


async def add_registered_products(
    db: AsyncSession, products: list[RegisteredProduct]
) -> list[RegisteredProduct]:
    """Persist products in one flush; a unique violation fails the whole batch."""
    db.add_all(products)
    await db.flush()
    for product in products:
        await db.refresh(product)
    logger.info(
        "Registered %d product(s): %s",
        len(products),
        ", ".join(f"{p.project_name}/{p.plan_name}" for p in products),
    )
    return products
