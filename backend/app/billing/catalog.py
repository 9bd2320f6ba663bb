"""Product registration — create Stripe products and prices for a project's plans."""

import logging

import stripe
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from stripe import StripeClient

from app.billing.stripe_client import archive_product, create_product, create_recurring_price
from app.errors import API_ERROR, APIError
from app.models.registered_product import RegisteredProduct
from app.schemas.catalog import (
    PlanDefinition,
    PlanPrices,
    PriceInfo,
    ProductRegistrationRequest,
    ProductRegistrationResponse,
    RegisteredPlan,
)
from app.services.product_service import add_registered_products, get_registered_product

logger = logging.getLogger(__name__)

DEFAULT_CURRENCY = "usd"


def _already_exists(plan_name: str, existing_product_id: str) -> APIError:
    return APIError(
        status_code=409,
        error_type=API_ERROR,
        code="ALREADY_EXISTS",
        message=f"Plan '{plan_name}' is already registered for this project",
        field="plans.name",
        extra={"existing_product_id": existing_product_id},
    )


def to_registered_plan(product: RegisteredProduct) -> RegisteredPlan:
    prices = PlanPrices()
    if product.stripe_price_monthly:
        prices.monthly = PriceInfo(
            stripe_price_id=product.stripe_price_monthly,
            amount=product.monthly_amount,
            interval="month",
            currency=product.currency,
        )
    if product.stripe_price_yearly:
        prices.yearly = PriceInfo(
            stripe_price_id=product.stripe_price_yearly,
            amount=product.yearly_amount,
            interval="year",
            currency=product.currency,
        )
    return RegisteredPlan(
        plan_name=product.plan_name,
        stripe_product_id=product.stripe_product_id,
        prices=prices,
        description=product.description,
        features=list(product.features or []),
        created_at=product.created_at,
    )


async def _archive_all(client: StripeClient, product_ids: list[str]) -> None:
    for product_id in product_ids:
        try:
            await archive_product(client, product_id)
        except stripe.StripeError as e:
            logger.error("Failed to archive Stripe product %s during rollback: %s", product_id, e)
        else:
            logger.info("Archived Stripe product %s during rollback", product_id)


async def _create_plan(
    client: StripeClient, project_name: str, plan: PlanDefinition, created: list[str]
) -> RegisteredProduct:
    metadata = {
        "project_name": project_name,
        "plan_name": plan.name,
        "features": ",".join(plan.features),
    }
    product = await create_product(
        client,
        name=f"{project_name} - {plan.name}",
        description=plan.description,
        metadata=metadata,
    )
    created.append(product.id)

    row = RegisteredProduct(
        project_name=project_name,
        plan_name=plan.name,
        stripe_product_id=product.id,
        monthly_amount=plan.pricing.monthly,
        yearly_amount=plan.pricing.yearly,
        currency=DEFAULT_CURRENCY,
        description=plan.description,
        features=list(plan.features),
    )
    for interval, amount in (("month", plan.pricing.monthly), ("year", plan.pricing.yearly)):
        if amount <= 0:
            continue
        price = await create_recurring_price(
            client,
            product_id=product.id,
            unit_amount=amount,
            interval=interval,
            currency=DEFAULT_CURRENCY,
            metadata={"project_name": project_name, "plan_name": plan.name, "interval": interval},
        )
        if interval == "month":
            row.stripe_price_monthly = price.id
        else:
            row.stripe_price_yearly = price.id
    return row


async def register_products(
    db: AsyncSession, client: StripeClient, body: ProductRegistrationRequest
) -> ProductRegistrationResponse:
    """Create one Stripe product per plan and record it in the ledger.

    Nothing is created when any plan is already registered. If Stripe or the
    ledger write fails midway, the Stripe products created so far are archived.
    """
    for plan in body.plans:
        existing = await get_registered_product(db, body.project_name, plan.name)
        if existing is not None:
            raise _already_exists(plan.name, existing.stripe_product_id)

    created: list[str] = []
    rows: list[RegisteredProduct] = []
    try:
        for plan in body.plans:
            rows.append(await _create_plan(client, body.project_name, plan, created))
    except stripe.StripeError as e:
        logger.error("Stripe error registering products for %s: %s", body.project_name, e)
        await _archive_all(client, created)
        raise APIError(
            status_code=502,
            error_type=API_ERROR,
            code="STRIPE_ERROR",
            message="Failed to create products in Stripe",
            description=str(e),
        ) from e

    try:
        async with db.begin_nested():
            await add_registered_products(db, rows)
    except IntegrityError as e:
        # Lost a race with a concurrent registration of the same plan
        await _archive_all(client, created)
        for row in rows:
            winner = await get_registered_product(db, body.project_name, row.plan_name)
            if winner is not None:
                raise _already_exists(row.plan_name, winner.stripe_product_id) from e
        raise
    except SQLAlchemyError:
        await _archive_all(client, created)
        raise

    try:
        await db.commit()
    except SQLAlchemyError:
        logger.error("Ledger commit failed registering products for %s", body.project_name)
        await _archive_all(client, created)
        raise

    return ProductRegistrationResponse(
        success=True,
        project_id=body.project_name,
        products=[to_registered_plan(row) for row in rows],
    )
