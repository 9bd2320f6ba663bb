"""Checkout API endpoints — subscription, single item, and cart sessions."""

import logging

import stripe
from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession
from stripe import StripeClient

from app.api.deps import ProjectContext, enforce_rate_limit, get_db, get_stripe_client
from app.billing.checkout import (
    cart_session_params,
    item_session_params,
    subscription_session_params,
)
from app.billing.customers import resolve_customer
from app.billing.stripe_client import create_checkout_session, stripe_api_error
from app.schemas.checkout import (
    CartCheckoutRequest,
    CartCheckoutResponse,
    CheckoutResponse,
    ItemCheckoutRequest,
    SubscriptionCheckoutRequest,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/checkout", tags=["checkout"])


async def _resolve(
    db: AsyncSession, client: StripeClient, project: ProjectContext, user_id: str, email: str
) -> str:
    try:
        customer_id = await resolve_customer(db, client, project.project_id, user_id, email)
    except stripe.StripeError as e:
        raise stripe_api_error(e, "Failed to create Stripe customer") from e
    # The binding must be durable before a checkout URL goes out
    await db.commit()
    return customer_id


async def _create_session(client: StripeClient, params: dict) -> stripe.checkout.Session:
    try:
        return await create_checkout_session(client, params)
    except stripe.StripeError as e:
        raise stripe_api_error(e, "Failed to create checkout session") from e


@router.post("/subscription", response_model=CheckoutResponse)
async def create_subscription_checkout(
    body: SubscriptionCheckoutRequest,
    project: ProjectContext = Depends(enforce_rate_limit),
    db: AsyncSession = Depends(get_db),
    client: StripeClient = Depends(get_stripe_client),
) -> CheckoutResponse:
    """Create a Stripe Checkout session for a recurring subscription."""
    customer_id = await _resolve(db, client, project, body.user_id, body.email)
    session = await _create_session(
        client, subscription_session_params(body, customer_id, project.project_id)
    )
    return CheckoutResponse(checkout_session_id=session.id, checkout_url=session.url)


@router.post("/item", response_model=CheckoutResponse)
async def create_item_checkout(
    body: ItemCheckoutRequest,
    project: ProjectContext = Depends(enforce_rate_limit),
    db: AsyncSession = Depends(get_db),
    client: StripeClient = Depends(get_stripe_client),
) -> CheckoutResponse:
    """Create a Stripe Checkout session for a one-time item purchase."""
    customer_id = await _resolve(db, client, project, body.user_id, body.email)
    session = await _create_session(client, item_session_params(body, customer_id, project.project_id))
    return CheckoutResponse(checkout_session_id=session.id, checkout_url=session.url)


@router.post("/cart", response_model=CartCheckoutResponse)
async def create_cart_checkout(
    body: CartCheckoutRequest,
    project: ProjectContext = Depends(enforce_rate_limit),
    db: AsyncSession = Depends(get_db),
    client: StripeClient = Depends(get_stripe_client),
) -> CartCheckoutResponse:
    """Create a Stripe Checkout session for up to 20 line items."""
    customer_id = await _resolve(db, client, project, body.user_id, body.email)
    session = await _create_session(client, cart_session_params(body, customer_id, project.project_id))
    return CartCheckoutResponse(
        checkout_session_id=session.id,
        checkout_url=session.url,
        item_count=len(body.items),
    )
