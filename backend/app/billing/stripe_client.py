"""Async Stripe API wrapper for the billing gateway.

A single ``StripeClient`` is built from settings when the app starts and
handed to request handlers through ``get_stripe_client``; nothing here reads
process-wide Stripe state.
"""

import logging
from datetime import datetime, timezone
from typing import Any

import stripe
from fastapi import Request
from stripe import StripeClient

from app.config import Settings
from app.errors import APIError

logger = logging.getLogger(__name__)


def build_stripe_client(settings: Settings) -> StripeClient | None:
    """Create a StripeClient with async HTTP support, or None without a key."""
    if not settings.stripe_secret_key:
        logger.warning("STRIPE_SECRET_KEY is not set; Stripe-backed endpoints will fail")
        return None
    return StripeClient(
        settings.stripe_secret_key,
        http_client=stripe.HTTPXClient(),
    )


def get_stripe_client(request: Request) -> StripeClient:
    """FastAPI dependency returning the app's shared Stripe client."""
    client: StripeClient | None = request.app.state.stripe_client
    if client is None:
        raise APIError(
            status_code=500,
            error_type="internal_error",
            code="STRIPE_NOT_CONFIGURED",
            message="Stripe is not configured",
        )
    return client


def ts_to_naive(ts: int | None) -> datetime | None:
    """Convert Stripe Unix timestamp to naive UTC datetime."""
    if ts is None:
        return None
    return datetime.fromtimestamp(ts, tz=timezone.utc).replace(tzinfo=None)


def expandable_id(value: Any) -> str | None:
    """Return the id of a Stripe field that may be an id or an expanded object."""
    if value is None or isinstance(value, str):
        return value
    return getattr(value, "id", None)


def get_first_item(stripe_sub: Any):
    """Get the first subscription item, using bracket notation to avoid
    collision with Python dict .items() in newer Stripe API versions.
    """
    sub_items = stripe_sub["items"]
    if sub_items and sub_items.data:
        return sub_items.data[0]
    return None


def get_period(stripe_sub: Any) -> tuple[datetime | None, datetime | None]:
    """Extract current period start/end from a Stripe subscription.

    In Stripe API 2025-08-27 (basil), current_period_start/end moved from the
    subscription object to the subscription item; older versions keep them on
    the subscription.
    """
    item = get_first_item(stripe_sub)
    start = getattr(item, "current_period_start", None) if item else None
    end = getattr(item, "current_period_end", None) if item else None
    if start is None:
        start = getattr(stripe_sub, "current_period_start", None)
    if end is None:
        end = getattr(stripe_sub, "current_period_end", None)
    return ts_to_naive(start), ts_to_naive(end)


async def create_customer(
    client: StripeClient, email: str, user_id: str, project_id: str
) -> stripe.Customer:
    """Create a Stripe customer for a tenant's end user."""
    logger.info("Creating Stripe customer for project %s user %s", project_id, user_id)
    customer = await client.v1.customers.create_async(
        params={
            "email": email,
            "metadata": {"user_id": user_id, "project_id": project_id},
        }
    )
    logger.info("Created Stripe customer %s for project %s user %s", customer.id, project_id, user_id)
    return customer


async def create_checkout_session(
    client: StripeClient, params: dict[str, Any]
) -> stripe.checkout.Session:
    """Create a Stripe Checkout Session from fully built parameters."""
    logger.info(
        "Creating %s checkout session for customer %s",
        params.get("mode"),
        params.get("customer"),
    )
    return await client.v1.checkout.sessions.create_async(params=params)


async def create_portal_session(
    client: StripeClient, customer_id: str, return_url: str
) -> stripe.billing_portal.Session:
    """Create a Stripe Customer Portal session for subscription management."""
    logger.info("Creating portal session for customer %s", customer_id)
    return await client.v1.billing_portal.sessions.create_async(
        params={
            "customer": customer_id,
            "return_url": return_url,
        }
    )


async def get_subscription(client: StripeClient, subscription_id: str) -> stripe.Subscription:
    """Retrieve a Stripe subscription by ID."""
    return await client.v1.subscriptions.retrieve_async(subscription_id)


async def create_product(
    client: StripeClient, name: str, description: str | None, metadata: dict[str, str]
) -> stripe.Product:
    params: dict[str, Any] = {"name": name, "metadata": metadata}
    if description:
        params["description"] = description
    return await client.v1.products.create_async(params=params)


async def create_recurring_price(
    client: StripeClient,
    product_id: str,
    unit_amount: int,
    interval: str,
    currency: str,
    metadata: dict[str, str],
) -> stripe.Price:
    return await client.v1.prices.create_async(
        params={
            "product": product_id,
            "unit_amount": unit_amount,
            "currency": currency,
            "recurring": {"interval": interval},
            "metadata": metadata,
        }
    )


async def archive_product(client: StripeClient, product_id: str) -> None:
    """Deactivate a product so it can no longer be sold."""
    await client.v1.products.update_async(product_id, params={"active": False})


def get_optional_stripe_client(request: Request) -> StripeClient | None:
    """Like ``get_stripe_client`` but returns None when Stripe is not configured."""
    return request.app.state.stripe_client


def stripe_api_error(e: stripe.StripeError, message: str) -> APIError:
    """Translate a Stripe failure on a write path into a 502 ``STRIPE_ERROR``."""
    logger.error("%s: %s (code=%s)", message, e, e.code)
    return APIError(
        status_code=502,
        error_type="api_error",
        code="STRIPE_ERROR",
        message=message,
        description=e.user_message or None,
    )
