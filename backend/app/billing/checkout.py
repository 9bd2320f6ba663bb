"""Checkout orchestration — build Stripe Checkout Session parameters.

Every session is tied to the resolved Stripe customer, allows promotion
codes, requires a billing address, and carries the tenant's user id as
``client_reference_id`` so the tenant can correlate the completed checkout.
"""

import uuid
from typing import Any

from app.schemas.checkout import (
    CartCheckoutRequest,
    ItemCheckoutRequest,
    SubscriptionCheckoutRequest,
)

PAYMENT_TYPE_SUBSCRIPTION = "subscription"
PAYMENT_TYPE_ITEM = "item"
PAYMENT_TYPE_CART = "cart"


def _base_params(
    *,
    customer_id: str,
    mode: str,
    line_items: list[dict[str, Any]],
    user_id: str,
    success_url: str,
    cancel_url: str,
    metadata: dict[str, str],
) -> dict[str, Any]:
    return {
        "customer": customer_id,
        "mode": mode,
        "line_items": line_items,
        "success_url": success_url,
        "cancel_url": cancel_url,
        "client_reference_id": user_id,
        "allow_promotion_codes": True,
        "billing_address_collection": "required",
        "metadata": metadata,
    }


def subscription_session_params(
    body: SubscriptionCheckoutRequest, customer_id: str, project_id: uuid.UUID
) -> dict[str, Any]:
    return _base_params(
        customer_id=customer_id,
        mode="subscription",
        line_items=[{"price": body.price_id, "quantity": 1}],
        user_id=body.user_id,
        success_url=body.success_url,
        cancel_url=body.cancel_url,
        metadata={
            "user_id": body.user_id,
            "product_id": body.product_id,
            "payment_type": PAYMENT_TYPE_SUBSCRIPTION,
            "project_id": str(project_id),
        },
    )


def item_session_params(
    body: ItemCheckoutRequest, customer_id: str, project_id: uuid.UUID
) -> dict[str, Any]:
    return _base_params(
        customer_id=customer_id,
        mode="payment",
        line_items=[{"price": body.price_id, "quantity": body.quantity}],
        user_id=body.user_id,
        success_url=body.success_url,
        cancel_url=body.cancel_url,
        metadata={
            "user_id": body.user_id,
            "product_id": body.product_id,
            "payment_type": PAYMENT_TYPE_ITEM,
            "project_id": str(project_id),
        },
    )


def cart_session_params(
    body: CartCheckoutRequest, customer_id: str, project_id: uuid.UUID
) -> dict[str, Any]:
    return _base_params(
        customer_id=customer_id,
        mode="payment",
        line_items=[{"price": item.price_id, "quantity": item.quantity} for item in body.items],
        user_id=body.user_id,
        success_url=body.success_url,
        cancel_url=body.cancel_url,
        metadata={
            "user_id": body.user_id,
            "payment_type": PAYMENT_TYPE_CART,
            "item_count": str(len(body.items)),
            "project_id": str(project_id),
        },
    )
