"""Subscription status API endpoint."""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession
from stripe import StripeClient

from app.api.deps import ProjectContext, enforce_rate_limit, get_db, get_optional_stripe_client
from app.billing.reader import read_subscription_status
from app.schemas.subscription import SubscriptionStatusResponse

router = APIRouter(prefix="/api/v1/subscriptions", tags=["subscriptions"])


@router.get(
    "/{user_id}/{product_id}",
    response_model=SubscriptionStatusResponse,
    response_model_exclude_none=True,
)
async def get_subscription_status(
    user_id: str,
    product_id: str,
    project: ProjectContext = Depends(enforce_rate_limit),
    db: AsyncSession = Depends(get_db),
    client: StripeClient | None = Depends(get_optional_stripe_client),
) -> SubscriptionStatusResponse:
    """Current subscription status for a user and product.

    A user without a subscription is a normal answer: ``{"exists": false}``.
    """
    return await read_subscription_status(db, client, project.project_id, user_id, product_id)
