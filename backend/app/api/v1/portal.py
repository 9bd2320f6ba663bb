"""Customer portal API endpoint."""

import stripe
from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession
from stripe import StripeClient

from app.api.deps import ProjectContext, enforce_rate_limit, get_db, get_stripe_client
from app.billing.stripe_client import create_portal_session, stripe_api_error
from app.errors import NOT_FOUND, VALIDATION_ERROR, APIError
from app.schemas.portal import PortalRequest, PortalResponse
from app.services.customer_service import get_customer_by_user

router = APIRouter(prefix="/api/v1", tags=["portal"])


@router.post("/portal", response_model=PortalResponse)
async def create_portal(
    body: PortalRequest,
    project: ProjectContext = Depends(enforce_rate_limit),
    db: AsyncSession = Depends(get_db),
    client: StripeClient = Depends(get_stripe_client),
) -> PortalResponse:
    """Create a Stripe Customer Portal session for an existing customer."""
    customer = await get_customer_by_user(db, project.project_id, body.user_id)
    if customer is None:
        raise APIError(
            status_code=404,
            error_type=NOT_FOUND,
            code="CUSTOMER_NOT_FOUND",
            message=f"No customer found for user {body.user_id}",
        )
    if not customer.stripe_customer_id:
        raise APIError(
            status_code=400,
            error_type=VALIDATION_ERROR,
            code="NO_STRIPE_CUSTOMER",
            message="Customer has no Stripe customer yet. Complete a checkout first.",
        )

    try:
        session = await create_portal_session(client, customer.stripe_customer_id, body.return_url)
    except stripe.StripeError as e:
        raise stripe_api_error(e, "Failed to create portal session") from e

    return PortalResponse(portal_session_id=session.id, portal_url=session.url)
