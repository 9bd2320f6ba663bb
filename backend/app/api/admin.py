"""Admin API endpoints — product registration and listing."""

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession
from stripe import StripeClient

from app.api.deps import ProjectContext, enforce_rate_limit, get_db, get_stripe_client
from app.billing.catalog import register_products, to_registered_plan
from app.schemas.catalog import (
    ProductListResponse,
    ProductRegistrationRequest,
    ProductRegistrationResponse,
)
from app.services.product_service import list_registered_products

router = APIRouter(prefix="/admin/products", tags=["admin"])


@router.post(
    "/register",
    response_model=ProductRegistrationResponse,
    status_code=status.HTTP_201_CREATED,
)
async def register_product_plans(
    body: ProductRegistrationRequest,
    project: ProjectContext = Depends(enforce_rate_limit),
    db: AsyncSession = Depends(get_db),
    client: StripeClient = Depends(get_stripe_client),
) -> ProductRegistrationResponse:
    """Create a Stripe product with monthly/yearly prices for each plan."""
    return await register_products(db, client, body)


@router.get("/{project_name}", response_model=ProductListResponse)
async def list_product_plans(
    project_name: str,
    project: ProjectContext = Depends(enforce_rate_limit),
    db: AsyncSession = Depends(get_db),
) -> ProductListResponse:
    """List registered products for a project, newest first."""
    products = await list_registered_products(db, project_name)
    return ProductListResponse(
        project_name=project_name,
        products=[to_registered_plan(p) for p in products],
    )
