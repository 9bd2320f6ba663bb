"""Pydantic v2 request/response schemas for product registration."""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field, model_validator

# --- Request schemas ---


class PlanPricing(BaseModel):
    """Recurring prices in cents. At least one must be positive."""

    monthly: int = Field(0, ge=0)
    yearly: int = Field(0, ge=0)

    @model_validator(mode="after")
    def _require_a_price(self) -> "PlanPricing":
        if self.monthly <= 0 and self.yearly <= 0:
            raise ValueError("at least one of monthly or yearly pricing must be greater than 0")
        return self


class PlanDefinition(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    name: str = Field(..., min_length=1, max_length=255)
    description: str | None = Field(None, max_length=5000)
    features: list[str] = Field(default_factory=list)
    pricing: PlanPricing


class ProductRegistrationRequest(BaseModel):
    """Register one Stripe product (with prices) per plan of a project."""

    model_config = ConfigDict(str_strip_whitespace=True)

    project_name: str = Field(..., min_length=1, max_length=255)
    plans: list[PlanDefinition] = Field(..., min_length=1)

    @model_validator(mode="after")
    def _unique_plan_names(self) -> "ProductRegistrationRequest":
        names = [plan.name for plan in self.plans]
        if len(names) != len(set(names)):
            raise ValueError("plan names must be unique within a registration")
        return self


# --- Response schemas ---


class PriceInfo(BaseModel):
    stripe_price_id: str
    amount: int
    interval: str
    currency: str


class PlanPrices(BaseModel):
    monthly: PriceInfo | None = None
    yearly: PriceInfo | None = None


class RegisteredPlan(BaseModel):
    plan_name: str
    stripe_product_id: str
    prices: PlanPrices
    description: str | None = None
    features: list[str] = []
    created_at: datetime


class ProductRegistrationResponse(BaseModel):
    success: bool
    project_id: str
    products: list[RegisteredPlan]


class ProductListResponse(BaseModel):
    project_name: str
    products: list[RegisteredPlan]
