"""Pydantic v2 request/response schemas for the customer portal."""

from pydantic import BaseModel, ConfigDict, Field


class PortalRequest(BaseModel):
    """Request to create a Stripe Customer Portal session."""

    model_config = ConfigDict(str_strip_whitespace=True)

    user_id: str = Field(..., min_length=1, max_length=255)
    return_url: str = Field(..., min_length=1, max_length=2048)


class PortalResponse(BaseModel):
    """Stripe Customer Portal session returned to the tenant."""

    portal_session_id: str
    portal_url: str
