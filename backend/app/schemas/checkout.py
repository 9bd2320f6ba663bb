"""Pydantic v2 request/response schemas for checkout endpoints."""

from pydantic import BaseModel, ConfigDict, Field

MAX_CART_ITEMS = 20

# --- Request schemas ---


class _CheckoutBase(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    user_id: str = Field(..., min_length=1, max_length=255)
    email: str = Field(..., min_length=1, max_length=255)
    success_url: str = Field(..., min_length=1, max_length=2048)
    cancel_url: str = Field(..., min_length=1, max_length=2048)


class SubscriptionCheckoutRequest(_CheckoutBase):
    """Request to start a recurring subscription checkout."""

    product_id: str = Field(..., min_length=1, max_length=255)
    price_id: str = Field(..., min_length=1, max_length=255)


class ItemCheckoutRequest(SubscriptionCheckoutRequest):
    """Request to buy a single item (one-time payment)."""

    quantity: int = Field(1, ge=1)


class CartItem(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    price_id: str = Field(..., min_length=1, max_length=255)
    quantity: int = Field(1, ge=1)
    product_id: str | None = Field(None, max_length=255)


class CartCheckoutRequest(_CheckoutBase):
    """Request to check out several items in one payment."""

    items: list[CartItem] = Field(..., min_length=1, max_length=MAX_CART_ITEMS)


# --- Response schemas ---


class CheckoutResponse(BaseModel):
    """Stripe Checkout session returned to the tenant."""

    checkout_session_id: str
    checkout_url: str


class CartCheckoutResponse(CheckoutResponse):
    item_count: int
