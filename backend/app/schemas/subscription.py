"""Pydantic v2 response schema for subscription status reads."""

from datetime import datetime
from typing import Literal

from pydantic import BaseModel


class SubscriptionStatusResponse(BaseModel):
    """Subscription status as last known to Stripe or, failing that, the ledger.

    A missing subscription is answered with ``exists=False`` and nothing else.
    """

    exists: bool
    subscription_id: str | None = None
    status: str | None = None
    customer_id: str | None = None
    current_period_end: datetime | None = None
    source: Literal["stripe", "ledger"] | None = None
