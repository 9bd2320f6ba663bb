"""Shared API dependencies — single import point for all routers.

Re-exports database session, authentication and Stripe client dependencies
so that router modules can import everything they need from one place::

    from app.api.deps import enforce_rate_limit, get_db, get_stripe_client
"""

from fastapi import Request

from app.auth.dependencies import ProjectContext, get_current_project
from app.auth.rate_limit import enforce_rate_limit
from app.billing.stripe_client import get_optional_stripe_client, get_stripe_client
from app.config import Settings
from app.database import get_db

__all__ = [
    "ProjectContext",
    "enforce_rate_limit",
    "get_app_settings",
    "get_current_project",
    "get_db",
    "get_optional_stripe_client",
    "get_stripe_client",
]


def get_app_settings(request: Request) -> Settings:
    """Settings the running app was built with."""
    return request.app.state.settings
