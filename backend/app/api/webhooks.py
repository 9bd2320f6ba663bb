"""Stripe webhook endpoint — receives and processes Stripe events."""

import asyncio
import logging

import stripe
from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import get_app_settings, get_db
from app.billing.events import EventParseError, WebhookNotConfigured, construct_event
from app.billing.webhooks import dispatch_event
from app.config import Settings
from app.errors import API_ERROR, INTERNAL_ERROR, VALIDATION_ERROR, APIError

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/webhooks", tags=["webhooks"])


@router.post("/stripe")
async def stripe_webhook(
    request: Request,
    db: AsyncSession = Depends(get_db),
    settings: Settings = Depends(get_app_settings),
) -> dict[str, str]:
    """Receive and process Stripe webhook events."""
    # 1. Read raw body (MUST be raw bytes for signature verification)
    payload = await request.body()
    sig_header = request.headers.get("stripe-signature", "")

    # 2. Verify signature and parse
    try:
        event = construct_event(payload, sig_header, settings)
    except stripe.SignatureVerificationError as e:
        logger.warning("Webhook signature verification failed")
        raise APIError(
            status_code=400,
            error_type=VALIDATION_ERROR,
            code="INVALID_SIGNATURE",
            message="Invalid Stripe-Signature header",
        ) from e
    except EventParseError as e:
        logger.warning("Invalid webhook payload: %s", e)
        raise APIError(
            status_code=400,
            error_type=VALIDATION_ERROR,
            code="INVALID_BODY",
            message="Invalid webhook payload",
            description=str(e),
        ) from e
    except WebhookNotConfigured as e:
        logger.error("Refusing webhook: %s", e)
        raise APIError(
            status_code=500,
            error_type=INTERNAL_ERROR,
            code="WEBHOOK_NOT_CONFIGURED",
            message="Webhook endpoint is not configured",
        ) from e

    # 3. Dispatch within the per-event budget and commit before acknowledging;
    # the session rolls back on timeout or a failed commit
    try:
        outcome = await asyncio.wait_for(
            dispatch_event(db, event),
            timeout=settings.webhook_timeout_seconds,
        )
        await db.commit()
    except asyncio.TimeoutError as e:
        logger.error("Webhook event %s (%s) exceeded processing budget", event.id, event.type)
        raise APIError(
            status_code=504,
            error_type=API_ERROR,
            code="PROCESSING_TIMEOUT",
            message="Webhook processing timed out",
        ) from e

    return {"status": outcome}
