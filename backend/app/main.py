"""Tollgate billing gateway — FastAPI application factory.

Run with ``tollgate-server`` (see ``app.server``) or
``uvicorn app.main:create_app --factory``.
"""

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import datetime, timezone

from fastapi import Depends, FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.admin import router as admin_router
from app.api.deps import get_app_settings, get_db
from app.api.v1.checkout import router as checkout_router
from app.api.v1.portal import router as portal_router
from app.api.v1.subscriptions import router as subscriptions_router
from app.api.webhooks import router as webhooks_router
from app.billing.stripe_client import build_stripe_client
from app.config import Settings, get_settings
from app.database import build_engine, build_session_factory
from app.errors import register_exception_handlers
from app.middleware import install_middleware
from app.services.rate_limiter import InMemoryRateLimiter

logger = logging.getLogger(__name__)


def configure_logging(level: str) -> None:
    """Configure root logger so all app.* loggers output to stderr."""
    logging.basicConfig(
        level=level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Application lifespan handler for startup and shutdown events."""
    logger.info("%s starting (%s)", app.title, app.state.settings.environment)
    yield
    # Shutdown: dispose engine connections
    await app.state.engine.dispose()


def _utcnow() -> str:
    return datetime.now(timezone.utc).isoformat()


async def health_check(db: AsyncSession = Depends(get_db)) -> JSONResponse:
    """Health check endpoint; pings the database."""
    try:
        await db.execute(text("SELECT 1"))
    except SQLAlchemyError:
        logger.exception("Health check database ping failed")
        return JSONResponse(
            status_code=503,
            content={"status": "unhealthy", "database": "unreachable", "timestamp": _utcnow()},
        )
    return JSONResponse(content={"status": "healthy", "timestamp": _utcnow()})


async def debug_info(settings: Settings = Depends(get_app_settings)) -> dict[str, str]:
    """Deployment diagnostics without secret values (non-production only)."""
    return {
        "service": settings.app_name,
        "status": "running",
        "time": _utcnow(),
        "environment": settings.environment,
        "database_url": "configured" if settings.database_url else "missing",
        "stripe_key": "configured" if settings.stripe_secret_key else "missing",
        "webhook_secret": "configured" if settings.stripe_webhook_secret else "missing",
    }


def create_app(settings: Settings | None = None) -> FastAPI:
    """Build the gateway app with its engine, Stripe client and rate limiter."""
    settings = settings or get_settings()
    configure_logging(settings.log_level)

    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        description="Multi-tenant billing gateway in front of Stripe.",
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )

    engine = build_engine(settings)
    app.state.settings = settings
    app.state.engine = engine
    app.state.session_factory = build_session_factory(engine)
    app.state.stripe_client = build_stripe_client(settings)
    app.state.rate_limiter = InMemoryRateLimiter(settings.rate_limit_per_minute)

    register_exception_handlers(app)
    install_middleware(app, request_timeout=settings.request_timeout_seconds)
    if settings.cors_origins:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=settings.cors_origins,
            allow_credentials=True,
            allow_methods=["GET", "POST", "OPTIONS"],
            allow_headers=["Content-Type", "X-API-Key", "X-Request-ID"],
        )

    # Routers
    app.include_router(checkout_router)
    app.include_router(subscriptions_router)
    app.include_router(portal_router)
    app.include_router(admin_router)
    app.include_router(webhooks_router)

    app.add_api_route("/health", health_check, methods=["GET"], tags=["health"])
    if not settings.is_production:
        app.add_api_route("/debug", debug_info, methods=["GET"], tags=["health"])

    @app.get("/", tags=["root"])
    async def root() -> dict[str, str]:
        """Root endpoint."""
        return {
            "service": settings.app_name,
            "version": settings.app_version,
            "docs": "/docs",
        }

    return app

