"""Shared test configuration and fixtures.

Uses a transactional rollback strategy per test for full isolation:
- Each test gets a fresh database (in-memory SQLite unless TEST_DATABASE_URL
  points at a PostgreSQL test database) and a session bound to one
  connection whose outer transaction always rolls back.
- Ledger code that opens savepoints runs unchanged; session commits only
  release a savepoint.
"""

import hashlib
import hmac
import json
import os
import time
import uuid
from collections.abc import AsyncGenerator
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest
import pytest_asyncio
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient
from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, create_async_engine
from sqlalchemy.pool import StaticPool

import app.models  # noqa: F401
from app.config import Settings
from app.database import Base, get_db
from app.main import create_app
from app.models.customer import Customer
from app.models.project import Project
from app.services.project_service import create_project

TEST_DATABASE_URL = os.environ.get("TEST_DATABASE_URL", "sqlite+aiosqlite:///:memory:")
WEBHOOK_SECRET = "whsec_test_secret"


def _make_engine() -> AsyncEngine:
    if not TEST_DATABASE_URL.startswith("sqlite"):
        return create_async_engine(TEST_DATABASE_URL, echo=False, pool_pre_ping=True)

    engine = create_async_engine(
        TEST_DATABASE_URL,
        echo=False,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    enable_sqlite_savepoints(engine)
    return engine


def enable_sqlite_savepoints(engine: AsyncEngine) -> None:
    """Let SQLAlchemy emit BEGIN itself; pysqlite's own transaction handling breaks SAVEPOINT."""

    @event.listens_for(engine.sync_engine, "connect")
    def _disable_pysqlite_transactions(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def _emit_begin(conn):
        conn.exec_driver_sql("BEGIN")


# ---------------------------------------------------------------------------
# Per-test: fresh schema and transactional rollback
# ---------------------------------------------------------------------------


@pytest_asyncio.fixture
async def test_engine() -> AsyncGenerator[AsyncEngine, None]:
    engine = _make_engine()
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest_asyncio.fixture
async def db_session(test_engine: AsyncEngine) -> AsyncGenerator[AsyncSession, None]:
    """Yield an async session wrapped in a transaction that always rolls back."""
    async with test_engine.connect() as connection:
        transaction = await connection.begin()
        session = AsyncSession(
            bind=connection,
            expire_on_commit=False,
            join_transaction_mode="create_savepoint",
        )

        try:
            yield session
        finally:
            await session.close()
            await transaction.rollback()


@pytest.fixture
def test_settings() -> Settings:
    return Settings(
        environment="test",
        database_url=TEST_DATABASE_URL,
        stripe_secret_key="sk_test_dummy",
        stripe_webhook_secret=WEBHOOK_SECRET,
        rate_limit_per_minute=1000,
        log_level="WARNING",
    )


@pytest.fixture
def stripe_mock() -> MagicMock:
    """A StripeClient stand-in; tests set the ``*_async`` calls they expect."""
    client = MagicMock(name="StripeClient")
    client.v1.customers.create_async = AsyncMock(return_value=SimpleNamespace(id="cus_test_new"))
    client.v1.checkout.sessions.create_async = AsyncMock(
        return_value=SimpleNamespace(id="cs_test_123", url="https://checkout.stripe.com/c/pay/cs_test_123")
    )
    client.v1.billing_portal.sessions.create_async = AsyncMock(
        return_value=SimpleNamespace(id="bps_test_123", url="https://billing.stripe.com/p/session/bps_test_123")
    )
    client.v1.subscriptions.retrieve_async = AsyncMock()
    client.v1.products.create_async = AsyncMock()
    client.v1.products.update_async = AsyncMock()
    client.v1.prices.create_async = AsyncMock()
    return client


@pytest.fixture
def gateway_app(test_settings: Settings, stripe_mock: MagicMock) -> FastAPI:
    application = create_app(test_settings)
    application.state.stripe_client = stripe_mock
    return application


@pytest_asyncio.fixture
async def client(gateway_app: FastAPI, db_session: AsyncSession) -> AsyncGenerator[AsyncClient, None]:
    """Provide an httpx AsyncClient wired to use the test DB session."""

    async def override_get_db() -> AsyncGenerator[AsyncSession, None]:
        yield db_session

    gateway_app.dependency_overrides[get_db] = override_get_db

    transport = ASGITransport(app=gateway_app)
    async with AsyncClient(transport=transport, base_url="http://testserver") as ac:
        yield ac

    gateway_app.dependency_overrides.clear()


# ---------------------------------------------------------------------------
# Convenience fixtures: projects and customers
# ---------------------------------------------------------------------------


@pytest_asyncio.fixture
async def project(db_session: AsyncSession) -> Project:
    """Create and return an active project directly in the DB."""
    return await create_project(db_session, f"Test Project {uuid.uuid4().hex[:6]}")


@pytest_asyncio.fixture
async def other_project(db_session: AsyncSession) -> Project:
    return await create_project(db_session, f"Other Project {uuid.uuid4().hex[:6]}")


@pytest.fixture
def api_headers(project: Project) -> dict[str, str]:
    """Return X-API-Key headers for the test project."""
    return {"X-API-Key": project.api_key}


async def make_customer(
    db_session: AsyncSession,
    project: Project,
    user_id: str = "user_1",
    email: str = "user_1@example.com",
    stripe_customer_id: str | None = None,
) -> Customer:
    customer = Customer(
        project_id=project.id,
        user_id=user_id,
        email=email,
        stripe_customer_id=stripe_customer_id,
    )
    db_session.add(customer)
    await db_session.flush()
    return customer


# ---------------------------------------------------------------------------
# Stripe payload helpers
# ---------------------------------------------------------------------------


class StripeObj(SimpleNamespace):
    """SimpleNamespace with bracket notation support (like Stripe API objects).

    Stripe API 2025-08-27 (basil) changed subscription.items to require
    bracket notation to avoid collision with Python dict .items().
    """

    def __getitem__(self, key: str):
        return getattr(self, key)


def subscription_payload(
    sub_id: str = "sub_test_123",
    customer: str = "cus_test_123",
    status: str = "active",
    price_id: str = "price_pro_monthly",
    product_id: str = "prod_pro",
    period_start: int = 1700000000,
    period_end: int = 1702600000,
) -> dict:
    """A Stripe subscription object as delivered in webhook JSON."""
    return {
        "id": sub_id,
        "object": "subscription",
        "customer": customer,
        "status": status,
        "items": {
            "object": "list",
            "data": [
                {
                    "id": f"si_{sub_id}",
                    "price": {"id": price_id, "product": product_id},
                    "current_period_start": period_start,
                    "current_period_end": period_end,
                }
            ],
        },
    }


def event_payload(event_type: str, data_object: dict, event_id: str | None = None) -> dict:
    return {
        "id": event_id or f"evt_test_{uuid.uuid4().hex[:8]}",
        "object": "event",
        "type": event_type,
        "created": int(time.time()),
        "livemode": False,
        "data": {"object": data_object},
    }


def sign_payload(body: bytes, secret: str = WEBHOOK_SECRET, timestamp: int | None = None) -> str:
    """Build a ``Stripe-Signature`` header the way Stripe does."""
    timestamp = int(time.time()) if timestamp is None else timestamp
    signed = f"{timestamp}.{body.decode('utf-8')}".encode("utf-8")
    signature = hmac.new(secret.encode("utf-8"), signed, hashlib.sha256).hexdigest()
    return f"t={timestamp},v1={signature}"


def encode_event(payload: dict) -> bytes:
    return json.dumps(payload).encode("utf-8")
