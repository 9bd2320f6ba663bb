"""Ledger writes through the app's own session dependency.

These tests run without overriding ``get_db``: each request gets a real
session from ``app.state.session_factory`` on a file-backed SQLite database,
so the commit that makes a write durable runs exactly as in production.
"""

from collections.abc import AsyncGenerator
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
import pytest_asyncio
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient
from sqlalchemy import func, select
from sqlalchemy.exc import OperationalError
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import Settings
from app.database import Base
from app.main import create_app
from app.models.customer import Customer
from app.models.project import Project
from app.models.subscription import Subscription
from app.services.project_service import create_project
from conftest import (
    WEBHOOK_SECRET,
    enable_sqlite_savepoints,
    encode_event,
    event_payload,
    sign_payload,
    subscription_payload,
)

CHECKOUT_BODY = {
    "user_id": "u1",
    "email": "u1@example.com",
    "product_id": "prod_X",
    "price_id": "price_X",
    "success_url": "https://app.test/ok",
    "cancel_url": "https://app.test/cancel",
}


def _failing_commit() -> AsyncMock:
    return AsyncMock(side_effect=OperationalError("COMMIT", {}, Exception("disk I/O error")))


@pytest_asyncio.fixture
async def live_app(tmp_path: Path, stripe_mock: MagicMock) -> AsyncGenerator[FastAPI, None]:
    settings = Settings(
        environment="test",
        database_url=f"sqlite+aiosqlite:///{tmp_path / 'ledger.db'}",
        stripe_secret_key="sk_test_dummy",
        stripe_webhook_secret=WEBHOOK_SECRET,
        rate_limit_per_minute=1000,
        log_level="WARNING",
    )
    application = create_app(settings)
    application.state.stripe_client = stripe_mock
    enable_sqlite_savepoints(application.state.engine)
    async with application.state.engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield application
    await application.state.engine.dispose()


@pytest_asyncio.fixture
async def live_client(live_app: FastAPI) -> AsyncGenerator[AsyncClient, None]:
    transport = ASGITransport(app=live_app)
    async with AsyncClient(transport=transport, base_url="http://testserver") as ac:
        yield ac


@pytest_asyncio.fixture
async def live_project(live_app: FastAPI) -> Project:
    async with live_app.state.session_factory() as session:
        project = await create_project(session, "Live Project")
        await session.commit()
    return project


async def _bind_customer(app: FastAPI, project: Project) -> None:
    async with app.state.session_factory() as session:
        session.add(
            Customer(
                project_id=project.id,
                user_id="u1",
                email="u1@example.com",
                stripe_customer_id="cus_u1",
            )
        )
        await session.commit()


async def _count(app: FastAPI, model) -> int:
    async with app.state.session_factory() as session:
        return (await session.execute(select(func.count()).select_from(model))).scalar_one()


def _created_event() -> bytes:
    return encode_event(
        event_payload(
            "customer.subscription.created",
            subscription_payload(sub_id="sub_1", customer="cus_u1", price_id="price_X", product_id="prod_X"),
        )
    )


async def _post_webhook(client: AsyncClient, body: bytes):
    return await client.post(
        "/webhooks/stripe",
        content=body,
        headers={"Content-Type": "application/json", "Stripe-Signature": sign_payload(body)},
    )


class TestWebhookCommit:
    @pytest.mark.asyncio
    async def test_applied_event_is_durable(
        self, live_app: FastAPI, live_client: AsyncClient, live_project: Project
    ):
        await _bind_customer(live_app, live_project)

        response = await _post_webhook(live_client, _created_event())

        assert response.status_code == 200
        assert response.json() == {"status": "processed"}
        assert await _count(live_app, Subscription) == 1

    @pytest.mark.asyncio
    async def test_failed_commit_is_not_acknowledged(
        self, live_app: FastAPI, live_client: AsyncClient, live_project: Project
    ):
        await _bind_customer(live_app, live_project)

        with patch.object(AsyncSession, "commit", _failing_commit()):
            response = await _post_webhook(live_client, _created_event())

        # Stripe retries anything that is not 2xx
        assert response.status_code == 500
        assert response.json()["error"]["code"] == "DATABASE_ERROR"
        assert await _count(live_app, Subscription) == 0

        retry = await _post_webhook(live_client, _created_event())
        assert retry.status_code == 200
        assert await _count(live_app, Subscription) == 1


class TestCheckoutCommit:
    @pytest.mark.asyncio
    async def test_customer_binding_is_durable(
        self, live_app: FastAPI, live_client: AsyncClient, live_project: Project
    ):
        response = await live_client.post(
            "/api/v1/checkout/subscription",
            json=CHECKOUT_BODY,
            headers={"X-API-Key": live_project.api_key},
        )

        assert response.status_code == 200
        async with live_app.state.session_factory() as session:
            customer = (await session.execute(select(Customer))).scalar_one()
        assert customer.stripe_customer_id == "cus_test_new"

    @pytest.mark.asyncio
    async def test_failed_commit_returns_no_checkout_url(
        self,
        live_app: FastAPI,
        live_client: AsyncClient,
        live_project: Project,
        stripe_mock: MagicMock,
    ):
        with patch.object(AsyncSession, "commit", _failing_commit()):
            response = await live_client.post(
                "/api/v1/checkout/subscription",
                json=CHECKOUT_BODY,
                headers={"X-API-Key": live_project.api_key},
            )

        assert response.status_code == 500
        assert response.json()["error"]["code"] == "DATABASE_ERROR"
        assert "checkout_url" not in response.text
        stripe_mock.v1.checkout.sessions.create_async.assert_not_awaited()
        assert await _count(live_app, Customer) == 0
