"""Tests for per-project customer rows and their Stripe binding."""

import pytest
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.project import Project
from app.services.customer_service import (
    bind_stripe_customer,
    find_or_create_customer,
    get_customer_by_stripe_id,
    get_customer_by_user,
)
from app.services.errors import LedgerConflict, LedgerNotFound
from conftest import make_customer


class TestFindOrCreateCustomer:
    @pytest.mark.asyncio
    async def test_first_touch_creates_row_without_stripe_id(
        self, db_session: AsyncSession, project: Project
    ):
        ref = await find_or_create_customer(db_session, project.id, "user_1", "a@example.com")
        assert ref.stripe_customer_id is None

        row = await get_customer_by_user(db_session, project.id, "user_1")
        assert row is not None
        assert row.id == ref.id
        assert row.email == "a@example.com"

    @pytest.mark.asyncio
    async def test_second_touch_reuses_row_and_updates_email(
        self, db_session: AsyncSession, project: Project
    ):
        first = await find_or_create_customer(db_session, project.id, "user_1", "old@example.com")
        second = await find_or_create_customer(db_session, project.id, "user_1", "new@example.com")

        assert second.id == first.id
        row = await get_customer_by_user(db_session, project.id, "user_1")
        assert row.email == "new@example.com"

    @pytest.mark.asyncio
    async def test_existing_stripe_id_is_kept(self, db_session: AsyncSession, project: Project):
        await make_customer(db_session, project, stripe_customer_id="cus_kept")
        ref = await find_or_create_customer(db_session, project.id, "user_1", "x@example.com")
        assert ref.stripe_customer_id == "cus_kept"

    @pytest.mark.asyncio
    async def test_same_user_id_in_two_projects_is_two_customers(
        self, db_session: AsyncSession, project: Project, other_project: Project
    ):
        a = await find_or_create_customer(db_session, project.id, "user_1", "a@example.com")
        b = await find_or_create_customer(db_session, other_project.id, "user_1", "a@example.com")
        assert a.id != b.id


class TestBindStripeCustomer:
    @pytest.mark.asyncio
    async def test_bind_sets_id_once(self, db_session: AsyncSession, project: Project):
        await make_customer(db_session, project)
        bound = await bind_stripe_customer(db_session, project.id, "user_1", "cus_1")
        assert bound == "cus_1"

        row = await get_customer_by_stripe_id(db_session, "cus_1")
        assert row is not None
        assert row.user_id == "user_1"

    @pytest.mark.asyncio
    async def test_rebinding_same_id_is_idempotent(self, db_session: AsyncSession, project: Project):
        await make_customer(db_session, project, stripe_customer_id="cus_1")
        assert await bind_stripe_customer(db_session, project.id, "user_1", "cus_1") == "cus_1"

    @pytest.mark.asyncio
    async def test_different_id_conflicts_and_reports_existing(
        self, db_session: AsyncSession, project: Project
    ):
        await make_customer(db_session, project, stripe_customer_id="cus_winner")
        with pytest.raises(LedgerConflict) as exc_info:
            await bind_stripe_customer(db_session, project.id, "user_1", "cus_loser")
        assert exc_info.value.existing == "cus_winner"

        row = await get_customer_by_user(db_session, project.id, "user_1")
        assert row.stripe_customer_id == "cus_winner"

    @pytest.mark.asyncio
    async def test_stripe_id_owned_by_another_customer_conflicts(
        self, db_session: AsyncSession, project: Project
    ):
        await make_customer(db_session, project, user_id="user_a", stripe_customer_id="cus_shared")
        await make_customer(db_session, project, user_id="user_b", email="b@example.com")

        with pytest.raises(LedgerConflict):
            await bind_stripe_customer(db_session, project.id, "user_b", "cus_shared")

        row = await get_customer_by_user(db_session, project.id, "user_b")
        assert row.stripe_customer_id is None

    @pytest.mark.asyncio
    async def test_missing_customer_raises_not_found(self, db_session: AsyncSession, project: Project):
        with pytest.raises(LedgerNotFound):
            await bind_stripe_customer(db_session, project.id, "ghost", "cus_1")
