"""Tests for webhook-driven subscription ledger writes and status reads."""

from datetime import datetime

import pytest
from sqlalchemy.ext.asyncio import AsyncSession

from app.billing.status import SubscriptionStatus
from app.models.customer import Customer
from app.models.project import Project
from app.services.errors import LedgerConflict
from app.services.subscription_service import (
    UpdateOutcome,
    UpsertOutcome,
    get_subscription,
    get_subscription_by_stripe_id,
    get_subscription_status,
    update_subscription_status,
    upsert_subscription,
)
from conftest import make_customer

JAN = datetime(2024, 1, 1)
FEB = datetime(2024, 2, 1)
MAR = datetime(2024, 3, 1)


async def _record(
    db: AsyncSession,
    project: Project,
    customer: Customer,
    sub_id: str = "sub_1",
    status: SubscriptionStatus = SubscriptionStatus.ACTIVE,
    period_end: datetime | None = FEB,
    product_id: str = "prod_pro",
) -> UpsertOutcome:
    return await upsert_subscription(
        db,
        project_id=project.id,
        customer_id=customer.id,
        user_id=customer.user_id,
        product_id=product_id,
        price_id="price_pro_monthly",
        stripe_subscription_id=sub_id,
        status=status,
        period_start=JAN,
        period_end=period_end,
    )


class TestUpsertSubscription:
    @pytest.mark.asyncio
    async def test_insert_new_row(self, db_session: AsyncSession, project: Project):
        customer = await make_customer(db_session, project, stripe_customer_id="cus_1")
        assert await _record(db_session, project, customer) is UpsertOutcome.APPLIED

        row = await get_subscription(db_session, project.id, "user_1", "prod_pro")
        assert row.stripe_subscription_id == "sub_1"
        assert row.status == "active"
        assert row.current_period_end == FEB

    @pytest.mark.asyncio
    async def test_replay_with_same_period_is_applied_again(
        self, db_session: AsyncSession, project: Project
    ):
        customer = await make_customer(db_session, project, stripe_customer_id="cus_1")
        await _record(db_session, project, customer)
        assert await _record(db_session, project, customer) is UpsertOutcome.APPLIED

        row = await get_subscription_by_stripe_id(db_session, "sub_1")
        assert row.status == "active"

    @pytest.mark.asyncio
    async def test_older_period_is_stale(self, db_session: AsyncSession, project: Project):
        customer = await make_customer(db_session, project, stripe_customer_id="cus_1")
        await _record(db_session, project, customer, period_end=MAR)

        outcome = await _record(
            db_session, project, customer, status=SubscriptionStatus.PAST_DUE, period_end=FEB
        )

        assert outcome is UpsertOutcome.STALE
        row = await get_subscription_by_stripe_id(db_session, "sub_1")
        assert row.status == "active"
        assert row.current_period_end == MAR

    @pytest.mark.asyncio
    async def test_different_subscription_on_live_row_conflicts(
        self, db_session: AsyncSession, project: Project
    ):
        customer = await make_customer(db_session, project, stripe_customer_id="cus_1")
        await _record(db_session, project, customer, sub_id="sub_1")

        with pytest.raises(LedgerConflict) as exc_info:
            await _record(db_session, project, customer, sub_id="sub_2")
        assert exc_info.value.existing == "sub_1"

    @pytest.mark.asyncio
    async def test_new_subscription_replaces_canceled_row(
        self, db_session: AsyncSession, project: Project
    ):
        customer = await make_customer(db_session, project, stripe_customer_id="cus_1")
        await _record(db_session, project, customer, sub_id="sub_old", status=SubscriptionStatus.CANCELED)

        outcome = await _record(db_session, project, customer, sub_id="sub_new", period_end=MAR)

        assert outcome is UpsertOutcome.REPLACED
        row = await get_subscription(db_session, project.id, "user_1", "prod_pro")
        assert row.stripe_subscription_id == "sub_new"
        assert row.status == "active"
        assert row.current_period_end == MAR

    @pytest.mark.asyncio
    async def test_subscription_id_is_unique_across_keys(
        self, db_session: AsyncSession, project: Project
    ):
        customer = await make_customer(db_session, project, stripe_customer_id="cus_1")
        await _record(db_session, project, customer, sub_id="sub_1", product_id="prod_a")

        with pytest.raises(LedgerConflict):
            await _record(db_session, project, customer, sub_id="sub_1", product_id="prod_b")

        assert await get_subscription(db_session, project.id, "user_1", "prod_b") is None

    @pytest.mark.asyncio
    async def test_unstorable_status_is_rejected(self, db_session: AsyncSession, project: Project):
        customer = await make_customer(db_session, project, stripe_customer_id="cus_1")
        with pytest.raises(ValueError):
            await _record(db_session, project, customer, status=SubscriptionStatus.UNKNOWN)


class TestUpdateSubscriptionStatus:
    @pytest.mark.asyncio
    async def test_missing_row_is_noop(self, db_session: AsyncSession):
        outcome = await update_subscription_status(
            db_session, "sub_missing", SubscriptionStatus.ACTIVE, FEB
        )
        assert outcome is UpdateOutcome.MISSING

    @pytest.mark.asyncio
    async def test_update_moves_status_and_period(self, db_session: AsyncSession, project: Project):
        customer = await make_customer(db_session, project, stripe_customer_id="cus_1")
        await _record(db_session, project, customer)

        outcome = await update_subscription_status(db_session, "sub_1", SubscriptionStatus.PAST_DUE, MAR)

        assert outcome is UpdateOutcome.UPDATED
        row = await get_subscription_by_stripe_id(db_session, "sub_1")
        assert row.status == "past_due"
        assert row.current_period_end == MAR

    @pytest.mark.asyncio
    async def test_update_without_period_keeps_period(self, db_session: AsyncSession, project: Project):
        customer = await make_customer(db_session, project, stripe_customer_id="cus_1")
        await _record(db_session, project, customer)

        await update_subscription_status(db_session, "sub_1", SubscriptionStatus.UNPAID, None)

        row = await get_subscription_by_stripe_id(db_session, "sub_1")
        assert row.status == "unpaid"
        assert row.current_period_end == FEB

    @pytest.mark.asyncio
    async def test_out_of_order_update_is_stale(self, db_session: AsyncSession, project: Project):
        customer = await make_customer(db_session, project, stripe_customer_id="cus_1")
        await _record(db_session, project, customer, period_end=MAR)

        outcome = await update_subscription_status(db_session, "sub_1", SubscriptionStatus.PAST_DUE, FEB)

        assert outcome is UpdateOutcome.STALE
        row = await get_subscription_by_stripe_id(db_session, "sub_1")
        assert row.status == "active"
        assert row.current_period_end == MAR

    @pytest.mark.asyncio
    async def test_canceled_row_ignores_later_activation(
        self, db_session: AsyncSession, project: Project
    ):
        customer = await make_customer(db_session, project, stripe_customer_id="cus_1")
        await _record(db_session, project, customer)
        await update_subscription_status(db_session, "sub_1", SubscriptionStatus.CANCELED, FEB)

        outcome = await update_subscription_status(db_session, "sub_1", SubscriptionStatus.ACTIVE, MAR)

        assert outcome is UpdateOutcome.STALE
        row = await get_subscription_by_stripe_id(db_session, "sub_1")
        assert row.status == "canceled"

    @pytest.mark.asyncio
    async def test_repeated_cancellation_is_accepted(self, db_session: AsyncSession, project: Project):
        customer = await make_customer(db_session, project, stripe_customer_id="cus_1")
        await _record(db_session, project, customer)
        await update_subscription_status(db_session, "sub_1", SubscriptionStatus.CANCELED, FEB)

        outcome = await update_subscription_status(db_session, "sub_1", SubscriptionStatus.CANCELED, FEB)
        assert outcome is UpdateOutcome.UPDATED


class TestGetSubscriptionStatus:
    @pytest.mark.asyncio
    async def test_no_row_is_not_exists(self, db_session: AsyncSession, project: Project):
        view = await get_subscription_status(db_session, project.id, "user_1", "prod_pro")
        assert view.exists is False
        assert view.status is SubscriptionStatus.NONE

    @pytest.mark.asyncio
    async def test_row_is_reported(self, db_session: AsyncSession, project: Project):
        customer = await make_customer(db_session, project, stripe_customer_id="cus_1")
        await _record(db_session, project, customer, status=SubscriptionStatus.TRIALING)

        view = await get_subscription_status(db_session, project.id, "user_1", "prod_pro")

        assert view.exists is True
        assert view.stripe_subscription_id == "sub_1"
        assert view.customer_id == customer.id
        assert view.status is SubscriptionStatus.TRIALING
        assert view.current_period_end == FEB

    @pytest.mark.asyncio
    async def test_reads_are_scoped_to_project(
        self, db_session: AsyncSession, project: Project, other_project: Project
    ):
        customer = await make_customer(db_session, project, stripe_customer_id="cus_1")
        await _record(db_session, project, customer)

        view = await get_subscription_status(db_session, other_project.id, "user_1", "prod_pro")
        assert view.exists is False
