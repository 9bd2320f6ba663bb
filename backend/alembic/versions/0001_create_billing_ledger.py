"""create billing ledger tables

Revision ID: 0001
Revises:
Create Date: 2026-03-02 09:00:00.000000

Projects, customers, subscriptions and registered products with the
per-project uniqueness constraints the upsert statements rely on.
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = "0001"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(), server_default=sa.text("now()"), nullable=False),
        sa.Column("updated_at", sa.DateTime(), server_default=sa.text("now()"), nullable=False),
    ]


def upgrade() -> None:
    # ── 1. projects ─────────────────────────────────────────
    op.create_table(
        "projects",
        sa.Column("id", sa.UUID(), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("api_key", sa.String(64), nullable=False),
        sa.Column("webhook_url", sa.String(2048), nullable=True),
        sa.Column("is_active", sa.Boolean(), server_default=sa.true(), nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_projects_api_key", "projects", ["api_key"], unique=True)

    # ── 2. customers ────────────────────────────────────────
    op.create_table(
        "customers",
        sa.Column("id", sa.UUID(), nullable=False),
        sa.Column("project_id", sa.UUID(), nullable=False),
        sa.Column("user_id", sa.String(255), nullable=False),
        sa.Column("email", sa.String(255), nullable=False),
        sa.Column("stripe_customer_id", sa.String(255), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["project_id"], ["projects.id"], ondelete="CASCADE"),
        sa.UniqueConstraint("project_id", "user_id", name="uq_customers_project_user"),
        sa.UniqueConstraint("stripe_customer_id"),
    )
    op.create_index("ix_customers_project_id", "customers", ["project_id"])

    # ── 3. subscriptions ────────────────────────────────────
    op.create_table(
        "subscriptions",
        sa.Column("id", sa.UUID(), nullable=False),
        sa.Column("project_id", sa.UUID(), nullable=False),
        sa.Column("customer_id", sa.UUID(), nullable=False),
        sa.Column("user_id", sa.String(255), nullable=False),
        sa.Column("product_id", sa.String(255), nullable=False),
        sa.Column("price_id", sa.String(255), nullable=False),
        sa.Column("stripe_subscription_id", sa.String(255), nullable=False),
        sa.Column("status", sa.String(50), nullable=False),
        sa.Column("current_period_start", sa.DateTime(), nullable=True),
        sa.Column("current_period_end", sa.DateTime(), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["project_id"], ["projects.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["customer_id"], ["customers.id"], ondelete="CASCADE"),
        sa.UniqueConstraint(
            "project_id", "user_id", "product_id", name="uq_subscriptions_project_user_product"
        ),
        sa.UniqueConstraint("stripe_subscription_id"),
    )
    op.create_index("ix_subscriptions_project_id", "subscriptions", ["project_id"])
    op.create_index("ix_subscriptions_customer_id", "subscriptions", ["customer_id"])

    # ── 4. registered_products ──────────────────────────────
    op.create_table(
        "registered_products",
        sa.Column("id", sa.UUID(), nullable=False),
        sa.Column("project_name", sa.String(255), nullable=False),
        sa.Column("plan_name", sa.String(255), nullable=False),
        sa.Column("stripe_product_id", sa.String(255), nullable=False),
        sa.Column("stripe_price_monthly", sa.String(255), nullable=True),
        sa.Column("stripe_price_yearly", sa.String(255), nullable=True),
        sa.Column("monthly_amount", sa.Integer(), nullable=False),
        sa.Column("yearly_amount", sa.Integer(), nullable=False),
        sa.Column("currency", sa.String(3), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("features", sa.JSON(), nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("project_name", "plan_name", name="uq_registered_products_project_plan"),
        sa.UniqueConstraint("stripe_product_id"),
    )
    op.create_index("ix_registered_products_project_name", "registered_products", ["project_name"])


def downgrade() -> None:
    op.drop_index("ix_registered_products_project_name", table_name="registered_products")
    op.drop_table("registered_products")
    op.drop_index("ix_subscriptions_customer_id", table_name="subscriptions")
    op.drop_index("ix_subscriptions_project_id", table_name="subscriptions")
    op.drop_table("subscriptions")
    op.drop_index("ix_customers_project_id", table_name="customers")
    op.drop_table("customers")
    op.drop_index("ix_projects_api_key", table_name="projects")
    op.drop_table("projects")
