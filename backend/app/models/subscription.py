"""Subscription model — Stripe billing state per (project, user, product)."""

import uuid
from datetime import datetime

from sqlalchemy import ForeignKey, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from app.database import Base, TimestampMixin, UUIDPrimaryKeyMixin


class Subscription(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    """Tracks one Stripe subscription lineage for a tenant user and product.

    Rows are written only by webhook ingestion and are never hard-deleted;
    cancellation flips ``status`` to ``canceled``.
    """

    __tablename__ = "subscriptions"
    __table_args__ = (
        UniqueConstraint(
            "project_id", "user_id", "product_id", name="uq_subscriptions_project_user_product"
        ),
    )

    project_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("projects.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    customer_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("customers.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    user_id: Mapped[str] = mapped_column(String(255), nullable=False)
    product_id: Mapped[str] = mapped_column(String(255), nullable=False)
    price_id: Mapped[str] = mapped_column(String(255), nullable=False)

    # Globally unique across projects
    stripe_subscription_id: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)

    status: Mapped[str] = mapped_column(String(50), nullable=False)

    # Billing period (naive UTC)
    current_period_start: Mapped[datetime | None] = mapped_column(nullable=True)
    current_period_end: Mapped[datetime | None] = mapped_column(nullable=True)

    def __repr__(self) -> str:
        return (
            f"<Subscription(id={self.id}, stripe_subscription_id={self.stripe_subscription_id}, "
            f"status={self.status})>"
        )
