"""Registered product model — Stripe products created through the gateway."""

from sqlalchemy import JSON, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from app.database import Base, TimestampMixin, UUIDPrimaryKeyMixin


class RegisteredProduct(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    """One plan of a tenant's catalog with its Stripe product and prices."""

    __tablename__ = "registered_products"
    __table_args__ = (
        UniqueConstraint("project_name", "plan_name", name="uq_registered_products_project_plan"),
    )

    project_name: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    plan_name: Mapped[str] = mapped_column(String(255), nullable=False)
    stripe_product_id: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    stripe_price_monthly: Mapped[str | None] = mapped_column(String(255), nullable=True)
    stripe_price_yearly: Mapped[str | None] = mapped_column(String(255), nullable=True)

    # Amounts in the smallest currency unit (cents)
    monthly_amount: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    yearly_amount: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    currency: Mapped[str] = mapped_column(String(3), nullable=False, default="usd")

    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    features: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)

    def __repr__(self) -> str:
        return (
            f"<RegisteredProduct project={self.project_name!r} plan={self.plan_name!r} "
            f"product={self.stripe_product_id}>"
        )
