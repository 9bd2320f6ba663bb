"""Customer model — an end user of a project, optionally linked to Stripe."""

import uuid

from sqlalchemy import ForeignKey, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from app.database import Base, TimestampMixin, UUIDPrimaryKeyMixin


class Customer(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    """A (project, user_id) pairing.

    ``user_id`` is chosen by the tenant and scoped to its project: the same
    string in two projects names two different customers.
    """

    __tablename__ = "customers"
    __table_args__ = (
        UniqueConstraint("project_id", "user_id", name="uq_customers_project_user"),
    )

    project_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("projects.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    user_id: Mapped[str] = mapped_column(String(255), nullable=False)
    email: Mapped[str] = mapped_column(String(255), nullable=False)

    # Set once when Stripe returns a customer, never rewritten afterwards
    stripe_customer_id: Mapped[str | None] = mapped_column(String(255), unique=True, nullable=True)

    def __repr__(self) -> str:
        return f"<Customer id={self.id} project_id={self.project_id} user_id={self.user_id!r}>"
