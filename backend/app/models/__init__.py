"""SQLAlchemy models for the billing ledger.

All models are imported here so that Alembic's autogenerate can discover
them via Base.metadata. If you add a new model, import it in this file.
"""

from app.models.customer import Customer
from app.models.project import Project
from app.models.registered_product import RegisteredProduct
from app.models.subscription import Subscription

__all__ = [
    "Customer",
    "Project",
    "RegisteredProduct",
    "Subscription",
]
