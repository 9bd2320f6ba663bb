"""Upgrade a single-tenant billing database to the multi-tenant schema.

Older deployments kept customers and subscriptions without a ``project_id``.
This script assigns every such row to a "Default Project" (created here
unless a project already exists), rebuilds the uniqueness constraints per
project, and prints the Default Project's API key.

Usage:
    python -m scripts.migrate_single_tenant [--env-file .env]

Afterwards mark the schema as current with ``alembic stamp head``.
PostgreSQL only. Runs in one transaction: any failure leaves the database
untouched.
"""

import argparse
import asyncio
import uuid

from sqlalchemy import select, text
from sqlalchemy.ext.asyncio import AsyncConnection, AsyncSession

from app.config import Settings
from app.database import build_engine
from app.models.project import Project
from app.models.registered_product import RegisteredProduct
from app.services.project_service import create_project

DEFAULT_PROJECT_NAME = "Default Project"

_ADD_PROJECT_COLUMNS = [
    "ALTER TABLE customers ADD COLUMN IF NOT EXISTS project_id UUID "
    "REFERENCES projects(id) ON DELETE CASCADE",
    "ALTER TABLE subscriptions ADD COLUMN IF NOT EXISTS project_id UUID "
    "REFERENCES projects(id) ON DELETE CASCADE",
]

_BACKFILL = [
    "UPDATE customers SET project_id = :project_id WHERE project_id IS NULL",
    "UPDATE subscriptions SET project_id = :project_id WHERE project_id IS NULL",
]

# Bring legacy columns in line with the ORM models (naive UTC timestamps,
# optional period bounds, mandatory project and customer references)
_ALIGN_COLUMNS = [
    "ALTER TABLE customers ALTER COLUMN project_id SET NOT NULL",
    "ALTER TABLE subscriptions ALTER COLUMN project_id SET NOT NULL",
    "ALTER TABLE subscriptions ALTER COLUMN customer_id SET NOT NULL",
    "ALTER TABLE subscriptions ALTER COLUMN status TYPE VARCHAR(50)",
    "ALTER TABLE subscriptions ALTER COLUMN current_period_start DROP NOT NULL",
    "ALTER TABLE subscriptions ALTER COLUMN current_period_end DROP NOT NULL",
    "ALTER TABLE subscriptions ALTER COLUMN current_period_start TYPE TIMESTAMP WITHOUT TIME ZONE "
    "USING current_period_start AT TIME ZONE 'UTC'",
    "ALTER TABLE subscriptions ALTER COLUMN current_period_end TYPE TIMESTAMP WITHOUT TIME ZONE "
    "USING current_period_end AT TIME ZONE 'UTC'",
]

_CONSTRAINTS = [
    "ALTER TABLE customers DROP CONSTRAINT IF EXISTS customers_user_id_key",
    "ALTER TABLE subscriptions DROP CONSTRAINT IF EXISTS subscriptions_user_id_product_id_key",
    "ALTER TABLE customers DROP CONSTRAINT IF EXISTS uq_customers_project_user",
    "ALTER TABLE subscriptions DROP CONSTRAINT IF EXISTS uq_subscriptions_project_user_product",
    "ALTER TABLE customers ADD CONSTRAINT uq_customers_project_user UNIQUE (project_id, user_id)",
    "ALTER TABLE subscriptions ADD CONSTRAINT uq_subscriptions_project_user_product "
    "UNIQUE (project_id, user_id, product_id)",
    "CREATE INDEX IF NOT EXISTS ix_customers_project_id ON customers (project_id)",
    "CREATE INDEX IF NOT EXISTS ix_subscriptions_project_id ON subscriptions (project_id)",
    "CREATE INDEX IF NOT EXISTS ix_subscriptions_customer_id ON subscriptions (customer_id)",
]


async def _create_new_tables(conn: AsyncConnection) -> None:
    await conn.run_sync(
        lambda sync_conn: Project.metadata.create_all(
            sync_conn,
            tables=[Project.__table__, RegisteredProduct.__table__],
            checkfirst=True,
        )
    )


async def _default_project(conn: AsyncConnection) -> tuple[Project | None, uuid.UUID, str]:
    """Return (created project or None, project id, api key)."""
    row = (
        await conn.execute(
            select(Project.id, Project.api_key).order_by(Project.created_at).limit(1)
        )
    ).first()
    if row is not None:
        return None, row.id, row.api_key

    session = AsyncSession(bind=conn, join_transaction_mode="create_savepoint")
    try:
        project = await create_project(session, DEFAULT_PROJECT_NAME)
        await session.commit()
    finally:
        await session.close()
    return project, project.id, project.api_key


async def migrate(settings: Settings) -> None:
    engine = build_engine(settings)
    try:
        async with engine.begin() as conn:
            print("1. Creating projects and registered_products tables...")
            await _create_new_tables(conn)

            print("2. Resolving the default project...")
            created, project_id, api_key = await _default_project(conn)
            if created is not None:
                print(f"   Created {DEFAULT_PROJECT_NAME} ({project_id})")
            else:
                print(f"   Using existing project ({project_id})")

            print("3. Adding project_id columns...")
            for statement in _ADD_PROJECT_COLUMNS:
                await conn.execute(text(statement))

            print("4. Assigning existing rows to the default project...")
            for statement in _BACKFILL:
                result = await conn.execute(text(statement), {"project_id": project_id})
                print(f"   {result.rowcount} row(s): {statement.split()[1]}")

            print("5. Aligning column types...")
            for statement in _ALIGN_COLUMNS:
                await conn.execute(text(statement))

            print("6. Rebuilding per-project unique constraints...")
            for statement in _CONSTRAINTS:
                await conn.execute(text(statement))
    finally:
        await engine.dispose()

    print()
    print("=" * 60)
    print("  Migration complete. Default project API key:")
    print()
    print(f"  {api_key}")
    print()
    print("  Next: alembic stamp head")
    print("=" * 60)
    print()


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(description="Migrate a single-tenant database.")
    parser.add_argument("--env-file", default=".env", help="dotenv file to load (default: .env)")
    args = parser.parse_args(argv)

    settings = Settings(_env_file=args.env_file)  # type: ignore[call-arg]
    asyncio.run(migrate(settings))


if __name__ == "__main__":
    main()
