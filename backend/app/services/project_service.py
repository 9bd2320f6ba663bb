"""Project service — tenant lookup and administration."""

import logging
import uuid

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.api_keys import generate_api_key
from app.models.project import Project
from app.services.errors import LedgerNotFound

logger = logging.getLogger(__name__)


async def get_project_by_api_key(db: AsyncSession, api_key: str) -> Project | None:
    """Return the active project owning ``api_key``, or None."""
    result = await db.execute(
        select(Project).where(
            Project.api_key == api_key,
            Project.is_active.is_(True),
        )
    )
    return result.scalar_one_or_none()


async def get_project(db: AsyncSession, project_id: uuid.UUID) -> Project | None:
    result = await db.execute(select(Project).where(Project.id == project_id))
    return result.scalar_one_or_none()


async def list_projects(db: AsyncSession, include_inactive: bool = False) -> list[Project]:
    stmt = select(Project).order_by(Project.created_at)
    if not include_inactive:
        stmt = stmt.where(Project.is_active.is_(True))
    result = await db.execute(stmt)
    return list(result.scalars().all())


async def create_project(
    db: AsyncSession, name: str, webhook_url: str | None = None
) -> Project:
    """Create an active project with a freshly generated API key."""
    project = Project(name=name, api_key=generate_api_key(), webhook_url=webhook_url, is_active=True)
    db.add(project)
    await db.flush()
    # The key itself is never logged
    logger.info("Created project %s (%s)", project.id, name)
    return project


async def deactivate_project(db: AsyncSession, project_id: uuid.UUID) -> Project:
    """Flip ``is_active`` off; the project's key stops authenticating."""
    project = await get_project(db, project_id)
    if project is None:
        raise LedgerNotFound(f"Project {project_id} not found")
    project.is_active = False
    await db.flush()
    logger.info("Deactivated project %s", project_id)
    return project
