"""FastAPI dependency for API key authentication.

Flow:
  1. Read the ``X-API-Key`` header
  2. Look up the active project owning that key
  3. Return a ``ProjectContext`` that handlers receive as a typed argument

Missing and invalid keys both answer 401 ``UNAUTHORIZED`` before any
handler (and therefore any ledger write) runs. Raw keys are never logged.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass

from fastapi import Depends, Security
from fastapi.security import APIKeyHeader
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.api_keys import looks_like_api_key
from app.database import get_db
from app.errors import AUTHENTICATION_ERROR, APIError
from app.services.project_service import get_project_by_api_key

logger = logging.getLogger(__name__)

API_KEY_HEADER = "X-API-Key"

_api_key_scheme = APIKeyHeader(
    name=API_KEY_HEADER,
    auto_error=False,
    description="Project API key (proj_...)",
)


@dataclass(frozen=True, slots=True)
class ProjectContext:
    """Authenticated tenant identity injected into every protected route."""

    project_id: uuid.UUID
    project_name: str


def _unauthorized(message: str) -> APIError:
    return APIError(
        status_code=401,
        error_type=AUTHENTICATION_ERROR,
        code="UNAUTHORIZED",
        message=message,
    )


async def get_current_project(
    api_key: str | None = Security(_api_key_scheme),
    db: AsyncSession = Depends(get_db),
) -> ProjectContext:
    """Resolve the ``X-API-Key`` header to the owning active project.

    Usage in routers::

        project: ProjectContext = Depends(get_current_project)
    """
    if not api_key:
        raise _unauthorized("Missing X-API-Key header")

    if not looks_like_api_key(api_key):
        raise _unauthorized("Invalid API key")

    project = await get_project_by_api_key(db, api_key)
    if project is None:
        logger.info("Rejected request with unknown or inactive API key")
        raise _unauthorized("Invalid API key")

    return ProjectContext(project_id=project.id, project_name=project.name)
