"""FastAPI dependency for rate limit enforcement.

Depends on ``get_current_project`` so the order in the request pipeline is
AUTH → RATE LIMIT → ROUTER LOGIC. Budgets are counted per project.
"""

from __future__ import annotations

from fastapi import Depends, Request

from app.auth.dependencies import ProjectContext, get_current_project
from app.errors import RATE_LIMIT_ERROR, APIError
from app.services.rate_limiter import InMemoryRateLimiter, RateLimitExceeded


async def enforce_rate_limit(
    request: Request,
    project: ProjectContext = Depends(get_current_project),
) -> ProjectContext:
    """Count the request against the project's bucket.

    Returns the ProjectContext so routers can depend on this alone.
    """
    limiter: InMemoryRateLimiter = request.app.state.rate_limiter
    try:
        limiter.hit(str(project.project_id))
    except RateLimitExceeded as e:
        raise APIError(
            status_code=429,
            error_type=RATE_LIMIT_ERROR,
            code="RATE_LIMIT_EXCEEDED",
            message="Rate limit exceeded. Please try again later.",
            headers={"Retry-After": str(e.retry_after)},
        ) from e
    return project
