"""HTTP middleware: request ids and per-request deadlines."""

import asyncio
import logging
import uuid
from collections.abc import Awaitable, Callable

from fastapi import FastAPI, Request, Response

from app.errors import API_ERROR, APIError, error_response

logger = logging.getLogger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"

# Webhooks carry their own, longer processing budget
_DEADLINE_EXEMPT_PREFIXES = ("/webhooks/",)


def install_middleware(app: FastAPI, request_timeout: float) -> None:
    """Register request-id and deadline middleware on ``app``.

    Middleware added later runs first, so the request id is assigned before
    the deadline starts.
    """

    @app.middleware("http")
    async def enforce_deadline(
        request: Request, call_next: Callable[[Request], Awaitable[Response]]
    ) -> Response:
        if request.url.path.startswith(_DEADLINE_EXEMPT_PREFIXES):
            return await call_next(request)
        try:
            return await asyncio.wait_for(call_next(request), timeout=request_timeout)
        except asyncio.TimeoutError:
            logger.warning("Request %s %s exceeded %.0fs", request.method, request.url.path, request_timeout)
            return error_response(
                request,
                APIError(
                    status_code=504,
                    error_type=API_ERROR,
                    code="REQUEST_TIMEOUT",
                    message="The request did not complete in time",
                ),
            )

    @app.middleware("http")
    async def assign_request_id(
        request: Request, call_next: Callable[[Request], Awaitable[Response]]
    ) -> Response:
        request.state.request_id = request.headers.get(REQUEST_ID_HEADER) or uuid.uuid4().hex
        response = await call_next(request)
        response.headers[REQUEST_ID_HEADER] = request.state.request_id
        return response
