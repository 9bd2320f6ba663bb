"""Structured error envelope and the exception handlers that render it.

Every error leaves the gateway as::

    {"error": {"type", "code", "message", "description"?, "field"?},
     "meta": {"request_id", "timestamp", "environment"?}}
"""

import logging
import uuid
from datetime import datetime, timezone
from typing import Any

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError, ResponseValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError
from starlette.exceptions import HTTPException as StarletteHTTPException

from app.services.errors import LedgerBackendError, LedgerConflict, LedgerNotFound

logger = logging.getLogger(__name__)

SECURITY_HEADERS = {
    "X-Content-Type-Options": "nosniff",
    "X-Frame-Options": "DENY",
    "Referrer-Policy": "strict-origin-when-cross-origin",
    "Strict-Transport-Security": "max-age=31536000; includeSubDomains",
}

# Error types
VALIDATION_ERROR = "validation_error"
AUTHENTICATION_ERROR = "authentication_error"
NOT_FOUND = "not_found"
API_ERROR = "api_error"
INTERNAL_ERROR = "internal_error"
RATE_LIMIT_ERROR = "rate_limit_error"

_STATUS_DEFAULTS = {
    400: (VALIDATION_ERROR, "INVALID_BODY"),
    401: (AUTHENTICATION_ERROR, "UNAUTHORIZED"),
    404: (NOT_FOUND, "NOT_FOUND"),
    405: (VALIDATION_ERROR, "METHOD_NOT_ALLOWED"),
    429: (RATE_LIMIT_ERROR, "RATE_LIMIT_EXCEEDED"),
}


class APIError(Exception):
    """An error with a fixed HTTP status and a machine-readable code."""

    def __init__(
        self,
        status_code: int,
        error_type: str,
        code: str,
        message: str,
        description: str | None = None,
        field: str | None = None,
        headers: dict[str, str] | None = None,
        extra: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.error_type = error_type
        self.code = code
        self.message = message
        self.description = description
        self.field = field
        self.headers = headers or {}
        self.extra = extra or {}


def request_id_for(request: Request) -> str:
    request_id = getattr(request.state, "request_id", None)
    if request_id is None:
        request_id = uuid.uuid4().hex
        request.state.request_id = request_id
    return request_id


def error_response(request: Request, error: APIError) -> JSONResponse:
    """Render ``error`` as the standard envelope with security headers."""
    body: dict[str, Any] = {
        "type": error.error_type,
        "code": error.code,
        "message": error.message,
    }
    if error.description:
        body["description"] = error.description
    if error.field:
        body["field"] = error.field
    body.update(error.extra)

    meta: dict[str, Any] = {
        "request_id": request_id_for(request),
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }
    settings = getattr(request.app.state, "settings", None)
    if settings is not None:
        meta["environment"] = settings.environment

    headers = {**SECURITY_HEADERS, **error.headers, "X-Request-ID": meta["request_id"]}
    return JSONResponse(
        status_code=error.status_code,
        content={"error": body, "meta": meta},
        headers=headers,
    )


def _field_path(loc: tuple | list) -> str | None:
    # Drop the "body"/"path"/"query" prefix FastAPI adds
    parts = [str(p) for p in loc if p not in ("body", "path", "query", "header")]
    return ".".join(parts) or None


async def api_error_handler(request: Request, exc: APIError) -> JSONResponse:
    return error_response(request, exc)


async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = exc.errors()
    first = errors[0] if errors else {}
    if first.get("type") == "json_invalid" or (
        first.get("type") == "missing" and tuple(first.get("loc", ())) == ("body",)
    ):
        error = APIError(
            status_code=400,
            error_type=VALIDATION_ERROR,
            code="INVALID_BODY",
            message="Request body must be a valid JSON object",
            description=first.get("msg"),
        )
    else:
        field = _field_path(first.get("loc", ()))
        error = APIError(
            status_code=400,
            error_type=VALIDATION_ERROR,
            code="VALIDATION_FAILED",
            message=f"Invalid value for {field}" if field else "Request validation failed",
            description=first.get("msg"),
            field=field,
        )
    return error_response(request, error)


async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    error_type, code = _STATUS_DEFAULTS.get(exc.status_code, (INTERNAL_ERROR, "INTERNAL_ERROR"))
    error = APIError(
        status_code=exc.status_code,
        error_type=error_type,
        code=code,
        message=str(exc.detail),
        headers=dict(exc.headers or {}),
    )
    return error_response(request, error)


async def response_encoding_handler(request: Request, exc: ResponseValidationError) -> JSONResponse:
    logger.error("Response for %s failed to encode: %s", request.url.path, exc.errors())
    error = APIError(
        status_code=500,
        error_type=INTERNAL_ERROR,
        code="ENCODING_FAILED",
        message="Failed to encode the response",
    )
    return error_response(request, error)


async def ledger_conflict_handler(request: Request, exc: LedgerConflict) -> JSONResponse:
    logger.warning("Ledger conflict on %s: %s", request.url.path, exc)
    error = APIError(
        status_code=409,
        error_type=API_ERROR,
        code="ALREADY_EXISTS",
        message="The request conflicts with existing records",
        description=str(exc),
    )
    return error_response(request, error)


async def ledger_not_found_handler(request: Request, exc: LedgerNotFound) -> JSONResponse:
    error = APIError(
        status_code=404,
        error_type=NOT_FOUND,
        code="NOT_FOUND",
        message=str(exc),
    )
    return error_response(request, error)


async def database_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Database error on %s", request.url.path)
    error = APIError(
        status_code=500,
        error_type=API_ERROR,
        code="DATABASE_ERROR",
        message="A database error occurred; the request may be retried",
    )
    return error_response(request, error)


async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error on %s", request.url.path)
    error = APIError(
        status_code=500,
        error_type=INTERNAL_ERROR,
        code="INTERNAL_ERROR",
        message="Internal server error",
    )
    return error_response(request, error)


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(APIError, api_error_handler)  # type: ignore[arg-type]
    app.add_exception_handler(RequestValidationError, validation_error_handler)  # type: ignore[arg-type]
    app.add_exception_handler(ResponseValidationError, response_encoding_handler)  # type: ignore[arg-type]
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)  # type: ignore[arg-type]
    app.add_exception_handler(LedgerConflict, ledger_conflict_handler)  # type: ignore[arg-type]
    app.add_exception_handler(LedgerNotFound, ledger_not_found_handler)  # type: ignore[arg-type]
    app.add_exception_handler(LedgerBackendError, database_error_handler)
    app.add_exception_handler(SQLAlchemyError, database_error_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)
