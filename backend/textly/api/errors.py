"""Global error handlers ensuring request_id is included in JSON responses."""

from __future__ import annotations

import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from textly.infra.request import get_request_context

logger = logging.getLogger(__name__)

INVALID_PAYLOAD = "invalid_payload"
INTERNAL_ERROR = "internal_error"


def error_response(request: Request, status_code: int, error: str, headers: dict[str, str] | None = None) -> JSONResponse:
    context = get_request_context(request)
    return JSONResponse(
        status_code=status_code,
        content={"error": error, "request_id": context.request_id},
        headers=headers,
    )


def install_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(StarletteHTTPException)
    async def http_exc_handler(request: Request, exc: StarletteHTTPException):  # type: ignore[override]
        return error_response(request, exc.status_code, str(exc.detail), getattr(exc, "headers", None))

    @app.exception_handler(RequestValidationError)
    async def validation_exc_handler(request: Request, exc: RequestValidationError):  # type: ignore[override]
        return error_response(request, 400, INVALID_PAYLOAD)

    @app.exception_handler(Exception)
    async def unhandled_exc_handler(request: Request, exc: Exception):  # type: ignore[override]
        logger.error("unhandled error", exc_info=(type(exc), exc, exc.__traceback__))
        return error_response(request, 500, INTERNAL_ERROR)
