from __future__ import annotations

import logging

from fastapi import HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from postureguard.apps.api.response import error_payload
from postureguard.core.errors import PostureGuardError


logger = logging.getLogger(__name__)


def _detail_message(detail: object) -> str:
    if isinstance(detail, dict):
        return str(detail.get("message") or detail.get("error") or "Request failed")
    if isinstance(detail, str):
        return detail
    return "Request failed"


async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    return JSONResponse(
        content=error_payload(_detail_message(exc.detail)),
        status_code=exc.status_code,
        headers=exc.headers,
    )


async def starlette_http_exception_handler(
    request: Request, exc: StarletteHTTPException
) -> JSONResponse:
    return JSONResponse(
        content=error_payload(_detail_message(exc.detail)),
        status_code=exc.status_code,
        headers=exc.headers,
    )


async def validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    # Keep structured details so dashboard forms can highlight fields.
    return JSONResponse(
        content=error_payload("Validation error", details=exc.errors()),
        status_code=422,
    )


async def domain_exception_handler(request: Request, exc: PostureGuardError) -> JSONResponse:
    # Domain errors carry operator-facing messages and map to 500 by default.
    logger.error("request_failed path=%s error=%s", request.url.path, exc)
    return JSONResponse(content=error_payload(str(exc) or exc.__class__.__name__), status_code=500)


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    # Avoid leaking stack traces; log them server-side instead.
    logger.exception("request_unhandled_error path=%s", request.url.path, exc_info=exc)
    return JSONResponse(content=error_payload("Internal server error"), status_code=500)
