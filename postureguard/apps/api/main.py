from __future__ import annotations

import logging
import time
from uuid import uuid4

from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from starlette.exceptions import HTTPException as StarletteHTTPException

from postureguard.apps.api.errors import (
    domain_exception_handler,
    http_exception_handler,
    starlette_http_exception_handler,
    unhandled_exception_handler,
    validation_exception_handler,
)
from postureguard.apps.api.routes.accounts import router as accounts_router
from postureguard.apps.api.routes.findings import router as findings_router
from postureguard.apps.api.routes.health import router as health_router
from postureguard.apps.api.routes.scanner import router as scanner_router
from postureguard.core.config import get_settings
from postureguard.core.errors import PostureGuardError
from postureguard.core.logging import configure_logging
from postureguard.services.telemetry import increment_counter


logger = logging.getLogger(__name__)


def _cors_origins(raw: str) -> list[str]:
    return [origin.strip() for origin in raw.split(",") if origin.strip()]


def create_app() -> FastAPI:
    configure_logging()
    settings = get_settings()
    app = FastAPI(title="PostureGuard API")

    app.add_middleware(
        CORSMiddleware,
        allow_origins=_cors_origins(settings.cors_allow_origins),
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.middleware("http")
    async def request_context_middleware(request: Request, call_next):  # type: ignore[override]
        # Reuse the caller's request id when present so logs can be joined.
        request_id = request.headers.get("X-Request-Id") or str(uuid4())
        request.state.request_id = request_id
        start = time.monotonic()
        response = await call_next(request)
        latency_ms = (time.monotonic() - start) * 1000.0
        increment_counter(f"http_status_{response.status_code // 100}xx")
        logger.info(
            "request method=%s path=%s status=%s latency_ms=%.1f request_id=%s",
            request.method,
            request.url.path,
            response.status_code,
            latency_ms,
            request_id,
        )
        response.headers.setdefault("X-Request-Id", request_id)
        return response

    # Starlette resolves handlers by MRO, so domain errors win over the catch-all.
    app.add_exception_handler(StarletteHTTPException, starlette_http_exception_handler)
    app.add_exception_handler(HTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(PostureGuardError, domain_exception_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)

    app.include_router(health_router, prefix="/api")
    app.include_router(accounts_router, prefix="/api")
    app.include_router(findings_router, prefix="/api")
    app.include_router(scanner_router, prefix="/api")
    return app


app = create_app()
