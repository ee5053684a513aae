"""Middleware — CORS, per-request log context, error handling."""

from __future__ import annotations

import re
import time
import uuid
from typing import Callable

import structlog
from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from adaptive_bls.config import get_settings
from adaptive_bls.logger import bind_request_context, clear_request_context

logger = structlog.get_logger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"
_SESSION_PATH = re.compile(r"^/sessions/([^/]+)")

_QUIET_PATHS = frozenset({"/health"})


def _allowed_origins(raw: str) -> list[str]:
    raw = raw.strip()
    if raw == "*":
        return ["*"]
    return [o.strip() for o in raw.split(",") if o.strip()]


def add_cors(app: FastAPI) -> None:
    """Allow the therapist dashboard origins from ``settings.cors_origins``."""
    origins = _allowed_origins(get_settings().cors_origins)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        # Browsers refuse credentialed requests against a wildcard origin.
        allow_credentials=origins != ["*"],
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=[REQUEST_ID_HEADER],
    )


class SessionContextMiddleware(BaseHTTPMiddleware):
    """Tag each request with an id and its therapy session, then log it.

    The request id is taken from the incoming ``X-Request-ID`` header when
    present and echoed back on the response.  Both ids are bound to the
    structlog context, so controller and sink logs emitted while serving
    the request carry them too.
    """

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = request.headers.get(REQUEST_ID_HEADER) or uuid.uuid4().hex[:12]
        match = _SESSION_PATH.match(request.url.path)
        bind_request_context(request_id=request_id, session=match.group(1) if match else None)
        request.state.request_id = request_id

        start = time.monotonic()
        try:
            response = await call_next(request)
        finally:
            elapsed_ms = round((time.monotonic() - start) * 1000, 1)
            clear_request_context()

        response.headers[REQUEST_ID_HEADER] = request_id
        if request.url.path not in _QUIET_PATHS:
            logger.info(
                "http.request",
                request_id=request_id,
                method=request.method,
                path=request.url.path,
                status=response.status_code,
                duration_ms=elapsed_ms,
            )
        return response


class ErrorHandlerMiddleware(BaseHTTPMiddleware):
    """Turn unhandled exceptions into a JSON 500 carrying the request id."""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        try:
            return await call_next(request)
        except Exception:
            request_id = getattr(request.state, "request_id", None)
            logger.exception("http.unhandled_error", path=request.url.path, request_id=request_id)
            return JSONResponse(
                status_code=500,
                content={"detail": "Internal server error.", "request_id": request_id},
            )


def setup_middleware(app: FastAPI) -> None:
    """Install middleware; the last one added runs first.

    Resulting order, outermost first: CORS, session context, error handler.
    The error handler sits inside the context middleware so its response
    still gets the request id header.
    """
    app.add_middleware(ErrorHandlerMiddleware)
    app.add_middleware(SessionContextMiddleware)
    add_cors(app)
