"""Request logging, request ids and the last-resort 500 handler.

Every log line emitted here carries the request id and, for routes under
``/cx-sessions/{id}``, the session id, so a teller's complaint about one
session can be traced through the logs without reading bodies.
"""

from __future__ import annotations

import logging
import re
import time
import uuid
from datetime import datetime, timezone
from typing import Any, Callable

from fastapi import Request
from fastapi.responses import JSONResponse
from sqlalchemy.exc import TimeoutError as SATimeoutError
from starlette.responses import Response

from cxdesk.config import settings

_STARTED_AT = time.monotonic()

_UNLOGGED_PATHS = frozenset({"/health", "/healthz"})
_SESSION_PATH = re.compile(r"/cx-sessions/(\d+)")


def uptime_seconds() -> float:
    return max(0.0, time.monotonic() - _STARTED_AT)


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).replace(tzinfo=None).isoformat(timespec="seconds") + "Z"


def get_logger(request: Request) -> logging.Logger:
    return getattr(request.app.state, "logger", None) or logging.getLogger("cxdesk")


def request_id_for(request: Request) -> str:
    """The id the middleware assigned, else the caller's header, else a fresh one."""

    existing = getattr(request.state, "request_id", None)
    if existing:
        return existing
    return request.headers.get("x-request-id") or str(uuid.uuid4())


def request_log_context(request: Request, **fields: Any) -> dict[str, Any]:
    context: dict[str, Any] = {
        "request_id": request_id_for(request),
        "method": request.method,
        "path": request.url.path,
    }
    match = _SESSION_PATH.search(request.url.path)
    if match:
        context["session_id"] = int(match.group(1))
    context.update(fields)
    return context


def _pool_status() -> str | None:
    try:
        from cxdesk.database import engine

        return engine.pool.status()
    except Exception:
        return None


async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Structured 500 for anything the domain handler did not catch."""

    request_id = request_id_for(request)
    get_logger(request).exception(
        "unhandled_exception",
        extra=request_log_context(request, exception_type=type(exc).__name__),
    )
    return JSONResponse(
        status_code=500,
        content={
            "detail": "Internal server error. Please try again later.",
            "request_id": request_id,
            "code": "INTERNAL_SERVER_ERROR",
        },
        headers={"X-Request-ID": request_id},
    )


async def request_logging_middleware(request: Request, call_next: Callable) -> Response:
    """Assign X-Request-ID, time the request and log its outcome. Bodies are never logged."""

    request.state.request_id = request.headers.get("x-request-id") or str(uuid.uuid4())
    logger = get_logger(request)
    start = time.perf_counter()

    def elapsed_ms() -> float:
        return round((time.perf_counter() - start) * 1000.0, 2)

    try:
        response: Response = await call_next(request)
    except SATimeoutError as exc:
        logger.error(
            "db_pool_timeout",
            extra=request_log_context(
                request, duration_ms=elapsed_ms(), pool_status=_pool_status(), error=str(exc)
            ),
        )
        raise
    except Exception:
        logger.exception(
            "http_request_failed", extra=request_log_context(request, duration_ms=elapsed_ms())
        )
        raise

    duration_ms = elapsed_ms()
    if duration_ms >= settings.slow_request_ms:
        logger.warning(
            "slow_request",
            extra=request_log_context(request, duration_ms=duration_ms, pool_status=_pool_status()),
        )
    if request.url.path not in _UNLOGGED_PATHS:
        logger.info(
            "http_request",
            extra=request_log_context(
                request, status_code=response.status_code, duration_ms=duration_ms
            ),
        )

    response.headers.setdefault("X-Request-ID", request.state.request_id)
    return response
