"""
Request logging middleware.

Binds a request id into structlog's contextvars so every log line emitted
while handling the request carries it, echoes it back as ``X-Request-ID`` and
logs one ``request_completed`` event with the status and duration.
"""

from __future__ import annotations

import time
import uuid

import structlog
from fastapi import FastAPI, Request

from shared.ip_utils import get_client_ip
from shared.logging import get_logger, log_with_context

log = get_logger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"

# Polled by clients on a fixed interval; only failures are logged
_QUIET_PATHS = {"/health", "/user/validate-session"}


def generate_request_id() -> str:
    """Generate a unique request ID for correlation."""
    return f"req_{uuid.uuid4().hex[:12]}"


def register_request_logging(app: FastAPI) -> None:
    @app.middleware("http")
    async def request_logging(request: Request, call_next):
        request_id = request.headers.get(REQUEST_ID_HEADER) or generate_request_id()
        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(request_id=request_id)
        request_log = log_with_context(
            log, method=request.method, path=request.url.path, ip=get_client_ip(request)
        )

        start = time.perf_counter()
        try:
            response = await call_next(request)
        finally:
            duration_ms = int((time.perf_counter() - start) * 1000)

        status_code = response.status_code
        response.headers[REQUEST_ID_HEADER] = request_id
        if status_code >= 500:
            request_log.error("request_completed", status_code=status_code, duration_ms=duration_ms)
        elif status_code >= 400:
            request_log.warning("request_completed", status_code=status_code, duration_ms=duration_ms)
        elif request.url.path not in _QUIET_PATHS:
            request_log.info("request_completed", status_code=status_code, duration_ms=duration_ms)

        structlog.contextvars.clear_contextvars()
        return response
