"""HTTP middleware: request correlation, access logging and request metrics."""

import logging
import time
import uuid
from typing import Callable, Optional

import structlog
from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.types import ASGIApp

from .config import settings
from .observability import metrics_collector

logger = logging.getLogger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"


class RequestIDMiddleware(BaseHTTPMiddleware):
    """
    Correlate every request with an ID.

    A caller-supplied X-Request-ID is reused, otherwise one is generated. The ID
    is echoed on the response and bound into structlog's context while the
    request is served.
    """

    def __init__(self, app: ASGIApp, header_name: str = REQUEST_ID_HEADER):
        super().__init__(app)
        self.header_name = header_name

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = request.headers.get(self.header_name) or str(uuid.uuid4())
        request.state.request_id = request_id

        structlog.contextvars.bind_contextvars(request_id=request_id)
        try:
            response = await call_next(request)
        finally:
            structlog.contextvars.unbind_contextvars("request_id")

        response.headers[self.header_name] = request_id
        return response


def client_address(request: Request) -> str:
    """First hop of X-Forwarded-For, else the socket peer."""
    forwarded_for = request.headers.get("X-Forwarded-For")
    if forwarded_for:
        return forwarded_for.split(",")[0].strip()
    return request.client.host if request.client else "unknown"


def _log_level_for(status_code: int) -> int:
    if status_code >= 500:
        return logging.ERROR
    if status_code >= 400:
        return logging.WARNING
    return logging.INFO


class AccessLogMiddleware(BaseHTTPMiddleware):
    """Write one access log line per request and feed the HTTP metrics."""

    def __init__(self, app: ASGIApp, skip_paths: Optional[list] = None):
        super().__init__(app)
        self.skip_paths = set(skip_paths or ())

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        path = request.url.path
        if path in self.skip_paths:
            return await call_next(request)

        started = time.perf_counter()
        response = await call_next(request)
        elapsed = time.perf_counter() - started

        metrics_collector.observe_request(request.method, path, response.status_code, elapsed)
        logger.log(
            _log_level_for(response.status_code),
            "%s %s -> %s",
            request.method,
            path,
            response.status_code,
            extra={
                "request_id": getattr(request.state, "request_id", None),
                "client_ip": client_address(request),
                "status_code": response.status_code,
                "duration_ms": round(elapsed * 1000, 2),
            },
        )
        return response


def setup_middleware(app, enable_logging: bool = True) -> None:
    """
    Install the middleware stack.

    Starlette runs the last added middleware first, so the request ID is bound
    before the access log line is written. Production skips probe and scrape
    paths to keep the log readable.
    """
    if enable_logging:
        quiet_paths = ["/metrics", "/favicon.ico"]
        if settings.is_production:
            quiet_paths += ["/v1/health/ping", "/v1/health/ready"]
        app.add_middleware(AccessLogMiddleware, skip_paths=quiet_paths)

    app.add_middleware(RequestIDMiddleware)
