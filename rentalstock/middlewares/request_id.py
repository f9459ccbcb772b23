from __future__ import annotations

import logging
import time
from contextvars import ContextVar
from uuid import uuid4

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

request_id_ctx_var: ContextVar[str | None] = ContextVar("request_id", default=None)
principal_ctx_var: ContextVar[str | None] = ContextVar("principal_id", default=None)
logger = logging.getLogger("rentalstock.request")

# Probe and scrape endpoints are hit constantly and carry no inventory activity.
UNLOGGED_PATHS = frozenset({"/health", "/metrics"})


class RequestIdMiddleware(BaseHTTPMiddleware):
    """Correlate log lines and ledger writes of one request under a single id.

    The id comes from ``X-Request-ID`` when the caller sends one and is echoed
    back on the response. The principal resolved by the auth dependency is
    picked up after the handler ran so the completion line names the actor.
    """

    def __init__(self, app, header_name: str = "X-Request-ID") -> None:  # type: ignore[override]
        super().__init__(app)
        self.header_name = header_name

    def _log(self, request: Request, status_code: int, duration_ms: float, principal: str | None) -> None:
        if request.url.path in UNLOGGED_PATHS:
            return
        extra_data = {
            "method": request.method,
            "path": request.url.path,
            "status": status_code,
            "duration_ms": round(duration_ms, 2),
        }
        if principal:
            extra_data["principal"] = principal
        level = logging.WARNING if status_code >= 500 else logging.INFO
        logger.log(level, "request.completed", extra={"extra_data": extra_data})

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        request_id = request.headers.get(self.header_name) or uuid4().hex
        token = request_id_ctx_var.set(request_id)
        principal_token = principal_ctx_var.set(None)
        request.state.request_id = request_id
        start = time.perf_counter()
        try:
            try:
                response = await call_next(request)
            except Exception:
                logger.exception(
                    "request.failed",
                    extra={"extra_data": {"method": request.method, "path": request.url.path}},
                )
                raise
            principal = principal_ctx_var.get() or getattr(request.state, "principal", None)
            duration_ms = (time.perf_counter() - start) * 1000
            response.headers[self.header_name] = request_id
            response.headers.setdefault("X-Response-Time", f"{duration_ms:.2f}ms")
            self._log(request, response.status_code, duration_ms, principal)
        finally:
            request_id_ctx_var.reset(token)
            principal_ctx_var.reset(principal_token)
        return response
