from __future__ import annotations

import logging
import time
import uuid

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware

from tablepos.core.metrics import request_metrics
from tablepos.core.request_context import clear_request_context, set_request_context

logger = logging.getLogger(__name__)


class ObservabilityMiddleware(BaseHTTPMiddleware):
    """Request id propagation, per-table request metrics and the access log."""

    async def dispatch(self, request: Request, call_next):
        start = time.perf_counter()
        request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
        request.state.request_id = request_id
        set_request_context(request_id=request_id)

        status_code = 500
        response = None
        try:
            response = await call_next(request)
            status_code = response.status_code
            return response
        finally:
            # path params are only resolved once routing has run
            table_id = _table_id(request)
            duration_ms = round((time.perf_counter() - start) * 1000, 2)
            set_request_context(table_id=table_id)
            request_metrics.observe(
                endpoint=_route_template(request),
                method=request.method,
                status_code=status_code,
                duration_ms=duration_ms,
                table_id=table_id,
            )
            level = logging.WARNING if table_id and status_code >= 400 else logging.INFO
            logger.log(
                level,
                "request completed",
                extra={
                    "request_id": request_id,
                    "table_id": table_id,
                    "endpoint": request.url.path,
                    "method": request.method,
                    "status_code": status_code,
                    "duration_ms": duration_ms,
                },
            )
            if response is not None:
                response.headers["X-Request-ID"] = request_id
                if table_id:
                    response.headers["X-Table-ID"] = table_id
            clear_request_context()


def _route_template(request: Request) -> str:
    route = request.scope.get("route")
    return getattr(route, "path", None) or request.url.path


def _table_id(request: Request) -> str | None:
    table = str(request.path_params.get("table_id") or "").strip()
    if table:
        return table
    header_table = (request.headers.get("X-Table-ID") or "").strip()
    return header_table or None
