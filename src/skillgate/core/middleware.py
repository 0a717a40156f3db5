from __future__ import annotations

import time
import uuid
from typing import Callable

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

from skillgate.core.config import get_settings
from skillgate.core.metrics import si_http_requests_total


class RequestIdMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        settings = get_settings()
        header_name = settings.skillgate_request_id_header

        request_id = request.headers.get(header_name) or uuid.uuid4().hex
        request.state.request_id = request_id

        started = time.perf_counter()
        response = await call_next(request)
        elapsed_ms = int((time.perf_counter() - started) * 1000)

        # Billed handlers set the same id themselves; never overwrite it.
        response.headers.setdefault(header_name, request_id)
        response.headers["X-Response-Time-Ms"] = str(elapsed_ms)

        route = request.scope.get("route")
        path = getattr(route, "path", None) or "unmatched"
        si_http_requests_total.labels(
            method=request.method, route=path, status=str(response.status_code)
        ).inc()
        return response
