from __future__ import annotations

import logging
import time
import uuid

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware

from valuation_api.core.metrics import http_request_duration_seconds, http_requests_total


logger = logging.getLogger("valuation.api")

FAILOVER_HEADER = "X-Valuation-Failover"


class OpsRequestMiddleware(BaseHTTPMiddleware):
    """Request id, access log and HTTP metrics for the ops API.

    Each response also reports whether valuation traffic is currently diverted
    away from the monitored provider. The state is read with
    ``current_order()`` so serving ops traffic never reverts or starts a
    failover episode.
    """

    async def dispatch(self, request: Request, call_next):
        request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
        request.state.request_id = request_id
        started_at = time.perf_counter()
        response = await call_next(request)
        duration = time.perf_counter() - started_at

        route = request.scope.get("route")
        # Route templates only, never raw paths.
        route_path = getattr(route, "path", None) or "unmatched"
        http_requests_total.labels(method=request.method, path=route_path, status=str(response.status_code)).inc()
        http_request_duration_seconds.labels(method=request.method, path=route_path).observe(duration)

        failover = _failover_state(request)
        response.headers.setdefault("X-Request-ID", request_id)
        if failover is not None:
            response.headers[FAILOVER_HEADER] = "active" if failover["failed_over"] else "inactive"
        logger.info(
            "http.request",
            extra={
                "request_id": request_id,
                "method": request.method,
                "path": request.url.path,
                "status_code": response.status_code,
                "duration_ms": int(duration * 1000),
                **(failover or {}),
            },
        )
        return response


def _failover_state(request: Request) -> dict | None:
    service = getattr(request.app.state, "valuation_service", None)
    if service is None:
        return None
    engine = service.engine
    first, _ = engine.current_order()
    return {
        "monitored_provider": engine.monitored_provider.value,
        "failed_over": first is not engine.monitored_provider,
    }
