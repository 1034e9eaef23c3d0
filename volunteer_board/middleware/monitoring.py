# volunteer_board/middleware/monitoring.py
from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.routing import Match
from prometheus_client import Counter, Histogram, Gauge
import time
from typing import Callable

# Prometheus metrics
REQUEST_COUNT = Counter(
    'board_http_requests_total',
    'Total HTTP requests',
    ['method', 'route', 'status']
)

REQUEST_DURATION = Histogram(
    'board_http_request_duration_seconds',
    'HTTP request duration',
    ['method', 'route']
)

ACTIVE_REQUESTS = Gauge(
    'board_http_requests_active',
    'Active HTTP requests'
)


def route_template(request: Request) -> str:
    """Path template such as /api/v1/tasks/{task_id}, so ids do not explode label cardinality"""
    for route in request.app.router.routes:
        match, _ = route.matches(request.scope)
        if match == Match.FULL:
            return getattr(route, "path", request.url.path)
    return "unmatched"


class MonitoringMiddleware(BaseHTTPMiddleware):
    """
    Prometheus monitoring middleware for metrics collection
    """

    async def dispatch(self, request: Request, call_next: Callable):
        route = route_template(request)
        method = request.method

        ACTIVE_REQUESTS.inc()
        start_time = time.time()
        status_code = 500

        try:
            response = await call_next(request)
            status_code = response.status_code
            return response
        finally:
            REQUEST_COUNT.labels(method=method, route=route, status=status_code).inc()
            REQUEST_DURATION.labels(method=method, route=route).observe(time.time() - start_time)
            ACTIVE_REQUESTS.dec()
