"""
FastAPI middleware for Prometheus request metrics.

Tracks request counts by endpoint, method and status code, and request
latency histograms.
"""

import logging
import time
from typing import Callable
from uuid import UUID

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

from chemlab.observability.metrics import (
    http_requests_total,
    http_request_duration_seconds,
)

logger = logging.getLogger(__name__)


def normalize_path(path: str) -> str:
    """
    Replace IDs in a request path with placeholders to bound label cardinality.

    /api/v1/quizzes/attempts/5b0c.../grade -> /api/v1/quizzes/attempts/{uuid}/grade
    """
    if path in ["/metrics", "/health", "/"]:
        return path

    normalized_parts = []
    for part in path.strip("/").split("/"):
        if part.isdigit():
            normalized_parts.append("{id}")
        elif _is_uuid(part):
            normalized_parts.append("{uuid}")
        else:
            normalized_parts.append(part)

    return "/" + "/".join(normalized_parts)


def _is_uuid(value: str) -> bool:
    try:
        UUID(value)
    except ValueError:
        return False
    return "-" in value


class PrometheusMiddleware(BaseHTTPMiddleware):
    """Collect Prometheus metrics for every HTTP request"""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        method = request.method
        path = normalize_path(request.url.path)
        start_time = time.time()
        status_code = 500

        try:
            response = await call_next(request)
            status_code = response.status_code
        finally:
            http_requests_total.labels(method=method, endpoint=path, status=status_code).inc()
            http_request_duration_seconds.labels(method=method, endpoint=path).observe(
                time.time() - start_time
            )

        return response


def setup_metrics_middleware(app) -> None:
    """Add Prometheus metrics middleware to the FastAPI application"""
    app.add_middleware(PrometheusMiddleware)
    logger.info("Prometheus metrics middleware added to FastAPI")
