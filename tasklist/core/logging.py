import json
import logging
import sys
import threading
import time
import uuid
from datetime import datetime, timezone
from typing import Any

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

_REQUEST_FIELDS = ("request_id", "method", "path", "status_code", "duration_ms")
UNMATCHED_ROUTE = "unmatched"


class JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        for key in _REQUEST_FIELDS:
            if hasattr(record, key):
                payload[key] = getattr(record, key)

        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)

        return json.dumps(payload, default=str)


def route_template(request: Request) -> str:
    """Matched route path such as `/tasks/{task_id}`, or "unmatched"."""
    route = request.scope.get("route")
    return getattr(route, "path", None) or UNMATCHED_ROUTE


def configure_logging(level: str = "INFO") -> None:
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(JsonFormatter())
    logging.basicConfig(level=level, handlers=[handler], force=True)


class RequestMetrics:
    """In-memory request counters served by /metrics."""

    def __init__(self):
        self._lock = threading.Lock()
        self.requests_total = 0
        self.requests_by_route: dict[str, int] = {}
        self.errors_5xx = 0

    def record(self, route: str, status_code: int) -> None:
        with self._lock:
            self.requests_total += 1
            self.requests_by_route[route] = self.requests_by_route.get(route, 0) + 1
            if status_code >= 500:
                self.errors_5xx += 1

    def snapshot(self) -> dict:
        with self._lock:
            return {
                "requestsTotal": self.requests_total,
                "requestsByRoute": dict(self.requests_by_route),
                "errors5xx": self.errors_5xx,
            }


class RequestContextMiddleware(BaseHTTPMiddleware):
    """
    Assigns a request id, records metrics and logs one line per request.

    An incoming X-Request-Id header is reused, otherwise a uuid4 is generated.
    """

    def __init__(self, app, metrics: RequestMetrics, logger_name: str = "tasklist.request"):
        super().__init__(app)
        self.metrics = metrics
        self.logger = logging.getLogger(logger_name)

    async def dispatch(self, request: Request, call_next) -> Response:
        incoming = request.headers.get("x-request-id", "").strip()
        request_id = incoming or str(uuid.uuid4())
        request.state.request_id = request_id
        start = time.perf_counter()

        try:
            response = await call_next(request)
        except Exception:
            self.metrics.record(route_template(request), 500)
            self.logger.exception(
                "request failed",
                extra={
                    "request_id": request_id,
                    "method": request.method,
                    "path": request.url.path,
                    "duration_ms": round((time.perf_counter() - start) * 1000, 2),
                },
            )
            raise

        duration_ms = round((time.perf_counter() - start) * 1000, 2)
        self.metrics.record(route_template(request), response.status_code)
        self.logger.log(
            logging.ERROR if response.status_code >= 500 else logging.INFO,
            "request completed",
            extra={
                "request_id": request_id,
                "method": request.method,
                "path": request.url.path,
                "status_code": response.status_code,
                "duration_ms": duration_ms,
            },
        )

        response.headers["X-Request-Id"] = request_id
        return response
