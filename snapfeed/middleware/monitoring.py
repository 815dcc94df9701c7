"""Monitoring and observability middleware"""
import time
from typing import Callable

from fastapi import Request, Response
from prometheus_client import Counter, Histogram
from starlette.middleware.base import BaseHTTPMiddleware

from snapfeed.utils.logger import logger


# ===== Prometheus Metrics =====

# Request metrics
http_requests_total = Counter(
    "snapfeed_http_requests_total",
    "Total HTTP requests",
    ["method", "endpoint", "status"]
)

http_request_duration_seconds = Histogram(
    "snapfeed_http_request_duration_seconds",
    "HTTP request latency in seconds",
    ["method", "endpoint"]
)

http_errors_total = Counter(
    "snapfeed_http_errors_total",
    "Total HTTP errors",
    ["method", "endpoint", "status"]
)

# Session metrics
authentication_failures_total = Counter(
    "snapfeed_authentication_failures_total",
    "Total authentication failures",
    ["reason"]  # missing_token, expired, invalid_signature, session_missing, ...
)

tokens_issued_total = Counter(
    "snapfeed_token_pairs_issued_total",
    "Token pairs issued (login and refresh)"
)

# Quota metrics
quota_denials_total = Counter(
    "snapfeed_quota_denials_total",
    "Actions refused because the daily quota was exhausted",
    ["kind"]
)

quota_replenished_users_total = Counter(
    "snapfeed_quota_replenished_users_total",
    "Ledger rows granted their daily allowance"
)

quota_sweep_failed_batches_total = Counter(
    "snapfeed_quota_sweep_failed_batches_total",
    "Replenishment batches that failed and were skipped"
)


class MonitoringMiddleware(BaseHTTPMiddleware):
    """Middleware for monitoring and metrics collection"""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        start_time = time.time()

        method = request.method
        endpoint = request.url.path

        # Add request ID for tracing
        request_id = request.headers.get("x-request-id", f"req_{int(time.time() * 1000)}")
        request.state.request_id = request_id

        try:
            response = await call_next(request)
            status = response.status_code

            duration = time.time() - start_time
            http_requests_total.labels(method=method, endpoint=endpoint, status=status).inc()
            http_request_duration_seconds.labels(method=method, endpoint=endpoint).observe(duration)

            # Log slow requests
            if duration > 1.0:
                logger.warning(
                    f"Slow request detected: {method} {endpoint}",
                    extra={
                        "request_id": request_id,
                        "method": method,
                        "path": endpoint,
                        "duration": duration,
                        "status": status
                    }
                )

            if status >= 400:
                http_errors_total.labels(method=method, endpoint=endpoint, status=status).inc()

            response.headers["X-Request-ID"] = request_id
            response.headers["X-Response-Time"] = f"{duration:.3f}s"

            return response

        except Exception as e:
            duration = time.time() - start_time
            http_errors_total.labels(method=method, endpoint=endpoint, status=500).inc()

            logger.error(
                f"Request failed: {method} {endpoint}",
                extra={
                    "request_id": request_id,
                    "method": method,
                    "path": endpoint,
                    "duration": duration,
                    "error": str(e)
                },
                exc_info=True
            )
            raise


def record_auth_failure(reason: str):
    """Record authentication failure"""
    authentication_failures_total.labels(reason=reason).inc()


def record_tokens_issued():
    tokens_issued_total.inc()


def record_quota_denied(kind: str):
    quota_denials_total.labels(kind=kind).inc()


def record_sweep(users_replenished: int, failed_batches: int):
    """Record the outcome of a replenishment sweep"""
    quota_replenished_users_total.inc(users_replenished)
    quota_sweep_failed_batches_total.inc(failed_batches)
