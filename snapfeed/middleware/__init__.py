"""Middleware modules for metrics and request protection"""
from snapfeed.middleware.monitoring import (
    MonitoringMiddleware,
    record_auth_failure,
    record_quota_denied,
    record_sweep,
    record_tokens_issued,
)
from snapfeed.middleware.rate_limit import get_rate_limit, limiter

__all__ = [
    "MonitoringMiddleware",
    "record_auth_failure",
    "record_quota_denied",
    "record_sweep",
    "record_tokens_issued",
    "limiter",
    "get_rate_limit",
]
