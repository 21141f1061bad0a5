"""
API Middleware.
"""

from .metrics import MetricsMiddleware, metrics_endpoint, record_trace

__all__ = ["MetricsMiddleware", "metrics_endpoint", "record_trace"]
