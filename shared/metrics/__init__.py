"""Metrics module using Prometheus."""

from .prometheus_metrics import (
    ApiMetrics,
    get_metrics_handler,
)

__all__ = [
    "ApiMetrics",
    "get_metrics_handler",
]
