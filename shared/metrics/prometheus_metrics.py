"""Prometheus metrics definitions and helpers.

Provides the metric definitions for the entity API. Collectors are bound to
an explicit registry so that each application instance owns its own set.
"""

from typing import Callable, Optional

from prometheus_client import (
    Counter,
    Gauge,
    Histogram,
    generate_latest,
    CollectorRegistry,
)


class ApiMetrics:
    """HTTP and entity operation metrics."""

    def __init__(self, registry: Optional[CollectorRegistry] = None) -> None:
        """Initialize API metrics.

        Args:
            registry: Prometheus registry to use (a fresh one if omitted)
        """
        self.registry = registry if registry is not None else CollectorRegistry()

        self.http_requests_total = Counter(
            "http_requests_total",
            "Total HTTP requests",
            ["method", "endpoint", "status"],
            registry=self.registry,
        )

        self.http_request_duration_seconds = Histogram(
            "http_request_duration_seconds",
            "HTTP request duration in seconds",
            ["method", "endpoint"],
            buckets=[0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0],
            registry=self.registry,
        )

        self.http_requests_in_progress = Gauge(
            "http_requests_in_progress",
            "HTTP requests currently in progress",
            ["method"],
            registry=self.registry,
        )

        # Service-level operations, labelled by outcome (ok|not_found|error)
        self.entity_operations = Counter(
            "entity_operations_total",
            "Entity service operations",
            ["operation", "outcome"],
            registry=self.registry,
        )

        self.database_connections_active = Gauge(
            "database_connections_active",
            "Active database connections",
            registry=self.registry,
        )

        self.database_connections_idle = Gauge(
            "database_connections_idle",
            "Idle database connections in pool",
            registry=self.registry,
        )

    def record_pool(self, pool) -> None:
        """Update connection gauges from an asyncpg pool.

        Args:
            pool: asyncpg pool (ignored when None)
        """
        if pool is None:
            return
        idle = pool.get_idle_size()
        self.database_connections_active.set(pool.get_size() - idle)
        self.database_connections_idle.set(idle)


def get_metrics_handler(metrics: ApiMetrics) -> Callable[[], bytes]:
    """Get metrics handler for HTTP endpoint.

    Args:
        metrics: Metrics whose registry is exported

    Returns:
        Function that generates Prometheus metrics output
    """

    def metrics_handler() -> bytes:
        return generate_latest(metrics.registry)

    return metrics_handler
