"""
Prometheus metrics for Garage services.

Each collector owns its registry, so several service instances (and test
fixtures) can live in one process without duplicate-registration errors.
"""

from typing import Dict, Any, Optional
import time
from contextlib import contextmanager

from prometheus_client import Counter, Histogram, Gauge, Info, CollectorRegistry, generate_latest

# Compute callbacks are database queries; buckets stop at 10s.
COMPUTE_BUCKETS = (0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0)


class MetricsCollector:
    """Metrics for one service: HTTP traffic, health, errors and the cache."""

    def __init__(self, service_name: str, registry: Optional[CollectorRegistry] = None):
        self.service_name = service_name
        self.registry = registry or CollectorRegistry()
        self._metrics: Dict[str, Any] = {}

        self._setup_http_metrics()
        self._setup_cache_metrics()

    def _setup_http_metrics(self):
        info = Info("service_info", "Service information", registry=self.registry)
        info.info({"service": self.service_name, "version": "1.0.0"})
        self._metrics["service_info"] = info

        self._metrics["http_requests_total"] = Counter(
            "http_requests_total",
            "Total HTTP requests",
            ["method", "endpoint", "status_code"],
            registry=self.registry
        )

        self._metrics["http_request_duration_seconds"] = Histogram(
            "http_request_duration_seconds",
            "HTTP request duration in seconds",
            ["method", "endpoint"],
            registry=self.registry
        )

        self._metrics["health_check_total"] = Counter(
            "health_check_total",
            "Total health check requests",
            ["status"],
            registry=self.registry
        )

        self._metrics["errors_total"] = Counter(
            "errors_total",
            "Errors returned to callers by code",
            ["error_type", "service"],
            registry=self.registry
        )

    def _setup_cache_metrics(self):
        self._metrics["cache_requests_total"] = Counter(
            "cache_requests_total",
            "Cache lookups by outcome (hit, miss, bypass)",
            ["result"],
            registry=self.registry
        )

        self._metrics["cache_invalidations_total"] = Counter(
            "cache_invalidations_total",
            "Invalidation calls by entity",
            ["entity"],
            registry=self.registry
        )

        self._metrics["cache_invalidated_keys_total"] = Counter(
            "cache_invalidated_keys_total",
            "Keys removed by invalidation, by entity",
            ["entity"],
            registry=self.registry
        )

        self._metrics["cache_errors_total"] = Counter(
            "cache_errors_total",
            "Backing store failures by operation",
            ["operation"],
            registry=self.registry
        )

        self._metrics["cache_backend_status"] = Gauge(
            "cache_backend_status",
            "1 when the cache backend is usable",
            ["backend"],
            registry=self.registry
        )

        self._metrics["cache_compute_duration_seconds"] = Histogram(
            "cache_compute_duration_seconds",
            "Time spent recomputing a value after a miss, by key family",
            ["family"],
            buckets=COMPUTE_BUCKETS,
            registry=self.registry
        )

    def export(self) -> bytes:
        """Render the registry in Prometheus text format."""
        return generate_latest(self.registry)

    def record_http_request(self, method: str, endpoint: str, status_code: int, duration: float):
        self._metrics["http_requests_total"].labels(
            method=method,
            endpoint=endpoint,
            status_code=str(status_code)
        ).inc()

        self._metrics["http_request_duration_seconds"].labels(
            method=method,
            endpoint=endpoint
        ).observe(duration)

    def record_health_check(self, status: str):
        self._metrics["health_check_total"].labels(status=status).inc()

    def record_error(self, error_type: str):
        self._metrics["errors_total"].labels(error_type=error_type, service=self.service_name).inc()

    def record_cache_lookup(self, result: str):
        self._metrics["cache_requests_total"].labels(result=result).inc()

    def record_cache_invalidation(self, entity: str, deleted: int):
        self._metrics["cache_invalidations_total"].labels(entity=entity).inc()
        if deleted:
            self._metrics["cache_invalidated_keys_total"].labels(entity=entity).inc(deleted)

    def record_cache_error(self, operation: str):
        self._metrics["cache_errors_total"].labels(operation=operation).inc()

    def set_cache_backend_status(self, backend: str, usable: bool):
        self._metrics["cache_backend_status"].labels(backend=backend).set(1 if usable else 0)

    @contextmanager
    def time_compute(self, family: str):
        """Time a read-through recompute."""
        start_time = time.perf_counter()
        try:
            yield
        finally:
            self._metrics["cache_compute_duration_seconds"].labels(family=family).observe(
                time.perf_counter() - start_time
            )


def get_metrics_collector(service_name: str, registry: Optional[CollectorRegistry] = None) -> MetricsCollector:
    """Get a metrics collector for a service."""
    return MetricsCollector(service_name, registry)
