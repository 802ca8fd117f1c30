"""
Shared metrics configuration for the caching proxy.
"""

from prometheus_client import Counter, Histogram, Info, CollectorRegistry
from typing import Dict, Any, Optional


class MetricsCollector:
    """Centralized metrics collector for services."""

    def __init__(self, service_name: str, registry: Optional[CollectorRegistry] = None):
        self.service_name = service_name
        # Private registry keeps repeated service construction (tests) from colliding
        self.registry = registry if registry is not None else CollectorRegistry()
        self._metrics: Dict[str, Any] = {}
        self._setup_metrics()

    def _setup_metrics(self):
        """Set up common metrics for the service."""

        self._metrics["service_info"] = Info(
            "service_info",
            "Service information",
            registry=self.registry
        )
        self._metrics["service_info"].info({
            "service": self.service_name,
            "version": "1.0.0"
        })

        # HTTP metrics
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

        self._setup_cache_metrics()
        self._setup_upstream_metrics()

    def _setup_cache_metrics(self):
        """Set up disk cache metrics."""
        self._metrics["cache_lookups_total"] = Counter(
            "cache_lookups_total",
            "Cache lookups by result",
            ["result"],
            registry=self.registry
        )

        self._metrics["cache_store_failures_total"] = Counter(
            "cache_store_failures_total",
            "Cache writes that failed and were skipped",
            registry=self.registry
        )

        self._metrics["cache_evictions_total"] = Counter(
            "cache_evictions_total",
            "Stale cache entries removed",
            ["reason"],
            registry=self.registry
        )

        self._metrics["cache_sweep_duration_seconds"] = Histogram(
            "cache_sweep_duration_seconds",
            "Eviction sweep cycle duration in seconds",
            registry=self.registry
        )

    def _setup_upstream_metrics(self):
        """Set up upstream fetch metrics."""
        self._metrics["upstream_requests_total"] = Counter(
            "upstream_requests_total",
            "Upstream requests by outcome",
            ["outcome"],
            registry=self.registry
        )

        self._metrics["upstream_request_duration_seconds"] = Histogram(
            "upstream_request_duration_seconds",
            "Upstream request duration in seconds",
            registry=self.registry
        )

    def get_metric(self, name: str):
        """Get a metric by name."""
        return self._metrics.get(name)

    def record_http_request(self, method: str, endpoint: str, status_code: int, duration: float):
        """Record HTTP request metrics."""
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
        """Record health check metrics."""
        self._metrics["health_check_total"].labels(status=status).inc()

    def record_cache_lookup(self, result: str):
        self._metrics["cache_lookups_total"].labels(result=result).inc()

    def record_cache_store_failure(self):
        self._metrics["cache_store_failures_total"].inc()

    def record_evictions(self, count: int, reason: str = "sweep"):
        if count > 0:
            self._metrics["cache_evictions_total"].labels(reason=reason).inc(count)

    def record_upstream_request(self, outcome: str, duration: float):
        self._metrics["upstream_requests_total"].labels(outcome=outcome).inc()
        self._metrics["upstream_request_duration_seconds"].observe(duration)

    def sample_value(self, metric_name: str, **labels) -> Optional[float]:
        """Read back a sample from the registry (used by health and tests)."""
        return self.registry.get_sample_value(metric_name, labels or None)


def get_metrics_collector(service_name: str, registry: Optional[CollectorRegistry] = None) -> MetricsCollector:
    """Get a metrics collector for a service."""
    return MetricsCollector(service_name, registry)
