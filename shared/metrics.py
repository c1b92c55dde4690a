"""
Shared metrics configuration for the bundle pricing engine.
"""

from prometheus_client import Counter, Histogram, Info, CollectorRegistry
from typing import Dict, Any, Optional
import threading


class MetricsCollector:
    """Centralized metrics collector for services."""

    def __init__(self, service_name: str, registry: Optional[CollectorRegistry] = None):
        self.service_name = service_name
        # Each collector owns its registry so several service instances can coexist
        self.registry = registry or CollectorRegistry()
        self._metrics: Dict[str, Any] = {}
        self._lock = threading.Lock()
        self._setup_metrics()

    def _setup_metrics(self):
        """Set up common metrics for the service."""

        # Service info
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

        # Health check metrics
        self._metrics["health_check_total"] = Counter(
            "health_check_total",
            "Total health check requests",
            ["status"],
            registry=self.registry
        )

        # Error metrics
        self._metrics["errors_total"] = Counter(
            "errors_total",
            "Total errors",
            ["error_type", "service"],
            registry=self.registry
        )

        if self.service_name == "pricing":
            self._setup_pricing_metrics()

    def _setup_pricing_metrics(self):
        """Set up pricing-specific metrics."""
        self._metrics["pricing_runs_total"] = Counter(
            "pricing_runs_total",
            "Total pricing runs",
            ["outcome"],
            registry=self.registry
        )

        self._metrics["pricing_run_duration_seconds"] = Histogram(
            "pricing_run_duration_seconds",
            "Pricing run duration in seconds",
            registry=self.registry
        )

        self._metrics["pricing_steps_total"] = Counter(
            "pricing_steps_total",
            "Total pricing steps applied",
            registry=self.registry
        )

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

    def record_error(self, error_type: str, service: Optional[str] = None):
        """Record error metrics."""
        service_name = service or self.service_name
        self._metrics["errors_total"].labels(error_type=error_type, service=service_name).inc()

    def record_pricing_run(self, outcome: str, duration: float, steps: int = 0):
        """Record the outcome of one single-input pricing run."""
        if "pricing_runs_total" not in self._metrics:
            return
        with self._lock:
            self._metrics["pricing_runs_total"].labels(outcome=outcome).inc()
            self._metrics["pricing_run_duration_seconds"].observe(duration)
            if steps:
                self._metrics["pricing_steps_total"].inc(steps)


def get_metrics_collector(service_name: str, registry: Optional[CollectorRegistry] = None) -> MetricsCollector:
    """Get a metrics collector for a service."""
    return MetricsCollector(service_name, registry)
