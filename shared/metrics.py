"""
Self-instrumentation metrics for the Prometheus Unified Exporter.

These describe the exporter itself (scrapes served, upstream fetch outcomes)
and live on a private registry so they never mix with the unified output.
"""

from prometheus_client import (
    CONTENT_TYPE_LATEST,
    CollectorRegistry,
    Counter,
    Histogram,
    Info,
    generate_latest,
)
from typing import Dict, Any, Optional


class MetricsCollector:
    """Centralized metrics collector for the exporter."""

    def __init__(self, service_name: str, registry: Optional[CollectorRegistry] = None):
        self.service_name = service_name
        self.registry = registry if registry is not None else CollectorRegistry()
        self._metrics: Dict[str, Any] = {}
        self._setup_metrics()

    def _setup_metrics(self):
        """Set up the exporter metrics."""

        self._metrics["service_info"] = Info(
            "exporter_service",
            "Exporter service information",
            registry=self.registry
        )
        self._metrics["service_info"].info({
            "service": self.service_name,
            "version": "1.0.0"
        })

        # HTTP metrics
        self._metrics["http_requests_total"] = Counter(
            "exporter_http_requests_total",
            "Total HTTP requests served by the exporter",
            ["method", "endpoint", "status_code"],
            registry=self.registry
        )

        self._metrics["http_request_duration_seconds"] = Histogram(
            "exporter_http_request_duration_seconds",
            "HTTP request duration in seconds",
            ["method", "endpoint"],
            registry=self.registry
        )

        # Scrape pipeline metrics
        self._metrics["scrapes_total"] = Counter(
            "exporter_scrapes_total",
            "Total unified scrapes served",
            ["result"],
            registry=self.registry
        )

        self._metrics["scrape_duration_seconds"] = Histogram(
            "exporter_scrape_duration_seconds",
            "Duration of a unified scrape, fan-out to last byte",
            registry=self.registry
        )

        self._metrics["target_fetches_total"] = Counter(
            "exporter_target_fetches_total",
            "Total upstream target fetches",
            ["target", "result"],
            registry=self.registry
        )

        self._metrics["target_fetch_duration_seconds"] = Histogram(
            "exporter_target_fetch_duration_seconds",
            "Upstream target fetch duration in seconds",
            ["target"],
            registry=self.registry
        )

        self._metrics["merged_samples"] = Histogram(
            "exporter_merged_samples",
            "Number of samples in a unified scrape",
            buckets=(10, 100, 1000, 10000, 100000, float("inf")),
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

    def record_target_fetch(self, target: str, success: bool, duration: float):
        """Record the outcome of one upstream fetch."""
        result = "success" if success else "failure"
        self._metrics["target_fetches_total"].labels(target=target, result=result).inc()
        self._metrics["target_fetch_duration_seconds"].labels(target=target).observe(duration)

    def record_scrape(self, success: bool, sample_count: int, duration: float):
        """Record the outcome of one unified scrape."""
        self._metrics["scrapes_total"].labels(result="success" if success else "error").inc()
        self._metrics["merged_samples"].observe(sample_count)
        self._metrics["scrape_duration_seconds"].observe(duration)

    def render(self) -> bytes:
        """Render the exporter's own metrics in text format."""
        return generate_latest(self.registry)

    @property
    def content_type(self) -> str:
        return CONTENT_TYPE_LATEST


def get_metrics_collector(service_name: str, registry: Optional[CollectorRegistry] = None) -> MetricsCollector:
    """Get a metrics collector for a service."""
    return MetricsCollector(service_name, registry)
