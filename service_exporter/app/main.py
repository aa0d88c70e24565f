"""
Unified exporter service: serves the merged metrics of all targets on /metrics.
"""

import sys
import time
from typing import Any, AsyncIterator, Dict, Optional

import httpx
from fastapi.responses import StreamingResponse
from pydantic import ValidationError

from shared.base_service import BaseService
from shared.config import ExporterSettings, get_settings
from shared.errors import ConfigurationError, EncodingError

from .exporters.prometheus import PrometheusExporter
from .ingestion.aggregator import MergedResult, MetricsAggregator, sample_count
from .ingestion.collector import TargetCollector
from .targets.registry import TargetRegistry, load_registry, parse_listen

SERVICE_NAME = "exporter"


class UnifiedExporterService(BaseService):
    """Fan-out/fan-in scrape service over an immutable target registry."""

    def __init__(
        self,
        registry: TargetRegistry,
        settings: Optional[ExporterSettings] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        self.registry = registry
        super().__init__(SERVICE_NAME, settings)

        self.collector = TargetCollector(
            timeout_seconds=self.config.fetch_timeout_seconds,
            max_concurrency=self.config.max_concurrency,
            metrics=self.metrics,
            transport=transport
        )
        self.aggregator = MetricsAggregator()
        self.exporter = PrometheusExporter()

        self._setup_exporter_routes()

    def _setup_exporter_routes(self):
        """Set up the unified metrics route."""

        @self.app.get("/metrics")
        async def unified_metrics():
            """Scrape every target and serve the merged result."""
            start_time = time.perf_counter()

            results = await self.collector.collect(self.registry)
            merged = self.aggregator.aggregate(results)

            return StreamingResponse(
                self._stream(merged, start_time),
                status_code=200,
                media_type=self.exporter.content_type
            )

    async def _stream(self, merged: MergedResult, start_time: float) -> AsyncIterator[bytes]:
        success = True
        try:
            for chunk in self.exporter.iter_encoded(merged):
                yield chunk
        except EncodingError as e:
            success = False
            self.logger.error("Failed to serialize metrics", error=e.message, family=e.family)
        finally:
            self.metrics.record_scrape(success, sample_count(merged), time.perf_counter() - start_time)

    async def _check_dependencies(self) -> Dict[str, Any]:
        """Report the configured targets."""
        return {
            "targets": len(self.registry),
            "last_merge": self.aggregator.get_aggregation_stats()
        }


def create_app(
    registry: TargetRegistry,
    settings: Optional[ExporterSettings] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None
):
    """Create the exporter application for a given registry."""
    service = UnifiedExporterService(registry, settings, transport)
    return service.app


def _fatal(message: str) -> None:
    print(f"prometheus-unified-exporter: {message}", file=sys.stderr)
    sys.exit(1)


def main():
    """Process entry point."""
    try:
        settings = get_settings()
    except ValidationError as e:
        _fatal(f"invalid settings: {e.error_count()} validation error(s)")
        return
    if not settings.config_path:
        _fatal("PUE_CONFIG env var must be set to the path of the config file")
        return

    try:
        registry = load_registry(settings.config_path)
        host, port = parse_listen(registry.listen)
    except ConfigurationError as e:
        _fatal(f"failed to load config: {e.message}")
        return

    service = UnifiedExporterService(registry, settings)
    service.logger.info(
        f"listening on http://{registry.listen}/metrics",
        targets=len(registry)
    )
    service.run(host, port)


if __name__ == "__main__":
    main()
