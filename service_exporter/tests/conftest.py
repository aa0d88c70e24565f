"""
Shared fixtures for exporter tests.
"""

import pytest
import httpx
from typing import Callable, Dict, Mapping, Union

from service_exporter.app.targets.registry import TargetRecord, TargetRegistry

TEXT_CONTENT_TYPE = "text/plain; version=0.0.4"

Upstream = Union[str, int, Exception]


def make_transport(upstreams: Dict[str, Upstream]) -> httpx.MockTransport:
    """Mock transport serving a body, an error status, or an exception per URL."""

    def handler(request: httpx.Request) -> httpx.Response:
        outcome = upstreams.get(str(request.url), 404)
        if isinstance(outcome, Exception):
            raise outcome
        if isinstance(outcome, int):
            return httpx.Response(outcome, text="error")
        return httpx.Response(200, text=outcome, headers={"content-type": TEXT_CONTENT_TYPE})

    return httpx.MockTransport(handler)


def make_registry(*targets: Mapping, listen: str = "127.0.0.1:9001") -> TargetRegistry:
    """Build a registry from {"url": ..., "labels": {...}} dicts."""
    return TargetRegistry(
        targets=tuple(TargetRecord.create(t["url"], t.get("labels")) for t in targets),
        listen=listen
    )


@pytest.fixture
def transport_factory() -> Callable[[Dict[str, Upstream]], httpx.MockTransport]:
    return make_transport


@pytest.fixture
def registry_factory() -> Callable[..., TargetRegistry]:
    return make_registry


@pytest.fixture
def prod_dev_registry() -> TargetRegistry:
    """Two targets labelled by environment."""
    return make_registry(
        {"url": "http://a.example:9100/metrics", "labels": {"env": "prod"}},
        {"url": "http://b.example:9100/metrics", "labels": {"env": "dev"}},
    )


@pytest.fixture
def node_metrics_text() -> str:
    return (
        "# HELP node_load1 1m load average.\n"
        "# TYPE node_load1 gauge\n"
        "node_load1 0.5\n"
        "# HELP http_requests_total Total HTTP requests.\n"
        "# TYPE http_requests_total counter\n"
        'http_requests_total{method="get",code="200"} 1027\n'
        'http_requests_total{method="post",code="400"} 3\n'
        "# HELP request_latency_seconds Request latency.\n"
        "# TYPE request_latency_seconds histogram\n"
        'request_latency_seconds_bucket{le="0.1"} 10\n'
        'request_latency_seconds_bucket{le="+Inf"} 12\n'
        "request_latency_seconds_sum 1.5\n"
        "request_latency_seconds_count 12\n"
    )
