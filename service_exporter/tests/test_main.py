"""
Tests for the unified exporter service and its entry point.
"""

import asyncio
from unittest.mock import patch

import httpx
import pytest
from fastapi.testclient import TestClient

from service_exporter.app import main as main_module
from service_exporter.app.ingestion.models import MetricFamily, MetricType, Sample
from service_exporter.app.main import UnifiedExporterService, create_app
from shared.config import ExporterSettings

URL_A = "http://a.example:9100/metrics"
URL_B = "http://b.example:9100/metrics"


@pytest.fixture
def settings():
    return ExporterSettings(config_path="unused.yaml", log_level="warning")


class TestUnifiedExporterService:
    """Test cases for the /metrics handler."""

    def test_merges_labelled_targets(self, prod_dev_registry, transport_factory, settings):
        """Both up samples are served under a single family block."""
        transport = transport_factory({URL_A: "up 1\n", URL_B: "up 1\n"})
        client = TestClient(create_app(prod_dev_registry, settings, transport))

        response = client.get("/metrics")

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/plain")
        lines = response.text.splitlines()
        assert lines.count("# TYPE up untyped") == 1
        assert sorted(lines[1:]) == ['up{env="dev"} 1.0', 'up{env="prod"} 1.0']

    def test_failed_target_omitted_with_success_status(self, prod_dev_registry, transport_factory, settings):
        """A failing target drops out; the scrape still succeeds."""
        transport = transport_factory({URL_A: 500, URL_B: "# TYPE only_b gauge\nonly_b 2\nup 1\n"})
        client = TestClient(create_app(prod_dev_registry, settings, transport))

        response = client.get("/metrics")

        assert response.status_code == 200
        assert response.text == (
            "# TYPE only_b gauge\n"
            'only_b{env="dev"} 2.0\n'
            "# TYPE up untyped\n"
            'up{env="dev"} 1.0\n'
        )
        assert 'env="prod"' not in response.text

    def test_all_targets_down(self, prod_dev_registry, transport_factory, settings):
        transport = transport_factory({URL_A: httpx.ConnectError("refused"), URL_B: 503})
        client = TestClient(create_app(prod_dev_registry, settings, transport))

        response = client.get("/metrics")

        assert response.status_code == 200
        assert response.text == ""

    def test_families_sorted(self, prod_dev_registry, transport_factory, settings):
        transport = transport_factory({
            URL_A: "# TYPE zz gauge\nzz 1\n# TYPE aa gauge\naa 1\n",
            URL_B: "# TYPE mm gauge\nmm 1\n",
        })
        client = TestClient(create_app(prod_dev_registry, settings, transport))

        body = client.get("/metrics").text
        names = [line.split()[2] for line in body.splitlines() if line.startswith("# TYPE")]

        assert names == ["aa", "mm", "zz"]

    def test_every_request_refetches(self, prod_dev_registry, settings):
        """No caching: each scrape hits every target again."""
        calls = []

        def handler(request):
            calls.append(str(request.url))
            return httpx.Response(200, text="up 1\n")

        client = TestClient(create_app(prod_dev_registry, settings, httpx.MockTransport(handler)))

        client.get("/metrics")
        client.get("/metrics")

        assert sorted(calls) == sorted([URL_A, URL_B] * 2)

    def test_query_parameters_ignored(self, prod_dev_registry, transport_factory, settings):
        transport = transport_factory({URL_A: "up 1\n", URL_B: "up 1\n"})
        client = TestClient(create_app(prod_dev_registry, settings, transport))

        plain = client.get("/metrics").text
        with_query = client.get("/metrics", params={"name[]": "up", "format": "json"}).text

        assert sorted(plain.splitlines()) == sorted(with_query.splitlines())

    def test_serialization_failure_keeps_status_and_written_bytes(self, prod_dev_registry, transport_factory, settings):
        """An encoding error truncates the body but the status stays 200."""
        service = UnifiedExporterService(prod_dev_registry, settings, transport_factory({}))
        merged = {
            "a_ok": MetricFamily("a_ok", MetricType.GAUGE, samples=[Sample("a_ok", [], 1.0)]),
            "b_bad": MetricFamily("b_bad", MetricType.GAUGE, samples=[Sample("b_bad", [("bad-label", "x")], 1.0)]),
            "c_ok": MetricFamily("c_ok", MetricType.GAUGE, samples=[Sample("c_ok", [], 1.0)]),
        }
        client = TestClient(service.app)

        with patch.object(service.aggregator, "aggregate", return_value=merged), \
                patch.object(service.logger, "error") as log_error:
            response = client.get("/metrics")

        assert response.status_code == 200
        assert response.text == "# TYPE a_ok gauge\na_ok 1.0\n"
        log_error.assert_called_once()
        assert log_error.call_args.kwargs["family"] == "b_bad"

        registry = service.metrics.registry
        assert registry.get_sample_value("exporter_scrapes_total", {"result": "error"}) == 1.0

    def test_self_metrics_endpoint(self, prod_dev_registry, transport_factory, settings):
        transport = transport_factory({URL_A: 500, URL_B: "up 1\n"})
        client = TestClient(create_app(prod_dev_registry, settings, transport))

        client.get("/metrics")
        response = client.get("/exporter/metrics")

        assert response.status_code == 200
        assert 'exporter_target_fetches_total{result="failure",target="http://a.example:9100/metrics"} 1.0' in response.text
        assert 'exporter_scrapes_total{result="success"} 1.0' in response.text

    def test_health(self, prod_dev_registry, transport_factory, settings):
        client = TestClient(create_app(prod_dev_registry, settings, transport_factory({})))

        response = client.get("/health")

        assert response.status_code == 200
        data = response.json()
        assert data["service"] == "exporter"
        assert data["status"] == "ok"
        assert data["dependencies"]["targets"] == 2

    def test_unknown_route_not_found(self, prod_dev_registry, transport_factory, settings):
        client = TestClient(create_app(prod_dev_registry, settings, transport_factory({})))

        response = client.get("/metrics/extra")

        assert response.status_code == 404
        assert response.json() == {"detail": "Not Found"}

    @pytest.mark.asyncio
    async def test_concurrent_scrapes_are_independent(self, prod_dev_registry, settings):
        """Overlapping scrapes fan out separately; one's failed fetch stays its own."""
        calls = {URL_A: 0, URL_B: 0}
        both_in_flight = asyncio.Event()

        async def handler(request):
            url = str(request.url)
            calls[url] += 1
            attempt = calls[url]
            if calls[URL_A] == 2 and calls[URL_B] == 2:
                both_in_flight.set()
            await asyncio.wait_for(both_in_flight.wait(), timeout=5)
            if url == URL_A and attempt == 1:
                return httpx.Response(500)
            return httpx.Response(200, text="up 1\n")

        app = create_app(prod_dev_registry, settings, httpx.MockTransport(handler))
        async with httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://exporter") as client:
            first, second = await asyncio.gather(client.get("/metrics"), client.get("/metrics"))

        assert first.status_code == second.status_code == 200
        assert calls == {URL_A: 2, URL_B: 2}
        bodies = [first.text, second.text]
        assert all('up{env="dev"} 1.0' in body for body in bodies)
        assert sum('up{env="prod"} 1.0' in body for body in bodies) == 1


class TestMain:
    """Test cases for the process entry point."""

    def test_missing_config_path_is_fatal(self, monkeypatch, tmp_path, capsys):
        monkeypatch.delenv("PUE_CONFIG", raising=False)
        monkeypatch.chdir(tmp_path)

        with pytest.raises(SystemExit) as exc_info:
            main_module.main()

        assert exc_info.value.code == 1
        err = capsys.readouterr().err
        assert "PUE_CONFIG" in err
        assert len(err.strip().splitlines()) == 1

    def test_unreadable_config_is_fatal(self, monkeypatch, tmp_path, capsys):
        monkeypatch.setenv("PUE_CONFIG", str(tmp_path / "missing.yaml"))

        with pytest.raises(SystemExit) as exc_info:
            main_module.main()

        assert exc_info.value.code == 1
        assert "failed to load config" in capsys.readouterr().err

    def test_invalid_listen_is_fatal(self, monkeypatch, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("listen: nowhere\ntargets: []\n")
        monkeypatch.setenv("PUE_CONFIG", str(path))

        with pytest.raises(SystemExit) as exc_info:
            main_module.main()

        assert exc_info.value.code == 1

    def test_runs_on_configured_address(self, monkeypatch, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text(
            "listen: 127.0.0.1:9100\n"
            "targets:\n"
            "  - url: http://a.example/metrics\n"
            "    labels: {env: prod}\n"
        )
        monkeypatch.setenv("PUE_CONFIG", str(path))

        with patch.object(UnifiedExporterService, "run") as run:
            main_module.main()

        run.assert_called_once_with("127.0.0.1", 9100)
