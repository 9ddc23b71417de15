"""Tests for Prometheus metrics."""
from __future__ import annotations

import base64

import httpx
import pytest
from fastapi.testclient import TestClient
from prometheus_client import CollectorRegistry


def _sample(m, name, labels=None):
    return m.registry.get_sample_value(name, labels or {})


class TestProxyMetricsClass:
    """Test ProxyMetrics with a private registry."""

    @pytest.fixture
    def m(self):
        from tts_proxy.core.metrics import ProxyMetrics
        return ProxyMetrics(registry=CollectorRegistry())

    def test_record_request(self, m):
        m.record_request(200)
        m.record_request(200)
        m.record_request(400)

        assert _sample(m, "tts_proxy_requests_total", {"status": "200"}) == 2
        assert _sample(m, "tts_proxy_requests_total", {"status": "400"}) == 1

    def test_record_cache(self, m):
        m.record_cache("hit")
        m.record_cache("miss")
        m.record_cache("reset")

        for result in ("hit", "miss", "reset"):
            assert _sample(m, "tts_proxy_cache_total", {"result": result}) == 1

    def test_record_upstream(self, m):
        m.record_upstream("ok", 0.5)
        m.record_upstream("UPSTREAM_TRANSPORT", 1.5)

        assert _sample(m, "tts_proxy_upstream_requests_total", {"outcome": "ok"}) == 1
        assert _sample(m, "tts_proxy_upstream_duration_seconds_count") == 2
        assert _sample(m, "tts_proxy_upstream_duration_seconds_sum") == pytest.approx(2.0)

    def test_negative_duration_not_observed(self, m):
        m.record_upstream("ok", -1.0)
        assert _sample(m, "tts_proxy_upstream_duration_seconds_count") == 0

    def test_record_audio(self, m):
        m.record_audio("upstream", 100)
        m.record_audio("cache", 50)
        m.record_audio("cache", 50)

        assert _sample(m, "tts_proxy_audio_bytes_total", {"source": "cache"}) == 100

    def test_instances_are_independent(self):
        """Separate registries never clash on metric names."""
        from tts_proxy.core.metrics import ProxyMetrics

        a, b = ProxyMetrics(), ProxyMetrics()
        a.record_request(200)
        assert _sample(b, "tts_proxy_requests_total", {"status": "200"}) is None

    def test_get_metrics_response(self, m):
        m.record_request(200)
        content, content_type = m.get_metrics_response()

        assert isinstance(content, bytes)
        assert content_type.startswith("text/plain")
        assert b"tts_proxy_requests_total" in content


class TestMetricsEndpoint:
    """Test /metrics through the app."""

    @pytest.fixture
    def client(self, tmp_path):
        from tts_proxy.core.config import ProxyConfig, Settings
        from tts_proxy.main import create_app
        from tts_proxy.services.tts_service import TTSService
        from tts_proxy.tts.client import SynthesisClient

        def provider(request):
            return httpx.Response(200, json={"audioContent": base64.b64encode(b"ID3").decode()})

        config = ProxyConfig.from_settings(Settings(raw={
            "provider": {"api_key": "k"},
            "storage": {"output_dir": str(tmp_path)},
        }))
        service = TTSService(
            config,
            client=SynthesisClient(config.provider, transport=httpx.MockTransport(provider)),
        )
        with TestClient(create_app(service=service)) as c:
            yield c

    def test_metrics_returns_prometheus_text(self, client):
        r = client.get("/metrics")
        assert r.status_code == 200
        assert "text/plain" in r.headers["content-type"]

    def test_requests_are_counted(self, client):
        from tts_proxy.core.metrics import metrics

        before_hit = metrics.registry.get_sample_value("tts_proxy_cache_total", {"result": "hit"}) or 0
        client.get("/tts", params={"text": "你好"})
        client.get("/tts", params={"text": "你好"})

        body = client.get("/metrics").text
        assert "tts_proxy_requests_total" in body
        assert "tts_proxy_upstream_duration_seconds" in body
        after_hit = metrics.registry.get_sample_value("tts_proxy_cache_total", {"result": "hit"})
        assert after_hit == before_hit + 1
