"""
Prometheus Metrics for tts-proxy.

Metrics Exposed:
    tts_proxy_requests_total{status}             - /tts responses by HTTP status
    tts_proxy_cache_total{result}                - Cache lookups (hit/miss/reset)
    tts_proxy_upstream_requests_total{outcome}   - Provider calls by outcome
    tts_proxy_upstream_duration_seconds          - Provider call latency
    tts_proxy_audio_bytes_total{source}          - Audio bytes served (cache/upstream)

Usage:
    from tts_proxy.core.metrics import metrics

    metrics.record_cache("hit")
    metrics.record_upstream("ok", duration=0.42)
    content, content_type = metrics.get_metrics_response()

Metrics live in a private CollectorRegistry so that building several
apps in one process (tests) never trips duplicate registration.
"""
from __future__ import annotations

from prometheus_client import (
    CONTENT_TYPE_LATEST,
    CollectorRegistry,
    Counter,
    Histogram,
    generate_latest,
)


class ProxyMetrics:
    """
    Metrics collector for the TTS proxy.

    A single module-level instance (`metrics`) is shared by the service
    and the /metrics route. Prometheus metric operations are thread-safe.
    """

    def __init__(self, registry: CollectorRegistry | None = None):
        self._registry = registry or CollectorRegistry()

        self.requests_total = Counter(
            "tts_proxy_requests_total",
            "TTS requests by HTTP status code",
            ["status"],
            registry=self._registry,
        )
        self.cache_total = Counter(
            "tts_proxy_cache_total",
            "Cache lookups by result",
            ["result"],
            registry=self._registry,
        )
        self.upstream_total = Counter(
            "tts_proxy_upstream_requests_total",
            "Synthesis provider calls by outcome",
            ["outcome"],
            registry=self._registry,
        )
        self.upstream_duration = Histogram(
            "tts_proxy_upstream_duration_seconds",
            "Synthesis provider call latency in seconds",
            buckets=(0.1, 0.25, 0.5, 1.0, 2.0, 5.0, 10.0, 30.0),
            registry=self._registry,
        )
        self.audio_bytes = Counter(
            "tts_proxy_audio_bytes_total",
            "Audio bytes served",
            ["source"],
            registry=self._registry,
        )

    @property
    def registry(self) -> CollectorRegistry:
        return self._registry

    def record_request(self, status: int) -> None:
        self.requests_total.labels(status=str(status)).inc()

    def record_cache(self, result: str) -> None:
        """Record a cache lookup: "hit", "miss" or "reset"."""
        self.cache_total.labels(result=result).inc()

    def record_upstream(self, outcome: str, duration: float | None = None) -> None:
        """Record a provider call; outcome is "ok" or an error code."""
        self.upstream_total.labels(outcome=outcome).inc()
        if duration is not None and duration >= 0:
            self.upstream_duration.observe(duration)

    def record_audio(self, source: str, size: int) -> None:
        self.audio_bytes.labels(source=source).inc(size)

    def get_metrics_response(self) -> tuple[bytes, str]:
        """Return (body, content_type) for the /metrics endpoint."""
        return generate_latest(self._registry), CONTENT_TYPE_LATEST


metrics = ProxyMetrics()
