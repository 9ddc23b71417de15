"""
Tests for TTSService - the cached synthesis pipeline.

The provider is an httpx.MockTransport; every test gets its own output dir.

Tests cover:
- Miss then hit: identical bytes, one provider call
- reset forces a provider call and overwrites the file
- Validation failures perform no I/O
- Provider/decode/storage failures leave no file
- Model override changes the cache key
- Health info and counters
- get_service()/reset_service() singleton
"""
import base64
import json
import threading
from unittest.mock import patch

import httpx
import pytest

from tts_proxy.core.config import ProxyConfig, Settings
from tts_proxy.services.tts_service import (
    AudioDecodeError,
    ErrorCode,
    InvalidInputError,
    StorageError,
    SynthesizeRequest,
    SynthesizeResult,
    TTSError,
    TTSService,
    UpstreamDecodeError,
    UpstreamTransportError,
    get_service,
    reset_service,
)
from tts_proxy.tts.client import SynthesisClient


class FakeProvider:
    """Mock provider returning a distinct MP3 payload per call."""

    def __init__(self):
        self.calls = []
        self.lock = threading.Lock()
        self.response = None  # callable(request) -> httpx.Response, overrides default

    def __call__(self, request: httpx.Request) -> httpx.Response:
        with self.lock:
            self.calls.append(json.loads(request.content))
            n = len(self.calls)
        if self.response is not None:
            return self.response(request)
        audio = f"ID3-audio-{n}".encode()
        return httpx.Response(200, json={"audioContent": base64.b64encode(audio).decode()})


@pytest.fixture
def provider():
    return FakeProvider()


@pytest.fixture
def output_dir(tmp_path):
    return tmp_path / "audio"


@pytest.fixture
def service(provider, output_dir):
    config = ProxyConfig.from_settings(Settings(raw={
        "provider": {"api_key": "test-key"},
        "storage": {"output_dir": str(output_dir)},
        "logging": {"level": 1},
    }))
    client = SynthesisClient(config.provider, transport=httpx.MockTransport(provider))
    svc = TTSService(config, client=client)
    yield svc
    svc.close()


def _files(output_dir):
    return sorted(p.name for p in output_dir.iterdir())


class TestInit:

    def test_creates_output_dir(self, service, output_dir):
        assert output_dir.is_dir()
        assert service.output_dir == output_dir

    def test_unusable_output_dir(self, tmp_path):
        blocker = tmp_path / "blocker"
        blocker.write_text("x")
        config = ProxyConfig.from_settings(Settings(raw={
            "provider": {"api_key": "k"},
            "storage": {"output_dir": str(blocker)},
        }))
        from tts_proxy.tts.storage import StorageError as DirError
        with pytest.raises(DirError):
            TTSService(config)


class TestSynthesizeCache:
    """Hit/miss behavior."""

    def test_first_call_is_miss(self, service, provider, output_dir):
        result = service.synthesize(SynthesizeRequest(text="你好"), request_id="r1")

        assert isinstance(result, SynthesizeResult)
        assert result.cache_status == "miss"
        assert result.key == "cmn-CN-Chirp3-HD-Achernar_你好.mp3"
        assert result.path == (output_dir / result.key).resolve()
        assert result.audio_bytes == b"ID3-audio-1"
        assert result.request_id == "r1"
        assert len(provider.calls) == 1
        assert _files(output_dir) == [result.key]
        assert result.path.read_bytes() == result.audio_bytes

    def test_second_call_is_hit_with_same_bytes(self, service, provider):
        first = service.synthesize(SynthesizeRequest(text="你好"), request_id="r1")
        second = service.synthesize(SynthesizeRequest(text="你好"), request_id="r2")

        assert second.cache_status == "hit"
        assert second.audio_bytes == first.audio_bytes
        assert len(provider.calls) == 1

    def test_provider_payload(self, service, provider):
        service.synthesize(SynthesizeRequest(text="你好"), request_id="r1")
        assert provider.calls[0] == {
            "input": {"text": "你好"},
            "voice": {"languageCode": "cmn-CN", "name": "cmn-CN-Chirp3-HD-Achernar"},
            "audioConfig": {"audioEncoding": "MP3", "speakingRate": 0.9},
        }

    def test_model_override(self, service, provider, output_dir):
        result = service.synthesize(
            SynthesizeRequest(text="你好", model="cmn-CN-Chirp3-HD-Charon"), request_id="r1"
        )
        assert result.key == "cmn-CN-Chirp3-HD-Charon_你好.mp3"
        assert provider.calls[0]["voice"]["name"] == "cmn-CN-Chirp3-HD-Charon"

        # Different model, same text: separate cache entry
        other = service.synthesize(SynthesizeRequest(text="你好"), request_id="r2")
        assert other.cache_status == "miss"
        assert len(_files(output_dir)) == 2

    def test_reset_forces_call_and_overwrites(self, service, provider):
        first = service.synthesize(SynthesizeRequest(text="你好"), request_id="r1")
        again = service.synthesize(SynthesizeRequest(text="你好", reset=True), request_id="r2")

        assert len(provider.calls) == 2
        assert again.cache_status == "miss"
        assert again.audio_bytes != first.audio_bytes
        assert again.path.read_bytes() == again.audio_bytes

        # Next normal request serves the overwritten file
        third = service.synthesize(SynthesizeRequest(text="你好"), request_id="r3")
        assert third.cache_status == "hit"
        assert third.audio_bytes == again.audio_bytes

    def test_reset_on_empty_cache(self, service, provider, output_dir):
        result = service.synthesize(SynthesizeRequest(text="你好", reset=True), request_id="r1")
        assert result.cache_status == "miss"
        assert len(provider.calls) == 1
        assert _files(output_dir) == [result.key]

    def test_timings_recorded(self, service):
        result = service.synthesize(SynthesizeRequest(text="你好"), request_id="r1")
        assert {"cache_lookup", "upstream", "cache_store"} <= set(result.timings)
        assert result.total_seconds >= 0


class TestValidation:
    """Invalid input never reaches the provider or the disk."""

    @pytest.mark.parametrize("text,code", [
        (None, ErrorCode.TEXT_REQUIRED),
        ("", ErrorCode.TEXT_REQUIRED),
        ("hello", ErrorCode.TEXT_INVALID_SCRIPT),
        ("中华人民共和", ErrorCode.TEXT_TOO_LONG),
    ])
    def test_invalid_text(self, service, provider, output_dir, text, code):
        with pytest.raises(InvalidInputError) as exc_info:
            service.synthesize(SynthesizeRequest(text=text), request_id="r1")

        assert exc_info.value.code == code
        assert exc_info.value.status_code == 400
        assert provider.calls == []
        assert _files(output_dir) == []

    def test_invalid_model(self, service, provider, output_dir):
        with pytest.raises(InvalidInputError) as exc_info:
            service.synthesize(SynthesizeRequest(text="你好", model="../../x"), request_id="r1")
        assert exc_info.value.code == ErrorCode.MODEL_INVALID
        assert provider.calls == []
        assert _files(output_dir) == []


class TestFailures:
    """Provider and storage failures map to 500-class errors with no file."""

    def test_transport_failure(self, service, provider, output_dir):
        def fail(request):
            raise httpx.ConnectTimeout("timed out", request=request)
        provider.response = fail

        with pytest.raises(UpstreamTransportError) as exc_info:
            service.synthesize(SynthesizeRequest(text="你好"), request_id="r1")
        assert exc_info.value.code == ErrorCode.UPSTREAM_TRANSPORT
        assert exc_info.value.status_code == 500
        assert "TTS request failed" in exc_info.value.message
        assert _files(output_dir) == []

    def test_malformed_json(self, service, provider, output_dir):
        provider.response = lambda request: httpx.Response(200, content=b"not json")

        with pytest.raises(UpstreamDecodeError) as exc_info:
            service.synthesize(SynthesizeRequest(text="你好"), request_id="r1")
        assert exc_info.value.code == ErrorCode.UPSTREAM_DECODE
        assert _files(output_dir) == []

    def test_missing_audio_content(self, service, provider, output_dir):
        provider.response = lambda request: httpx.Response(200, json={"foo": "bar"})

        with pytest.raises(UpstreamDecodeError, match="No audio content"):
            service.synthesize(SynthesizeRequest(text="你好"), request_id="r1")
        assert _files(output_dir) == []

    def test_invalid_base64(self, service, provider, output_dir):
        provider.response = lambda request: httpx.Response(200, json={"audioContent": "!!!"})

        with pytest.raises(AudioDecodeError) as exc_info:
            service.synthesize(SynthesizeRequest(text="你好"), request_id="r1")
        assert exc_info.value.code == ErrorCode.AUDIO_DECODE
        assert _files(output_dir) == []

    def test_storage_failure_leaves_no_partial_file(self, service, output_dir):
        with patch("tts_proxy.tts.storage.os.replace", side_effect=OSError("disk full")):
            with pytest.raises(StorageError) as exc_info:
                service.synthesize(SynthesizeRequest(text="你好"), request_id="r1")

        assert exc_info.value.code == ErrorCode.STORAGE_FAILED
        assert "Failed to save file" in exc_info.value.message
        assert _files(output_dir) == []

    def test_failure_is_not_cached(self, service, provider):
        provider.response = lambda request: httpx.Response(200, json={})
        with pytest.raises(TTSError):
            service.synthesize(SynthesizeRequest(text="你好"), request_id="r1")

        provider.response = None
        result = service.synthesize(SynthesizeRequest(text="你好"), request_id="r2")
        assert result.cache_status == "miss"
        assert len(provider.calls) == 2


class TestResolve:

    def test_resolve_does_no_io(self, service, provider, output_dir):
        resolved = service.resolve("你好")
        assert resolved.model == "cmn-CN-Chirp3-HD-Achernar"
        assert resolved.key == "cmn-CN-Chirp3-HD-Achernar_你好.mp3"
        assert not service.is_cached(resolved)
        assert provider.calls == []

    def test_is_cached_after_synthesis(self, service):
        service.synthesize(SynthesizeRequest(text="你好"), request_id="r1")
        assert service.is_cached(service.resolve("你好"))


class TestHealthInfo:

    def test_structure(self, service):
        info = service.get_health_info()

        assert info["ok"] is True
        assert "version" in info
        assert info["provider"]["default_voice"] == "cmn-CN-Chirp3-HD-Achernar"
        assert info["provider"]["language_code"] == "cmn-CN"
        assert info["validation"] == {"script": "han", "max_chars": 5}
        assert info["storage"] == {"file_count": 0, "total_bytes": 0}

    def test_never_exposes_api_key(self, service):
        assert "test-key" not in json.dumps(service.get_health_info())

    def test_counters(self, service, provider):
        service.synthesize(SynthesizeRequest(text="你好"), request_id="r1")
        service.synthesize(SynthesizeRequest(text="你好"), request_id="r2")
        with pytest.raises(TTSError):
            service.synthesize(SynthesizeRequest(text="bad"), request_id="r3")

        stats = service.get_health_info()["stats"]
        assert stats == {"hits": 1, "misses": 1, "upstream_calls": 1, "errors": 1}
        assert service.get_health_info()["storage"]["file_count"] == 1


class TestServiceSingleton:

    def test_get_service_reuses_instance(self, tmp_path):
        reset_service()
        settings = Settings(raw={
            "provider": {"api_key": "k"},
            "storage": {"output_dir": str(tmp_path / "audio")},
        })
        try:
            assert get_service(settings) is get_service(settings)
        finally:
            reset_service()

    def test_get_service_requires_api_key(self, tmp_path):
        from tts_proxy.core.config import ConfigValidationError

        reset_service()
        with pytest.raises(ConfigValidationError):
            get_service(Settings(raw={"storage": {"output_dir": str(tmp_path)}}))
