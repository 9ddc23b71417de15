"""
Tests for the synthesis provider client.

The network is replaced with httpx.MockTransport; no real requests are made.

Tests cover:
- Request payload shape and auth header
- Voice override vs default voice
- Response decoding (audioContent, provider error body, bad JSON, bad base64)
- Transport failures
"""
import base64
import json

import httpx
import pytest

from tts_proxy.core.config import ProviderConfig
from tts_proxy.tts.client import (
    AudioDecodeError,
    SynthesisClient,
    SynthesisRequest,
    UpstreamResponseError,
    UpstreamTransportError,
    decode_audio_content,
)

AUDIO = b"ID3\x03\x00fake-mp3-frames"


def _ok_body(audio: bytes = AUDIO) -> dict:
    return {"audioContent": base64.b64encode(audio).decode("ascii")}


@pytest.fixture
def captured():
    return []


@pytest.fixture
def client(captured):
    def handler(request: httpx.Request) -> httpx.Response:
        captured.append(request)
        return httpx.Response(200, json=_ok_body())

    c = SynthesisClient(ProviderConfig(api_key="test-key"), transport=httpx.MockTransport(handler))
    yield c
    c.close()


class TestSynthesisRequest:

    def test_payload_shape(self):
        req = SynthesisRequest(
            text="你好",
            voice="cmn-CN-Chirp3-HD-Achernar",
            language_code="cmn-CN",
            audio_encoding="MP3",
            speaking_rate=0.9,
        )
        assert req.to_payload() == {
            "input": {"text": "你好"},
            "voice": {"languageCode": "cmn-CN", "name": "cmn-CN-Chirp3-HD-Achernar"},
            "audioConfig": {"audioEncoding": "MP3", "speakingRate": 0.9},
        }

    def test_build_request_uses_default_voice(self, client):
        req = client.build_request("你好")
        assert req.voice == "cmn-CN-Chirp3-HD-Achernar"
        assert req.language_code == "cmn-CN"
        assert req.audio_encoding == "MP3"
        assert req.speaking_rate == 0.9

    def test_build_request_voice_override(self, client):
        assert client.build_request("你好", "cmn-CN-Chirp3-HD-Charon").voice == "cmn-CN-Chirp3-HD-Charon"


class TestSynthesize:

    def test_returns_decoded_audio(self, client, captured):
        assert client.synthesize(client.build_request("你好")) == AUDIO
        assert len(captured) == 1

    def test_posts_json_to_endpoint(self, client, captured):
        client.synthesize(client.build_request("你好"))
        request = captured[0]

        assert request.method == "POST"
        assert str(request.url) == "https://texttospeech.googleapis.com/v1/text:synthesize"
        body = json.loads(request.content)
        assert body["input"]["text"] == "你好"
        assert body["voice"]["name"] == "cmn-CN-Chirp3-HD-Achernar"

    def test_api_key_sent_as_header_not_query(self, client, captured):
        client.synthesize(client.build_request("你好"))
        request = captured[0]

        assert request.headers["X-Goog-Api-Key"] == "test-key"
        assert "key=" not in str(request.url)

    def test_text_with_quotes_is_valid_json(self, client, captured):
        """Arbitrary text is always encoded as a JSON string."""
        text = 'a"b\\c\n{}'
        client.synthesize(client.build_request(text))
        assert json.loads(captured[0].content)["input"]["text"] == text

    def test_transport_error(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        c = SynthesisClient(ProviderConfig(api_key="k"), transport=httpx.MockTransport(handler))
        with pytest.raises(UpstreamTransportError, match="TTS request failed"):
            c.synthesize(c.build_request("你好"))
        c.close()

    def test_provider_error_status(self):
        """A 4xx error body carries no audio and surfaces the provider message."""
        def handler(request):
            return httpx.Response(403, json={
                "error": {"code": 403, "message": "API key not valid", "status": "PERMISSION_DENIED"},
            })

        c = SynthesisClient(ProviderConfig(api_key="k"), transport=httpx.MockTransport(handler))
        with pytest.raises(UpstreamResponseError, match="API key not valid") as exc_info:
            c.synthesize(c.build_request("你好"))
        assert exc_info.value.details["upstream_status"] == "PERMISSION_DENIED"
        c.close()


class TestDecodeAudioContent:

    def test_valid(self):
        assert decode_audio_content(json.dumps(_ok_body()).encode()) == AUDIO

    def test_not_json(self):
        with pytest.raises(UpstreamResponseError, match="Failed to parse response"):
            decode_audio_content(b"<html>502 Bad Gateway</html>")

    def test_not_object(self):
        with pytest.raises(UpstreamResponseError, match="Failed to parse response"):
            decode_audio_content(b"[1, 2]")

    @pytest.mark.parametrize("body", [{}, {"audioContent": ""}, {"audioContent": None}])
    def test_missing_audio(self, body):
        with pytest.raises(UpstreamResponseError, match="No audio content in response"):
            decode_audio_content(json.dumps(body).encode())

    def test_invalid_base64(self):
        with pytest.raises(AudioDecodeError, match="Failed to decode audio"):
            decode_audio_content(b'{"audioContent": "***not base64***"}')

    def test_non_string_audio(self):
        with pytest.raises(AudioDecodeError):
            decode_audio_content(b'{"audioContent": 12345}')
