"""
Synthesis Provider Client.

Talks to the Google Cloud Text-to-Speech REST API:

    POST https://texttospeech.googleapis.com/v1/text:synthesize
    X-Goog-Api-Key: API_KEY
    {
        "input": {"text": "你好"},
        "voice": {"languageCode": "cmn-CN", "name": "cmn-CN-Chirp3-HD-Achernar"},
        "audioConfig": {"audioEncoding": "MP3", "speakingRate": 0.9}
    }

    200 -> {"audioContent": "<base64 MP3>"}
    4xx -> {"error": {"code": 400, "message": "...", "status": "INVALID_ARGUMENT"}}

The payload is built as a dict and serialized by httpx, so arbitrary text
is always a valid JSON string literal. The call is synchronous; the API
layer runs it inside FastAPI's threadpool.

Error Handling:
    UpstreamTransportError - connection/timeout/protocol failure
    UpstreamResponseError  - body is not JSON, or carries no audioContent
    AudioDecodeError       - audioContent is not valid base64

Usage:
    client = SynthesisClient(config.provider)
    audio = client.synthesize(client.build_request("你好"))
"""
from __future__ import annotations

import base64
import binascii
import json
from dataclasses import dataclass
from typing import Any, Dict, Optional

import httpx

from tts_proxy.core.config import ProviderConfig
from tts_proxy.core.logging import debug, get_logger, verbose, warn
from tts_proxy.utils.timeit import timeit

_LOG = get_logger("tts-proxy.client")


class SynthesisClientError(Exception):
    """Base class for provider client failures."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)


class UpstreamTransportError(SynthesisClientError):
    """The request never produced an HTTP response."""


class UpstreamResponseError(SynthesisClientError):
    """The response was not JSON or did not carry audio content."""


class AudioDecodeError(SynthesisClientError):
    """audioContent could not be base64-decoded."""


@dataclass(frozen=True)
class SynthesisRequest:
    """
    One provider call. Constructed per request, never persisted.

    Attributes:
        text: Text to speak.
        voice: Provider voice name (e.g. "cmn-CN-Chirp3-HD-Achernar").
        language_code: BCP-47 language code.
        audio_encoding: Provider encoding name ("MP3").
        speaking_rate: Playback speed multiplier.
    """
    text: str
    voice: str
    language_code: str
    audio_encoding: str
    speaking_rate: float

    def to_payload(self) -> Dict[str, Any]:
        return {
            "input": {"text": self.text},
            "voice": {"languageCode": self.language_code, "name": self.voice},
            "audioConfig": {
                "audioEncoding": self.audio_encoding,
                "speakingRate": self.speaking_rate,
            },
        }


def decode_audio_content(body: bytes) -> bytes:
    """
    Extract and decode audioContent from a provider response body.

    Raises:
        UpstreamResponseError: Body is not a JSON object or audioContent is
            missing/empty. The provider's error message is included when
            present.
        AudioDecodeError: audioContent is not valid base64.
    """
    try:
        result = json.loads(body)
    except ValueError as e:
        raise UpstreamResponseError(f"Failed to parse response: {e}") from e

    if not isinstance(result, dict):
        raise UpstreamResponseError("Failed to parse response: expected a JSON object")

    content = result.get("audioContent")
    if not content:
        upstream = result.get("error")
        if isinstance(upstream, dict) and upstream.get("message"):
            raise UpstreamResponseError(
                f"No audio content in response: {upstream['message']}",
                {"upstream_status": upstream.get("status"), "upstream_code": upstream.get("code")},
            )
        raise UpstreamResponseError("No audio content in response")

    if not isinstance(content, str):
        raise AudioDecodeError("Failed to decode audio: audioContent is not a string")

    try:
        return base64.b64decode(content, validate=True)
    except (binascii.Error, ValueError) as e:
        raise AudioDecodeError(f"Failed to decode audio: {e}") from e


class SynthesisClient:
    """
    Synchronous client for the synthesis provider.

    The underlying httpx.Client is created once and shared across request
    threads (httpx clients are thread-safe). Pass `transport` to substitute
    the network, e.g. httpx.MockTransport in tests.
    """

    def __init__(
        self,
        config: ProviderConfig,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        self._config = config
        self._http = httpx.Client(
            timeout=config.timeout_s,
            transport=transport,
            headers={"X-Goog-Api-Key": config.api_key},
        )

    @property
    def config(self) -> ProviderConfig:
        return self._config

    def build_request(self, text: str, voice: Optional[str] = None) -> SynthesisRequest:
        """Build a request with the fixed language, encoding and rate."""
        return SynthesisRequest(
            text=text,
            voice=voice or self._config.default_voice,
            language_code=self._config.language_code,
            audio_encoding=self._config.audio_encoding,
            speaking_rate=self._config.speaking_rate,
        )

    def synthesize(self, request: SynthesisRequest) -> bytes:
        """
        Call the provider and return decoded audio bytes.

        Raises:
            UpstreamTransportError: Network or timeout failure.
            UpstreamResponseError: Unusable response body.
            AudioDecodeError: Invalid base64 audio.
        """
        payload = request.to_payload()
        debug(_LOG, "upstream_payload", payload=json.dumps(payload, ensure_ascii=False))

        with timeit("upstream_call") as t:
            try:
                resp = self._http.post(self._config.endpoint, json=payload)
            except httpx.HTTPError as e:
                warn(_LOG, "upstream_transport_error", error=str(e), error_type=type(e).__name__)
                raise UpstreamTransportError(
                    f"TTS request failed: {e}",
                    {"error_type": type(e).__name__},
                ) from e

        verbose(_LOG, "stage", event="upstream_call", status=resp.status_code,
                bytes=len(resp.content), seconds=round(t.seconds, 4))
        return decode_audio_content(resp.content)

    def close(self) -> None:
        self._http.close()
