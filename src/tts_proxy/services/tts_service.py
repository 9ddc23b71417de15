"""
TTSService - Cached Synthesis Pipeline.

This module provides the central TTSService class which is the single source
of truth for proxy operations. The /tts route and the CLI both use it.

Architecture:
    Request → Validate → Cache Key → Cache Lookup → Provider Call → Store → Response

Key Components:
    - Validators: Reject bad text/model before any I/O
    - Storage: One MP3 per cache key in the output directory
    - Provider client: Google TTS REST call + base64 decode

Error Handling:
    - TTSError: Base exception with standardized error codes
    - InvalidInputError: Missing or invalid text/model (HTTP 400)
    - UpstreamTransportError: Provider unreachable or timed out (HTTP 500)
    - UpstreamDecodeError: Provider response unusable (HTTP 500)
    - AudioDecodeError: audioContent not valid base64 (HTTP 500)
    - StorageError: Cache file could not be written (HTTP 500)

Example:
    >>> from tts_proxy.core.config import load_settings
    >>> from tts_proxy.services import TTSService, SynthesizeRequest
    >>>
    >>> service = TTSService(load_settings().get_proxy_config())
    >>> result = service.synthesize(SynthesizeRequest(text="你好"), request_id="test-123")
    >>> print(result.cache_status, result.path)
"""
from __future__ import annotations

import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional

from tts_proxy import __version__
from tts_proxy.core.config import ProxyConfig, Settings
from tts_proxy.core.logging import debug, fail, get_logger, info, success, verbose, warn
from tts_proxy.core.metrics import metrics
from tts_proxy.services.validators import ValidationError, validate_model, validate_text
from tts_proxy.tts import client as tts_client
from tts_proxy.tts import storage
from tts_proxy.utils.timeit import timeit

_LOG = get_logger("tts-proxy.service")


# =============================================================================
# Error Codes and Exceptions
# =============================================================================

class ErrorCode:
    """
    Standardized error codes for API responses.

    These codes are used in TTSError exceptions and returned in API
    error responses for consistent client handling.
    """
    TEXT_REQUIRED = "TEXT_REQUIRED"                 # Missing ?text=
    TEXT_TOO_LONG = "TEXT_TOO_LONG"                 # Over max_chars
    TEXT_INVALID_SCRIPT = "TEXT_INVALID_SCRIPT"     # Non-Han characters
    MODEL_INVALID = "MODEL_INVALID"                 # Bad voice name
    MODEL_TOO_LONG = "MODEL_TOO_LONG"               # Voice name too long
    UPSTREAM_TRANSPORT = "UPSTREAM_TRANSPORT"       # Provider unreachable
    UPSTREAM_DECODE = "UPSTREAM_DECODE"             # Provider body unusable
    AUDIO_DECODE = "AUDIO_DECODE"                   # Bad base64 audio
    STORAGE_FAILED = "STORAGE_FAILED"               # Cache write failed
    INTERNAL_ERROR = "INTERNAL_ERROR"               # Unexpected error


# Codes answered with 400; everything else is a server-side failure
CLIENT_ERROR_CODES = frozenset({
    ErrorCode.TEXT_REQUIRED,
    ErrorCode.TEXT_TOO_LONG,
    ErrorCode.TEXT_INVALID_SCRIPT,
    ErrorCode.MODEL_INVALID,
    ErrorCode.MODEL_TOO_LONG,
})


class TTSError(Exception):
    """
    Base exception for proxy errors.

    Provides standardized error format for API responses with
    error code, message, and optional details.

    Attributes:
        message: Human-readable error message.
        code: Error code from ErrorCode class.
        details: Optional dictionary with additional context.
    """
    def __init__(self, message: str, code: str = ErrorCode.INTERNAL_ERROR, details: Optional[Dict] = None):
        self.message = message
        self.code = code
        self.details = details or {}
        super().__init__(message)

    @property
    def status_code(self) -> int:
        """HTTP status for this error: 400 for bad input, else 500."""
        return 400 if self.code in CLIENT_ERROR_CODES else 500

    def to_dict(self) -> Dict[str, Any]:
        """Convert to standardized error response dict for API."""
        result = {
            "ok": False,
            "error": self.code,
            "message": self.message,
        }
        if self.details:
            result["details"] = self.details
        return result


class InvalidInputError(TTSError):
    """Raised when text or model fails validation."""
    def __init__(self, message: str, code: str = ErrorCode.TEXT_REQUIRED, details: Optional[Dict] = None):
        super().__init__(message, code, details)


class UpstreamTransportError(TTSError):
    """Raised when the provider call fails before a response arrives."""
    def __init__(self, message: str, details: Optional[Dict] = None):
        super().__init__(message, ErrorCode.UPSTREAM_TRANSPORT, details)


class UpstreamDecodeError(TTSError):
    """Raised when the provider response is not usable JSON with audio."""
    def __init__(self, message: str, details: Optional[Dict] = None):
        super().__init__(message, ErrorCode.UPSTREAM_DECODE, details)


class AudioDecodeError(TTSError):
    """Raised when audioContent is not valid base64."""
    def __init__(self, message: str, details: Optional[Dict] = None):
        super().__init__(message, ErrorCode.AUDIO_DECODE, details)


class StorageError(TTSError):
    """Raised when the cache file cannot be written."""
    def __init__(self, message: str, details: Optional[Dict] = None):
        super().__init__(message, ErrorCode.STORAGE_FAILED, details)


# Provider client failure -> service error
_CLIENT_ERRORS = (
    (tts_client.UpstreamTransportError, UpstreamTransportError),
    (tts_client.UpstreamResponseError, UpstreamDecodeError),
    (tts_client.AudioDecodeError, AudioDecodeError),
)


# =============================================================================
# Request/Response Dataclasses
# =============================================================================

@dataclass
class SynthesizeRequest:
    """
    Request for cached synthesis.

    Attributes:
        text: Text to speak (validated by the service).
        model: Voice name override (optional, uses default voice).
        reset: Skip the cache lookup and overwrite the cached file.
    """
    text: Optional[str]
    model: Optional[str] = None
    reset: bool = False


@dataclass
class ResolvedRequest:
    """A validated request with its cache location."""
    text: str
    model: str
    key: str
    path: Path


@dataclass
class SynthesizeResult:
    """
    Result of cached synthesis.

    Attributes:
        audio_bytes: MP3 audio data.
        path: Cache file holding the audio.
        key: Cache filename (sanitized "<model>_<text>.mp3").
        cache_status: "hit" or "miss" (a reset is reported as a miss).
        request_id: Request ID for tracing.
        total_seconds: Total processing time.
        timings: Per-stage timing breakdown.
    """
    audio_bytes: bytes
    path: Path
    key: str
    cache_status: str  # "hit", "miss"
    request_id: str
    total_seconds: float
    timings: Dict[str, float] = field(default_factory=dict)


class _Counters:
    """Thread-safe in-process counters reported by /health."""

    def __init__(self):
        self._lock = threading.Lock()
        self._values = {"hits": 0, "misses": 0, "upstream_calls": 0, "errors": 0}

    def incr(self, name: str) -> None:
        with self._lock:
            self._values[name] += 1

    def snapshot(self) -> Dict[str, int]:
        with self._lock:
            return dict(self._values)


# =============================================================================
# Main Service Class
# =============================================================================

class TTSService:
    """
    Cached synthesis service.

    Holds only read-only configuration, the shared provider client and
    thread-safe counters, so one instance serves every request thread.
    Concurrent misses for the same key each call the provider; the atomic
    rename in storage.save_audio() keeps the cache file whole.

    Usage:
        config = load_settings().get_proxy_config()
        service = TTSService(config)

        result = service.synthesize(
            SynthesizeRequest(text="你好"),
            request_id="req-123"
        )
    """

    def __init__(self, config: ProxyConfig, client: Optional[tts_client.SynthesisClient] = None):
        """
        Initialize the service.

        Args:
            config: Validated configuration.
            client: Provider client; built from config.provider when None.

        Raises:
            tts_proxy.tts.storage.StorageError: If the output directory
                cannot be created.
        """
        self._config = config
        self._output_dir = storage.ensure_output_dir(config.storage.output_dir)
        self._client = client or tts_client.SynthesisClient(config.provider)
        self._text_preview_chars = config.logging.text_preview_chars
        self._counters = _Counters()

        info(_LOG, "service_ready", output_dir=str(self._output_dir),
             default_voice=config.provider.default_voice,
             script=config.validation.script, max_chars=config.validation.max_chars)

    # =========================================================================
    # Properties
    # =========================================================================

    @property
    def config(self) -> ProxyConfig:
        return self._config

    @property
    def output_dir(self) -> Path:
        return self._output_dir

    @property
    def client(self) -> tts_client.SynthesisClient:
        return self._client

    def stats(self) -> Dict[str, int]:
        """Return hits, misses, upstream_calls and errors since startup."""
        return self._counters.snapshot()

    # =========================================================================
    # Request Resolution
    # =========================================================================

    def resolve(self, text: Optional[str], model: Optional[str] = None) -> ResolvedRequest:
        """
        Validate inputs and compute the cache location.

        Raises:
            InvalidInputError: If text or model is invalid.
            StorageError: If the key cannot be placed inside output_dir.
        """
        try:
            clean_text = validate_text(
                text,
                max_chars=self._config.validation.max_chars,
                script=self._config.validation.script,
            )
            voice = validate_model(model) or self._config.provider.default_voice
        except ValidationError as e:
            raise InvalidInputError(e.message, e.code)

        key = storage.make_cache_key(clean_text, voice, self._config.storage.max_filename_chars)
        try:
            path = storage.cache_path(self._output_dir, key)
        except storage.UnsafePathError as e:
            raise StorageError(str(e))

        return ResolvedRequest(text=clean_text, model=voice, key=key, path=path)

    def is_cached(self, resolved: ResolvedRequest) -> bool:
        return resolved.path.is_file()

    # =========================================================================
    # Provider Call
    # =========================================================================

    def _call_provider(self, text: str, voice: str) -> bytes:
        """
        Synthesize via the provider, mapping client errors to TTSError.

        Raises:
            UpstreamTransportError, UpstreamDecodeError, AudioDecodeError
        """
        self._counters.incr("upstream_calls")
        request = self._client.build_request(text, voice)
        try:
            with timeit("upstream_call") as t_up:
                audio = self._client.synthesize(request)
        except tts_client.SynthesisClientError as e:
            for client_exc, service_exc in _CLIENT_ERRORS:
                if isinstance(e, client_exc):
                    err = service_exc(e.message, e.details)
                    break
            else:
                err = TTSError(e.message, ErrorCode.INTERNAL_ERROR, e.details)
            metrics.record_upstream(err.code, t_up.seconds)
            warn(_LOG, "upstream_failed", error=e.message, code=err.code)
            raise err from e

        metrics.record_upstream("ok", t_up.seconds)
        info(_LOG, "upstream_call", voice=voice, bytes=len(audio), seconds=round(t_up.seconds, 3))
        return audio

    # =========================================================================
    # Public API: synthesize()
    # =========================================================================

    def synthesize(self, request: SynthesizeRequest, request_id: str) -> SynthesizeResult:
        """
        Return audio for a request, from the cache or the provider.

        Pipeline:
            1. Validate text and model
            2. Derive the cache key and path
            3. Read the cached file (skipped when reset is set)
            4. On a miss, call the provider and decode the audio
            5. Atomically write the file
            6. Return audio with metadata

        Args:
            request: SynthesizeRequest with text, model and reset flag.
            request_id: Unique ID for request tracing.

        Returns:
            SynthesizeResult with MP3 bytes and metadata.

        Raises:
            InvalidInputError: Bad text or model (no I/O performed).
            UpstreamTransportError, UpstreamDecodeError, AudioDecodeError:
                Provider failures (nothing written).
            StorageError: Write failure (no partial file left).
        """
        timings: Dict[str, float] = {}

        try:
            with timeit("request_total") as total_t:
                resolved = self.resolve(request.text, request.model)

                preview = resolved.text[:self._text_preview_chars] if self._text_preview_chars > 0 else ""
                info(_LOG, "request", chars=len(resolved.text), text_preview=preview,
                     model=resolved.model, reset=request.reset)
                debug(_LOG, "resolved", cache_key=resolved.key, path=str(resolved.path))

                # ─────────────────────────────────────────────────────────────
                # Cache lookup
                # ─────────────────────────────────────────────────────────────
                audio: Optional[bytes] = None
                if request.reset:
                    metrics.record_cache("reset")
                    info(_LOG, "reset", cache="reset", key=resolved.key)
                else:
                    with timeit("cache_lookup") as t_cache:
                        audio = storage.try_load_audio(resolved.path)
                    timings["cache_lookup"] = t_cache.seconds
                    verbose(_LOG, "stage", event="cache_lookup", seconds=round(t_cache.seconds, 4))

                if audio is not None:
                    cache_status = "hit"
                    self._counters.incr("hits")
                    metrics.record_cache("hit")
                    info(_LOG, "hit", cache="hit", key=resolved.key, bytes=len(audio))
                else:
                    cache_status = "miss"
                    self._counters.incr("misses")
                    if not request.reset:
                        metrics.record_cache("miss")
                        info(_LOG, "miss", cache="miss", key=resolved.key)

                    # ─────────────────────────────────────────────────────────
                    # Provider call + store
                    # ─────────────────────────────────────────────────────────
                    with timeit("upstream") as t_up:
                        audio = self._call_provider(resolved.text, resolved.model)
                    timings["upstream"] = t_up.seconds

                    with timeit("cache_store") as t_store:
                        try:
                            storage.save_audio(resolved.path, audio)
                        except storage.StorageError as e:
                            raise StorageError(str(e), {"key": resolved.key}) from e
                    timings["cache_store"] = t_store.seconds
                    verbose(_LOG, "stage", event="cache_store", seconds=round(t_store.seconds, 4))

        except TTSError as e:
            self._counters.incr("errors")
            fail(_LOG, "request_failed", error=e.message, code=e.code)
            raise
        except Exception as e:
            self._counters.incr("errors")
            fail(_LOG, "request_failed", error=str(e), error_type=type(e).__name__)
            raise TTSError(
                f"Unexpected error: {e}",
                ErrorCode.INTERNAL_ERROR,
                {"error_type": type(e).__name__},
            ) from e

        total_s = total_t.seconds
        source = "cache" if cache_status == "hit" else "upstream"
        metrics.record_audio(source, len(audio))
        success(_LOG, "done", cache=cache_status, bytes=len(audio), seconds=round(total_s, 3))

        return SynthesizeResult(
            audio_bytes=audio,
            path=resolved.path,
            key=resolved.key,
            cache_status=cache_status,
            request_id=request_id,
            total_seconds=total_s,
            timings=timings,
        )

    # =========================================================================
    # Health Check
    # =========================================================================

    def get_health_info(self) -> Dict[str, Any]:
        """
        Get health and status information.

        Returns a dictionary with:
            - Service status and version
            - Provider info (never the API key)
            - Validation policy
            - Storage info
            - In-process counters
        """
        provider = self._config.provider
        return {
            "ok": True,
            "version": __version__,
            "provider": {
                "endpoint": provider.endpoint,
                "language_code": provider.language_code,
                "default_voice": provider.default_voice,
                "audio_encoding": provider.audio_encoding,
                "speaking_rate": provider.speaking_rate,
            },
            "validation": {
                "script": self._config.validation.script,
                "max_chars": self._config.validation.max_chars,
            },
            "output_dir": str(self._output_dir),
            "storage": storage.get_storage_info(self._output_dir),
            "stats": self.stats(),
        }

    def close(self) -> None:
        self._client.close()


# =============================================================================
# Global Service Singleton
# =============================================================================

_service: Optional[TTSService] = None
_service_lock = threading.Lock()


def get_service(settings: Settings) -> TTSService:
    """
    Get or create the global TTSService instance.

    Thread-safe lazy singleton. The service is created on first call
    and reused for subsequent calls.

    Raises:
        ConfigValidationError: If settings are invalid (e.g. no API key).
        tts_proxy.tts.storage.StorageError: If output_dir is unusable.
    """
    global _service
    if _service is None:
        with _service_lock:
            if _service is None:
                _service = TTSService(settings.get_proxy_config())
    return _service


def reset_service() -> None:
    """
    Reset the global service instance.

    Used primarily for testing to ensure clean state between tests.
    """
    global _service
    with _service_lock:
        if _service is not None:
            _service.close()
        _service = None
