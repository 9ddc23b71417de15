"""
TTS Proxy API Routes.

Endpoints:
    GET /tts                - Cached synthesis (returns MP3 audio)
    GET /audio/{filename}   - Download an already cached MP3
    GET /health             - Health check for load balancers and probes
    GET /metrics            - Prometheus metrics

Request Flow (/tts):
    1. Generate unique request ID for tracing
    2. Parse the reset flag and output format
    3. Call TTSService.synthesize() (validation, cache, provider, store)
    4. Return audio (or JSON metadata) with cache headers

Error Handling:
    All errors are returned as JSON with standardized format:
    {
        "ok": false,
        "error": "<ERROR_CODE>",
        "message": "<human readable message>",
        "request_id": "<request id>"
    }

    Validation codes (TEXT_*, MODEL_*) map to 400; provider, decode and
    storage failures map to 500.

Example Usage:
    curl -o hello.mp3 "http://localhost:8080/tts?text=你好"
    curl "http://localhost:8080/tts?text=你好&format=json"
    curl -o hello.mp3 "http://localhost:8080/tts?text=你好&reset=true"

See Also:
    - api/schemas.py: Response Pydantic models
    - services/tts_service.py: Core cache/synthesis logic
"""
from __future__ import annotations

import uuid
from typing import Optional
from urllib.parse import quote

from fastapi import APIRouter, Depends, Query, Response
from fastapi.responses import JSONResponse

from tts_proxy.api.dependencies import get_tts_service
from tts_proxy.api.schemas import ErrorResponse, HealthResponse, TTSFileInfo
from tts_proxy.core.logging import exception, get_logger, set_request_id, warn
from tts_proxy.core.metrics import metrics
from tts_proxy.services.tts_service import (
    ErrorCode,
    SynthesizeRequest,
    TTSError,
    TTSService,
)
from tts_proxy.tts.storage import UnsafePathError, cache_path, try_load_audio

router = APIRouter()

_LOG = get_logger("tts-proxy.api")

AUDIO_MEDIA_TYPE = "audio/mpeg"
_TRUE_FLAGS = frozenset({"true", "1", "yes"})


def parse_reset(value: Optional[str]) -> bool:
    """Interpret the reset query parameter ("true", "1" or "yes")."""
    return value is not None and value.strip().lower() in _TRUE_FLAGS


def _error_response(error: TTSError, request_id: str) -> JSONResponse:
    """
    Create a standardized JSON error response from a TTSError.

    Example Response:
        {
            "ok": false,
            "error": "TEXT_REQUIRED",
            "message": "Missing ?text= parameter",
            "request_id": "abc123"
        }
    """
    body = error.to_dict()
    body["request_id"] = request_id
    return JSONResponse(
        status_code=error.status_code,
        content=body,
        headers={"X-Request-Id": request_id},
    )


@router.get(
    "/tts",
    response_class=Response,
    responses={
        200: {"content": {AUDIO_MEDIA_TYPE: {}, "application/json": {}}},
        400: {"model": ErrorResponse},
        500: {"model": ErrorResponse},
    },
)
def tts(
    text: Optional[str] = Query(None, description="Text to speak"),
    model: Optional[str] = Query(None, description="Voice name override"),
    reset: Optional[str] = Query(None, description="'true' bypasses and overwrites the cache"),
    fmt: str = Query("audio", alias="format", description="'audio' (default) or 'json'"),
    service: TTSService = Depends(get_tts_service),
):
    """
    Cached synthesis endpoint.

    Returns:
        Response: MP3 audio bytes with headers:
            - X-Request-Id: Unique request identifier for tracing
            - X-Cache: "hit" or "miss"
            - X-Cache-Key: Cache filename
            - X-Bytes: Size of audio data in bytes
        or, with format=json, a TTSFileInfo body.

    Raises:
        400: Missing text, invalid script/length, invalid model
        500: Provider, decode or storage failure
    """
    rid = str(uuid.uuid4())[:12]
    set_request_id(rid)

    try:
        result = service.synthesize(
            SynthesizeRequest(text=text, model=model, reset=parse_reset(reset)),
            rid,
        )
    except TTSError as e:
        metrics.record_request(e.status_code)
        return _error_response(e, rid)
    except Exception as e:
        # Log internally but don't expose details
        exception(_LOG, "unhandled_error", error=str(e))
        metrics.record_request(500)
        return _error_response(TTSError("Internal server error", ErrorCode.INTERNAL_ERROR), rid)

    metrics.record_request(200)
    headers = {
        "X-Request-Id": rid,
        "X-Cache": result.cache_status,
        # Percent-encoded: header values must be latin-1
        "X-Cache-Key": quote(result.key, safe="-_."),
        "X-Bytes": str(len(result.audio_bytes)),
    }

    if fmt.strip().lower() == "json":
        info = TTSFileInfo(
            file=str(result.path),
            key=result.key,
            cache=result.cache_status,
            bytes=len(result.audio_bytes),
            request_id=rid,
        )
        return JSONResponse(content=info.model_dump(), headers=headers)

    return Response(content=result.audio_bytes, media_type=AUDIO_MEDIA_TYPE, headers=headers)


@router.get("/audio/{filename}", response_class=Response)
def audio_file(filename: str, service: TTSService = Depends(get_tts_service)):
    """
    Serve an existing cache file by name.

    Only plain .mp3 names that resolve directly inside the output
    directory are served; anything else is a 404.
    """
    try:
        path = cache_path(service.output_dir, filename)
    except UnsafePathError:
        warn(_LOG, "audio_path_rejected", filename=filename)
        return JSONResponse(
            status_code=404,
            content={"ok": False, "error": "NOT_FOUND", "message": "Audio file not found"},
        )

    data = try_load_audio(path)
    if data is None:
        return JSONResponse(
            status_code=404,
            content={"ok": False, "error": "NOT_FOUND", "message": "Audio file not found"},
        )
    return Response(content=data, media_type=AUDIO_MEDIA_TYPE, headers={"X-Bytes": str(len(data))})


@router.get("/health", response_model=HealthResponse)
def health(service: TTSService = Depends(get_tts_service)):
    """
    Health check endpoint for load balancers and orchestration.

    Returns:
        dict: Health information from TTSService.
    """
    return service.get_health_info()


@router.get("/metrics")
def prometheus_metrics():
    """
    Prometheus metrics endpoint.

    Returns:
        Response: Prometheus text format metrics.
    """
    content, content_type = metrics.get_metrics_response()
    return Response(content=content, media_type=content_type)
