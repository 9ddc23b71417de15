"""
API Response Schemas.

This module defines Pydantic models for the proxy's JSON responses.
Request parameters are plain query strings, so there are no request
bodies to model.

Models:
    TTSFileInfo: Body of GET /tts?format=json
    ErrorResponse: Standard error body for every failed request
    HealthResponse: Body of GET /health

Example Response (format=json):
    {
        "ok": true,
        "file": "audio/cmn-CN-Chirp3-HD-Achernar_你好.mp3",
        "key": "cmn-CN-Chirp3-HD-Achernar_你好.mp3",
        "cache": "miss",
        "bytes": 5184,
        "request_id": "3f1c9a0b2d4e"
    }
"""
from __future__ import annotations

from typing import Dict, Literal

from pydantic import BaseModel, Field


class TTSFileInfo(BaseModel):
    """
    Cache metadata returned instead of audio when format=json.

    The audio itself can be fetched from /audio/{key}.
    """
    ok: bool = True
    file: str = Field(..., description="Path of the cached MP3 on the server")
    key: str = Field(..., description="Cache filename")
    cache: Literal["hit", "miss"] = Field(..., description="Cache result")
    bytes: int = Field(..., description="Audio size in bytes")
    request_id: str = Field(..., description="Request identifier for tracing")


class ErrorResponse(BaseModel):
    ok: bool = False
    error: str = Field(..., description="Machine-readable error code")
    message: str = Field(..., description="Human-readable description")
    request_id: str | None = None


class ProviderInfo(BaseModel):
    endpoint: str
    language_code: str
    default_voice: str
    audio_encoding: str
    speaking_rate: float


class ValidationInfo(BaseModel):
    script: str
    max_chars: int


class HealthResponse(BaseModel):
    """
    Service status for probes and operators.

    Attributes:
        provider: Fixed synthesis parameters (the API key is never included).
        storage: file_count and total_bytes of the cache directory.
        stats: hits, misses, upstream_calls and errors since startup.
    """
    ok: bool = True
    version: str
    provider: ProviderInfo
    validation: ValidationInfo
    output_dir: str
    storage: Dict[str, int]
    stats: Dict[str, int]
