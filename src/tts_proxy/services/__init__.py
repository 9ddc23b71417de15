"""
tts-proxy Services Layer.

This package provides the business logic layer between the API layer and
the provider/storage layer.

Components:
    - tts_service.py: TTSService class (cache hit/miss orchestrator)
    - validators.py: Input validation functions

The TTSService class handles:
    - Request validation
    - Cache key derivation and disk lookup
    - Provider calls on a miss
    - Error mapping and reporting
"""
from .tts_service import (
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
)

__all__ = [
    "TTSService",
    "SynthesizeRequest",
    "SynthesizeResult",
    "TTSError",
    "InvalidInputError",
    "UpstreamTransportError",
    "UpstreamDecodeError",
    "AudioDecodeError",
    "StorageError",
    "ErrorCode",
]
