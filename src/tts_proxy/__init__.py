"""
tts-proxy: Caching Text-to-Speech Proxy.

A small HTTP service that sits in front of the Google Cloud Text-to-Speech
REST API and keeps every synthesized clip as an MP3 on local disk, so each
(text, voice) pair is paid for once.

Key Features:
    - GET /tts?text=你好 returns audio/mpeg, from disk when cached
    - ?reset=true bypasses and overwrites the cached file
    - Han-only, length-limited input validation (configurable)
    - Filesystem-safe cache keys with atomic writes
    - Prometheus metrics and structured logging

Example Usage:
    >>> from tts_proxy.core.config import load_settings
    >>> from tts_proxy.services import TTSService, SynthesizeRequest
    >>>
    >>> service = TTSService(load_settings().get_proxy_config())
    >>> result = service.synthesize(SynthesizeRequest(text="你好"), request_id="cli")
    >>> print(result.path)
"""

__version__ = "0.1.0"
__all__ = ["__version__"]
