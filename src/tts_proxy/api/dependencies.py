"""
FastAPI Dependency Injection Providers.

Dependency hierarchy:
    1. get_settings() - Loads and caches application configuration
    2. get_tts_service() - Returns the TTSService bound to the app

Lifecycle:
    1. Application startup (main.py)
       └── init_service() stores a TTSService on app.state
           └── built from get_settings() unless one was passed to create_app()

    2. Request handling
       └── Route handler receives TTSService via Depends()
           └── Same instance used for all requests

See Also:
    - core/config.py: Settings class and load_settings()
    - services/tts_service.py: TTSService class and get_service()
    - main.py: Application factory
"""
from __future__ import annotations

from functools import lru_cache

from fastapi import FastAPI, Request

from tts_proxy.core.config import Settings, load_settings
from tts_proxy.services.tts_service import TTSService, get_service


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """
    Load and cache application settings.

    Reads .env, then $TTS_PROXY_SETTINGS or config/settings.yaml (optional),
    then the process environment. Settings are immutable once loaded.
    """
    return load_settings()


def init_service(app: FastAPI) -> TTSService:
    """
    Attach the service to the app if it does not have one yet.

    Raises:
        ConfigValidationError: If configuration is invalid (missing key).
        tts_proxy.tts.storage.StorageError: If output_dir is unusable.
    """
    service = getattr(app.state, "tts_service", None)
    if service is None:
        service = get_service(get_settings())
        app.state.tts_service = service
    return service


def get_tts_service(request: Request) -> TTSService:
    """
    Get the TTSService for the current app.

    Example:
        @router.get("/tts")
        def tts(text: str, service: TTSService = Depends(get_tts_service)):
            result = service.synthesize(...)
    """
    return init_service(request.app)
