"""
FastAPI Application Entry Point.

This module creates and configures the FastAPI application instance for the
tts-proxy service. It sets up routing, logging, and the startup/shutdown
lifespan.

Startup builds the TTSService from settings: a missing GOOGLE_API_KEY or an
unusable OUTPUT_DIR aborts startup instead of failing the first request.

Usage:
    # Run with uvicorn
    uvicorn tts_proxy.main:app --host 0.0.0.0 --port 8080

    # Or through the CLI (reads HOST/PORT)
    tts-proxy --serve
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI

from tts_proxy import __version__
from tts_proxy.api.dependencies import init_service
from tts_proxy.api.routes import router
from tts_proxy.core.logging import configure_logging, get_logger, info
from tts_proxy.services.tts_service import TTSService, reset_service

_LOG = get_logger("tts-proxy.main")


def create_app(service: Optional[TTSService] = None) -> FastAPI:
    """
    Create and configure the FastAPI application.

    Args:
        service: Pre-built service (tests, embedding). When None, one is
            built from settings during startup and closed on shutdown.

    Returns:
        FastAPI: Configured application instance ready to serve requests.
    """
    # Initialize structured logging (reads TTS_PROXY_LOG_LEVEL env var)
    configure_logging()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        owned = getattr(app.state, "tts_service", None) is None
        svc = init_service(app)
        info(_LOG, "startup", version=__version__, output_dir=str(svc.output_dir))

        yield

        if owned:
            reset_service()
            app.state.tts_service = None
        info(_LOG, "shutdown")

    app = FastAPI(title="tts-proxy", version=__version__, lifespan=lifespan)
    if service is not None:
        app.state.tts_service = service

    app.include_router(router)    # /tts, /audio, /health, /metrics

    return app


# Global application instance for ASGI servers (uvicorn, gunicorn, etc.)
app = create_app()
