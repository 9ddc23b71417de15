"""
FastAPI REST API Layer for tts-proxy.

This package defines all HTTP endpoints:
    - routes.py: /tts, /audio/{filename}, /health, /metrics
    - schemas.py: Response Pydantic models
    - dependencies.py: FastAPI dependency injection
"""
