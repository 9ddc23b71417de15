"""
Configuration Management for tts-proxy.

This module provides centralized configuration handling with:
    - Default values (Defaults class)
    - Dataclass-based configuration objects
    - Optional YAML file loading
    - .env loading and environment variable overrides
    - Validation with meaningful error messages

Configuration Hierarchy (highest priority first):
    1. Environment variables (GOOGLE_API_KEY, OUTPUT_DIR, PORT, ...)
    2. .env file in the working directory (never overrides real env vars)
    3. YAML config file (config/settings.yaml, optional)
    4. Defaults class values

Example settings.yaml:
    provider:
      default_voice: cmn-CN-Chirp3-HD-Achernar
      speaking_rate: 0.9
      timeout_s: 30

    storage:
      output_dir: ./audio

    validation:
      script: han
      max_chars: 5

    server:
      port: 8080

The configuration is built once at process start (ProxyConfig.from_settings)
and passed by reference into TTSService. Nothing here is mutated afterwards.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional
import os
import yaml
from dotenv import find_dotenv, load_dotenv


class ConfigValidationError(Exception):
    """
    Raised when configuration validation fails.

    Also raised for a missing provider credential, so the process
    refuses to start without one.
    """
    pass


class Defaults:
    """
    Centralized default configuration values.

    Sections:
        - Provider: Remote synthesis API and voice selection
        - Storage: Flat MP3 cache directory
        - Validation: Accepted text for /tts
        - Server: Listening address
        - Logging: Log level and previews
    """

    # ─────────────────────────────────────────────────────────────────────────
    # Provider (Google Cloud Text-to-Speech)
    # ─────────────────────────────────────────────────────────────────────────
    PROVIDER_ENDPOINT = "https://texttospeech.googleapis.com/v1/text:synthesize"
    PROVIDER_LANGUAGE_CODE = "cmn-CN"
    PROVIDER_DEFAULT_VOICE = "cmn-CN-Chirp3-HD-Achernar"
    PROVIDER_AUDIO_ENCODING = "MP3"
    PROVIDER_SPEAKING_RATE = 0.9
    PROVIDER_TIMEOUT_S = 30.0

    # ─────────────────────────────────────────────────────────────────────────
    # Storage (one MP3 file per cache key)
    # ─────────────────────────────────────────────────────────────────────────
    STORAGE_OUTPUT_DIR = "./audio"
    STORAGE_MAX_FILENAME_CHARS = 50

    # ─────────────────────────────────────────────────────────────────────────
    # Validation
    # ─────────────────────────────────────────────────────────────────────────
    VALIDATION_SCRIPT = "han"       # "han" or "any"
    VALIDATION_MAX_CHARS = 5

    # ─────────────────────────────────────────────────────────────────────────
    # Server
    # ─────────────────────────────────────────────────────────────────────────
    SERVER_HOST = "0.0.0.0"
    SERVER_PORT = 8080

    # ─────────────────────────────────────────────────────────────────────────
    # Logging
    # ─────────────────────────────────────────────────────────────────────────
    LOGGING_TEXT_PREVIEW_CHARS = 40
    LOGGING_LEVEL = 2               # 1=MINIMAL, 2=NORMAL, 3=VERBOSE, 4=DEBUG


SUPPORTED_SCRIPTS = ("han", "any")


@dataclass
class ProviderConfig:
    """
    Synthesis provider configuration.

    language_code, audio_encoding and speaking_rate are fixed per process;
    only the voice can be overridden per request.
    """
    api_key: str = ""
    endpoint: str = Defaults.PROVIDER_ENDPOINT
    language_code: str = Defaults.PROVIDER_LANGUAGE_CODE
    default_voice: str = Defaults.PROVIDER_DEFAULT_VOICE
    audio_encoding: str = Defaults.PROVIDER_AUDIO_ENCODING
    speaking_rate: float = Defaults.PROVIDER_SPEAKING_RATE
    timeout_s: float = Defaults.PROVIDER_TIMEOUT_S


@dataclass
class StorageConfig:
    """Disk cache configuration."""
    output_dir: str = Defaults.STORAGE_OUTPUT_DIR
    max_filename_chars: int = Defaults.STORAGE_MAX_FILENAME_CHARS


@dataclass
class ValidationConfig:
    """
    Text validation policy for /tts.

    script="han" accepts only Han ideographs (the strict variant);
    script="any" only enforces non-empty text and max_chars.
    """
    script: str = Defaults.VALIDATION_SCRIPT
    max_chars: int = Defaults.VALIDATION_MAX_CHARS


@dataclass
class ServerConfig:
    host: str = Defaults.SERVER_HOST
    port: int = Defaults.SERVER_PORT


@dataclass
class LoggingConfig:
    """
    Logging configuration.

    Log levels:
        1 = MINIMAL: Startup, shutdown, critical errors only
        2 = NORMAL: Request lifecycle, cache status (default)
        3 = VERBOSE: Per-stage timing, detailed flow
        4 = DEBUG: Internal state, full tracing
    """
    text_preview_chars: int = Defaults.LOGGING_TEXT_PREVIEW_CHARS
    level: int = Defaults.LOGGING_LEVEL


@dataclass
class ProxyConfig:
    """
    Validated configuration for TTSService.

    Usage:
        settings = load_settings()
        config = ProxyConfig.from_settings(settings)
        print(config.storage.output_dir)
    """
    provider: ProviderConfig = field(default_factory=ProviderConfig)
    storage: StorageConfig = field(default_factory=StorageConfig)
    validation: ValidationConfig = field(default_factory=ValidationConfig)
    server: ServerConfig = field(default_factory=ServerConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    @classmethod
    def from_settings(cls, settings: "Settings", require_api_key: bool = True) -> "ProxyConfig":
        """
        Create ProxyConfig from Settings with validation.

        Args:
            settings: Raw Settings object (YAML + env overrides).
            require_api_key: Fail when no provider credential is configured.
                The CLI dry-run disables this.

        Returns:
            Validated ProxyConfig instance.

        Raises:
            ConfigValidationError: If any value fails validation.
        """
        raw = settings.raw

        # ─────────────────────────────────────────────────────────────────────
        # Provider configuration
        # ─────────────────────────────────────────────────────────────────────
        provider_raw = raw.get("provider", {}) or {}
        provider = ProviderConfig(
            api_key=str(provider_raw.get("api_key") or ""),
            endpoint=str(provider_raw.get("endpoint", Defaults.PROVIDER_ENDPOINT)),
            language_code=str(provider_raw.get("language_code", Defaults.PROVIDER_LANGUAGE_CODE)),
            default_voice=str(provider_raw.get("default_voice", Defaults.PROVIDER_DEFAULT_VOICE)),
            audio_encoding=str(provider_raw.get("audio_encoding", Defaults.PROVIDER_AUDIO_ENCODING)),
            speaking_rate=cls._as_number(
                "provider.speaking_rate",
                provider_raw.get("speaking_rate", Defaults.PROVIDER_SPEAKING_RATE),
                float,
            ),
            timeout_s=cls._as_number(
                "provider.timeout_s",
                provider_raw.get("timeout_s", Defaults.PROVIDER_TIMEOUT_S),
                float,
            ),
        )
        if require_api_key and not provider.api_key:
            raise ConfigValidationError("Missing GOOGLE_API_KEY (set it in the environment or .env)")
        cls._validate_positive("provider.speaking_rate", provider.speaking_rate)
        cls._validate_positive("provider.timeout_s", provider.timeout_s)
        if not provider.default_voice:
            raise ConfigValidationError("provider.default_voice must not be empty")

        # ─────────────────────────────────────────────────────────────────────
        # Storage configuration
        # ─────────────────────────────────────────────────────────────────────
        storage_raw = raw.get("storage", {}) or {}
        storage = StorageConfig(
            output_dir=str(storage_raw.get("output_dir") or Defaults.STORAGE_OUTPUT_DIR),
            max_filename_chars=cls._as_number(
                "storage.max_filename_chars",
                storage_raw.get("max_filename_chars", Defaults.STORAGE_MAX_FILENAME_CHARS),
                int,
            ),
        )
        cls._validate_positive("storage.max_filename_chars", storage.max_filename_chars)

        # ─────────────────────────────────────────────────────────────────────
        # Validation policy
        # ─────────────────────────────────────────────────────────────────────
        validation_raw = raw.get("validation", {}) or {}
        validation = ValidationConfig(
            script=str(validation_raw.get("script", Defaults.VALIDATION_SCRIPT)).strip().lower(),
            max_chars=cls._as_number(
                "validation.max_chars",
                validation_raw.get("max_chars", Defaults.VALIDATION_MAX_CHARS),
                int,
            ),
        )
        if validation.script not in SUPPORTED_SCRIPTS:
            raise ConfigValidationError(
                f"validation.script must be one of {', '.join(SUPPORTED_SCRIPTS)}, got {validation.script!r}"
            )
        cls._validate_positive("validation.max_chars", validation.max_chars)

        # ─────────────────────────────────────────────────────────────────────
        # Server configuration
        # ─────────────────────────────────────────────────────────────────────
        server_raw = raw.get("server", {}) or {}
        server = ServerConfig(
            host=str(server_raw.get("host") or Defaults.SERVER_HOST),
            port=cls._as_number("server.port", server_raw.get("port") or Defaults.SERVER_PORT, int),
        )
        cls._validate_range("server.port", server.port, 1, 65535)

        # ─────────────────────────────────────────────────────────────────────
        # Logging configuration
        # ─────────────────────────────────────────────────────────────────────
        logging_raw = raw.get("logging", {}) or {}
        log_level_raw = logging_raw.get("level", Defaults.LOGGING_LEVEL)

        # Handle string log levels (e.g., "INFO", "DEBUG")
        if isinstance(log_level_raw, str):
            level_map = {
                "MINIMAL": 1, "1": 1,
                "NORMAL": 2, "INFO": 2, "2": 2,
                "VERBOSE": 3, "3": 3,
                "DEBUG": 4, "TRACE": 4, "4": 4,
            }
            log_level = level_map.get(log_level_raw.upper(), Defaults.LOGGING_LEVEL)
        else:
            log_level = cls._as_number("logging.level", log_level_raw, int)

        logging_cfg = LoggingConfig(
            text_preview_chars=cls._as_number(
                "logging.text_preview_chars",
                logging_raw.get("text_preview_chars", Defaults.LOGGING_TEXT_PREVIEW_CHARS),
                int,
            ),
            level=log_level,
        )
        cls._validate_non_negative("logging.text_preview_chars", logging_cfg.text_preview_chars)
        cls._validate_range("logging.level", logging_cfg.level, 1, 4)

        return cls(
            provider=provider,
            storage=storage,
            validation=validation,
            server=server,
            logging=logging_cfg,
        )

    @staticmethod
    def _as_number(name: str, value: Any, kind: type) -> int | float:
        """Convert a raw value with int() or float(), naming the setting on bad input."""
        try:
            return kind(value)
        except (TypeError, ValueError):
            expected = "an integer" if kind is int else "a number"
            raise ConfigValidationError(f"{name} must be {expected}, got {value!r}") from None

    @staticmethod
    def _validate_positive(name: str, value: int | float) -> None:
        """Validate that a value is positive (> 0)."""
        if value <= 0:
            raise ConfigValidationError(f"{name} must be positive, got {value}")

    @staticmethod
    def _validate_non_negative(name: str, value: int | float) -> None:
        """Validate that a value is non-negative (>= 0)."""
        if value < 0:
            raise ConfigValidationError(f"{name} must be non-negative, got {value}")

    @staticmethod
    def _validate_range(name: str, value: int | float, min_val: int | float, max_val: int | float) -> None:
        """Validate that a value is within a range [min_val, max_val]."""
        if not (min_val <= value <= max_val):
            raise ConfigValidationError(f"{name} must be between {min_val} and {max_val}, got {value}")


@dataclass(frozen=True)
class Settings:
    """
    Immutable settings container (YAML merged with environment).

    Use get_proxy_config() to get the validated ProxyConfig.

    Attributes:
        raw: Dictionary of raw configuration values.
    """
    raw: Dict[str, Any]

    def get_proxy_config(self, require_api_key: bool = True) -> ProxyConfig:
        """
        Get validated ProxyConfig from these settings.

        Raises:
            ConfigValidationError: If validation fails.
        """
        return ProxyConfig.from_settings(self, require_api_key=require_api_key)


# Environment variable -> (section, key)
_ENV_OVERRIDES = {
    "GOOGLE_API_KEY": ("provider", "api_key"),
    "TTS_PROXY_DEFAULT_VOICE": ("provider", "default_voice"),
    "TTS_PROXY_ENDPOINT": ("provider", "endpoint"),
    "OUTPUT_DIR": ("storage", "output_dir"),
    "HOST": ("server", "host"),
    "PORT": ("server", "port"),
}

DEFAULT_SETTINGS_PATH = "config/settings.yaml"


def load_settings(path: Optional[str] = None, dotenv: bool = True) -> Settings:
    """
    Load settings from the environment and an optional YAML file.

    Args:
        path: YAML settings path. Defaults to $TTS_PROXY_SETTINGS or
            config/settings.yaml. The default file may be absent; an
            explicitly requested file must exist.
        dotenv: Load a .env file from the working directory first.

    Returns:
        Settings object with loaded configuration.

    Raises:
        FileNotFoundError: If an explicitly given settings file doesn't exist.
    """
    if dotenv:
        load_dotenv(find_dotenv(usecwd=True), override=False)

    explicit = path or os.getenv("TTS_PROXY_SETTINGS")
    p = Path(explicit or DEFAULT_SETTINGS_PATH)

    raw: Dict[str, Any] = {}
    if p.exists():
        with p.open("r", encoding="utf-8") as f:
            raw = yaml.safe_load(f) or {}
    elif explicit:
        raise FileNotFoundError(f"settings file not found: {p.resolve()}")

    # Apply environment variable overrides
    for env_name, (section, key) in _ENV_OVERRIDES.items():
        value = os.getenv(env_name)
        if value:
            raw.setdefault(section, {})[key] = value

    return Settings(raw=raw)
