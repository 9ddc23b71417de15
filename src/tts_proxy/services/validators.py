"""
Input Validation for the TTS Proxy.

Validation happens before any cache lookup or network call, so a
rejected request never touches the provider and never creates a file.

Validation Rules:
    - Text: required; at most `max_chars` characters; with script="han"
      every character must be a Han ideograph (no surrounding
      whitespace), with script="any" the text is trimmed first
    - Model: optional; 1-100 characters from [A-Za-z0-9._-]

Error Codes:
    - TEXT_REQUIRED: Missing or blank text
    - TEXT_TOO_LONG: Exceeds max_chars
    - TEXT_INVALID_SCRIPT: Contains characters outside the allowed script
    - MODEL_INVALID: Voice name contains disallowed characters
    - MODEL_TOO_LONG: Voice name exceeds max length

Usage:
    from tts_proxy.services.validators import validate_text, ValidationError

    try:
        text = validate_text(raw_text, max_chars=5, script="han")
    except ValidationError as e:
        return error_response(e.code, e.message)
"""
from __future__ import annotations

import re
from typing import Optional

from tts_proxy.core.config import Defaults
from tts_proxy.core.logging import debug, get_logger

_LOG = get_logger("tts-proxy.validators")

MAX_MODEL_CHARS = 100
_MODEL_RE = re.compile(r"^[A-Za-z0-9._-]+$")

# Code point ranges with Script=Han (Unicode 15.1)
_HAN_RANGES = (
    (0x2E80, 0x2E99), (0x2E9B, 0x2EF3), (0x2F00, 0x2FD5),   # radicals
    (0x3005, 0x3005), (0x3007, 0x3007), (0x3021, 0x3029),
    (0x3038, 0x303B),
    (0x3400, 0x4DBF),                                       # Ext A
    (0x4E00, 0x9FFF),                                       # Unified
    (0xF900, 0xFA6D), (0xFA70, 0xFAD9),                     # Compatibility
    (0x16FE2, 0x16FE3), (0x16FF0, 0x16FF1),
    (0x20000, 0x2A6DF), (0x2A700, 0x2B739), (0x2B740, 0x2B81D),
    (0x2B820, 0x2CEA1), (0x2CEB0, 0x2EBE0), (0x2EBF0, 0x2EE5D),   # Ext E-I
    (0x2F800, 0x2FA1D),
    (0x30000, 0x3134A), (0x31350, 0x323AF),
)


class ValidationError(Exception):
    """
    Exception raised when input validation fails.

    Attributes:
        message: Human-readable error description.
        code: Machine-readable error code.
    """

    def __init__(self, message: str, code: str = "VALIDATION_ERROR"):
        self.message = message
        self.code = code
        super().__init__(message)


def is_han(ch: str) -> bool:
    """Return True if a single character belongs to the Han script."""
    cp = ord(ch)
    return any(lo <= cp <= hi for lo, hi in _HAN_RANGES)


def validate_text(
    text: Optional[str],
    max_chars: int = Defaults.VALIDATION_MAX_CHARS,
    script: str = Defaults.VALIDATION_SCRIPT,
) -> str:
    """
    Validate request text.

    Args:
        text: Raw text from the query string (None when absent).
        max_chars: Maximum length in characters (code points).
        script: "han" to require Han ideographs only, "any" to skip.

    Returns:
        The text, trimmed only under script="any". Under script="han"
        surrounding whitespace is rejected like any other non-Han
        character.

    Raises:
        ValidationError: If validation fails.
    """
    if not text or not text.strip():
        raise ValidationError("Missing ?text= parameter", "TEXT_REQUIRED")

    # Whitespace is not Han, so strict text is checked untrimmed
    if script == "han":
        bad = [ch for ch in text if not is_han(ch)]
        if bad or len(text) > max_chars:
            debug(_LOG, "text_rejected", chars=len(text), disallowed=len(bad))
            raise ValidationError(
                f"Invalid text: must be all Chinese characters with a max length of {max_chars}",
                "TEXT_INVALID_SCRIPT" if bad else "TEXT_TOO_LONG",
            )
        return text

    text = text.strip()
    if len(text) > max_chars:
        raise ValidationError(
            f"Text exceeds maximum length ({len(text)} > {max_chars})",
            "TEXT_TOO_LONG",
        )

    return text


def validate_model(model: Optional[str], max_length: int = MAX_MODEL_CHARS) -> Optional[str]:
    """
    Validate a voice/model override.

    Returns:
        The trimmed model name, or None when not provided.

    Raises:
        ValidationError: If the name is too long or has disallowed characters.
    """
    if model is None or not model.strip():
        return None

    model = model.strip()

    if len(model) > max_length:
        raise ValidationError(
            f"Model name exceeds maximum length ({len(model)} > {max_length})",
            "MODEL_TOO_LONG",
        )

    if not _MODEL_RE.match(model):
        raise ValidationError(
            "Invalid model: only letters, digits, '.', '_' and '-' are allowed",
            "MODEL_INVALID",
        )

    return model
