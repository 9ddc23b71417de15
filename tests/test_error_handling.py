"""
Tests for error handling classes.

Tests cover:
- ErrorCode values
- TTSError creation, serialization and HTTP status mapping
- Subclass codes (InvalidInputError, Upstream*, AudioDecodeError, StorageError)
- Exception inheritance
"""
import json

import pytest

from tts_proxy.services.tts_service import (
    AudioDecodeError,
    ErrorCode,
    InvalidInputError,
    StorageError,
    TTSError,
    UpstreamDecodeError,
    UpstreamTransportError,
)


class TestErrorCode:
    """Tests for ErrorCode constants."""

    @pytest.mark.parametrize("name", [
        "TEXT_REQUIRED",
        "TEXT_TOO_LONG",
        "TEXT_INVALID_SCRIPT",
        "MODEL_INVALID",
        "UPSTREAM_TRANSPORT",
        "UPSTREAM_DECODE",
        "AUDIO_DECODE",
        "STORAGE_FAILED",
        "INTERNAL_ERROR",
    ])
    def test_code_defined(self, name):
        assert getattr(ErrorCode, name) == name


class TestTTSError:
    """Tests for TTSError base exception."""

    def test_creation_with_message(self):
        error = TTSError("Test error message")
        assert error.message == "Test error message"
        assert str(error) == "Test error message"

    def test_default_code_is_internal_error(self):
        assert TTSError("x").code == ErrorCode.INTERNAL_ERROR

    def test_default_details_is_empty_dict(self):
        assert TTSError("x").details == {}

    def test_to_dict_basic(self):
        result = TTSError("Test error").to_dict()

        assert result == {"ok": False, "error": "INTERNAL_ERROR", "message": "Test error"}

    def test_to_dict_with_details(self):
        result = TTSError("x", details={"key": "v"}).to_dict()
        assert result["details"] == {"key": "v"}

    def test_to_dict_is_json_serializable(self):
        json.dumps(TTSError("失败", details={"key": "值"}).to_dict(), ensure_ascii=False)


class TestStatusCodes:
    """Validation errors are 400, everything else 500."""

    @pytest.mark.parametrize("code", [
        ErrorCode.TEXT_REQUIRED,
        ErrorCode.TEXT_TOO_LONG,
        ErrorCode.TEXT_INVALID_SCRIPT,
        ErrorCode.MODEL_INVALID,
        ErrorCode.MODEL_TOO_LONG,
    ])
    def test_client_errors(self, code):
        assert InvalidInputError("bad", code).status_code == 400

    @pytest.mark.parametrize("error", [
        UpstreamTransportError("x"),
        UpstreamDecodeError("x"),
        AudioDecodeError("x"),
        StorageError("x"),
        TTSError("x"),
    ])
    def test_server_errors(self, error):
        assert error.status_code == 500


class TestSubclasses:

    @pytest.mark.parametrize("cls,code", [
        (UpstreamTransportError, ErrorCode.UPSTREAM_TRANSPORT),
        (UpstreamDecodeError, ErrorCode.UPSTREAM_DECODE),
        (AudioDecodeError, ErrorCode.AUDIO_DECODE),
        (StorageError, ErrorCode.STORAGE_FAILED),
    ])
    def test_code_and_inheritance(self, cls, code):
        error = cls("failed", details={"k": 1})

        assert isinstance(error, TTSError)
        assert error.code == code
        assert error.details == {"k": 1}
        assert error.to_dict()["error"] == code

    def test_invalid_input_default_code(self):
        assert InvalidInputError("Missing ?text= parameter").code == ErrorCode.TEXT_REQUIRED

    def test_caught_as_tts_error(self):
        with pytest.raises(TTSError):
            raise UpstreamDecodeError("No audio content in response")
