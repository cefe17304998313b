# pylint: disable=missing-module-docstring,missing-function-docstring

import asyncio
from types import SimpleNamespace

import pytest

from relay.errors import (
    CredentialError,
    ErrorCode,
    INVALID_FORMAT_MESSAGE,
    MESSAGES,
    UpstreamTransportError,
    classify_upstream_error,
    validate_credential,
)


class StatusError(Exception):
    def __init__(self, status: int, text: str = "handshake failed") -> None:
        super().__init__(text)
        self.response = SimpleNamespace(status_code=status)


@pytest.mark.parametrize("key", [None, ""])
def test_missing_key_is_no_api_key(key: str | None) -> None:
    with pytest.raises(CredentialError) as info:
        validate_credential(key)
    assert info.value.code is ErrorCode.NO_API_KEY
    assert info.value.message == MESSAGES[ErrorCode.NO_API_KEY]


def test_key_format_is_checked_locally() -> None:
    with pytest.raises(CredentialError) as info:
        validate_credential("pk-live-123")
    assert info.value.code is ErrorCode.INVALID_API_KEY
    assert info.value.message == INVALID_FORMAT_MESSAGE


def test_valid_key_passes_through() -> None:
    assert validate_credential("sk-proj-abc") == "sk-proj-abc"


@pytest.mark.parametrize(
    ("exc", "code"),
    [
        (StatusError(401), ErrorCode.INVALID_API_KEY),
        (StatusError(403), ErrorCode.INVALID_API_KEY),
        (Exception("server rejected WebSocket connection: HTTP 401"), ErrorCode.INVALID_API_KEY),
        (Exception("Unauthorized"), ErrorCode.INVALID_API_KEY),
        (StatusError(429), ErrorCode.RATE_LIMIT),
        (Exception("rate limit reached for requests"), ErrorCode.RATE_LIMIT),
        (asyncio.TimeoutError(), ErrorCode.TIMEOUT),
        (OSError("connect timed out"), ErrorCode.TIMEOUT),
        (StatusError(500, "internal error"), ErrorCode.OPENAI_ERROR),
        (ConnectionRefusedError("refused"), ErrorCode.OPENAI_ERROR),
    ],
)
def test_classify_upstream_error(exc: BaseException, code: ErrorCode) -> None:
    error = classify_upstream_error(exc)
    assert isinstance(error, UpstreamTransportError)
    assert error.code is code
    assert error.message == MESSAGES[code]


def test_classification_is_idempotent() -> None:
    original = UpstreamTransportError(ErrorCode.RATE_LIMIT)
    assert classify_upstream_error(original) is original
