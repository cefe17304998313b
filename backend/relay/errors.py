"""
Relay error taxonomy.

CredentialError:
    Local, pre-upstream. Terminal for the session, never retried.

UpstreamTransportError:
    Upstream handshake/transport failure, classified from the failure's
    status code or textual indicators. Reported once, then the session
    closes. Recovery is a user-initiated reconnect.

ForwardingError:
    A single message could not be forwarded. Logged, message dropped,
    session continues.
"""

from __future__ import annotations

from enum import Enum

from spec import API_KEY_PREFIX


class ErrorCode(str, Enum):
    """Codes carried in {"type": "error", "code": ...} client events."""
    NO_API_KEY = "NO_API_KEY"
    INVALID_API_KEY = "INVALID_API_KEY"
    RATE_LIMIT = "RATE_LIMIT"
    TIMEOUT = "TIMEOUT"
    OPENAI_ERROR = "OPENAI_ERROR"


MESSAGES: dict[ErrorCode, str] = {
    ErrorCode.NO_API_KEY: (
        "OpenAI API key not provided. Please enter your API key to continue."
    ),
    ErrorCode.INVALID_API_KEY: (
        "Invalid OpenAI API key. Please check your API key and try again."
    ),
    ErrorCode.RATE_LIMIT: "OpenAI rate limit exceeded. Please try again later.",
    ErrorCode.TIMEOUT: (
        "Connection to OpenAI timed out. Please check your internet connection."
    ),
    ErrorCode.OPENAI_ERROR: "Failed to connect to OpenAI. Please try again.",
}

INVALID_FORMAT_MESSAGE = (
    f'Invalid OpenAI API key format. API keys should start with "{API_KEY_PREFIX}".'
)
UPSTREAM_LOST_MESSAGE = "Connection to OpenAI was lost. Please reconnect."


# -------------------------
# Exceptions
# -------------------------

class RelayError(Exception):
    """Base class for relay errors."""


class SessionFatalError(RelayError):
    """
    Error that ends the session after exactly one client error event.
    """

    def __init__(self, code: ErrorCode, message: str | None = None) -> None:
        self.code = code
        self.message = message or MESSAGES[code]
        super().__init__(self.message)


class CredentialError(SessionFatalError):
    """Missing or malformed upstream API key."""


class UpstreamTransportError(SessionFatalError):
    """Upstream connection could not be established or was lost."""


class ForwardingError(RelayError):
    """A single message could not be forwarded."""


# -------------------------
# Credential gate
# -------------------------

def validate_credential(api_key: str | None) -> str:
    """
    Cheap local check before any upstream attempt.

    Returns the key unchanged when it passes.
    """
    if not api_key:
        raise CredentialError(ErrorCode.NO_API_KEY)
    if not api_key.startswith(API_KEY_PREFIX):
        raise CredentialError(ErrorCode.INVALID_API_KEY, INVALID_FORMAT_MESSAGE)
    return api_key


# -------------------------
# Upstream classification
# -------------------------

def _status_code(exc: BaseException) -> int | None:
    # websockets.InvalidStatus carries .response.status_code;
    # older InvalidStatusCode carries .status_code directly.
    response = getattr(exc, "response", None)
    status = getattr(response, "status_code", None)
    if status is None:
        status = getattr(exc, "status_code", None)
    return status if isinstance(status, int) else None


def classify_upstream_error(exc: BaseException) -> UpstreamTransportError:
    """
    Map an upstream connect failure onto the client-facing taxonomy.

    Authorization failures are reported as INVALID_API_KEY.
    """
    if isinstance(exc, UpstreamTransportError):
        return exc

    status = _status_code(exc)
    text = str(exc).lower()

    if status in (401, 403) or "401" in text or "unauthorized" in text:
        return UpstreamTransportError(ErrorCode.INVALID_API_KEY)
    if status == 429 or "429" in text or "rate limit" in text:
        return UpstreamTransportError(ErrorCode.RATE_LIMIT)
    if isinstance(exc, TimeoutError) or "timeout" in text or "timed out" in text:
        return UpstreamTransportError(ErrorCode.TIMEOUT)
    return UpstreamTransportError(ErrorCode.OPENAI_ERROR)
