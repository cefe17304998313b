"""
Application configuration.

Responsibilities:
- Load deployment-specific configuration
- Read environment variables
- Provide a typed, immutable config object

Non-responsibilities:
- No relay logic
- No protocol constants (see spec.py)
- No runtime mutation
"""

from __future__ import annotations

import os
from dataclasses import dataclass

from spec import (
    DEFAULT_PORT,
    DEFAULT_REALTIME_MODEL,
    DEFAULT_REALTIME_URL,
    RELAY_MAX_REQUEST_LINE_BYTES,
    UPSTREAM_OPEN_TIMEOUT_S,
)


def _env_flag(name: str, default: bool) -> bool:
    raw = os.environ.get(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


def _env_list(name: str, default: tuple[str, ...]) -> tuple[str, ...]:
    raw = os.environ.get(name)
    if raw is None:
        return default
    return tuple(item.strip() for item in raw.split(",") if item.strip())


@dataclass(frozen=True)
class AppConfig:
    """
    Immutable application configuration.

    Constructed once at process startup and stored on app.state.
    Passed downward to the relay dispatcher and route handlers.
    """

    # ------------------------------------------------------------------
    # Environment
    # ------------------------------------------------------------------

    env: str
    log_level: str
    host: str
    port: int

    # Upper bound for the WebSocket upgrade request line. Relay connections
    # carry the whole document in the query string.
    max_request_line_bytes: int

    # ------------------------------------------------------------------
    # Upstream (OpenAI Realtime)
    # ------------------------------------------------------------------

    realtime_model: str
    realtime_url: str
    upstream_open_timeout_s: float

    # Server-side key. Only used by the realtime-test endpoint;
    # relay sessions always use the per-connection client key.
    openai_api_key: str | None

    # ------------------------------------------------------------------
    # CORS
    # ------------------------------------------------------------------

    cors_allowed_origins: tuple[str, ...]
    cors_strict: bool

    # ------------------------------------------------------------------
    # Derived
    # ------------------------------------------------------------------

    @property
    def realtime_endpoint(self) -> str:
        """Full upstream URL including the model query parameter."""
        return f"{self.realtime_url}?model={self.realtime_model}"

    # ------------------------------------------------------------------
    # Factory
    # ------------------------------------------------------------------

    @staticmethod
    def load_from_env() -> AppConfig:
        """
        Load configuration from environment variables.

        Every variable has a default; nothing here is required at startup.
        """
        env = os.environ.get("ENV", "dev")
        return AppConfig(
            env=env,
            log_level=os.environ.get("LOG_LEVEL", "INFO"),
            host=os.environ.get("HOST", "0.0.0.0"),
            port=int(os.environ.get("PORT", str(DEFAULT_PORT))),
            max_request_line_bytes=int(
                os.environ.get("MAX_REQUEST_LINE_BYTES", str(RELAY_MAX_REQUEST_LINE_BYTES))
            ),

            realtime_model=os.environ.get("OPENAI_REALTIME_MODEL", DEFAULT_REALTIME_MODEL),
            realtime_url=os.environ.get("OPENAI_REALTIME_URL", DEFAULT_REALTIME_URL),
            upstream_open_timeout_s=float(
                os.environ.get("UPSTREAM_OPEN_TIMEOUT_S", str(UPSTREAM_OPEN_TIMEOUT_S))
            ),
            openai_api_key=os.environ.get("OPENAI_API_KEY"),

            cors_allowed_origins=_env_list(
                "CORS_ALLOWED_ORIGINS", ("http://localhost:3000",)
            ),
            # Permissive outside production unless explicitly enabled
            cors_strict=_env_flag("CORS_STRICT", env == "prod"),
        )
