"""
FastAPI app factory.

Responsibilities:
- Create and configure FastAPI app
- Set up CORS (strict allow-list or permissive-with-logging)
- Size the upgrade parser for document-carrying relay URLs
- Build the upstream connector shared by relay sessions
- Provide the transcript fetcher used by the video route
- Register routes
"""

from __future__ import annotations

import re
from typing import Optional

import websockets.http11
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware

from config import AppConfig
from documents.transcripts import TranscriptFetcher
from documents.youtube import YouTubeFetcher
from observability.logger import log_event
from relay.transport import UpstreamConnector, make_upstream_connector
from spec import DEV_ORIGIN_PATTERNS

from server.routes import register_routes


_DEV_ORIGINS = re.compile("|".join(f"(?:{p})" for p in DEV_ORIGIN_PATTERNS))


def origin_allowed(origin: str, config: AppConfig) -> bool:
    """Origin is on the configured list or a local/LAN development origin."""
    return origin in config.cors_allowed_origins or bool(_DEV_ORIGINS.match(origin))


def allow_long_request_lines(limit: int) -> None:
    """
    Raise the request-line limit of the websockets HTTP parser.

    uvicorn's websockets-sansio protocol parses the upgrade request with
    websockets.http11, which reads MAX_LINE_LENGTH at parse time. The
    default (8 KiB) is shorter than a relay URL carrying a real document.
    """
    if websockets.http11.MAX_LINE_LENGTH < limit:
        websockets.http11.MAX_LINE_LENGTH = limit


def create_app(
    config: Optional[AppConfig] = None,
    upstream_connector: Optional[UpstreamConnector] = None,
    transcript_fetcher: Optional[TranscriptFetcher] = None,
) -> FastAPI:
    """
    Create and configure the FastAPI application.

    The arguments exist for tests: a fixed config instead of the
    environment, an in-memory upstream instead of OpenAI, and a canned
    transcript fetcher instead of YouTube.
    """
    config = config or AppConfig.load_from_env()
    allow_long_request_lines(config.max_request_line_bytes)

    app = FastAPI(title="Document Chat Relay")
    app.state.config = config
    app.state.upstream_connector = upstream_connector or make_upstream_connector(
        endpoint=config.realtime_endpoint,
        open_timeout_s=config.upstream_open_timeout_s,
    )
    app.state.transcript_fetcher = transcript_fetcher or YouTubeFetcher()

    # Middleware
    if config.cors_strict:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=list(config.cors_allowed_origins),
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
        )
    else:
        app.add_middleware(
            CORSMiddleware,
            allow_origin_regex=".*",
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
        )

        @app.middleware("http")
        async def log_unlisted_origin(request: Request, call_next):  # pyright: ignore[reportUnusedFunction]
            origin = request.headers.get("origin")
            if origin and not origin_allowed(origin, config):
                log_event({
                    "event_type": "CORS_ORIGIN_UNLISTED",
                    "origin": origin,
                    "path": request.url.path,
                })
            return await call_next(request)

    # Routes
    register_routes(app)

    log_event({
        "event_type": "APP_CREATED",
        "env": config.env,
        "realtime_model": config.realtime_model,
        "cors_strict": config.cors_strict,
    })
    return app
