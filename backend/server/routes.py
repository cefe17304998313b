"""
Route registration for the document chat API.

Responsibilities:
- Define HTTP and WebSocket endpoints
- Resolve relay paths through the dispatcher and run one RelaySession per
  accepted connection
- Pull dependencies from app.state (config, upstream connector,
  transcript fetcher)
"""

from __future__ import annotations

from typing import Any, Optional

from fastapi import FastAPI, File, UploadFile, WebSocket
from fastapi.responses import JSONResponse, PlainTextResponse
from pydantic import BaseModel
from starlette.concurrency import run_in_threadpool

from config import AppConfig
from documents.pdf import ExtractionError, extract_pdf
from documents.transcripts import (
    InvalidVideoUrl,
    NoTranscript,
    TranscriptError,
    TranscriptFetcher,
    VideoTooLong,
    process_video_url,
)
from observability.logger import log_event
from relay.dispatcher import resolve_modality
from relay.params import ConnectParams
from relay.session import RelaySession
from relay.transport import CLOSE_POLICY_VIOLATION, ClientSocket, UpstreamConnector
from spec import MAX_PDF_BYTES, TEXT_PREVIEW_CHARS


class FrontendLog(BaseModel):
    message: str = ""


class VideoRequest(BaseModel):
    url: Optional[str] = None


def _error(status: int, error: str, details: Optional[str] = None) -> JSONResponse:
    body: dict[str, Any] = {"error": error}
    if details is not None:
        body["details"] = details
    return JSONResponse(status_code=status, content=body)


def register_routes(app: FastAPI) -> None:
    """Register all routes on the FastAPI app."""

    @app.get("/", response_class=PlainTextResponse)
    async def index() -> str:  # pyright: ignore[reportUnusedFunction]
        return "PDF Document Server - API Ready"

    @app.get("/health")
    async def health() -> dict[str, str]:  # pyright: ignore[reportUnusedFunction]
        return {"status": "ok"}

    @app.get("/api/ai/realtime-test")
    async def realtime_test():  # pyright: ignore[reportUnusedFunction]
        """Open (and immediately close) an upstream connection with the server key."""
        config: AppConfig = app.state.config
        connector: UpstreamConnector = app.state.upstream_connector

        if not config.openai_api_key:
            return _error(
                500,
                "OpenAI API key not configured",
                "OPENAI_API_KEY environment variable is missing",
            )

        try:
            upstream = await connector(config.openai_api_key)
            await upstream.close()
        except Exception as exc:  # pylint: disable=broad-exception-caught
            log_event({
                "event_type": "REALTIME_TEST_FAILED",
                "exception": type(exc).__name__,
                "message": str(exc),
            })
            return _error(500, "Failed to connect to OpenAI Realtime API", str(exc))

        log_event({"event_type": "REALTIME_TEST_OK", "model": config.realtime_model})
        return {
            "success": True,
            "message": "Successfully connected to OpenAI Realtime API",
            "model": config.realtime_model,
        }

    @app.post("/api/log")
    async def frontend_log(entry: FrontendLog) -> dict[str, bool]:  # pyright: ignore[reportUnusedFunction]
        log_event({"event_type": "FRONTEND_LOG", "message": entry.message})
        return {"success": True}

    @app.post("/api/pdf/extract")
    async def pdf_extract(file: Optional[UploadFile] = File(None)):  # pyright: ignore[reportUnusedFunction]
        if file is None:
            return _error(400, "No file provided")
        if file.content_type != "application/pdf":
            return _error(400, "File must be a PDF")

        data = await file.read(MAX_PDF_BYTES + 1)
        if len(data) > MAX_PDF_BYTES:
            return _error(400, "File size exceeds 25MB limit")

        try:
            result = await run_in_threadpool(extract_pdf, data)
        except ExtractionError as exc:
            log_event({
                "event_type": "PDF_EXTRACT_FAILED",
                "filename": file.filename,
                "message": str(exc),
            })
            return _error(500, "Failed to extract PDF text", str(exc))

        log_event({
            "event_type": "PDF_EXTRACTED",
            "filename": file.filename,
            "pages": result.page_count,
            "chars": len(result.text),
            "preview": result.text[:TEXT_PREVIEW_CHARS],
        })
        return {
            "success": True,
            "message": "PDF text extracted successfully",
            "data": {
                "text": result.text,
                "numPages": result.page_count,
                "info": result.info,
            },
        }

    @app.post("/api/youtube/process")
    async def youtube_process(body: Optional[VideoRequest] = None):  # pyright: ignore[reportUnusedFunction]
        url = (body.url or "").strip() if body is not None else ""
        if not url:
            return _error(400, "YouTube URL is required")
        if "youtube.com" not in url and "youtu.be" not in url:
            return _error(400, "Invalid YouTube URL")

        fetcher: TranscriptFetcher = app.state.transcript_fetcher
        try:
            result = await run_in_threadpool(process_video_url, url, fetcher)
        except InvalidVideoUrl as exc:
            return _error(400, "Invalid YouTube URL format", str(exc))
        except VideoTooLong as exc:
            return _error(400, "Video is too long", str(exc))
        except NoTranscript as exc:
            return _error(400, "No transcript available for this video", str(exc))
        except TranscriptError as exc:
            log_event({
                "event_type": "TRANSCRIPT_FAILED",
                "url": url,
                "message": str(exc),
            })
            return _error(500, "Failed to process YouTube video", str(exc))

        meta = result.metadata
        return {
            "success": True,
            "message": "YouTube video processed successfully",
            "data": {
                "transcript": result.text,
                "metadata": {
                    "title": meta.title,
                    "channelName": meta.channel_name,
                    "duration": meta.duration_seconds,
                    "uploadDate": meta.upload_date,
                    "videoId": meta.video_id,
                },
                "transcriptLength": len(result.text),
                "transcriptPreview": result.text[:TEXT_PREVIEW_CHARS],
            },
        }

    @app.websocket("/{path:path}")
    async def relay_endpoint(ws: WebSocket, path: str) -> None:  # pyright: ignore[reportUnusedFunction]
        """
        Upgrade handler for every path; the dispatcher decides.

        Unknown paths are refused before accept, so no session is created.
        One accepted connection = one RelaySession.
        """
        route = "/" + path
        modality = resolve_modality(route)
        if modality is None:
            log_event({"event_type": "RELAY_PATH_REJECTED", "path": route})
            await ws.close(code=CLOSE_POLICY_VIOLATION)
            return

        await ws.accept()

        session = RelaySession(
            client=ClientSocket(ws),
            modality=modality,
            params=ConnectParams.from_query(ws.query_params),
            connect_upstream=app.state.upstream_connector,
        )
        try:
            await session.run()
        except Exception as exc:  # pylint: disable=broad-exception-caught
            log_event({
                **session.log_context(),
                "event_type": "WS_FATAL_ERROR",
                "exception": type(exc).__name__,
                "message": str(exc),
            })
