"""
YouTube implementation of the TranscriptFetcher protocol.

- Metadata: yt-dlp info extraction (no download)
- Captions: youtube-transcript-api

Library errors are translated into the documents.transcripts taxonomy so
route handlers only deal with TranscriptError subclasses.
"""

from __future__ import annotations

from typing import Any, Iterable, Mapping

from youtube_transcript_api import (
    CouldNotRetrieveTranscript,
    NoTranscriptFound,
    TranscriptsDisabled,
    YouTubeTranscriptApi,
)
from yt_dlp import YoutubeDL
from yt_dlp.utils import DownloadError

from documents.transcripts import NoTranscript, TranscriptError


_YDL_OPTIONS = {
    "quiet": True,
    "no_warnings": True,
    "skip_download": True,
}


def watch_url(video_id: str) -> str:
    return f"https://www.youtube.com/watch?v={video_id}"


def _upload_timestamp(info: Mapping[str, Any]) -> Any:
    if info.get("timestamp") is not None:
        return info["timestamp"]
    raw = info.get("upload_date")
    # yt-dlp reports YYYYMMDD
    if isinstance(raw, str) and len(raw) == 8 and raw.isdigit():
        return f"{raw[:4]}-{raw[4:6]}-{raw[6:]}"
    return None


def metadata_from_info(info: Mapping[str, Any]) -> dict[str, Any]:
    """Map a yt-dlp info dict onto the fields VideoMetadata.from_raw reads."""
    return {
        "title": info.get("title"),
        "channel_name": info.get("channel") or info.get("uploader"),
        "duration_seconds": info.get("duration"),
        "upload_timestamp": _upload_timestamp(info),
    }


class YouTubeFetcher:
    """Blocking fetcher; route handlers call it from a worker thread."""

    def metadata(self, video_id: str) -> Mapping[str, Any]:
        try:
            with YoutubeDL(_YDL_OPTIONS) as ydl:
                info = ydl.extract_info(watch_url(video_id), download=False)
        except DownloadError as e:
            raise TranscriptError(f"Failed to fetch metadata: {e}") from e
        return metadata_from_info(info or {})

    def transcript(self, video_id: str) -> Iterable[str]:
        try:
            fetched = YouTubeTranscriptApi().fetch(video_id)
        except (NoTranscriptFound, TranscriptsDisabled) as e:
            raise NoTranscript("No transcript available for this video") from e
        except CouldNotRetrieveTranscript as e:
            raise TranscriptError(f"Failed to fetch transcript: {e}") from e
        return [snippet.text for snippet in fetched]
