"""
Video transcript contract.

The network side (metadata + caption fetch) is an injected TranscriptFetcher;
this module owns URL parsing, normalization and the duration ceiling.

Order of operations:
    1. parse video id           -> InvalidVideoUrl
    2. fetch metadata           -> VideoTooLong (before any transcript fetch)
    3. fetch transcript         -> NoTranscript when empty
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import date, datetime, timezone
from typing import Any, Iterable, Mapping, Optional, Protocol

from observability.logger import log_event
from spec import MAX_VIDEO_DURATION_S


_URL_PATTERNS = (
    re.compile(r"(?:youtube\.com/watch\?v=|youtu\.be/|youtube\.com/embed/)([^&?/]+)"),
    re.compile(r"^([a-zA-Z0-9_-]{11})$"),
)


class TranscriptError(Exception):
    pass


class InvalidVideoUrl(TranscriptError):
    pass


class VideoTooLong(TranscriptError):
    def __init__(self, duration_seconds: int, limit_seconds: int = MAX_VIDEO_DURATION_S) -> None:
        self.duration_seconds = duration_seconds
        self.limit_seconds = limit_seconds
        super().__init__(
            f"Video duration ({round(duration_seconds / 60)} minutes) exceeds "
            f"the {limit_seconds // 60}-minute limit"
        )


class NoTranscript(TranscriptError):
    pass


@dataclass(frozen=True)
class VideoMetadata:
    title: str
    channel_name: str
    duration_seconds: int
    upload_date: str
    video_id: str

    @classmethod
    def from_raw(cls, video_id: str, raw: Mapping[str, Any]) -> VideoMetadata:
        uploaded = raw.get("upload_timestamp")
        if isinstance(uploaded, datetime):
            upload_date = uploaded.date().isoformat()
        elif isinstance(uploaded, (int, float)):
            upload_date = datetime.fromtimestamp(uploaded, tz=timezone.utc).date().isoformat()
        elif isinstance(uploaded, str) and uploaded:
            upload_date = uploaded
        else:
            upload_date = date.today().isoformat()

        return cls(
            title=raw.get("title") or "Unknown Title",
            channel_name=raw.get("channel_name") or "Unknown Channel",
            duration_seconds=int(raw.get("duration_seconds") or 0),
            upload_date=upload_date,
            video_id=video_id,
        )


@dataclass(frozen=True)
class TranscriptResult:
    text: str
    metadata: VideoMetadata


class TranscriptFetcher(Protocol):
    """
    metadata():   mapping with title, channel_name, duration_seconds and
                  upload_timestamp (datetime, epoch seconds or string);
                  missing fields fall back to defaults
    transcript(): caption segments in order
    """

    def metadata(self, video_id: str) -> Mapping[str, Any]: ...

    def transcript(self, video_id: str) -> Iterable[str]: ...


def extract_video_id(url: str) -> Optional[str]:
    for pattern in _URL_PATTERNS:
        match = pattern.search(url.strip())
        if match:
            return match.group(1)
    return None


def process_video_url(url: str, fetcher: TranscriptFetcher) -> TranscriptResult:
    video_id = extract_video_id(url)
    if video_id is None:
        raise InvalidVideoUrl("Invalid YouTube URL format")

    metadata = VideoMetadata.from_raw(video_id, fetcher.metadata(video_id))
    if metadata.duration_seconds > MAX_VIDEO_DURATION_S:
        raise VideoTooLong(metadata.duration_seconds)

    text = " ".join(segment for segment in fetcher.transcript(video_id) if segment)
    if not text.strip():
        raise NoTranscript("No transcript available for this video")

    log_event({
        "event_type": "TRANSCRIPT_FETCHED",
        "video_id": video_id,
        "duration_seconds": metadata.duration_seconds,
        "chars": len(text),
    })
    return TranscriptResult(text=text, metadata=metadata)
