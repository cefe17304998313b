# pylint: disable=missing-module-docstring,missing-function-docstring

import io
from datetime import datetime, timezone
from types import SimpleNamespace
from typing import Any, Iterable, Mapping

import pytest
from pypdf import PdfWriter
from youtube_transcript_api import TranscriptsDisabled
from yt_dlp.utils import DownloadError

import documents.youtube as youtube
from documents.pdf import ExtractionError, extract_pdf
from documents.transcripts import (
    InvalidVideoUrl,
    NoTranscript,
    TranscriptError,
    VideoMetadata,
    VideoTooLong,
    extract_video_id,
    process_video_url,
)
from documents.youtube import YouTubeFetcher


# -------------------------
# PDF
# -------------------------

def make_pdf(pages: int) -> bytes:
    writer = PdfWriter()
    for _ in range(pages):
        writer.add_blank_page(width=100, height=100)
    writer.add_metadata({"/Title": "Blank Pages"})
    buf = io.BytesIO()
    writer.write(buf)
    return buf.getvalue()


def test_extract_pdf_counts_pages_and_cleans_info() -> None:
    result = extract_pdf(make_pdf(3))

    assert result.page_count == 3
    assert result.info["Title"] == "Blank Pages"
    assert all(not key.startswith("/") for key in result.info)


@pytest.mark.parametrize("data", [b"", b"%PDF-1.4 truncated", b"plain text"])
def test_extract_pdf_rejects_unreadable_input(data: bytes) -> None:
    with pytest.raises(ExtractionError):
        extract_pdf(data)


# -------------------------
# Transcripts
# -------------------------

class FakeFetcher:
    def __init__(self, meta: Mapping[str, Any], segments: Iterable[str]) -> None:
        self.meta = meta
        self.segments = list(segments)
        self.transcript_calls = 0

    def metadata(self, video_id: str) -> Mapping[str, Any]:
        return self.meta

    def transcript(self, video_id: str) -> Iterable[str]:
        self.transcript_calls += 1
        return self.segments


@pytest.mark.parametrize(
    ("url", "video_id"),
    [
        ("https://www.youtube.com/watch?v=dQw4w9WgXcQ&t=42", "dQw4w9WgXcQ"),
        ("https://youtu.be/dQw4w9WgXcQ", "dQw4w9WgXcQ"),
        ("https://www.youtube.com/embed/dQw4w9WgXcQ?start=3", "dQw4w9WgXcQ"),
        ("dQw4w9WgXcQ", "dQw4w9WgXcQ"),
        ("https://vimeo.com/12345", None),
        ("short", None),
    ],
)
def test_extract_video_id(url: str, video_id: str | None) -> None:
    assert extract_video_id(url) == video_id


def test_process_video_url_joins_segments_and_fills_defaults() -> None:
    fetcher = FakeFetcher(
        {"duration_seconds": 600, "upload_timestamp": datetime(2024, 5, 1, tzinfo=timezone.utc)},
        ["Hello", "and welcome", ""],
    )

    result = process_video_url("https://youtu.be/abcdefghijk", fetcher)

    assert result.text == "Hello and welcome"
    assert result.metadata.video_id == "abcdefghijk"
    assert result.metadata.title == "Unknown Title"
    assert result.metadata.channel_name == "Unknown Channel"
    assert result.metadata.upload_date == "2024-05-01"


def test_long_video_is_rejected_before_transcript_fetch() -> None:
    fetcher = FakeFetcher({"title": "Lecture", "duration_seconds": 1801}, ["never read"])

    with pytest.raises(VideoTooLong) as info:
        process_video_url("abcdefghijk", fetcher)

    assert fetcher.transcript_calls == 0
    assert "30-minute limit" in str(info.value)


def test_video_at_limit_is_accepted() -> None:
    fetcher = FakeFetcher({"duration_seconds": 1800}, ["ok"])
    assert process_video_url("abcdefghijk", fetcher).text == "ok"


def test_invalid_url_and_empty_transcript() -> None:
    with pytest.raises(InvalidVideoUrl):
        process_video_url("not a video", FakeFetcher({}, ["x"]))

    with pytest.raises(NoTranscript):
        process_video_url("abcdefghijk", FakeFetcher({"duration_seconds": 10}, ["  ", ""]))


# -------------------------
# YouTube fetcher
# -------------------------

class FakeYoutubeDL:
    info: dict[str, Any] = {}
    error: Exception | None = None
    urls: list[str] = []

    def __init__(self, options: Mapping[str, Any]) -> None:
        self.options = options

    def __enter__(self) -> "FakeYoutubeDL":
        return self

    def __exit__(self, *exc: Any) -> None:
        return None

    def extract_info(self, url: str, download: bool = True) -> dict[str, Any]:
        assert download is False
        FakeYoutubeDL.urls.append(url)
        if FakeYoutubeDL.error is not None:
            raise FakeYoutubeDL.error
        return FakeYoutubeDL.info


def fake_transcript_api(result: Any) -> type:
    class FakeApi:
        def fetch(self, video_id: str) -> Any:
            if isinstance(result, Exception):
                raise result
            return result

    return FakeApi


@pytest.fixture
def fake_ydl(monkeypatch: pytest.MonkeyPatch) -> type[FakeYoutubeDL]:
    monkeypatch.setattr(FakeYoutubeDL, "info", {})
    monkeypatch.setattr(FakeYoutubeDL, "error", None)
    monkeypatch.setattr(FakeYoutubeDL, "urls", [])
    monkeypatch.setattr(youtube, "YoutubeDL", FakeYoutubeDL)
    return FakeYoutubeDL


def test_youtube_metadata_maps_info_fields(fake_ydl: type[FakeYoutubeDL]) -> None:
    fake_ydl.info = {
        "title": "Intro to Leases",
        "uploader": "Tenant Union",
        "duration": 754,
        "upload_date": "20240131",
    }

    meta = VideoMetadata.from_raw("abcdefghijk", YouTubeFetcher().metadata("abcdefghijk"))

    assert fake_ydl.urls == ["https://www.youtube.com/watch?v=abcdefghijk"]
    assert meta.title == "Intro to Leases"
    assert meta.channel_name == "Tenant Union"
    assert meta.duration_seconds == 754
    assert meta.upload_date == "2024-01-31"


def test_youtube_metadata_failure_is_a_transcript_error(fake_ydl: type[FakeYoutubeDL]) -> None:
    fake_ydl.error = DownloadError("Video unavailable")

    with pytest.raises(TranscriptError, match="Failed to fetch metadata"):
        YouTubeFetcher().metadata("abcdefghijk")


def test_youtube_transcript_segments(monkeypatch: pytest.MonkeyPatch) -> None:
    snippets = [SimpleNamespace(text="Hello"), SimpleNamespace(text="world")]
    monkeypatch.setattr(youtube, "YouTubeTranscriptApi", fake_transcript_api(snippets))

    assert list(YouTubeFetcher().transcript("abcdefghijk")) == ["Hello", "world"]


def test_youtube_disabled_captions_mean_no_transcript(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(
        youtube, "YouTubeTranscriptApi", fake_transcript_api(TranscriptsDisabled("abcdefghijk"))
    )

    with pytest.raises(NoTranscript):
        YouTubeFetcher().transcript("abcdefghijk")
