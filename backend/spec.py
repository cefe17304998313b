"""
PROTOCOL AND AUDIO CONSTANTS
----------------------------
Every value that shapes runtime behaviour of the relay or the audio path.

Rules:
- If changing a value changes runtime behavior, it belongs here.
- No magic numbers elsewhere in the codebase.
- Other modules MUST import from this file.
"""

from __future__ import annotations

from typing import Final, Tuple

# =============================================================================
# Audio Format (PCM16 mono @ 24kHz)
# =============================================================================

AUDIO_SAMPLE_RATE_HZ: Final[int] = 24_000
AUDIO_CHANNELS: Final[int] = 1
AUDIO_SAMPLE_WIDTH_BYTES: Final[int] = 2  # PCM16 (signed 16-bit)

# Capture block = one ScriptProcessor-sized chunk
CAPTURE_BLOCK_SAMPLES: Final[int] = 4096

# Asymmetric PCM16 scaling (negative -> 0x8000, positive -> 0x7FFF)
PCM16_NEGATIVE_SCALE: Final[float] = 32768.0
PCM16_POSITIVE_SCALE: Final[float] = 32767.0

# =============================================================================
# Playback Scheduling
# =============================================================================

# Minimum lead time and per-chunk overlap used to mask scheduling jitter
PLAYBACK_LEAD_S: Final[float] = 0.01
PLAYBACK_OVERLAP_S: Final[float] = 0.01
PLAYBACK_GAIN: Final[float] = 0.9

# =============================================================================
# Relay / Upstream
# =============================================================================

API_KEY_PREFIX: Final[str] = "sk-"

RELAY_TEXT_PATH: Final[str] = "/api/ai/text"
RELAY_VOICE_PATH: Final[str] = "/api/ai/voice"
RELAY_LEGACY_PATH: Final[str] = "/api/ai/realtime"

DEFAULT_REALTIME_MODEL: Final[str] = "gpt-4o-realtime-preview-2024-10-01"
DEFAULT_REALTIME_URL: Final[str] = "wss://api.openai.com/v1/realtime"
REALTIME_BETA_HEADER: Final[Tuple[str, str]] = ("OpenAI-Beta", "realtime=v1")
UPSTREAM_OPEN_TIMEOUT_S: Final[float] = 10.0
UPSTREAM_MAX_MESSAGE_BYTES: Final[int] = 2**24

# Documents travel in the upgrade query string
RELAY_MAX_REQUEST_LINE_BYTES: Final[int] = 2**20

DEFAULT_DOCUMENT_NAME: Final[str] = "Unknown Document"

# =============================================================================
# Voice Session Configuration
# =============================================================================

VOICE_NAME: Final[str] = "alloy"
VOICE_AUDIO_FORMAT: Final[str] = "pcm16"
INPUT_TRANSCRIPTION_MODEL: Final[str] = "whisper-1"

TURN_DETECTION_TYPE: Final[str] = "server_vad"
TURN_DETECTION_THRESHOLD: Final[float] = 0.5
TURN_DETECTION_PREFIX_PADDING_MS: Final[int] = 300
TURN_DETECTION_SILENCE_MS: Final[int] = 1000

TEXT_MODALITIES: Final[Tuple[str, ...]] = ("text",)
VOICE_MODALITIES: Final[Tuple[str, ...]] = ("text", "audio")

# =============================================================================
# Documents
# =============================================================================

MAX_PDF_BYTES: Final[int] = 25 * 1024 * 1024
MAX_VIDEO_DURATION_S: Final[int] = 30 * 60
TEXT_PREVIEW_CHARS: Final[int] = 500

# =============================================================================
# Server
# =============================================================================

DEFAULT_PORT: Final[int] = 5000

# Development origins (localhost + private LAN ranges)
DEV_ORIGIN_PATTERNS: Final[Tuple[str, ...]] = (
    r"^http://localhost:\d+$",
    r"^http://127\.0\.0\.1:\d+$",
    r"^http://192\.168\.\d+\.\d+:\d+$",
    r"^http://10\.\d+\.\d+\.\d+:\d+$",
    r"^http://172\.(1[6-9]|2\d|3[0-1])\.\d+\.\d+:\d+$",
)
