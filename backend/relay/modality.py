"""
Relay modality enumeration.

Fixed at session creation. Determines the upstream session
configuration and never changes for the session's lifetime.
"""

from __future__ import annotations

from enum import Enum

from spec import TEXT_MODALITIES, VOICE_MODALITIES


class Modality(str, Enum):
    """
    TEXT:
        Upstream produces text output only.

    VOICE:
        Upstream produces text + audio, accepts PCM16 input audio and
        runs server-side turn detection.
    """

    TEXT = "text"
    VOICE = "voice"

    @property
    def label(self) -> str:
        """Human-readable mode name used in logs and the connected message."""
        return "Text Chat" if self is Modality.TEXT else "Voice Chat"

    @property
    def output_modalities(self) -> tuple[str, ...]:
        return TEXT_MODALITIES if self is Modality.TEXT else VOICE_MODALITIES
