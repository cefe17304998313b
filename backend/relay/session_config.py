"""
Upstream session configuration.

Derived once from (modality, document) and sent as the first upstream
message of every session, before any client message is forwarded.
"""

from __future__ import annotations

from typing import Any

from protocol.events import SESSION_UPDATE
from relay.instructions import build_instructions
from relay.modality import Modality
from relay.params import DocumentContext
from spec import (
    INPUT_TRANSCRIPTION_MODEL,
    TURN_DETECTION_PREFIX_PADDING_MS,
    TURN_DETECTION_SILENCE_MS,
    TURN_DETECTION_THRESHOLD,
    TURN_DETECTION_TYPE,
    VOICE_AUDIO_FORMAT,
    VOICE_NAME,
)


def build_session_config(
    modality: Modality,
    document: DocumentContext | None,
) -> dict[str, Any]:
    """The `session` object of session.update."""
    session: dict[str, Any] = {
        "instructions": build_instructions(document),
        "modalities": list(modality.output_modalities),
    }

    if modality is Modality.VOICE:
        session.update({
            "voice": VOICE_NAME,
            "input_audio_format": VOICE_AUDIO_FORMAT,
            "output_audio_format": VOICE_AUDIO_FORMAT,
            "input_audio_transcription": {"model": INPUT_TRANSCRIPTION_MODEL},
            "turn_detection": {
                "type": TURN_DETECTION_TYPE,
                "threshold": TURN_DETECTION_THRESHOLD,
                "prefix_padding_ms": TURN_DETECTION_PREFIX_PADDING_MS,
                "silence_duration_ms": TURN_DETECTION_SILENCE_MS,
            },
        })

    return session


def build_session_update(
    modality: Modality,
    document: DocumentContext | None,
) -> dict[str, Any]:
    return {
        "type": SESSION_UPDATE,
        "session": build_session_config(modality, document),
    }
