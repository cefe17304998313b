# backend/protocol/events.py
"""
Realtime event builders and event-type names.

Client -> Relay (forwarded upstream verbatim):
    conversation.item.create   user text turn
    response.create            request a response with the session's modalities
    input_audio_buffer.append  base64 PCM16 (voice only)

Relay -> Client (generated by the relay itself):
    connected
    error

Everything else the client receives is an upstream event forwarded
unchanged; the names are listed here so client code does not spell
strings inline.

Usage example:

    await ws.send(json.dumps(user_text_item("What is on page 3?")))
    await ws.send(json.dumps(response_create(VOICE_MODALITIES)))
"""

from __future__ import annotations

from typing import Any, Iterable


# -------------------------
# Event type names
# -------------------------

CONVERSATION_ITEM_CREATE = "conversation.item.create"
RESPONSE_CREATE = "response.create"
INPUT_AUDIO_APPEND = "input_audio_buffer.append"
SESSION_UPDATE = "session.update"

CONNECTED = "connected"
ERROR = "error"

RESPONSE_TEXT_DELTA = "response.text.delta"
RESPONSE_TEXT_DONE = "response.text.done"
RESPONSE_AUDIO_DELTA = "response.audio.delta"
RESPONSE_TRANSCRIPT_DELTA = "response.audio_transcript.delta"
RESPONSE_TRANSCRIPT_DONE = "response.audio_transcript.done"
INPUT_TRANSCRIPTION_COMPLETED = "conversation.item.input_audio_transcription.completed"
SPEECH_STARTED = "input_audio_buffer.speech_started"
SPEECH_STOPPED = "input_audio_buffer.speech_stopped"
RESPONSE_DONE = "response.done"


# -------------------------
# Client -> Relay
# -------------------------

def user_text_item(text: str) -> dict[str, Any]:
    return {
        "type": CONVERSATION_ITEM_CREATE,
        "item": {
            "type": "message",
            "role": "user",
            "content": [{"type": "input_text", "text": text}],
        },
    }


def response_create(modalities: Iterable[str]) -> dict[str, Any]:
    return {
        "type": RESPONSE_CREATE,
        "response": {"modalities": list(modalities)},
    }


def input_audio_append(audio_b64: str) -> dict[str, Any]:
    return {"type": INPUT_AUDIO_APPEND, "audio": audio_b64}


# -------------------------
# Relay -> Client
# -------------------------

def connected_event(*, message: str, has_document_context: bool) -> dict[str, Any]:
    return {
        "type": CONNECTED,
        "message": message,
        "hasDocumentContext": has_document_context,
    }


def error_event(*, message: str, code: str | None = None) -> dict[str, Any]:
    event: dict[str, Any] = {"type": ERROR, "message": message}
    if code is not None:
        event["code"] = code
    return event
