"""
Chat state accumulated from relay events.

ChatContext is a plain object owned by one RealtimeClient. It only
interprets events; it never performs I/O. Audio deltas are routed to the
playback scheduler by the client, not stored here.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Literal, Optional

from protocol import events


Role = Literal["user", "assistant", "system"]


@dataclass(frozen=True)
class ChatMessage:
    role: Role
    content: str


@dataclass
class ChatContext:
    document_name: Optional[str] = None
    document_text: Optional[str] = None

    messages: list[ChatMessage] = field(default_factory=list)
    current_transcript: str = ""
    is_loading: bool = False
    is_ai_speaking: bool = False
    is_user_speaking: bool = False
    connected: bool = False
    has_document_context: bool = False
    last_error: Optional[str] = None
    last_error_code: Optional[str] = None

    # True while response.text.delta events extend the last assistant message
    _text_open: bool = field(default=False, repr=False)

    def add_message(self, role: Role, content: str) -> None:
        self.messages.append(ChatMessage(role=role, content=content))

    def apply(self, event: dict[str, Any]) -> None:
        """Fold one relay/upstream event into the chat state."""
        kind = event.get("type")

        if kind == events.ERROR:
            self.last_error = event.get("message") or "Unknown error"
            self.last_error_code = event.get("code")
            self.add_message("system", f"Error: {self.last_error}")
            self.is_loading = False

        elif kind == events.CONNECTED:
            self.connected = True
            self.has_document_context = bool(event.get("hasDocumentContext"))
            self.add_message("system", event.get("message") or "Connected")

        elif kind == events.RESPONSE_TEXT_DELTA:
            delta = event.get("delta") or ""
            last = self.messages[-1] if self.messages else None
            if self._text_open and last is not None and last.role == "assistant":
                self.messages[-1] = ChatMessage("assistant", last.content + delta)
            else:
                self.add_message("assistant", delta)
            self._text_open = True

        elif kind == events.RESPONSE_AUDIO_DELTA:
            if event.get("delta"):
                self.is_ai_speaking = True

        elif kind == events.RESPONSE_TRANSCRIPT_DELTA:
            self.current_transcript += event.get("delta") or ""

        elif kind == events.RESPONSE_TRANSCRIPT_DONE:
            transcript = self.current_transcript or event.get("transcript") or ""
            if transcript:
                self.add_message("assistant", transcript)
            self.current_transcript = ""

        elif kind == events.INPUT_TRANSCRIPTION_COMPLETED:
            if event.get("transcript"):
                self.add_message("user", event["transcript"])

        elif kind == events.SPEECH_STARTED:
            self.is_user_speaking = True

        elif kind == events.SPEECH_STOPPED:
            self.is_user_speaking = False

        elif kind in (events.RESPONSE_DONE, events.RESPONSE_TEXT_DONE):
            self.is_loading = False
            self._text_open = False

    def on_user_text(self, text: str) -> None:
        self.add_message("user", text)
        self.is_loading = True
        self._text_open = False

    def on_disconnected(self, code: Optional[int], reason: str = "") -> None:
        self.connected = False
        self.is_loading = False
        self.is_ai_speaking = False
        if code in (None, 1000):
            self.add_message("system", "Disconnected")
        else:
            self.add_message("system", reason or "Connection closed unexpectedly")
