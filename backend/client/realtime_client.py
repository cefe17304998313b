"""
Realtime chat client (terminal counterpart of the browser chat pages).

One RealtimeClient == one relay connection in one modality.

Inbound:
    every frame is parsed as JSON and folded into ChatContext;
    response.audio.delta payloads are also queued on the PlaybackScheduler
Outbound:
    send_text()    conversation.item.create + response.create
    start_voice()  microphone capture -> input_audio_buffer.append

Teardown (disconnect) releases playback, capture and the socket in that
order and is safe to call more than once.
"""

from __future__ import annotations

import asyncio
import json
from typing import Any, Awaitable, Callable, Optional
from urllib.parse import urlencode

from websockets.asyncio.client import connect as ws_connect
from websockets.exceptions import ConnectionClosed

from audio.capture import CapturePipeline, MuteGate, SourceFactory
from audio.devices import DeviceError, MicrophoneSource, SoundDeviceSink
from audio.playback import PlaybackScheduler, SinkFactory
from client.state import ChatContext
from observability.logger import log_event, mask_secret
from protocol import events
from relay.dispatcher import RELAY_ROUTES
from relay.modality import Modality
from spec import UPSTREAM_MAX_MESSAGE_BYTES


Connector = Callable[..., Awaitable[Any]]


def _path_for(modality: Modality) -> str:
    for path, routed in RELAY_ROUTES.items():
        if routed is modality:
            return path
    raise ValueError(f"no relay route for {modality!r}")


def build_relay_url(
    server_url: str,
    modality: Modality,
    *,
    api_key: str,
    document_name: Optional[str] = None,
    document_text: Optional[str] = None,
) -> str:
    """
    Relay URL for `modality`. http(s) server URLs are mapped to ws(s).

    >>> build_relay_url("http://localhost:5000", Modality.TEXT, api_key="sk-x")
    'ws://localhost:5000/api/ai/text?apiKey=sk-x'
    """
    base = server_url.rstrip("/")
    if base.startswith("http"):
        base = "ws" + base[len("http"):]

    query: dict[str, str] = {"apiKey": api_key}
    if document_name:
        query["documentName"] = document_name
    if document_text:
        query["documentText"] = document_text

    return f"{base}{_path_for(modality)}?{urlencode(query)}"


class RealtimeClient:
    def __init__(
        self,
        *,
        server_url: str,
        modality: Modality,
        api_key: str,
        document_name: Optional[str] = None,
        document_text: Optional[str] = None,
        context: Optional[ChatContext] = None,
        connect: Connector = ws_connect,
        sink_factory: Optional[SinkFactory] = None,
        source_factory: Optional[SourceFactory] = None,
        on_event: Optional[Callable[[dict[str, Any]], None]] = None,
    ) -> None:
        self.modality = modality
        self.url = build_relay_url(
            server_url,
            modality,
            api_key=api_key,
            document_name=document_name,
            document_text=document_text,
        )
        self._api_key = api_key
        self.context = context or ChatContext(
            document_name=document_name, document_text=document_text
        )
        self._connect = connect
        self._on_event = on_event

        self._ws: Any = None
        self._receiver: asyncio.Task[None] | None = None
        self._closed = asyncio.Event()

        self.gate = MuteGate()
        self.playback = PlaybackScheduler(
            sink_factory=sink_factory or SoundDeviceSink,
            on_idle=self._on_playback_idle,
        )
        self.capture = CapturePipeline(
            source_factory=source_factory or MicrophoneSource,
            send=self._send_raw,
            gate=self.gate,
        )

    # -------------------------
    # Connection
    # -------------------------

    @property
    def is_open(self) -> bool:
        return self._ws is not None and not self._closed.is_set()

    async def connect(self) -> None:
        log_event({
            "event_type": "CLIENT_CONNECTING",
            "modality": self.modality.value,
            "api_key": mask_secret(self._api_key),
        })
        self._ws = await self._connect(self.url, max_size=UPSTREAM_MAX_MESSAGE_BYTES)
        self._receiver = asyncio.create_task(self._receive_loop())

    async def wait_closed(self) -> None:
        await self._closed.wait()

    async def disconnect(self) -> None:
        self.playback.stop()
        self.context.is_ai_speaking = False
        await self.capture.stop()
        self.gate.unmute()

        ws = self._ws
        if ws is not None:
            await ws.close()

        receiver = self._receiver
        if receiver is not None and receiver is not asyncio.current_task():
            await asyncio.gather(receiver, return_exceptions=True)

    # -------------------------
    # Outbound
    # -------------------------

    async def send_text(self, text: str) -> bool:
        text = text.strip()
        if not text or not self.is_open:
            return False

        self.context.on_user_text(text)
        await self._send_raw(json.dumps(events.user_text_item(text)))
        await self._send_raw(json.dumps(
            events.response_create(self.modality.output_modalities)
        ))
        return True

    async def start_voice(self) -> bool:
        """
        Begin streaming the microphone. On DeviceError the failure is
        reported in the chat and text chat remains usable.
        """
        if self.modality is not Modality.VOICE:
            raise RuntimeError("voice capture requires a voice connection")
        try:
            await self.capture.start()
        except DeviceError as e:
            log_event({
                "event_type": "CAPTURE_DEVICE_ERROR",
                "kind": e.kind.value,
                "detail": e.detail,
            })
            self.context.add_message("system", e.user_message)
            return False
        return True

    def toggle_mute(self) -> bool:
        return self.gate.toggle()

    async def _send_raw(self, payload: str) -> None:
        if self._ws is None:
            raise RuntimeError("not connected")
        await self._ws.send(payload)

    # -------------------------
    # Inbound
    # -------------------------

    def handle_message(self, raw: str | bytes) -> Optional[dict[str, Any]]:
        """Parse one relay frame and apply it. Returns the event, or None if unparseable."""
        try:
            text = raw.decode("utf-8") if isinstance(raw, bytes) else raw
            event = json.loads(text)
        except (UnicodeDecodeError, json.JSONDecodeError) as e:
            log_event({
                "event_type": "CLIENT_PARSE_ERROR",
                "error": str(e),
                "payload_len": len(raw),
            })
            return None
        if not isinstance(event, dict):
            return None

        if event.get("type") == events.RESPONSE_AUDIO_DELTA and event.get("delta"):
            self.playback.enqueue(event["delta"])

        self.context.apply(event)
        if self._on_event is not None:
            self._on_event(event)
        return event

    async def _receive_loop(self) -> None:
        ws = self._ws
        try:
            async for message in ws:
                self.handle_message(message)
        except ConnectionClosed as e:
            log_event({"event_type": "CLIENT_CONNECTION_LOST", "error": str(e)})
        finally:
            code = getattr(ws, "close_code", None)
            reason = getattr(ws, "close_reason", None) or ""
            self.context.on_disconnected(code, reason)
            self.playback.stop()
            await self.capture.stop()
            log_event({"event_type": "CLIENT_DISCONNECTED", "code": code, "reason": reason})
            self._closed.set()

    def _on_playback_idle(self) -> None:
        self.context.is_ai_speaking = False
