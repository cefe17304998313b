# pylint: disable=missing-module-docstring,missing-function-docstring

import argparse
import asyncio
import functools
import json
from typing import Any, AsyncIterator, Callable
from urllib.parse import parse_qs, urlsplit

import numpy as np
import pytest
from websockets.datastructures import Headers
from websockets.exceptions import InvalidStatus
from websockets.http11 import Response

import client.cli as cli
from audio.devices import DeviceError, DeviceErrorKind
from audio.pcm import encode_float_block
from client.realtime_client import RealtimeClient, build_relay_url
from client.state import ChatContext, ChatMessage
from relay.modality import Modality


# -------------------------
# ChatContext
# -------------------------

def test_text_deltas_accumulate_into_one_assistant_message() -> None:
    ctx = ChatContext()
    ctx.apply({"type": "connected", "message": "Connected to OpenAI Realtime API (Text Chat)",
               "hasDocumentContext": True})
    ctx.on_user_text("What is this?")
    for delta in ("It is ", "a lease."):
        ctx.apply({"type": "response.text.delta", "delta": delta})
    ctx.apply({"type": "response.done"})

    assert ctx.connected and ctx.has_document_context
    assert not ctx.is_loading
    assert ctx.messages[-2:] == [
        ChatMessage("user", "What is this?"),
        ChatMessage("assistant", "It is a lease."),
    ]


def test_second_response_starts_a_new_message() -> None:
    ctx = ChatContext()
    ctx.apply({"type": "response.text.delta", "delta": "One."})
    ctx.apply({"type": "response.text.done"})
    ctx.apply({"type": "response.text.delta", "delta": "Two."})

    assert [m.content for m in ctx.messages] == ["One.", "Two."]


def test_voice_transcripts() -> None:
    ctx = ChatContext()
    ctx.apply({"type": "conversation.item.input_audio_transcription.completed", "transcript": "hi there"})
    ctx.apply({"type": "input_audio_buffer.speech_started"})
    assert ctx.is_user_speaking
    ctx.apply({"type": "input_audio_buffer.speech_stopped"})
    ctx.apply({"type": "response.audio.delta", "delta": "AAAA"})
    ctx.apply({"type": "response.audio_transcript.delta", "delta": "Hello "})
    ctx.apply({"type": "response.audio_transcript.delta", "delta": "back"})
    ctx.apply({"type": "response.audio_transcript.done"})

    assert ctx.is_ai_speaking
    assert not ctx.is_user_speaking
    assert ctx.current_transcript == ""
    assert ctx.messages == [ChatMessage("user", "hi there"), ChatMessage("assistant", "Hello back")]


def test_error_event_is_recorded() -> None:
    ctx = ChatContext(is_loading=True)
    ctx.apply({"type": "error", "message": "Invalid OpenAI API key.", "code": "INVALID_API_KEY"})

    assert ctx.last_error_code == "INVALID_API_KEY"
    assert not ctx.is_loading
    assert ctx.messages[-1].content == "Error: Invalid OpenAI API key."


# -------------------------
# URL building
# -------------------------

def test_relay_url_carries_credential_and_document() -> None:
    url = build_relay_url(
        "https://chat.example:5000/",
        Modality.VOICE,
        api_key="sk-abc",
        document_name="Q3 Report",
        document_text="Revenue & costs = 100%",
    )
    parts = urlsplit(url)

    assert parts.scheme == "wss"
    assert parts.path == "/api/ai/voice"
    assert parse_qs(parts.query) == {
        "apiKey": ["sk-abc"],
        "documentName": ["Q3 Report"],
        "documentText": ["Revenue & costs = 100%"],
    }


def test_relay_url_without_document() -> None:
    url = build_relay_url("http://localhost:5000", Modality.TEXT, api_key="sk-abc")
    assert url == "ws://localhost:5000/api/ai/text?apiKey=sk-abc"


# -------------------------
# RealtimeClient
# -------------------------

class FakeWebSocket:
    def __init__(self) -> None:
        self.sent: list[str] = []
        self.inbox: asyncio.Queue[Any] = asyncio.Queue()
        self.close_code: int | None = None
        self.close_reason = ""

    async def send(self, payload: str) -> None:
        self.sent.append(payload)

    async def close(self, code: int = 1000) -> None:
        if self.close_code is None:
            self.close_code = code
            self.inbox.put_nowait(None)

    def server_close(self, code: int, reason: str = "") -> None:
        self.close_code = code
        self.close_reason = reason
        self.inbox.put_nowait(None)

    async def _messages(self) -> AsyncIterator[Any]:
        while True:
            item = await self.inbox.get()
            if item is None:
                return
            yield item

    def __aiter__(self) -> AsyncIterator[Any]:
        return self._messages()


class FakeSink:
    def __init__(self) -> None:
        self.scheduled: list[np.ndarray] = []
        self.closed = False

    def now(self) -> float:
        return 0.0

    def schedule(self, samples: np.ndarray, start_time: float, *, gain: float) -> "asyncio.Future[None]":
        self.scheduled.append(samples)
        return asyncio.get_running_loop().create_future()

    def close(self) -> None:
        self.closed = True


class BrokenMicrophone:
    def open(self) -> None:
        raise DeviceError(DeviceErrorKind.BUSY)

    def close(self) -> None:
        pass

    def __aiter__(self) -> AsyncIterator[np.ndarray]:
        raise AssertionError("never iterated")


async def wait_until(predicate: Callable[[], bool], steps: int = 200) -> None:
    for _ in range(steps):
        if predicate():
            return
        await asyncio.sleep(0)
    raise AssertionError("condition not reached")


def make_client(modality: Modality = Modality.TEXT) -> tuple[RealtimeClient, FakeWebSocket, list[FakeSink]]:
    ws = FakeWebSocket()
    sinks: list[FakeSink] = []
    urls: list[str] = []

    async def connect(url: str, **kwargs: Any) -> FakeWebSocket:
        urls.append(url)
        return ws

    def sink_factory() -> FakeSink:
        sinks.append(FakeSink())
        return sinks[-1]

    client = RealtimeClient(
        server_url="http://localhost:5000",
        modality=modality,
        api_key="sk-abc",
        document_name="Doc",
        document_text="Body",
        connect=connect,
        sink_factory=sink_factory,
        source_factory=BrokenMicrophone,
    )
    return client, ws, sinks


@pytest.mark.asyncio
async def test_send_text_emits_item_then_response_create() -> None:
    client, ws, _ = make_client(Modality.VOICE)
    await client.connect()

    assert await client.send_text("  Summarize it  ")

    assert [json.loads(m) for m in ws.sent] == [
        {
            "type": "conversation.item.create",
            "item": {"type": "message", "role": "user",
                     "content": [{"type": "input_text", "text": "Summarize it"}]},
        },
        {"type": "response.create", "response": {"modalities": ["text", "audio"]}},
    ]
    assert client.context.is_loading

    await client.disconnect()


@pytest.mark.asyncio
async def test_audio_deltas_are_played_and_events_applied() -> None:
    client, ws, sinks = make_client(Modality.VOICE)
    await client.connect()

    audio = encode_float_block(np.full(240, 0.5, dtype=np.float32))
    ws.inbox.put_nowait(json.dumps({"type": "connected", "message": "ok", "hasDocumentContext": True}))
    ws.inbox.put_nowait(json.dumps({"type": "response.audio.delta", "delta": audio}))
    ws.inbox.put_nowait("{garbage")
    await wait_until(lambda: bool(sinks) and len(sinks[0].scheduled) == 1)

    assert client.context.connected
    assert client.context.is_ai_speaking

    await client.disconnect()
    assert sinks[0].closed
    assert not client.context.is_ai_speaking


@pytest.mark.asyncio
async def test_microphone_failure_keeps_text_chat_usable() -> None:
    client, ws, _ = make_client(Modality.VOICE)
    await client.connect()

    assert await client.start_voice() is False
    assert client.context.messages[-1].content.startswith("Failed to access microphone.")
    assert await client.send_text("typed instead")

    await client.disconnect()


@pytest.mark.asyncio
async def test_server_close_is_reported() -> None:
    client, ws, _ = make_client()
    await client.connect()

    ws.server_close(1011, "upstream failed")
    await asyncio.wait_for(client.wait_closed(), timeout=1.0)

    assert not client.context.connected
    assert client.context.messages[-1].content == "upstream failed"
    assert await client.send_text("anyone?") is False


def test_toggle_mute() -> None:
    client, _, _ = make_client(Modality.VOICE)
    assert client.toggle_mute() is True
    assert client.gate.muted
    assert client.toggle_mute() is False


# -------------------------
# CLI
# -------------------------

def cli_args(**overrides: Any) -> argparse.Namespace:
    values = {
        "server": "http://localhost:5000",
        "mode": Modality.TEXT.value,
        "api_key": "sk-abc",
        "document": None,
        "document_name": None,
    }
    values.update(overrides)
    return argparse.Namespace(**values)


@pytest.mark.asyncio
@pytest.mark.parametrize(
    ("error", "shown"),
    [
        (ConnectionRefusedError(111, "Connect call failed"), "Connect call failed"),
        (InvalidStatus(Response(403, "Forbidden", Headers())), "HTTP 403"),
    ],
)
async def test_cli_reports_failed_connection(
    monkeypatch: pytest.MonkeyPatch,
    capsys: pytest.CaptureFixture[str],
    error: Exception,
    shown: str,
) -> None:
    async def connect(url: str, **kwargs: Any) -> FakeWebSocket:
        raise error

    monkeypatch.setattr(
        cli,
        "RealtimeClient",
        functools.partial(
            RealtimeClient, connect=connect, sink_factory=FakeSink, source_factory=BrokenMicrophone
        ),
    )

    assert await cli.run(cli_args()) == 1

    err = capsys.readouterr().err
    assert err.startswith("Could not connect to http://localhost:5000: ")
    assert shown in err
    assert "Traceback" not in err


@pytest.mark.asyncio
async def test_cli_reports_unreadable_document(capsys: pytest.CaptureFixture[str]) -> None:
    assert await cli.run(cli_args(document="/nonexistent/lease.txt")) == 2
    assert "Could not read document" in capsys.readouterr().err
