"""
Microphone capture pipeline (voice mode).

    source (float32 blocks) -> mute gate -> PCM16 -> base64 -> input_audio_buffer.append

The mute gate only stops sending. The device stays open while muted and
is released on stop().
"""

from __future__ import annotations

import asyncio
import json
from typing import AsyncIterator, Awaitable, Callable, Optional, Protocol

import numpy as np

from audio.pcm import encode_float_block
from observability.logger import log_event
from protocol.events import input_audio_append


class AudioSource(Protocol):
    def open(self) -> None: ...

    def close(self) -> None: ...

    def __aiter__(self) -> AsyncIterator[np.ndarray]: ...


SourceFactory = Callable[[], AudioSource]
SendText = Callable[[str], Awaitable[None]]


class MuteGate:
    """Mute flag consulted on every captured block."""

    def __init__(self, muted: bool = False) -> None:
        self.muted = muted

    def mute(self) -> None:
        self.muted = True

    def unmute(self) -> None:
        self.muted = False

    def toggle(self) -> bool:
        self.muted = not self.muted
        return self.muted


class CapturePipeline:
    def __init__(
        self,
        *,
        source_factory: SourceFactory,
        send: SendText,
        gate: Optional[MuteGate] = None,
    ) -> None:
        self._source_factory = source_factory
        self._send = send
        self.gate = gate or MuteGate()

        self._source: AudioSource | None = None
        self._task: asyncio.Task[None] | None = None

        self.sent_blocks = 0
        self.dropped_muted = 0

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def start(self) -> None:
        """
        Acquire the device and begin streaming.

        Raises audio.devices.DeviceError if the device cannot be opened;
        nothing is started in that case.
        """
        if self.is_running:
            return

        source = self._source_factory()
        source.open()
        self._source = source
        self._task = asyncio.create_task(self._pump(source))
        log_event({"event_type": "CAPTURE_STARTED"})

    async def process_block(self, block: np.ndarray) -> bool:
        """Send one block unless muted. Returns True if it was sent."""
        if self.gate.muted:
            self.dropped_muted += 1
            return False

        payload = json.dumps(input_audio_append(encode_float_block(block)))
        await self._send(payload)
        self.sent_blocks += 1
        return True

    async def stop(self) -> None:
        """Stop streaming and release the device. Idempotent."""
        task = self._task
        self._task = None
        if task is not None and not task.done():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
        self._release()

    async def _pump(self, source: AudioSource) -> None:
        try:
            async for block in source:
                try:
                    await self.process_block(block)
                except Exception as e:  # pylint: disable=broad-exception-caught
                    log_event({
                        "event_type": "CAPTURE_SEND_FAILED",
                        "exception": type(e).__name__,
                        "message": str(e),
                    })
                    return
        finally:
            self._release()

    def _release(self) -> None:
        source = self._source
        self._source = None
        if source is None:
            return
        source.close()
        log_event({
            "event_type": "CAPTURE_STOPPED",
            "sent_blocks": self.sent_blocks,
            "dropped_muted": self.dropped_muted,
        })
