"""
Audio device adapters (sounddevice / PortAudio).

- MicrophoneSource: InputStream -> async iterator of float32 blocks
- SoundDeviceSink:  OutputStream with a sample-accurate timeline; the
                    audio clock is the number of frames rendered so far
- DeviceError:      classified open failures with user-facing remediation

Threading:
PortAudio callbacks run on their own thread. They never touch asyncio
objects directly; everything crosses into the loop through
loop.call_soon_threadsafe.

Hardware precondition:
Streams are opened at spec.AUDIO_SAMPLE_RATE_HZ. There is no resampling
stage; a device that refuses the rate fails to open with a DeviceError.
"""

from __future__ import annotations

import asyncio
import threading
from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional

import numpy as np

from observability.logger import log_event
from spec import AUDIO_CHANNELS, AUDIO_SAMPLE_RATE_HZ, CAPTURE_BLOCK_SAMPLES


def _sounddevice() -> Any:
    # Importing sounddevice loads the PortAudio shared library, which
    # raises OSError on hosts without audio support.
    import sounddevice as sd  # pylint: disable=import-outside-toplevel
    return sd


# ---------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------

class DeviceErrorKind(str, Enum):
    PERMISSION_DENIED = "permission_denied"
    NOT_FOUND = "not_found"
    BUSY = "busy"
    UNKNOWN = "unknown"


_REMEDIATION: dict[DeviceErrorKind, str] = {
    DeviceErrorKind.PERMISSION_DENIED: (
        "Microphone permission was denied. Please allow microphone access "
        "in your system settings and try again."
    ),
    DeviceErrorKind.NOT_FOUND: (
        "No microphone was found. Please connect a microphone and try again."
    ),
    DeviceErrorKind.BUSY: (
        "Your microphone is already in use by another application. "
        "Please close other apps using the microphone."
    ),
    DeviceErrorKind.UNKNOWN: "Unknown error occurred.",
}


class DeviceError(Exception):
    """Audio device could not be opened. Voice degrades; text chat continues."""

    def __init__(self, kind: DeviceErrorKind, detail: str = "") -> None:
        self.kind = kind
        self.detail = detail
        super().__init__(self.user_message)

    @property
    def user_message(self) -> str:
        hint = _REMEDIATION[self.kind]
        if self.kind is DeviceErrorKind.UNKNOWN and self.detail:
            hint = self.detail
        return f"Failed to access microphone. {hint}"


_PERMISSION_MARKERS = ("permission", "not allowed", "access denied", "unauthorized")
_NOT_FOUND_MARKERS = (
    "invalid device", "no default", "not found", "no such device",
    "no input device", "no output device", "error querying device -1",
)
_BUSY_MARKERS = ("unavailable", "busy", "in use", "resource")


def classify_device_error(exc: BaseException) -> DeviceError:
    """Map a PortAudio / OS failure onto a DeviceErrorKind."""
    if isinstance(exc, DeviceError):
        return exc

    text = str(exc).lower()
    if isinstance(exc, PermissionError) or any(m in text for m in _PERMISSION_MARKERS):
        kind = DeviceErrorKind.PERMISSION_DENIED
    elif any(m in text for m in _NOT_FOUND_MARKERS):
        kind = DeviceErrorKind.NOT_FOUND
    elif any(m in text for m in _BUSY_MARKERS):
        kind = DeviceErrorKind.BUSY
    else:
        kind = DeviceErrorKind.UNKNOWN
    return DeviceError(kind, str(exc))


# ---------------------------------------------------------------------
# Capture
# ---------------------------------------------------------------------

class MicrophoneSource:
    """
    Default (or given) input device as an async iterator of float32 blocks.

    Each block holds `blocksize` mono samples. Blocks that cannot be
    consumed fast enough are dropped at the queue (logged), never buffered
    without bound.
    """

    def __init__(
        self,
        *,
        sample_rate: int = AUDIO_SAMPLE_RATE_HZ,
        blocksize: int = CAPTURE_BLOCK_SAMPLES,
        device: Optional[int | str] = None,
        max_pending: int = 32,
    ) -> None:
        self._sample_rate = sample_rate
        self._blocksize = blocksize
        self._device = device
        self._queue: asyncio.Queue[np.ndarray | None] = asyncio.Queue(maxsize=max_pending)
        self._loop: asyncio.AbstractEventLoop | None = None
        self._stream: Any = None
        self._closed = False
        self.overflow_drops = 0

    def open(self) -> None:
        """Acquire the device. Raises DeviceError."""
        self._loop = asyncio.get_running_loop()
        try:
            sd = _sounddevice()
            self._stream = sd.InputStream(
                samplerate=self._sample_rate,
                channels=AUDIO_CHANNELS,
                dtype="float32",
                blocksize=self._blocksize,
                device=self._device,
                callback=self._callback,
            )
            self._stream.start()
        except Exception as e:  # pylint: disable=broad-exception-caught
            self.close()
            raise classify_device_error(e) from e

    def close(self) -> None:
        """Release the device. Idempotent; ends iteration."""
        stream = self._stream
        self._stream = None
        if stream is not None:
            try:
                stream.stop()
            finally:
                stream.close()

        if not self._closed:
            self._closed = True
            while not self._queue.empty():
                self._queue.get_nowait()
            self._queue.put_nowait(None)

    def _callback(self, indata: np.ndarray, frames: int, time_info: Any, status: Any) -> None:
        loop = self._loop
        if loop is None or self._closed:
            return
        block = np.array(indata[:, 0], dtype=np.float32, copy=True)
        loop.call_soon_threadsafe(self._offer, block)

    def _offer(self, block: np.ndarray) -> None:
        if self._closed:
            return
        try:
            self._queue.put_nowait(block)
        except asyncio.QueueFull:
            self.overflow_drops += 1
            log_event({
                "event_type": "CAPTURE_BLOCK_DROPPED",
                "reason": "overflow",
                "drops": self.overflow_drops,
            })

    def __aiter__(self) -> MicrophoneSource:
        return self

    async def __anext__(self) -> np.ndarray:
        block = await self._queue.get()
        if block is None:
            raise StopAsyncIteration
        return block


# ---------------------------------------------------------------------
# Playback
# ---------------------------------------------------------------------

@dataclass
class _Scheduled:
    start_sample: int
    samples: np.ndarray
    future: "asyncio.Future[None]"

    @property
    def end_sample(self) -> int:
        return self.start_sample + int(self.samples.shape[0])


def _resolve(fut: "asyncio.Future[None]") -> None:
    if not fut.done():
        fut.set_result(None)


class SoundDeviceSink:
    """
    Output stream with scheduled, sample-accurate buffers.

    The clock (now()) is frames rendered / sample rate, so it advances only
    while the device consumes audio. Buffers that overlap on the timeline
    are mixed (summed) and clipped to [-1, 1].
    """

    def __init__(
        self,
        *,
        sample_rate: int = AUDIO_SAMPLE_RATE_HZ,
        device: Optional[int | str] = None,
    ) -> None:
        self._loop = asyncio.get_running_loop()
        self._rate = sample_rate
        self._lock = threading.Lock()
        self._scheduled: list[_Scheduled] = []
        self._frames_rendered = 0

        try:
            sd = _sounddevice()
            self._stream = sd.OutputStream(
                samplerate=sample_rate,
                channels=AUDIO_CHANNELS,
                dtype="float32",
                device=device,
                callback=self._callback,
            )
            self._stream.start()
        except Exception as e:  # pylint: disable=broad-exception-caught
            raise classify_device_error(e) from e

    def now(self) -> float:
        with self._lock:
            return self._frames_rendered / float(self._rate)

    def schedule(
        self, samples: np.ndarray, start_time: float, *, gain: float = 1.0
    ) -> "asyncio.Future[None]":
        fut: asyncio.Future[None] = self._loop.create_future()
        item = _Scheduled(
            start_sample=int(round(start_time * self._rate)),
            samples=np.asarray(samples, dtype=np.float32) * np.float32(gain),
            future=fut,
        )
        with self._lock:
            self._scheduled.append(item)
        return fut

    def close(self) -> None:
        stream = self._stream
        self._stream = None
        if stream is not None:
            try:
                stream.stop()
            finally:
                stream.close()

        with self._lock:
            pending = self._scheduled
            self._scheduled = []
        for item in pending:
            item.future.cancel()

    def _callback(self, outdata: np.ndarray, frames: int, time_info: Any, status: Any) -> None:
        mix = np.zeros(frames, dtype=np.float32)
        finished: list[asyncio.Future[None]] = []

        with self._lock:
            block_start = self._frames_rendered
            block_end = block_start + frames
            remaining: list[_Scheduled] = []

            for item in self._scheduled:
                lo = max(item.start_sample, block_start)
                hi = min(item.end_sample, block_end)
                if hi > lo:
                    mix[lo - block_start:hi - block_start] += (
                        item.samples[lo - item.start_sample:hi - item.start_sample]
                    )
                if item.end_sample <= block_end:
                    finished.append(item.future)
                else:
                    remaining.append(item)

            self._scheduled = remaining
            self._frames_rendered = block_end

        outdata[:, 0] = np.clip(mix, -1.0, 1.0)
        for fut in finished:
            self._loop.call_soon_threadsafe(_resolve, fut)
