"""
Gap-free sequential playback of streamed audio deltas.

Frames play in arrival order (no resequencing). Each frame is scheduled
against the sink's audio clock:

    start          = max(now + PLAYBACK_LEAD_S, next_play_time)
    next_play_time = start + duration - PLAYBACK_OVERLAP_S

The small negative overlap masks scheduling jitter instead of leaving a
gap. To make that overlap effective, the drain loop keeps up to
`max_scheduled` frames handed to the sink, so frame k+1 is scheduled
while frame k is still playing.

Backpressure / cancellation:
- One drain task at a time; `is_playing` is "drain task alive".
- The loop waits on the oldest scheduled frame's "finished" future (or a
  wakeup when new audio arrives) before scheduling more.
- stop() clears the queue, cancels the drain task, resets the clock and
  releases the sink, even mid-frame.
"""

from __future__ import annotations

import asyncio
from collections import deque
from dataclasses import dataclass
from typing import Callable, Deque, Optional, Protocol

import numpy as np

from audio.frames import AudioFrame
from audio.pcm import PCMDecodeError, decode_audio_delta, pcm16_to_float32
from observability.logger import log_event
from spec import (
    AUDIO_SAMPLE_RATE_HZ,
    PLAYBACK_GAIN,
    PLAYBACK_LEAD_S,
    PLAYBACK_OVERLAP_S,
)


class AudioSink(Protocol):
    """
    Output device with a monotonically advancing audio clock.

    schedule() returns a future resolved when the buffer has finished
    playing (or failed with the playback error).
    """

    def now(self) -> float: ...

    def schedule(
        self, samples: np.ndarray, start_time: float, *, gain: float
    ) -> "asyncio.Future[None]": ...

    def close(self) -> None: ...


SinkFactory = Callable[[], AudioSink]


# -------------------------
# Clock
# -------------------------

@dataclass
class PlaybackClock:
    """Tracks where the next chunk starts on the sink's timeline."""
    lead_s: float = PLAYBACK_LEAD_S
    overlap_s: float = PLAYBACK_OVERLAP_S
    next_play_time: float = 0.0

    def schedule(self, now: float, duration_s: float) -> float:
        """Return the start time for a chunk and advance the clock."""
        start = max(now + self.lead_s, self.next_play_time)
        self.next_play_time = start + duration_s - self.overlap_s
        return start

    def reset(self) -> None:
        self.next_play_time = 0.0


# -------------------------
# Scheduler
# -------------------------

class PlaybackScheduler:
    """
    FIFO of decoded frames drained into an AudioSink.

    The sink is opened lazily on the first frame and released on stop().
    """

    def __init__(
        self,
        *,
        sink_factory: SinkFactory,
        sample_rate: int = AUDIO_SAMPLE_RATE_HZ,
        gain: float = PLAYBACK_GAIN,
        max_scheduled: int = 2,
        on_idle: Optional[Callable[[], None]] = None,
    ) -> None:
        if max_scheduled < 1:
            raise ValueError("max_scheduled must be >= 1")

        self._sink_factory = sink_factory
        self._sample_rate = sample_rate
        self._gain = gain
        self._max_scheduled = max_scheduled
        self._on_idle = on_idle

        self._queue: Deque[AudioFrame] = deque()
        self._clock = PlaybackClock()
        self._sink: AudioSink | None = None
        self._drain_task: asyncio.Task[None] | None = None
        self._wakeup = asyncio.Event()

        self.played_frames = 0
        self.failed_frames = 0

    # -------------------------
    # Introspection
    # -------------------------

    @property
    def is_playing(self) -> bool:
        return self._drain_task is not None and not self._drain_task.done()

    @property
    def next_play_time(self) -> float:
        return self._clock.next_play_time

    def __len__(self) -> int:
        return len(self._queue)

    # -------------------------
    # Intake
    # -------------------------

    def enqueue(self, payload: str) -> bool:
        """
        Decode one response.audio.delta payload and queue it.

        Returns False (and logs) if the payload cannot be decoded.
        """
        try:
            samples = decode_audio_delta(payload)
        except PCMDecodeError as e:
            log_event({
                "event_type": "PLAYBACK_DECODE_ERROR",
                "error": str(e),
                "payload_len": len(payload),
            })
            return False

        if samples.size == 0:
            return False

        self.enqueue_frame(AudioFrame(samples=samples, sample_rate=self._sample_rate))
        return True

    def enqueue_frame(self, frame: AudioFrame) -> None:
        self._queue.append(frame)
        self._wakeup.set()
        if not self.is_playing:
            self._drain_task = asyncio.create_task(self._drain())

    # -------------------------
    # Cancellation
    # -------------------------

    def stop(self) -> None:
        """Drop queued audio, cancel playback and release the sink."""
        self._queue.clear()

        task = self._drain_task
        self._drain_task = None
        if task is not None and not task.done():
            task.cancel()

        self._clock.reset()

        sink = self._sink
        self._sink = None
        if sink is not None:
            sink.close()

    # -------------------------
    # Drain loop
    # -------------------------

    async def _drain(self) -> None:
        in_flight: Deque[asyncio.Future[None]] = deque()
        try:
            while True:
                self._fill(in_flight)
                if not in_flight:
                    return

                self._wakeup.clear()
                waiter = asyncio.ensure_future(self._wakeup.wait())
                try:
                    await asyncio.wait(
                        {in_flight[0], waiter},
                        return_when=asyncio.FIRST_COMPLETED,
                    )
                finally:
                    waiter.cancel()

                while in_flight and in_flight[0].done():
                    self._settle(in_flight.popleft())
        finally:
            for fut in in_flight:
                fut.cancel()
            if self._drain_task is asyncio.current_task():
                self._drain_task = None
                if self._on_idle is not None:
                    self._on_idle()

    def _fill(self, in_flight: Deque["asyncio.Future[None]"]) -> None:
        while self._queue and len(in_flight) < self._max_scheduled:
            frame = self._queue.popleft()
            try:
                in_flight.append(self._schedule(frame))
            except Exception as e:  # pylint: disable=broad-exception-caught
                # One bad frame must not halt playback
                self.failed_frames += 1
                log_event({
                    "event_type": "PLAYBACK_FRAME_ERROR",
                    "stage": "schedule",
                    "exception": type(e).__name__,
                    "message": str(e),
                })

    def _schedule(self, frame: AudioFrame) -> "asyncio.Future[None]":
        sink = self._ensure_sink()
        samples = pcm16_to_float32(frame.samples)
        start = self._clock.schedule(sink.now(), frame.duration_s)
        return sink.schedule(samples, start, gain=self._gain)

    def _settle(self, fut: "asyncio.Future[None]") -> None:
        if fut.cancelled():
            return
        exc = fut.exception()
        if exc is None:
            self.played_frames += 1
            return
        self.failed_frames += 1
        log_event({
            "event_type": "PLAYBACK_FRAME_ERROR",
            "stage": "play",
            "exception": type(exc).__name__,
            "message": str(exc),
        })

    def _ensure_sink(self) -> AudioSink:
        if self._sink is None:
            self._sink = self._sink_factory()
            self._clock.next_play_time = self._sink.now()
        return self._sink
