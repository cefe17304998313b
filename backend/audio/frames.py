"""
Audio frame primitives.

Pure data containers only.
No queues, no timing logic.
"""

from __future__ import annotations
from dataclasses import dataclass

import numpy as np

from spec import AUDIO_SAMPLE_RATE_HZ


@dataclass(frozen=True)
class AudioFrame:
    """
    Fixed-duration chunk of mono PCM16 audio.

    samples:
        int16 samples, one channel.

    sample_rate:
        Samples per second. Capture and playback both run at
        spec.AUDIO_SAMPLE_RATE_HZ; the field exists so duration is
        computed from the frame itself.
    """
    samples: np.ndarray
    sample_rate: int = AUDIO_SAMPLE_RATE_HZ

    def __len__(self) -> int:
        return int(self.samples.shape[0])

    @property
    def duration_s(self) -> float:
        return len(self) / float(self.sample_rate)
