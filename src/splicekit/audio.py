from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable

import numpy as np


@dataclass(frozen=True, eq=False)
class AudioBuffer:
    """Decoded audio: float32 samples shaped (channels, frames), values in [-1, 1].

    Buffers are never edited in place. Transforms build a new buffer and
    the old one stays valid for as long as someone (usually undo) holds it.
    """

    samples: np.ndarray
    sample_rate: int

    def __post_init__(self) -> None:
        x = np.array(self.samples, dtype=np.float32, copy=True)
        if x.ndim == 1:
            x = x.reshape(1, -1)
        if x.ndim != 2 or x.shape[0] not in (1, 2):
            raise ValueError("AudioBuffer expects 1 or 2 channels shaped (channels, frames)")
        if int(self.sample_rate) <= 0:
            raise ValueError("sample_rate must be > 0")
        x.setflags(write=False)
        object.__setattr__(self, "samples", x)
        object.__setattr__(self, "sample_rate", int(self.sample_rate))

    @classmethod
    def from_channels(cls, channels: Iterable[np.ndarray], sample_rate: int) -> "AudioBuffer":
        chans = [np.asarray(c, dtype=np.float32).reshape(-1) for c in channels]
        if not chans:
            raise ValueError("at least one channel is required")
        n = chans[0].size
        if any(c.size != n for c in chans):
            raise ValueError("all channels must have the same length")
        return cls(np.stack(chans, axis=0), sample_rate)

    @classmethod
    def silent(cls, frames: int, sample_rate: int, *, channels: int = 1) -> "AudioBuffer":
        return cls(np.zeros((int(channels), max(0, int(frames))), dtype=np.float32), sample_rate)

    @property
    def channel_count(self) -> int:
        return int(self.samples.shape[0])

    @property
    def length(self) -> int:
        return int(self.samples.shape[1])

    @property
    def duration(self) -> float:
        return float(self.length) / float(self.sample_rate)

    def channel(self, index: int) -> np.ndarray:
        return self.samples[int(index)]

    def with_samples(self, samples: np.ndarray) -> "AudioBuffer":
        """New buffer at the same rate (channel count follows `samples`)."""
        return AudioBuffer(samples, self.sample_rate)

    def time_to_sample(self, t: float) -> int:
        idx = int(round(float(t) * float(self.sample_rate)))
        return max(0, min(idx, self.length))

    def sample_to_time(self, idx: int) -> float:
        return float(idx) / float(self.sample_rate)


def peak_amplitude(buffer: AudioBuffer) -> float:
    if buffer.length == 0:
        return 0.0
    return float(np.max(np.abs(buffer.samples)))
