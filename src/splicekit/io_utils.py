from __future__ import annotations

import io
from pathlib import Path

import numpy as np
import soundfile as sf

from .audio import AudioBuffer


def ensure_parent_dir(path: Path) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)


def _to_buffer(data: np.ndarray, sr: int) -> AudioBuffer:
    # soundfile gives (frames, channels); the engine works in (channels, frames).
    x = np.asarray(data, dtype=np.float32).T
    if x.shape[0] > 2:
        # Only mono and stereo are edited; fold extra channels into L/R.
        left = np.mean(x[0::2], axis=0, dtype=np.float32)
        right = np.mean(x[1::2], axis=0, dtype=np.float32)
        x = np.stack([left, right], axis=0)
    return AudioBuffer(x, int(sr))


def read_audio(path: Path) -> AudioBuffer:
    """Read any soundfile-supported file as float32 in [-1, 1]."""

    data, sr = sf.read(str(path), dtype="float32", always_2d=True)
    return _to_buffer(data, int(sr))


def decode_audio(raw: bytes) -> AudioBuffer:
    """Decode an in-memory container (WAV, FLAC, OGG, ...)."""

    data, sr = sf.read(io.BytesIO(raw), dtype="float32", always_2d=True)
    return _to_buffer(data, int(sr))


def write_bytes(path: Path, data: bytes) -> Path:
    ensure_parent_dir(path)
    path.write_bytes(data)
    return path
