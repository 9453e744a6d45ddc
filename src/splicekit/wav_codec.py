"""RIFF/WAVE encoding with a `cue ` chunk, and cue-point parsing.

The writer emits the canonical 44-byte header followed by interleaved
samples and, when markers exist, one cue chunk:

    "cue " | size = 4 + 24*N | N | N x (id, position, "data", 0, 0, offset)

Every integer is little-endian. The cue position and sample offset both
hold floor(time * sample_rate).

The reader only walks chunks far enough to recover the sample rate and
the cue offsets. Malformed input yields an empty marker list; it never
raises into the caller.
"""

from __future__ import annotations

import logging
import math
import struct
from dataclasses import dataclass
from pathlib import Path
from typing import Sequence

import numpy as np

from .audio import AudioBuffer


logger = logging.getLogger(__name__)

WAVE_FORMAT_PCM = 1
WAVE_FORMAT_IEEE_FLOAT = 3

HEADER_SIZE = 44
CUE_RECORD_SIZE = 24
CUE_HEADER_SIZE = 12

SAMPLE_FORMATS = ("int", "float")


class WavFormatError(ValueError):
    pass


@dataclass(frozen=True)
class CuePoint:
    cue_id: int
    sample_offset: int


@dataclass(frozen=True)
class WavCueInfo:
    sample_rate: int
    channels: int
    bits_per_sample: int
    format_tag: int
    cue_points: tuple[CuePoint, ...]

    def marker_times(self) -> list[float]:
        sr = float(self.sample_rate)
        return sorted(float(c.sample_offset) / sr for c in self.cue_points)


def cue_chunk_size(n_markers: int) -> int:
    """Bytes taken by the whole cue chunk, header included (0 when empty)."""
    n = int(n_markers)
    return CUE_HEADER_SIZE + CUE_RECORD_SIZE * n if n > 0 else 0


def cue_sample_offset(time_s: float, sample_rate: int) -> int:
    off = int(math.floor(float(time_s) * float(sample_rate)))
    return max(0, min(off, 0xFFFFFFFF))


def _pcm16_bytes(samples: np.ndarray) -> bytes:
    # (channels, frames) -> frame-major interleave
    x = np.clip(samples.T.reshape(-1).astype(np.float64), -1.0, 1.0)
    return np.rint(x * 32767.0).astype("<i2").tobytes()


def _float32_bytes(samples: np.ndarray) -> bytes:
    return samples.T.reshape(-1).astype("<f4").tobytes()


def _cue_chunk(offsets: Sequence[int]) -> bytes:
    n = len(offsets)
    if n == 0:
        return b""
    parts = [b"cue ", struct.pack("<II", 4 + CUE_RECORD_SIZE * n, n)]
    for i, off in enumerate(offsets):
        parts.append(struct.pack("<II4sIII", i, int(off), b"data", 0, 0, int(off)))
    return b"".join(parts)


def encode_wav(
    buffer: AudioBuffer,
    cue_points: Sequence[float] = (),
    *,
    sample_format: str = "int",
) -> bytes:
    """Encode `buffer` as a WAV byte string with optional cue points.

    sample_format: "int" writes 16-bit PCM (format tag 1); "float" writes
    32-bit IEEE float (format tag 3). Cue points are written in the order
    given, with ids 0..N-1.
    """

    if sample_format not in SAMPLE_FORMATS:
        raise ValueError(f"sample_format must be one of {SAMPLE_FORMATS}")

    channels = buffer.channel_count
    sr = buffer.sample_rate
    if sample_format == "float":
        bits, tag, payload = 32, WAVE_FORMAT_IEEE_FLOAT, _float32_bytes(buffer.samples)
    else:
        bits, tag, payload = 16, WAVE_FORMAT_PCM, _pcm16_bytes(buffer.samples)

    block_align = channels * (bits // 8)
    byte_rate = sr * block_align
    data_size = len(payload)

    cue = _cue_chunk([cue_sample_offset(t, sr) for t in cue_points])
    total = HEADER_SIZE + data_size + len(cue)

    header = struct.pack(
        "<4sI4s4sIHHIIHH4sI",
        b"RIFF",
        total - 8,
        b"WAVE",
        b"fmt ",
        16,
        tag,
        channels,
        sr,
        byte_rate,
        block_align,
        bits,
        b"data",
        data_size,
    )
    return header + payload + cue


def read_cue_chunk(data: bytes) -> WavCueInfo:
    """Walk the RIFF chunks and return format fields plus cue points.

    Raises WavFormatError on bad magic, a missing fmt chunk, or any field
    that would be read past the end of `data`.
    """

    view = memoryview(bytes(data))
    n = len(view)
    if n < 12 or bytes(view[0:4]) != b"RIFF" or bytes(view[8:12]) != b"WAVE":
        raise WavFormatError("not a RIFF/WAVE stream")

    fmt: tuple[int, int, int, int] | None = None
    offsets: list[CuePoint] = []

    pos = 12
    while pos + 8 <= n:
        chunk_id = bytes(view[pos : pos + 4])
        (size,) = struct.unpack_from("<I", view, pos + 4)
        body = pos + 8

        if chunk_id == b"fmt ":
            if body + 16 > n:
                raise WavFormatError("truncated fmt chunk")
            tag, channels, sr = struct.unpack_from("<HHI", view, body)
            (bits,) = struct.unpack_from("<H", view, body + 14)
            fmt = (int(tag), int(channels), int(sr), int(bits))
        elif chunk_id == b"cue ":
            if body + 4 > n:
                raise WavFormatError("truncated cue chunk")
            (count,) = struct.unpack_from("<I", view, body)
            rec = body + 4
            if rec + CUE_RECORD_SIZE * int(count) > n:
                raise WavFormatError(f"cue chunk declares {count} points past end of data")
            for i in range(int(count)):
                base = rec + i * CUE_RECORD_SIZE
                (cue_id,) = struct.unpack_from("<I", view, base)
                (sample_offset,) = struct.unpack_from("<I", view, base + 20)
                offsets.append(CuePoint(int(cue_id), int(sample_offset)))

        # Chunks are word aligned: odd sizes carry one pad byte.
        pos = body + int(size) + (int(size) & 1)

    if fmt is None:
        raise WavFormatError("missing fmt chunk")
    tag, channels, sr, bits = fmt
    if sr <= 0:
        raise WavFormatError("sample rate must be > 0")
    return WavCueInfo(
        sample_rate=sr,
        channels=channels,
        bits_per_sample=bits,
        format_tag=tag,
        cue_points=tuple(offsets),
    )


def decode_cue_points(data: bytes) -> list[float]:
    """Cue-point times in seconds, ascending; [] for anything unreadable."""

    try:
        info = read_cue_chunk(data)
    except (WavFormatError, struct.error, TypeError) as e:
        logger.debug("No cue points decoded: %s", e)
        return []
    times = info.marker_times()
    logger.debug("Decoded %d cue points at %d Hz", len(times), info.sample_rate)
    return times


def cue_points_from_file(path: str | Path) -> list[float]:
    try:
        data = Path(path).read_bytes()
    except OSError as e:
        logger.debug("Cannot read %s for cue points: %s", path, e)
        return []
    return decode_cue_points(data)


def write_wav_file(
    path: str | Path,
    buffer: AudioBuffer,
    cue_points: Sequence[float] = (),
    *,
    sample_format: str = "int",
) -> Path:
    p = Path(path)
    p.parent.mkdir(parents=True, exist_ok=True)
    p.write_bytes(encode_wav(buffer, cue_points, sample_format=sample_format))
    return p
