"""Export presets and format conversion on top of the WAV codec."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Sequence

import numpy as np

from .audio import AudioBuffer
from .io_utils import write_bytes
from .wav_codec import encode_wav


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ExportFormat:
    label: str
    sample_rate: int
    bit_depth: int
    channels: str
    sample_format: str

    @property
    def channel_count(self) -> int:
        return 1 if self.channels == "mono" else 2

    @property
    def slug(self) -> str:
        return re.sub(r"[^a-z0-9]", "-", self.label.lower())


EXPORT_FORMATS: tuple[ExportFormat, ...] = (
    ExportFormat("48kHz 32-bit Float Stereo", 48000, 32, "stereo", "float"),
    ExportFormat("44.1kHz 32-bit Float Stereo", 44100, 32, "stereo", "float"),
    ExportFormat("48kHz 16-bit Stereo", 48000, 16, "stereo", "int"),
    ExportFormat("44.1kHz 16-bit Stereo", 44100, 16, "stereo", "int"),
    ExportFormat("44.1kHz 16-bit Mono", 44100, 16, "mono", "int"),
    ExportFormat("22.05kHz 16-bit Mono", 22050, 16, "mono", "int"),
)

DEFAULT_EXPORT_FORMAT_INDEX = 0


def export_format(index: int) -> ExportFormat:
    i = int(index)
    if i < 0 or i >= len(EXPORT_FORMATS):
        raise IndexError(f"export format index out of range: {index}")
    return EXPORT_FORMATS[i]


def find_export_format(name: str) -> ExportFormat:
    """Look a preset up by label or slug (case-insensitive)."""

    key = str(name).strip().lower()
    for fmt in EXPORT_FORMATS:
        if key in (fmt.label.lower(), fmt.slug):
            return fmt
    raise KeyError(f"Unknown export format: {name}")


def resample_linear(x: np.ndarray, ratio: float) -> np.ndarray:
    """Linear-interpolation resample of one channel by `ratio` (target/source).

    Output length is round(len(x) * ratio). Output sample i reads source
    position i / ratio; positions on the last sample copy it, positions past
    the end read as silence.
    """

    x = np.asarray(x, dtype=np.float32).reshape(-1)
    n = int(x.size)
    ratio = float(ratio)
    if ratio <= 0.0:
        raise ValueError("ratio must be > 0")
    out_len = int(round(n * ratio))
    if out_len == 0 or n == 0:
        return np.zeros(out_len, dtype=np.float32)

    pos = np.arange(out_len, dtype=np.float64) / ratio
    idx = np.floor(pos).astype(np.int64)
    frac = pos - idx

    y = np.zeros(out_len, dtype=np.float64)
    inner = idx < n - 1
    i = idx[inner]
    y[inner] = x[i] * (1.0 - frac[inner]) + x[i + 1] * frac[inner]
    last = idx == n - 1
    y[last] = x[n - 1]
    return y.astype(np.float32)


def resample_buffer(buffer: AudioBuffer, target_rate: int) -> AudioBuffer:
    target_rate = int(target_rate)
    if target_rate == buffer.sample_rate:
        return buffer
    ratio = float(target_rate) / float(buffer.sample_rate)
    chans = [resample_linear(buffer.channel(c), ratio) for c in range(buffer.channel_count)]
    return AudioBuffer.from_channels(chans, target_rate)


def convert_channels(buffer: AudioBuffer, channel_count: int) -> AudioBuffer:
    """Mix stereo down to mono as (L + R) / 2, or duplicate mono to stereo."""

    target = int(channel_count)
    if target not in (1, 2):
        raise ValueError("channel_count must be 1 or 2")
    if target == buffer.channel_count:
        return buffer
    if target == 1:
        left = buffer.channel(0).astype(np.float64)
        right = buffer.channel(1).astype(np.float64)
        return buffer.with_samples(((left + right) / 2.0).reshape(1, -1))
    mono = buffer.channel(0)
    return buffer.with_samples(np.stack([mono, mono], axis=0))


def convert_for_export(buffer: AudioBuffer, fmt: ExportFormat) -> AudioBuffer:
    out = resample_buffer(buffer, fmt.sample_rate)
    return convert_channels(out, fmt.channel_count)


def encode_for_export(buffer: AudioBuffer, fmt: ExportFormat, markers: Sequence[float] = ()) -> bytes:
    """Convert `buffer` to `fmt` and encode it with `markers` as cue points.

    Cue offsets are written in the target rate, so a marker keeps its time
    when the audio is resampled.
    """

    out = convert_for_export(buffer, fmt)
    data = encode_wav(out, markers, sample_format=fmt.sample_format)
    logger.debug(
        "Export %s: %d Hz x%d -> %d Hz x%d, %d cue points, %d bytes",
        fmt.label,
        buffer.sample_rate,
        buffer.channel_count,
        out.sample_rate,
        out.channel_count,
        len(markers),
        len(data),
    )
    return data


def export_wav(path: Path, buffer: AudioBuffer, fmt: ExportFormat, markers: Sequence[float] = ()) -> Path:
    out = write_bytes(Path(path), encode_for_export(buffer, fmt, markers))
    logger.info("Exported %s (%s, %d markers)", out, fmt.label, len(markers))
    return out


def run_export(argv: list[str]) -> int:
    import argparse
    import json

    from .io_utils import read_audio
    from .wav_codec import cue_points_from_file

    p = argparse.ArgumentParser(prog="splicekit export", description="Re-encode a WAV to one of the export presets.")
    p.add_argument("--in", dest="in_path", help="Source WAV (cue points are carried over)")
    p.add_argument("--out", help="Output WAV")
    p.add_argument("--format", default=EXPORT_FORMATS[DEFAULT_EXPORT_FORMAT_INDEX].slug, help="Preset label or slug")
    p.add_argument("--no-markers", action="store_true", help="Do not write cue points")
    p.add_argument("--list-formats", action="store_true", help="Print the presets and exit")
    args = p.parse_args(argv)

    if args.list_formats:
        rows = [
            {"index": i, "label": f.label, "slug": f.slug, "sample_rate": f.sample_rate, "bit_depth": f.bit_depth, "channels": f.channels}
            for i, f in enumerate(EXPORT_FORMATS)
        ]
        print(json.dumps(rows, indent=2))
        return 0

    if not args.in_path or not args.out:
        p.error("--in and --out are required")
    try:
        fmt = find_export_format(str(args.format))
    except KeyError as e:
        p.error(str(e))

    in_path = Path(args.in_path)
    if not in_path.exists():
        raise SystemExit(f"Input not found: {in_path}")
    buffer = read_audio(in_path)
    markers = [] if args.no_markers else cue_points_from_file(in_path)
    out = export_wav(Path(args.out), buffer, fmt, markers)
    print(json.dumps({"out": str(out), "format": fmt.label, "markers": len(markers)}, ensure_ascii=False))
    return 0
