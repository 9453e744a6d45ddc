from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import Sequence

import numpy as np

from .audio import AudioBuffer
from .constants import MAX_DURATION_S
from .export import convert_channels, resample_buffer
from .markers import dedupe_markers


logger = logging.getLogger(__name__)


def is_too_long(duration: float, limit: float = MAX_DURATION_S) -> bool:
    return float(duration) > float(limit)


def truncate_buffer(buffer: AudioBuffer, max_duration: float = MAX_DURATION_S) -> AudioBuffer:
    """First `max_duration` seconds of `buffer` (the buffer itself if shorter)."""

    max_samples = int(math.floor(float(max_duration) * buffer.sample_rate))
    if buffer.length <= max_samples:
        return buffer
    return buffer.with_samples(buffer.samples[:, :max_samples])


@dataclass(frozen=True)
class ConcatResult:
    buffer: AudioBuffer
    markers: list[float]
    truncated: bool = False


def concatenate(
    sources: Sequence[tuple[AudioBuffer, Sequence[float]]],
    *,
    max_duration: float | None = None,
) -> ConcatResult:
    """Join (buffer, cue_points) pairs end to end.

    Each source's cue points are offset by its start time and a marker is
    placed on every join. The first source fixes the sample rate; others
    are resampled to it. With `max_duration` the result is cut and markers
    at or past the cut are dropped.
    """

    if not sources:
        raise ValueError("No buffers provided for concatenation")

    target_rate = sources[0][0].sample_rate
    channels = max(b.channel_count for b, _ in sources)
    if any(b.sample_rate != target_rate for b, _ in sources):
        logger.warning(
            "Sample rate mismatch while joining: %s; resampling to %d Hz",
            sorted({b.sample_rate for b, _ in sources}),
            target_rate,
        )

    parts: list[np.ndarray] = []
    markers: list[float] = []
    offset = 0.0
    for i, (buf, cues) in enumerate(sources):
        buf = convert_channels(resample_buffer(buf, target_rate), channels)
        dur = buf.duration
        markers.extend(offset + float(c) for c in cues if 0.0 <= float(c) < dur)
        if i > 0:
            markers.append(offset)
        parts.append(buf.samples)
        offset += dur

    out = AudioBuffer(np.concatenate(parts, axis=1), target_rate)
    truncated = False
    if max_duration is not None and out.duration > float(max_duration):
        out = truncate_buffer(out, max_duration)
        markers = [m for m in markers if m < out.duration]
        truncated = True

    result = dedupe_markers(markers)
    logger.info(
        "Joined %d buffers: %.3fs, %d markers%s",
        len(sources),
        out.duration,
        len(result),
        " (truncated)" if truncated else "",
    )
    return ConcatResult(buffer=out, markers=result, truncated=truncated)


def run_concat(argv: list[str]) -> int:
    import argparse
    import json
    from pathlib import Path

    from .io_utils import read_audio, write_bytes
    from .wav_codec import cue_points_from_file, encode_wav

    p = argparse.ArgumentParser(prog="splicekit concat", description="Join WAVs, marking every file boundary.")
    p.add_argument("inputs", nargs="+", help="WAV files in playback order")
    p.add_argument("--out", required=True, help="Output WAV")
    p.add_argument("--truncate", action="store_true", help=f"Cut the result at --max-duration (default {MAX_DURATION_S:g}s)")
    p.add_argument("--max-duration", type=float, default=MAX_DURATION_S)
    p.add_argument("--float", action="store_true", help="Write 32-bit float instead of 16-bit PCM")
    args = p.parse_args(argv)

    sources = []
    for s in args.inputs:
        path = Path(s)
        if not path.exists():
            raise SystemExit(f"Input not found: {path}")
        sources.append((read_audio(path), cue_points_from_file(path)))

    res = concatenate(sources, max_duration=(float(args.max_duration) if args.truncate else None))
    if not args.truncate and is_too_long(res.buffer.duration, args.max_duration):
        logger.warning("Joined audio is %.1fs, over the %.1fs limit; pass --truncate to cut it", res.buffer.duration, args.max_duration)

    out = write_bytes(Path(args.out), encode_wav(res.buffer, res.markers, sample_format="float" if args.float else "int"))
    print(
        json.dumps(
            {"out": str(out), "duration_s": res.buffer.duration, "markers": res.markers, "truncated": res.truncated},
            ensure_ascii=False,
        )
    )
    return 0
