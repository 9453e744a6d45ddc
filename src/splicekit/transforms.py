"""Destructive region transforms.

Every function takes the current buffer plus the marker and locked-marker
lists and returns a TransformResult. The input buffer is never modified.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, Sequence

import numpy as np

from .audio import AudioBuffer, peak_amplitude
from .constants import (
    CROSSFADE_DEFAULT_DURATION_S,
    FADE_RATIO,
    MARKER_TOLERANCE_S,
    NORMALIZE_DEFAULT_DB,
    SILENCE_PEAK,
    ZERO_CROSSING_WINDOW_S,
)
from .detection import snap_sample
from .fades import LINEAR, fade_gain_curve
from .markers import dedupe_markers, is_marker_locked


logger = logging.getLogger(__name__)

# Marker/bound comparisons are done in seconds; allow for float rounding.
_EPS = 1e-9


@dataclass(frozen=True)
class TransformResult:
    buffer: AudioBuffer
    markers: list[float]
    locked: list[float]
    # True when the transform left no markers and any cached copies
    # (waveform view, cue chunk) must be dropped rather than re-embedded.
    markers_cleared: bool = False


def _passthrough(buffer: AudioBuffer, markers: Sequence[float], locked: Sequence[float]) -> TransformResult:
    return TransformResult(buffer=buffer, markers=sorted(float(m) for m in markers), locked=sorted(float(x) for x in locked))


def _snap_bound(buffer: AudioBuffer, idx: int, search_window: float) -> int:
    # Buffer edges are already click-free boundaries.
    if idx <= 0 or idx >= buffer.length:
        return idx
    return snap_sample(buffer, idx, search_window)


def _region_samples(
    buffer: AudioBuffer, start: float, end: float, search_window: float | None
) -> tuple[int, int]:
    a = buffer.time_to_sample(start)
    b = buffer.time_to_sample(end)
    if a > b:
        a, b = b, a
    if search_window is not None:
        a = _snap_bound(buffer, a, search_window)
        b = _snap_bound(buffer, b, search_window)
    return a, b


def crop(
    buffer: AudioBuffer,
    start: float,
    end: float,
    markers: Sequence[float] = (),
    locked: Sequence[float] = (),
    *,
    search_window: float = ZERO_CROSSING_WINDOW_S,
) -> TransformResult:
    """Keep [start, end) after snapping both bounds to zero crossings.

    Markers outside the kept range are dropped, the rest shift left by the
    snapped start. Raises ValueError when the snapped range is empty.
    """

    s, e = _region_samples(buffer, start, end, search_window)
    if e <= s:
        raise ValueError(f"empty crop region after snapping: [{s}, {e})")

    s_t = buffer.sample_to_time(s)
    e_t = buffer.sample_to_time(e)
    new = buffer.with_samples(buffer.samples[:, s:e])

    def _shift(times: Sequence[float]) -> list[float]:
        out = []
        for m in times:
            m = float(m)
            if s_t - _EPS <= m <= e_t + _EPS:
                out.append(min(max(m - s_t, 0.0), new.duration))
        return dedupe_markers(out, MARKER_TOLERANCE_S)

    kept = _shift(markers)
    kept_locked = _shift(locked)
    # Locked markers must survive as markers too.
    kept = dedupe_markers(kept + [x for x in kept_locked if not is_marker_locked(x, kept)])

    logger.debug(
        "crop: [%d, %d) of %d samples, markers %d -> %d, locked %d -> %d",
        s,
        e,
        buffer.length,
        len(markers),
        len(kept),
        len(locked),
        len(kept_locked),
    )
    if not kept:
        return TransformResult(buffer=new, markers=[], locked=[], markers_cleared=True)
    return TransformResult(buffer=new, markers=kept, locked=kept_locked)


def _apply_gain(buffer: AudioBuffer, a: int, b: int, gain: np.ndarray) -> np.ndarray:
    x = np.array(buffer.samples, dtype=np.float32, copy=True)
    if b > a:
        x[:, a:b] = (x[:, a:b].astype(np.float64) * gain[np.newaxis, :]).astype(np.float32)
    return x


def fade_in(
    buffer: AudioBuffer,
    markers: Sequence[float] = (),
    locked: Sequence[float] = (),
    *,
    start: float = 0.0,
    end: float | None = None,
    curve: str = LINEAR,
    search_window: float | None = ZERO_CROSSING_WINDOW_S,
) -> TransformResult:
    """Ramp gain up across [start, end); defaults to the first 10%."""

    if end is None:
        end = buffer.duration * FADE_RATIO
    a, b = _region_samples(buffer, start, end, search_window)
    x = _apply_gain(buffer, a, b, fade_gain_curve(b - a, curve))
    logger.debug("fade_in: [%d, %d) curve=%s", a, b, curve)
    return _passthrough(buffer.with_samples(x), markers, locked)


def fade_out(
    buffer: AudioBuffer,
    markers: Sequence[float] = (),
    locked: Sequence[float] = (),
    *,
    start: float | None = None,
    end: float | None = None,
    curve: str = LINEAR,
    search_window: float | None = ZERO_CROSSING_WINDOW_S,
) -> TransformResult:
    """Ramp gain down across [start, end); defaults to the last 10%."""

    if end is None:
        end = buffer.duration
    if start is None:
        start = buffer.duration * (1.0 - FADE_RATIO)
    a, b = _region_samples(buffer, start, end, search_window)
    x = _apply_gain(buffer, a, b, fade_gain_curve(b - a, curve, is_fade_out=True))
    logger.debug("fade_out: [%d, %d) curve=%s", a, b, curve)
    return _passthrough(buffer.with_samples(x), markers, locked)


def apply_fades(
    buffer: AudioBuffer,
    markers: Sequence[float] = (),
    locked: Sequence[float] = (),
    *,
    fade_in_region: tuple[float, float] | None = None,
    fade_out_region: tuple[float, float] | None = None,
    fade_in_curve: str = LINEAR,
    fade_out_curve: str = LINEAR,
    search_window: float | None = ZERO_CROSSING_WINDOW_S,
) -> TransformResult:
    """Fade-in then fade-out in one edit; either region may be omitted."""

    res = _passthrough(buffer, markers, locked)
    if fade_in_region is not None:
        res = fade_in(
            res.buffer,
            res.markers,
            res.locked,
            start=fade_in_region[0],
            end=fade_in_region[1],
            curve=fade_in_curve,
            search_window=search_window,
        )
    if fade_out_region is not None:
        res = fade_out(
            res.buffer,
            res.markers,
            res.locked,
            start=fade_out_region[0],
            end=fade_out_region[1],
            curve=fade_out_curve,
            search_window=search_window,
        )
    return res


def crossfade_region(center: float, duration: float, width: float = CROSSFADE_DEFAULT_DURATION_S) -> tuple[float, float]:
    half = max(0.0, float(width)) / 2.0
    return max(0.0, float(center) - half), min(float(duration), float(center) + half)


def crossfade(
    buffer: AudioBuffer,
    markers: Sequence[float] = (),
    locked: Sequence[float] = (),
    *,
    start: float,
    end: float,
    center: float | None = None,
    fade_out_curve: str = LINEAR,
    fade_in_curve: str = LINEAR,
) -> TransformResult:
    """Dip the level around `center`: fade out over [start, center), fade
    back in over [center, end). `center` defaults to the region midpoint."""

    a = buffer.time_to_sample(start)
    b = buffer.time_to_sample(end)
    if a > b:
        a, b = b, a
    mid = (start + end) / 2.0 if center is None else float(center)
    c = min(max(buffer.time_to_sample(mid), a), b)

    x = np.array(buffer.samples, dtype=np.float32, copy=True)
    if c > a:
        g = fade_gain_curve(c - a, fade_out_curve, is_fade_out=True)
        x[:, a:c] = (x[:, a:c].astype(np.float64) * g[np.newaxis, :]).astype(np.float32)
    if b > c:
        g = fade_gain_curve(b - c, fade_in_curve)
        x[:, c:b] = (x[:, c:b].astype(np.float64) * g[np.newaxis, :]).astype(np.float32)

    logger.debug("crossfade: [%d, %d) split at %d", a, b, c)
    return _passthrough(buffer.with_samples(x), markers, locked)


def reverse(
    buffer: AudioBuffer,
    markers: Sequence[float] = (),
    locked: Sequence[float] = (),
    *,
    region: tuple[float, float] | None = None,
) -> TransformResult:
    """Reverse the whole buffer, or only [start, end) of `region`.

    Markers inside the reversed range are mirrored within it.
    """

    x = np.array(buffer.samples, dtype=np.float32, copy=True)
    if region is None:
        a, b = 0, buffer.length
        x = x[:, ::-1].copy()
        lo, hi = 0.0, buffer.duration
    else:
        a = buffer.time_to_sample(region[0])
        b = buffer.time_to_sample(region[1])
        if a > b:
            a, b = b, a
        x[:, a:b] = x[:, a:b][:, ::-1]
        lo, hi = buffer.sample_to_time(a), buffer.sample_to_time(b)

    def _mirror(times: Sequence[float]) -> list[float]:
        out = []
        for m in times:
            m = float(m)
            if lo - _EPS <= m <= hi + _EPS:
                m = min(max(lo + (hi - m), lo), hi)
            out.append(m)
        return sorted(out)

    logger.debug("reverse: [%d, %d) of %d samples", a, b, buffer.length)
    return TransformResult(buffer=buffer.with_samples(x), markers=_mirror(markers), locked=_mirror(locked))


def normalize(
    buffer: AudioBuffer,
    markers: Sequence[float] = (),
    locked: Sequence[float] = (),
    *,
    target_db: float = NORMALIZE_DEFAULT_DB,
) -> TransformResult:
    """Scale so the peak sits at `target_db` dBFS. Silent input is returned as-is."""

    peak = peak_amplitude(buffer)
    if peak < SILENCE_PEAK:
        logger.debug("normalize: peak %.3g below silence floor, unchanged", peak)
        return _passthrough(buffer, markers, locked)

    gain = (10.0 ** (float(target_db) / 20.0)) / peak
    x = (buffer.samples.astype(np.float64) * gain).astype(np.float32)
    logger.debug("normalize: peak %.6f, gain %.6f, target %.2f dB", peak, gain, target_db)
    return _passthrough(buffer.with_samples(x), markers, locked)


def tempo_pitch(
    buffer: AudioBuffer,
    process: Callable[[AudioBuffer], AudioBuffer],
    markers: Sequence[float] = (),
    locked: Sequence[float] = (),
) -> TransformResult:
    """Run an external time/pitch processor and rescale markers to match.

    Markers move by new_duration / old_duration so they stay on the same
    musical positions.
    """

    new = process(buffer)
    if not isinstance(new, AudioBuffer):
        raise TypeError("tempo/pitch processor must return an AudioBuffer")
    old_d = buffer.duration
    scale = (new.duration / old_d) if old_d > 0 else 1.0

    def _scale(times: Sequence[float]) -> list[float]:
        return sorted(min(max(float(m) * scale, 0.0), new.duration) for m in times)

    logger.debug("tempo_pitch: %.3fs -> %.3fs (x%.4f)", old_d, new.duration, scale)
    return TransformResult(buffer=new, markers=_scale(markers), locked=_scale(locked))
