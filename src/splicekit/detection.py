"""Zero-crossing snapping and frame-energy transient detection.

Both operate on channel 0 only. Stereo material is assumed to share its
edit points across channels.
"""

from __future__ import annotations

import logging
import math

import numpy as np
from scipy.signal import argrelmax

from .audio import AudioBuffer
from .constants import (
    TRANSIENT_DEFAULT_FRAME_MS,
    TRANSIENT_DEFAULT_OVERLAP_PERCENT,
    TRANSIENT_DEFAULT_SENSITIVITY,
    TRANSIENT_MIN_INTERVAL_S,
    ZERO_CROSSING_WINDOW_S,
)


logger = logging.getLogger(__name__)


def nearest_zero_crossing_sample(x: np.ndarray, idx: int, *, radius: int) -> int:
    """Index of the sign change nearest `idx`, or `idx` when there is none.

    A crossing at i means x[i] and x[i+1] sit on opposite sides of zero
    (>= 0 versus < 0). Pairs are scanned inside [idx - radius, idx + radius];
    on equal distance the earlier crossing wins.
    """

    x = np.asarray(x, dtype=np.float32).reshape(-1)
    idx = int(idx)
    n = int(x.size)
    if n < 2:
        return idx

    lo = max(0, idx - max(0, int(radius)))
    hi = min(n - 1, idx + max(0, int(radius)))
    if lo >= hi:
        return idx

    seg = x[lo : hi + 1] >= 0.0
    hits = np.flatnonzero(seg[:-1] != seg[1:])
    if hits.size == 0:
        return idx

    cand = hits + lo
    # argmin returns the first minimum, so ties resolve to the left.
    best = int(cand[int(np.argmin(np.abs(cand - idx)))])
    return best


def find_nearest_zero_crossing(
    buffer: AudioBuffer | None,
    target_time: float,
    search_window: float = ZERO_CROSSING_WINDOW_S,
) -> float:
    """Snap `target_time` (seconds) to the nearest crossing on channel 0."""

    if buffer is None or buffer.length < 2:
        return float(target_time)

    sr = buffer.sample_rate
    idx = int(round(float(target_time) * sr))
    idx = max(0, min(idx, buffer.length - 1))
    radius = int(math.floor(float(search_window) * sr))
    snapped = nearest_zero_crossing_sample(buffer.channel(0), idx, radius=radius)
    if snapped == idx:
        return float(target_time)
    return buffer.sample_to_time(snapped)


def snap_sample(buffer: AudioBuffer, idx: int, search_window: float = ZERO_CROSSING_WINDOW_S) -> int:
    radius = int(math.floor(float(search_window) * buffer.sample_rate))
    return nearest_zero_crossing_sample(buffer.channel(0), idx, radius=radius)


def frame_energies(x: np.ndarray, frame_size: int, hop: int) -> np.ndarray:
    """Mean squared energy of each frame starting at 0, hop, 2*hop, ...

    Frames start strictly before len(x) - frame_size, so the last partial
    window is never evaluated.
    """

    x = np.asarray(x, dtype=np.float64).reshape(-1)
    frame_size = int(frame_size)
    hop = int(hop)
    if frame_size <= 0 or hop <= 0 or x.size <= frame_size:
        return np.zeros(0, dtype=np.float64)

    starts = np.arange(0, x.size - frame_size, hop)
    sq = np.concatenate([[0.0], np.cumsum(x * x)])
    return (sq[starts + frame_size] - sq[starts]) / float(frame_size)


def transient_threshold(deltas: np.ndarray, sensitivity: float) -> float:
    """max - (max - median) * sensitivity / 100, never below the median.

    The median is the upper-middle element of the sorted deltas.
    """

    d = np.sort(np.asarray(deltas, dtype=np.float64).reshape(-1))
    if d.size == 0:
        return 0.0
    median = float(d[d.size // 2])
    top = float(d[-1])
    s = max(0.0, min(100.0, float(sensitivity)))
    return max(top - (top - median) * s / 100.0, median)


def detect_transients(
    buffer: AudioBuffer | None,
    sensitivity: float = TRANSIENT_DEFAULT_SENSITIVITY,
    frame_size_ms: float = TRANSIENT_DEFAULT_FRAME_MS,
    overlap_percent: float = TRANSIENT_DEFAULT_OVERLAP_PERCENT,
) -> list[float]:
    """Onset times (seconds) where frame energy rises sharply.

    sensitivity: 0..100. Higher values lower the threshold and produce
    more markers.
    """

    if buffer is None or buffer.length == 0:
        return []

    sr = buffer.sample_rate
    frame_size = int(math.floor(sr * float(frame_size_ms) / 1000.0))
    overlap = max(0.0, min(float(overlap_percent), 99.0))
    hop = int(math.floor(frame_size * (1.0 - overlap / 100.0)))
    if frame_size <= 0 or hop <= 0:
        return []

    energies = frame_energies(buffer.channel(0), frame_size, hop)
    if energies.size < 3:
        return []

    # deltas[k] is the energy rise from frame k to frame k + 1; the marker
    # lands on the start of frame k, just ahead of the onset.
    deltas = np.diff(energies)
    threshold = transient_threshold(deltas, sensitivity)

    (peaks,) = argrelmax(deltas)
    out: list[float] = []
    last = -math.inf
    for k in peaks:
        k = int(k)
        if deltas[k] <= threshold:
            continue
        t = float(k * hop) / float(sr)
        if t - last > TRANSIENT_MIN_INTERVAL_S:
            out.append(t)
            last = t

    logger.debug(
        "Transient scan: %d frames, threshold=%.6g, %d onsets (sensitivity=%s)",
        int(energies.size),
        threshold,
        len(out),
        sensitivity,
    )
    return out
