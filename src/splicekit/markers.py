"""Canonical splice-marker state and the bulk marker operations.

Markers are plain float times in seconds. Identity is positional: two
times within `MARKER_TOLERANCE_S` are the same marker. The locked set is
always a subset of the marker set under that tolerance.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from typing import Iterable, Sequence, Union

from .audio import AudioBuffer
from .constants import (
    MARKER_PROXIMITY_THRESHOLD_S,
    MARKER_TOLERANCE_S,
    MAX_PLAYABLE_MARKER_INDEX,
    MAX_SPLICE_MARKERS,
    ZERO_CROSSING_WINDOW_S,
)
from .detection import find_nearest_zero_crossing


logger = logging.getLogger(__name__)


def is_marker_locked(time_s: float, locked: Iterable[float], tolerance: float = MARKER_TOLERANCE_S) -> bool:
    t = float(time_s)
    return any(abs(t - float(x)) <= tolerance for x in locked)


def is_marker_too_close(
    time_s: float, locked: Iterable[float], threshold: float = MARKER_PROXIMITY_THRESHOLD_S
) -> bool:
    t = float(time_s)
    return any(abs(t - float(x)) < threshold for x in locked)


def dedupe_markers(markers: Iterable[float], tolerance: float = MARKER_TOLERANCE_S) -> list[float]:
    """Sorted copy with every marker more than `tolerance` from its predecessor."""

    out: list[float] = []
    for t in sorted(float(m) for m in markers):
        if math.isnan(t):
            continue
        if out and t - out[-1] <= tolerance:
            continue
        out.append(t)
    return out


def _merge(locked: Sequence[float], unlocked: Sequence[float], tolerance: float) -> list[float]:
    # Locked entries win any collision with an unlocked one.
    keep = [float(u) for u in unlocked if not is_marker_locked(u, locked, tolerance)]
    return sorted(list(locked) + dedupe_markers(keep, tolerance))


@dataclass(frozen=True)
class LimitResult:
    markers: list[float]
    was_limited: bool


def limit_splice_markers(
    markers: Iterable[float],
    locked: Iterable[float] = (),
    max_markers: int = MAX_SPLICE_MARKERS,
    *,
    tolerance: float = MARKER_TOLERANCE_S,
) -> LimitResult:
    """Cap the marker count at `max_markers`, never dropping a locked marker
    unless the locked set alone is over the cap.

    Unlocked markers are thinned evenly: with stride k = unlocked/remaining,
    slot i takes unlocked[round(i * k)].
    """

    max_markers = max(0, int(max_markers))
    locked_d = dedupe_markers(locked, tolerance)
    unlocked = [m for m in dedupe_markers(markers, tolerance) if not is_marker_locked(m, locked_d, tolerance)]

    if len(locked_d) + len(unlocked) <= max_markers:
        return LimitResult(markers=_merge(locked_d, unlocked, tolerance), was_limited=False)

    if len(locked_d) >= max_markers:
        if len(locked_d) > max_markers:
            logger.warning(
                "%d locked markers exceed the limit of %d; keeping the first %d",
                len(locked_d),
                max_markers,
                max_markers,
            )
        return LimitResult(markers=locked_d[:max_markers], was_limited=True)

    remaining = max_markers - len(locked_d)
    stride = len(unlocked) / float(remaining)
    last = len(unlocked) - 1
    picked = [unlocked[min(int(math.floor(i * stride + 0.5)), last)] for i in range(remaining)]

    result = _merge(locked_d, picked, tolerance)
    logger.warning(
        "Marker limit reached: %d markers reduced to %d (%d locked)",
        len(locked_d) + len(unlocked),
        len(result),
        len(locked_d),
    )
    return LimitResult(markers=result, was_limited=True)


@dataclass(frozen=True)
class MarkerEdit:
    """Result of a bulk marker operation."""

    markers: list[float]
    locked: list[float]
    was_limited: bool = False


def _place_unlocked(
    buffer: AudioBuffer | None,
    positions: Iterable[float],
    locked: Sequence[float],
    *,
    proximity: float,
    max_markers: int,
    tolerance: float,
    search_window: float,
) -> MarkerEdit:
    locked_d = dedupe_markers(locked, tolerance)
    placed: list[float] = []
    skipped = 0
    for t in positions:
        if is_marker_too_close(t, locked_d, proximity):
            skipped += 1
            continue
        placed.append(find_nearest_zero_crossing(buffer, float(t), search_window))

    res = limit_splice_markers(list(locked_d) + placed, locked_d, max_markers, tolerance=tolerance)
    logger.debug("Placed %d markers (%d skipped near locked markers)", len(placed), skipped)
    locked_out = [m for m in res.markers if is_marker_locked(m, locked_d, tolerance)]
    return MarkerEdit(markers=res.markers, locked=locked_out, was_limited=res.was_limited)


def auto_slice(
    buffer: AudioBuffer | None,
    number_of_slices: int,
    locked: Sequence[float] = (),
    *,
    duration: float | None = None,
    proximity: float = MARKER_PROXIMITY_THRESHOLD_S,
    max_markers: int = MAX_SPLICE_MARKERS,
    tolerance: float = MARKER_TOLERANCE_S,
    search_window: float = ZERO_CROSSING_WINDOW_S,
) -> MarkerEdit | None:
    """Evenly spaced markers at i * duration / n for i in 0..n-1.

    Returns None when n < 2 or there is no audio to slice.
    """

    n = int(number_of_slices)
    dur = float(duration) if duration is not None else (buffer.duration if buffer is not None else 0.0)
    if n < 2 or dur <= 0.0:
        return None
    interval = dur / float(n)
    return _place_unlocked(
        buffer,
        (i * interval for i in range(n)),
        locked,
        proximity=proximity,
        max_markers=max_markers,
        tolerance=tolerance,
        search_window=search_window,
    )


def apply_transients(
    buffer: AudioBuffer | None,
    transients: Iterable[float],
    locked: Sequence[float] = (),
    *,
    proximity: float = MARKER_PROXIMITY_THRESHOLD_S,
    max_markers: int = MAX_SPLICE_MARKERS,
    tolerance: float = MARKER_TOLERANCE_S,
    search_window: float = ZERO_CROSSING_WINDOW_S,
) -> MarkerEdit:
    """Replace the unlocked markers with detected transients."""

    return _place_unlocked(
        buffer,
        transients,
        locked,
        proximity=proximity,
        max_markers=max_markers,
        tolerance=tolerance,
        search_window=search_window,
    )


def place_grid_markers(
    buffer: AudioBuffer | None,
    positions: Iterable[float],
    locked: Sequence[float] = (),
    *,
    proximity: float = MARKER_PROXIMITY_THRESHOLD_S,
    max_markers: int = MAX_SPLICE_MARKERS,
    tolerance: float = MARKER_TOLERANCE_S,
    search_window: float = ZERO_CROSSING_WINDOW_S,
) -> MarkerEdit:
    return _place_unlocked(
        buffer,
        positions,
        locked,
        proximity=proximity,
        max_markers=max_markers,
        tolerance=tolerance,
        search_window=search_window,
    )


def half_markers(
    markers: Sequence[float], locked: Sequence[float] = (), *, tolerance: float = MARKER_TOLERANCE_S
) -> MarkerEdit:
    """Drop every second unlocked marker (indices 1, 3, 5, ...).

    A lone unlocked marker cannot be halved and is removed instead.
    """

    locked_d = dedupe_markers(locked, tolerance)
    unlocked = [m for m in dedupe_markers(markers, tolerance) if not is_marker_locked(m, locked_d, tolerance)]
    if len(unlocked) == 1:
        kept: list[float] = []
    else:
        kept = unlocked[0::2]
    return MarkerEdit(markers=_merge(locked_d, kept, tolerance), locked=locked_d)


def snap_all_to_zero_crossings(
    buffer: AudioBuffer | None,
    markers: Sequence[float],
    locked: Sequence[float] = (),
    *,
    max_markers: int = MAX_SPLICE_MARKERS,
    tolerance: float = MARKER_TOLERANCE_S,
    search_window: float = ZERO_CROSSING_WINDOW_S,
) -> MarkerEdit:
    """Snap unlocked markers to zero crossings; locked markers stay put."""

    locked_d = dedupe_markers(locked, tolerance)
    snapped = [
        m if is_marker_locked(m, locked_d, tolerance) else find_nearest_zero_crossing(buffer, m, search_window)
        for m in markers
    ]
    res = limit_splice_markers(list(locked_d) + snapped, locked_d, max_markers, tolerance=tolerance)
    locked_out = [m for m in res.markers if is_marker_locked(m, locked_d, tolerance)]
    return MarkerEdit(markers=res.markers, locked=locked_out, was_limited=res.was_limited)


def splice_segment(markers: Sequence[float], index: int, duration: float) -> tuple[float, float] | None:
    """(start, end) of the 1-based marker `index`, for single-slice playback.

    The segment runs to the next marker, or to `duration` for the last one.
    """

    idx = int(index)
    ordered = sorted(float(m) for m in markers)
    if idx < 1 or idx > MAX_PLAYABLE_MARKER_INDEX or idx > len(ordered):
        return None
    start = ordered[idx - 1]
    end = ordered[idx] if idx < len(ordered) else float(duration)
    if end <= start:
        return None
    return start, end


# Commands reported by an interactive marker view.


@dataclass(frozen=True)
class MarkerMoved:
    marker_time: float
    new_time: float


@dataclass(frozen=True)
class MarkerAdded:
    time: float


@dataclass(frozen=True)
class MarkerDeleted:
    marker_time: float


MarkerCommand = Union[MarkerMoved, MarkerAdded, MarkerDeleted]


@dataclass
class MarkerStore:
    """Owner of the canonical marker and locked-marker lists."""

    markers: list[float] = field(default_factory=list)
    locked: list[float] = field(default_factory=list)
    tolerance: float = MARKER_TOLERANCE_S
    max_markers: int = MAX_SPLICE_MARKERS
    search_window: float = ZERO_CROSSING_WINDOW_S

    def __post_init__(self) -> None:
        self.replace(self.markers, self.locked)

    def replace(self, markers: Iterable[float], locked: Iterable[float] = ()) -> None:
        locked_d = dedupe_markers(locked, self.tolerance)
        self.locked = locked_d
        self.markers = _merge(locked_d, list(markers), self.tolerance)

    def apply(self, edit: MarkerEdit) -> None:
        self.replace(edit.markers, edit.locked)

    def snapshot(self) -> tuple[tuple[float, ...], tuple[float, ...]]:
        return tuple(self.markers), tuple(self.locked)

    def is_locked(self, time_s: float) -> bool:
        return is_marker_locked(time_s, self.locked, self.tolerance)

    def find(self, time_s: float) -> int | None:
        t = float(time_s)
        best: int | None = None
        best_d = math.inf
        for i, m in enumerate(self.markers):
            d = abs(m - t)
            if d <= self.tolerance and d < best_d:
                best, best_d = i, d
        return best

    def add(self, time_s: float, buffer: AudioBuffer | None = None) -> bool:
        if len(self.markers) >= self.max_markers:
            logger.warning("Cannot add marker: limit of %d reached", self.max_markers)
            return False
        t = find_nearest_zero_crossing(buffer, float(time_s), self.search_window)
        if buffer is not None:
            t = max(0.0, min(t, buffer.duration))
        if self.find(t) is not None:
            return False
        self.markers = sorted(self.markers + [t])
        logger.debug("Marker added at %.6f (%d total)", t, len(self.markers))
        return True

    def remove(self, time_s: float) -> bool:
        i = self.find(time_s)
        if i is None:
            return False
        removed = self.markers.pop(i)
        self.locked = [x for x in self.locked if abs(x - removed) > self.tolerance]
        return True

    def remove_nearest(self, cursor: float) -> float | None:
        if not self.markers:
            return None
        c = float(cursor)
        i = min(range(len(self.markers)), key=lambda k: abs(self.markers[k] - c))
        removed = self.markers.pop(i)
        self.locked = [x for x in self.locked if abs(x - removed) > self.tolerance]
        return removed

    def move(self, marker_time: float, new_time: float, buffer: AudioBuffer | None = None) -> bool:
        i = self.find(marker_time)
        if i is None:
            return False
        if self.is_locked(self.markers[i]):
            logger.debug("Ignoring move of locked marker at %.6f", self.markers[i])
            return False
        t = find_nearest_zero_crossing(buffer, float(new_time), self.search_window)
        if buffer is not None:
            t = max(0.0, min(t, buffer.duration))
        rest = self.markers[:i] + self.markers[i + 1 :]
        self.replace(rest + [t], self.locked)
        return True

    def toggle_lock(self, time_s: float) -> bool | None:
        """Flip the lock on the marker at `time_s`; None if there is no marker."""

        i = self.find(time_s)
        if i is None:
            return None
        m = self.markers[i]
        if self.is_locked(m):
            self.locked = [x for x in self.locked if abs(x - m) > self.tolerance]
            return False
        self.locked = sorted(self.locked + [m])
        return True

    def clear_unlocked(self) -> int:
        before = len(self.markers)
        self.markers = list(self.locked)
        return before - len(self.markers)

    def clear(self) -> None:
        self.markers = []
        self.locked = []

    def dispatch(self, command: MarkerCommand, buffer: AudioBuffer | None = None) -> bool:
        if isinstance(command, MarkerMoved):
            return self.move(command.marker_time, command.new_time, buffer)
        if isinstance(command, MarkerAdded):
            return self.add(command.time, buffer)
        if isinstance(command, MarkerDeleted):
            return self.remove(command.marker_time)
        raise TypeError(f"Unknown marker command: {type(command).__name__}")

    def limit(self) -> bool:
        res = limit_splice_markers(self.markers, self.locked, self.max_markers, tolerance=self.tolerance)
        self.markers = res.markers
        self.locked = [x for x in self.locked if is_marker_locked(x, self.markers, self.tolerance)]
        return res.was_limited
