from __future__ import annotations

import logging
from typing import Literal, Sequence, get_args

from .audio import AudioBuffer
from .constants import BPM_MAX_POSITIONS, MARKER_PROXIMITY_THRESHOLD_S, MAX_SPLICE_MARKERS
from .markers import MarkerEdit, is_marker_too_close, place_grid_markers


logger = logging.getLogger(__name__)

MusicalDivision = Literal[
    "sixteenth",
    "eighth",
    "eighth-triplet",
    "quarter",
    "quarter-triplet",
    "half",
    "whole",
    "two-bars",
    "four-bars",
]

# Length of each division in quarter-note beats.
_BEATS: dict[str, float] = {
    "sixteenth": 1.0 / 4.0,
    "eighth": 1.0 / 2.0,
    "eighth-triplet": 1.0 / 6.0,
    "quarter": 1.0,
    "quarter-triplet": 1.0 / 3.0,
    "half": 2.0,
    "whole": 4.0,
    "two-bars": 8.0,
    "four-bars": 16.0,
}

_LABELS: dict[str, str] = {
    "sixteenth": "1/16 Note",
    "eighth": "1/8 Note",
    "eighth-triplet": "1/8 Triplet",
    "quarter": "1/4 Note (Beat)",
    "quarter-triplet": "1/4 Triplet",
    "half": "1/2 Note",
    "whole": "Whole Bar",
    "two-bars": "2 Bars",
    "four-bars": "4 Bars",
}


def available_musical_divisions() -> list[dict[str, str]]:
    return [{"value": d, "label": _LABELS[d]} for d in get_args(MusicalDivision)]


def musical_division_label(division: str) -> str:
    return _LABELS.get(division, division)


def calculate_musical_interval(bpm: float, division: str) -> float:
    """Seconds per `division` at `bpm` (unknown divisions count as a quarter)."""

    bpm = float(bpm)
    if bpm <= 0.0:
        raise ValueError("bpm must be > 0")
    return (60.0 / bpm) * _BEATS.get(division, 1.0)


def estimate_marker_count(bpm: float, division: str, duration: float, start_offset: float = 0.0) -> int:
    if float(bpm) <= 0.0 or float(duration) <= float(start_offset):
        return 0
    interval = calculate_musical_interval(bpm, division)
    return int((float(duration) - float(start_offset)) // interval) + 1


def grid_positions(bpm: float, division: str, duration: float, start_offset: float = 0.0) -> list[float]:
    """offset, offset + interval, ... strictly before `duration`."""

    interval = calculate_musical_interval(bpm, division)
    out: list[float] = []
    k = 0
    while True:
        t = float(start_offset) + k * interval
        if t >= float(duration):
            break
        if k >= BPM_MAX_POSITIONS:
            logger.warning("Stopping BPM grid at %d positions", BPM_MAX_POSITIONS)
            break
        out.append(t)
        k += 1
    return out


def generate_bpm_markers(
    buffer: AudioBuffer | None,
    bpm: float,
    division: str,
    locked: Sequence[float] = (),
    *,
    start_offset: float = 0.0,
    duration: float | None = None,
    proximity: float = MARKER_PROXIMITY_THRESHOLD_S,
    max_markers: int = MAX_SPLICE_MARKERS,
) -> MarkerEdit | None:
    """Replace the unlocked markers with a tempo grid.

    Returns None when the tempo is not positive or there is nothing to slice.
    """

    dur = float(duration) if duration is not None else (buffer.duration if buffer is not None else 0.0)
    if float(bpm) <= 0.0 or dur <= 0.0:
        logger.warning("Invalid BPM grid request: bpm=%s duration=%s", bpm, dur)
        return None

    positions = grid_positions(bpm, division, dur, start_offset)
    skipped = sum(1 for t in positions if is_marker_too_close(t, locked, proximity))
    logger.debug(
        "BPM grid: %s at %.2f bpm from %.3fs, %d positions (%d near locked markers)",
        musical_division_label(division),
        float(bpm),
        float(start_offset),
        len(positions),
        skipped,
    )
    return place_grid_markers(buffer, positions, locked, proximity=proximity, max_markers=max_markers)
