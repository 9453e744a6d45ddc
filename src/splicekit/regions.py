"""Staged edit regions.

At most one region per kind exists. Creating a kind that is already staged
removes it instead (toggle), mirroring how the edit buttons behave.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Literal

from .constants import (
    CROP_DEFAULT_END_RATIO,
    CROP_DEFAULT_START_RATIO,
    CROSSFADE_DEFAULT_DURATION_S,
    FADE_RATIO,
)
from .transforms import crossfade_region


RegionKind = Literal["crop", "fade-in", "fade-out", "crossfade"]

REGION_KINDS: tuple[str, ...] = ("crop", "fade-in", "fade-out", "crossfade")


@dataclass(frozen=True)
class Region:
    kind: str
    start: float
    end: float

    @property
    def duration(self) -> float:
        return self.end - self.start

    @property
    def bounds(self) -> tuple[float, float]:
        return self.start, self.end


def default_region(kind: str, duration: float, *, center: float | None = None, width: float = CROSSFADE_DEFAULT_DURATION_S) -> Region:
    d = max(0.0, float(duration))
    if kind == "crop":
        return Region(kind, d * CROP_DEFAULT_START_RATIO, d * CROP_DEFAULT_END_RATIO)
    if kind == "fade-in":
        return Region(kind, 0.0, d * FADE_RATIO)
    if kind == "fade-out":
        return Region(kind, d * (1.0 - FADE_RATIO), d)
    if kind == "crossfade":
        c = d / 2.0 if center is None else float(center)
        start, end = crossfade_region(c, d, width)
        return Region(kind, start, end)
    raise ValueError(f"Unknown region kind: {kind!r}")


@dataclass
class RegionSet:
    regions: dict[str, Region] = field(default_factory=dict)

    def get(self, kind: str) -> Region | None:
        return self.regions.get(kind)

    def has(self, kind: str) -> bool:
        return kind in self.regions

    def set(self, kind: str, start: float, end: float) -> Region:
        if kind not in REGION_KINDS:
            raise ValueError(f"Unknown region kind: {kind!r}")
        a, b = (float(start), float(end))
        if b < a:
            a, b = b, a
        r = Region(kind, a, b)
        self.regions[kind] = r
        return r

    def toggle(
        self, kind: str, duration: float, *, center: float | None = None, width: float = CROSSFADE_DEFAULT_DURATION_S
    ) -> Region | None:
        """Stage the default region for `kind`, or remove it if already staged."""

        if kind in self.regions:
            del self.regions[kind]
            return None
        r = default_region(kind, duration, center=center, width=width)
        self.regions[kind] = r
        return r

    def remove(self, *kinds: str) -> None:
        for k in kinds:
            self.regions.pop(k, None)

    def clear(self) -> None:
        self.regions.clear()

    def region_info(self) -> dict[str, Any]:
        return {
            k: {"start": r.start, "end": r.end, "duration": r.duration}
            for k, r in sorted(self.regions.items())
        }
