from __future__ import annotations

from typing import Any

import numpy as np


LINEAR = "linear"
EXPONENTIAL = "exponential"
LOGARITHMIC = "logarithmic"

FADE_CURVES: tuple[str, ...] = (LINEAR, EXPONENTIAL, LOGARITHMIC)

_DESCRIPTIONS = {
    LINEAR: "Constant fade rate",
    EXPONENTIAL: "Smooth, gradual start",
    LOGARITHMIC: "Quick start, gentle end",
}


def calculate_fade_gain(position: float, curve: str, is_fade_out: bool = False) -> float:
    """Gain for one normalized position in a fade.

    position: 0 at the start of the fade region, 1 at its end (clamped).
    Fade-outs mirror the position so the same curve family runs 1 -> 0.
    Unknown curve names behave like linear.
    """

    p = min(1.0, max(0.0, float(position)))
    if is_fade_out:
        p = 1.0 - p

    if curve == EXPONENTIAL:
        return p * p
    if curve == LOGARITHMIC:
        return float(np.sqrt(p))
    return p


def fade_gain_curve(n: int, curve: str, *, is_fade_out: bool = False) -> np.ndarray:
    """Vectorized calculate_fade_gain over `n` samples (p = i / n)."""

    n = int(n)
    if n <= 0:
        return np.zeros(0, dtype=np.float64)
    p = np.arange(n, dtype=np.float64) / float(n)
    if is_fade_out:
        p = 1.0 - p
    if curve == EXPONENTIAL:
        return p * p
    if curve == LOGARITHMIC:
        return np.sqrt(p)
    return p


def validate_curve(curve: str) -> str:
    c = str(curve or "").strip().lower()
    if c not in FADE_CURVES:
        raise ValueError(f"Unknown fade curve {curve!r}; expected one of {', '.join(FADE_CURVES)}")
    return c


def fade_curve_description(curve: str) -> str:
    if curve in _DESCRIPTIONS:
        return f"{curve.capitalize()} - {_DESCRIPTIONS[curve]}"
    return "Unknown curve type"


def fade_curve_options() -> list[dict[str, Any]]:
    return [{"value": c, "label": c.capitalize(), "description": _DESCRIPTIONS[c]} for c in FADE_CURVES]
