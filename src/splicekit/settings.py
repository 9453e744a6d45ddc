from __future__ import annotations

import dataclasses
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from .app_dirs import app_data_dir, ensure_dir
from .constants import (
    CROSSFADE_DEFAULT_DURATION_S,
    MARKER_PROXIMITY_THRESHOLD_S,
    MARKER_TOLERANCE_S,
    MAX_DURATION_S,
    MAX_SPLICE_MARKERS,
    NORMALIZE_DEFAULT_DB,
    TRANSIENT_DEFAULT_FRAME_MS,
    TRANSIENT_DEFAULT_OVERLAP_PERCENT,
    TRANSIENT_DEFAULT_SENSITIVITY,
    ZERO_CROSSING_WINDOW_S,
)
from .export import DEFAULT_EXPORT_FORMAT_INDEX, EXPORT_FORMATS
from .fades import LINEAR, validate_curve
from .json_utils import JsonParseError, load_json_file, write_json_file


logger = logging.getLogger(__name__)


class SettingsError(ValueError):
    pass


@dataclass(frozen=True)
class EngineSettings:
    fade_in_curve: str = LINEAR
    fade_out_curve: str = LINEAR
    crossfade_duration_s: float = CROSSFADE_DEFAULT_DURATION_S
    crossfade_curve: str = LINEAR
    truncate_length_s: float = MAX_DURATION_S
    default_auto_slice_count: int = 16
    transient_sensitivity: float = TRANSIENT_DEFAULT_SENSITIVITY
    transient_frame_size_ms: float = TRANSIENT_DEFAULT_FRAME_MS
    transient_overlap_percent: float = TRANSIENT_DEFAULT_OVERLAP_PERCENT
    default_export_format_index: int = DEFAULT_EXPORT_FORMAT_INDEX
    max_markers: int = MAX_SPLICE_MARKERS
    marker_tolerance_s: float = MARKER_TOLERANCE_S
    zero_crossing_window_s: float = ZERO_CROSSING_WINDOW_S
    marker_proximity_s: float = MARKER_PROXIMITY_THRESHOLD_S
    normalize_target_db: float = NORMALIZE_DEFAULT_DB

    def __post_init__(self) -> None:
        for name in ("fade_in_curve", "fade_out_curve", "crossfade_curve"):
            try:
                object.__setattr__(self, name, validate_curve(getattr(self, name)))
            except ValueError as e:
                raise SettingsError(f"{name}: {e}") from e

        if not (0 <= int(self.default_export_format_index) < len(EXPORT_FORMATS)):
            raise SettingsError(f"default_export_format_index must be 0..{len(EXPORT_FORMATS) - 1}")
        if not (0.0 < float(self.truncate_length_s) <= MAX_DURATION_S):
            raise SettingsError(f"truncate_length_s must be in (0, {MAX_DURATION_S}]")
        if not (0 < int(self.max_markers) <= MAX_SPLICE_MARKERS):
            raise SettingsError(f"max_markers must be in 1..{MAX_SPLICE_MARKERS}")
        if int(self.default_auto_slice_count) < 2:
            raise SettingsError("default_auto_slice_count must be >= 2")
        if not (0.0 <= float(self.transient_sensitivity) <= 100.0):
            raise SettingsError("transient_sensitivity must be in 0..100")
        if not (0.0 <= float(self.transient_overlap_percent) < 100.0):
            raise SettingsError("transient_overlap_percent must be in [0, 100)")
        for name in (
            "crossfade_duration_s",
            "transient_frame_size_ms",
            "marker_tolerance_s",
            "zero_crossing_window_s",
            "marker_proximity_s",
        ):
            if float(getattr(self, name)) <= 0.0:
                raise SettingsError(f"{name} must be > 0")
        if float(self.normalize_target_db) > 0.0:
            raise SettingsError("normalize_target_db must be <= 0 dBFS")

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "EngineSettings":
        known = {f.name: f for f in dataclasses.fields(cls)}
        kwargs: dict[str, Any] = {}
        for k, v in dict(data or {}).items():
            f = known.get(k)
            if f is None:
                continue
            try:
                if f.type in ("int", int):
                    kwargs[k] = int(v)
                elif f.type in ("float", float):
                    kwargs[k] = float(v)
                else:
                    kwargs[k] = str(v)
            except (TypeError, ValueError) as e:
                raise SettingsError(f"{k}: {e}") from e
        return cls(**kwargs)

    def to_dict(self) -> dict[str, Any]:
        return dataclasses.asdict(self)

    def replace(self, **changes: Any) -> "EngineSettings":
        return EngineSettings.from_dict({**self.to_dict(), **changes})


def settings_path(*, data_dir: Path | None = None) -> Path:
    base = Path(data_dir) if data_dir is not None else app_data_dir()
    return base / "settings.json"


def load_settings(*, data_dir: Path | None = None) -> EngineSettings:
    p = settings_path(data_dir=data_dir)
    if not p.exists():
        return EngineSettings()
    try:
        obj = load_json_file(p, context=f"Settings JSON file: {p}")
        return EngineSettings.from_dict(obj)
    except (JsonParseError, SettingsError) as e:
        logger.warning("Ignoring unusable settings file %s: %s", p, e)
    return EngineSettings()


def save_settings(settings: EngineSettings, *, data_dir: Path | None = None) -> Path:
    base = Path(data_dir) if data_dir is not None else app_data_dir()
    ensure_dir(base)
    return write_json_file(settings_path(data_dir=base), settings.to_dict())


def update_settings(patch: dict[str, Any], *, data_dir: Path | None = None) -> EngineSettings:
    cur = load_settings(data_dir=data_dir)
    out = cur.replace(**dict(patch or {}))
    save_settings(out, data_dir=data_dir)
    return out
