"""Edit orchestration for one open sample.

The host drives edits in two phases. `begin_edit` runs a transform and
returns the encoded WAV the host should reload; `complete_edit` commits
the result once the host has reloaded it (or rolls back if it could not).
Only one edit may be in flight; while an edit or an undo is pending,
reload callbacks for other handles are ignored.
"""

from __future__ import annotations

import itertools
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Literal, Sequence

from .audio import AudioBuffer
from .bpm_slicing import generate_bpm_markers
from .detection import detect_transients
from .export import ExportFormat, encode_for_export, export_format
from .io_utils import decode_audio
from .markers import (
    MarkerCommand,
    MarkerEdit,
    MarkerStore,
    apply_transients,
    auto_slice,
    half_markers,
    snap_all_to_zero_crossings,
    splice_segment,
)
from .regions import Region, RegionSet
from .settings import EngineSettings
from .slice_export import SliceExportReport, export_slices
from .transforms import (
    TransformResult,
    apply_fades,
    crop,
    crossfade,
    fade_in,
    fade_out,
    normalize,
    reverse,
    tempo_pitch,
)
from .undo import UndoManager, UndoSnapshot
from .wav_codec import decode_cue_points, encode_wav


logger = logging.getLogger(__name__)

EditKind = Literal["crop", "fade-in", "fade-out", "fades", "crossfade", "reverse", "normalize", "tempo-pitch"]
EditStatus = Literal["applied", "pending", "noop", "busy", "failed"]

EDIT_KINDS: tuple[str, ...] = ("crop", "fade-in", "fade-out", "fades", "crossfade", "reverse", "normalize", "tempo-pitch")

# Staged regions consumed by each edit.
_CONSUMES: dict[str, tuple[str, ...]] = {
    "crop": ("crop",),
    "fade-in": ("fade-in",),
    "fade-out": ("fade-out",),
    "fades": ("fade-in", "fade-out"),
    "crossfade": ("crossfade",),
}


@dataclass(frozen=True, eq=False)
class BufferHandle:
    """Opaque token the host uses to refer to one published buffer."""

    id: int
    buffer: AudioBuffer


@dataclass(frozen=True)
class PendingEdit:
    handle: int
    kind: str
    data: bytes
    result: TransformResult


@dataclass(frozen=True)
class EditOutcome:
    status: str
    kind: str | None = None
    message: str = ""
    handle: int | None = None
    data: bytes | None = None
    pending: PendingEdit | None = None
    was_limited: bool = False
    markers_cleared: bool = False

    @property
    def ok(self) -> bool:
        return self.status in ("applied", "pending")


class _Skip(Exception):
    """A precondition failed; the edit becomes a no-op."""


@dataclass
class EditSession:
    settings: EngineSettings = field(default_factory=EngineSettings)
    sample_format: str = "int"

    current: BufferHandle | None = None
    processing: bool = False
    undoing: bool = False

    def __post_init__(self) -> None:
        s = self.settings
        self.store = MarkerStore(
            tolerance=s.marker_tolerance_s,
            max_markers=s.max_markers,
            search_window=s.zero_crossing_window_s,
        )
        self.regions = RegionSet()
        self.undo_manager: UndoManager[BufferHandle] = UndoManager()
        self._pending: PendingEdit | None = None
        self._pending_undo: UndoSnapshot[BufferHandle] | None = None
        self._ids = itertools.count(1)

    # -- state ------------------------------------------------------------

    @property
    def buffer(self) -> AudioBuffer | None:
        return self.current.buffer if self.current is not None else None

    @property
    def handle(self) -> int | None:
        return self.current.id if self.current is not None else None

    @property
    def markers(self) -> list[float]:
        return list(self.store.markers)

    @property
    def locked(self) -> list[float]:
        return list(self.store.locked)

    @property
    def duration(self) -> float:
        b = self.buffer
        return b.duration if b is not None else 0.0

    @property
    def can_undo(self) -> bool:
        return self.undo_manager.can_undo

    def _publish(self, buffer: AudioBuffer) -> BufferHandle:
        return BufferHandle(next(self._ids), buffer)

    def encode(self, buffer: AudioBuffer | None = None, markers: Sequence[float] | None = None) -> bytes:
        b = buffer if buffer is not None else self.buffer
        if b is None:
            raise ValueError("no audio loaded")
        return encode_wav(b, self.markers if markers is None else markers, sample_format=self.sample_format)

    def load(self, buffer: AudioBuffer, markers: Sequence[float] = (), locked: Sequence[float] = ()) -> int:
        """Replace the session contents with a freshly decoded buffer."""

        if self.processing or self.undoing:
            raise RuntimeError("cannot load while an edit or undo is in flight")
        self.current = self._publish(buffer)
        self.store.replace(markers, locked)
        was_limited = self.store.limit()
        self.regions.clear()
        self.undo_manager.clear()
        logger.info(
            "Loaded %.3fs, %d ch @ %d Hz, %d markers%s",
            buffer.duration,
            buffer.channel_count,
            buffer.sample_rate,
            len(self.store.markers),
            " (limited)" if was_limited else "",
        )
        return self.current.id

    def load_bytes(self, raw: bytes, locked: Sequence[float] = ()) -> int:
        buffer = decode_audio(raw)
        return self.load(buffer, decode_cue_points(raw), locked)

    # -- regions ----------------------------------------------------------

    def toggle_region(self, kind: str, *, center: float | None = None) -> Region | None:
        if self.buffer is None:
            return None
        return self.regions.toggle(kind, self.duration, center=center, width=self.settings.crossfade_duration_s)

    def set_region(self, kind: str, start: float, end: float) -> Region:
        d = self.duration
        return self.regions.set(kind, min(max(start, 0.0), d), min(max(end, 0.0), d))

    def region_info(self) -> dict[str, Any]:
        return self.regions.region_info()

    # -- destructive edits ------------------------------------------------

    def _bounds(self, kind: str, params: dict[str, Any]) -> tuple[float, float]:
        if params.get("start") is not None and params.get("end") is not None:
            return float(params["start"]), float(params["end"])
        r = self.regions.get(kind)
        if r is None:
            raise _Skip(f"no {kind} region")
        return r.bounds

    def _run(self, kind: str, buffer: AudioBuffer, params: dict[str, Any]) -> TransformResult:
        s = self.settings
        markers, locked = self.store.markers, self.store.locked
        window = s.zero_crossing_window_s

        if kind == "crop":
            a, b = self._bounds("crop", params)
            if b - a <= 0.0:
                raise _Skip("empty crop region")
            return crop(buffer, a, b, markers, locked, search_window=window)

        if kind == "fade-in":
            a, b = self._bounds("fade-in", params)
            return fade_in(buffer, markers, locked, start=a, end=b, curve=params.get("curve") or s.fade_in_curve, search_window=window)

        if kind == "fade-out":
            a, b = self._bounds("fade-out", params)
            return fade_out(buffer, markers, locked, start=a, end=b, curve=params.get("curve") or s.fade_out_curve, search_window=window)

        if kind == "fades":
            fi = self.regions.get("fade-in")
            fo = self.regions.get("fade-out")
            if fi is None and fo is None:
                raise _Skip("no fade regions")
            return apply_fades(
                buffer,
                markers,
                locked,
                fade_in_region=fi.bounds if fi is not None else None,
                fade_out_region=fo.bounds if fo is not None else None,
                fade_in_curve=s.fade_in_curve,
                fade_out_curve=s.fade_out_curve,
                search_window=window,
            )

        if kind == "crossfade":
            a, b = self._bounds("crossfade", params)
            curve = params.get("curve") or s.crossfade_curve
            return crossfade(
                buffer,
                markers,
                locked,
                start=a,
                end=b,
                center=params.get("center"),
                fade_out_curve=curve,
                fade_in_curve=curve,
            )

        if kind == "reverse":
            r = self.regions.get("crop")
            return reverse(buffer, markers, locked, region=r.bounds if r is not None else None)

        if kind == "normalize":
            target = params.get("target_db")
            return normalize(buffer, markers, locked, target_db=s.normalize_target_db if target is None else float(target))

        if kind == "tempo-pitch":
            process = params.get("process")
            if not callable(process):
                raise _Skip("no tempo/pitch processor")
            return tempo_pitch(buffer, process, markers, locked)

        raise ValueError(f"Unknown edit kind: {kind!r}")

    def begin_edit(self, kind: str, **params: Any) -> EditOutcome:
        """Phase one: transform, encode, and hand the bytes to the host.

        Returns status "pending" with the bytes to reload, or "busy" /
        "noop" / "failed" with the session left as it was.
        """

        if self.processing or self.undoing:
            return EditOutcome(status="busy", kind=kind, message="another edit is in progress")
        cur = self.current
        if cur is None or cur.buffer.length == 0:
            return EditOutcome(status="noop", kind=kind, message="no audio loaded")

        self.processing = True
        self.undo_manager.capture(cur, self.store.markers, self.store.locked)
        try:
            result = self._run(kind, cur.buffer, params)
            markers = [] if result.markers_cleared else result.markers
            data = self.encode(result.buffer, markers)
        except _Skip as e:
            self.undo_manager.rollback()
            self.processing = False
            return EditOutcome(status="noop", kind=kind, message=str(e))
        except Exception as e:
            # Includes failures raised by an external tempo/pitch processor.
            self.undo_manager.rollback()
            self.processing = False
            logger.error("Edit %s failed: %s", kind, e)
            return EditOutcome(status="failed", kind=kind, message=str(e))

        pending = PendingEdit(handle=next(self._ids), kind=kind, data=data, result=result)
        self._pending = pending
        logger.debug("Edit %s pending as handle %d (%d bytes)", kind, pending.handle, len(data))
        return EditOutcome(
            status="pending",
            kind=kind,
            handle=pending.handle,
            data=data,
            pending=pending,
            markers_cleared=result.markers_cleared,
        )

    def complete_edit(self, handle: int, *, ok: bool = True, error: str | None = None) -> EditOutcome:
        """Phase two: the host reports whether it reloaded `handle`."""

        pending = self._pending
        if pending is None or pending.handle != int(handle):
            return EditOutcome(status="noop", message=f"no pending edit for handle {handle}")

        self._pending = None
        try:
            if not ok:
                self.undo_manager.rollback()
                logger.error("Host reload failed for %s: %s", pending.kind, error or "unknown error")
                return EditOutcome(status="failed", kind=pending.kind, handle=pending.handle, message=str(error or "reload failed"))

            result = pending.result
            self.current = BufferHandle(pending.handle, result.buffer)
            if result.markers_cleared:
                self.store.clear()
            else:
                self.store.replace(result.markers, result.locked)
            was_limited = self.store.limit()
            self.regions.remove(*_CONSUMES.get(pending.kind, ()))
            self.undo_manager.commit()
        finally:
            self.processing = False

        logger.info(
            "Applied %s: %.3fs, %d markers (%d locked)",
            pending.kind,
            result.buffer.duration,
            len(self.store.markers),
            len(self.store.locked),
        )
        return EditOutcome(
            status="applied",
            kind=pending.kind,
            handle=pending.handle,
            data=pending.data,
            was_limited=was_limited,
            markers_cleared=result.markers_cleared,
        )

    def apply_edit(self, kind: str, **params: Any) -> EditOutcome:
        """Both phases at once, for callers without an asynchronous reload."""

        out = self.begin_edit(kind, **params)
        if out.status != "pending" or out.handle is None:
            return out
        return self.complete_edit(out.handle)

    # -- undo ---------------------------------------------------------------

    def begin_undo(self) -> EditOutcome:
        """Phase one of undo: encode the snapshot for the host to reload.

        Nothing is restored until `complete_undo` confirms the reload.
        """

        if self.processing or self.undoing:
            return EditOutcome(status="busy", message="another edit is in progress")
        snap = self.undo_manager.snapshot
        if snap is None:
            return EditOutcome(status="noop", message="nothing to undo")

        try:
            data = self.encode(snap.handle.buffer, snap.markers)
        except ValueError as e:
            logger.error("Undo failed: %s", e)
            return EditOutcome(status="failed", kind="undo", message=str(e))

        self.undoing = True
        self._pending_undo = snap
        logger.debug("Undo pending as handle %d (%d bytes)", snap.handle.id, len(data))
        return EditOutcome(status="pending", kind="undo", handle=snap.handle.id, data=data)

    def complete_undo(self, handle: int | None = None, *, ok: bool = True, error: str | None = None) -> EditOutcome:
        """Phase two of undo: restore on a successful reload, keep state otherwise."""

        snap = self._pending_undo
        if not self.undoing or snap is None:
            return EditOutcome(status="noop", message="no undo in progress")
        if handle is not None and int(handle) != snap.handle.id:
            return EditOutcome(status="noop", message=f"no pending undo for handle {handle}")

        self._pending_undo = None
        try:
            if not ok:
                logger.error("Host reload failed for undo: %s", error or "unknown error")
                return EditOutcome(status="failed", kind="undo", handle=snap.handle.id, message=str(error or "reload failed"))

            self.undo_manager.take()
            self.current = snap.handle
            self.store.replace(snap.markers, snap.locked)
        finally:
            self.undoing = False

        logger.info("Undo restored %d markers (%d locked)", len(self.store.markers), len(self.store.locked))
        return EditOutcome(status="applied", kind="undo", handle=snap.handle.id)

    def undo(self) -> EditOutcome:
        out = self.begin_undo()
        if out.status != "pending":
            return out
        return self.complete_undo(out.handle)

    def handle_reload(self, handle: int, markers: Sequence[float] | None = None) -> bool:
        """Host reload-completion callback.

        Adopts cue markers read back from the reloaded file only when no
        edit or undo is in flight, `handle` is current and the store is
        still empty. Returns True when state was updated.
        """

        if self.processing or self.undoing:
            logger.debug("Ignoring reload of handle %s while busy", handle)
            return False
        if self.current is None or int(handle) != self.current.id:
            return False
        if markers and not self.store.markers:
            self.store.replace(markers)
            self.store.limit()
            return True
        return False

    # -- markers ------------------------------------------------------------

    def _marker_op(self, edit: MarkerEdit | None) -> MarkerEdit | None:
        if edit is not None:
            self.store.apply(edit)
        return edit

    def _idle(self) -> bool:
        return not (self.processing or self.undoing)

    def dispatch(self, command: MarkerCommand) -> bool:
        if not self._idle():
            return False
        return self.store.dispatch(command, self.buffer)

    def add_marker(self, time_s: float) -> bool:
        return self._idle() and self.store.add(time_s, self.buffer)

    def remove_marker_near(self, cursor: float) -> float | None:
        if not self._idle():
            return None
        return self.store.remove_nearest(cursor)

    def toggle_lock(self, time_s: float) -> bool | None:
        if not self._idle():
            return None
        return self.store.toggle_lock(time_s)

    def clear_markers(self, *, keep_locked: bool = True) -> None:
        if not self._idle():
            return
        if keep_locked:
            self.store.clear_unlocked()
        else:
            self.store.clear()

    def auto_slice(self, number_of_slices: int | None = None) -> MarkerEdit | None:
        if not self._idle() or self.buffer is None:
            return None
        s = self.settings
        n = s.default_auto_slice_count if number_of_slices is None else int(number_of_slices)
        return self._marker_op(
            auto_slice(
                self.buffer,
                n,
                self.store.locked,
                proximity=s.marker_proximity_s,
                max_markers=s.max_markers,
                tolerance=s.marker_tolerance_s,
                search_window=s.zero_crossing_window_s,
            )
        )

    def bpm_slice(self, bpm: float, division: str, *, start_offset: float = 0.0) -> MarkerEdit | None:
        if not self._idle() or self.buffer is None:
            return None
        s = self.settings
        return self._marker_op(
            generate_bpm_markers(
                self.buffer,
                bpm,
                division,
                self.store.locked,
                start_offset=start_offset,
                proximity=s.marker_proximity_s,
                max_markers=s.max_markers,
            )
        )

    def detect_transients(
        self,
        sensitivity: float | None = None,
        *,
        frame_size_ms: float | None = None,
        overlap_percent: float | None = None,
    ) -> MarkerEdit | None:
        if not self._idle() or self.buffer is None:
            return None
        s = self.settings
        found = detect_transients(
            self.buffer,
            s.transient_sensitivity if sensitivity is None else float(sensitivity),
            s.transient_frame_size_ms if frame_size_ms is None else float(frame_size_ms),
            s.transient_overlap_percent if overlap_percent is None else float(overlap_percent),
        )
        return self._marker_op(
            apply_transients(
                self.buffer,
                found,
                self.store.locked,
                proximity=s.marker_proximity_s,
                max_markers=s.max_markers,
                tolerance=s.marker_tolerance_s,
                search_window=s.zero_crossing_window_s,
            )
        )

    def snap_markers(self) -> MarkerEdit | None:
        if not self._idle() or self.buffer is None:
            return None
        s = self.settings
        return self._marker_op(
            snap_all_to_zero_crossings(
                self.buffer,
                self.store.markers,
                self.store.locked,
                max_markers=s.max_markers,
                tolerance=s.marker_tolerance_s,
                search_window=s.zero_crossing_window_s,
            )
        )

    def half_markers(self) -> MarkerEdit | None:
        if not self._idle():
            return None
        return self._marker_op(half_markers(self.store.markers, self.store.locked, tolerance=self.settings.marker_tolerance_s))

    def splice_segment(self, index: int) -> tuple[float, float] | None:
        return splice_segment(self.store.markers, index, self.duration)

    # -- export -------------------------------------------------------------

    def export_format(self, index: int | None = None) -> ExportFormat:
        return export_format(self.settings.default_export_format_index if index is None else index)

    def export_bytes(self, fmt: ExportFormat | None = None) -> bytes:
        if self.buffer is None:
            raise ValueError("no audio loaded")
        return encode_for_export(self.buffer, fmt or self.export_format(), self.store.markers)

    def export_slices(self, out_dir: Path, *, fmt: ExportFormat | None = None, base: str = "splicekit-slice") -> SliceExportReport:
        return export_slices(self.buffer, self.store.markers, fmt or self.export_format(), Path(out_dir), base=base)

    def tempo_pitch(self, process: Callable[[AudioBuffer], AudioBuffer]) -> EditOutcome:
        return self.apply_edit("tempo-pitch", process=process)
