from __future__ import annotations

import argparse
import json
import logging
import time
from pathlib import Path
from typing import Any, get_args

from .audio import AudioBuffer
from .bpm_slicing import MusicalDivision
from .fades import FADE_CURVES
from .io_utils import read_audio, write_bytes
from .json_utils import JsonParseError, load_json_file, write_json_file
from .runtime_config import configure_runtime
from .session import EditOutcome, EditSession
from .settings import load_settings
from .wav_codec import cue_points_from_file


logger = logging.getLogger(__name__)


def _sidecar_path(wav_path: Path) -> Path:
    sidecar = wav_path.with_suffix("")
    return sidecar.with_name(sidecar.name + ".edits.json")


def _read_sidecar(wav_path: Path) -> dict[str, Any]:
    p = _sidecar_path(wav_path)
    if not p.exists():
        return {}
    try:
        return load_json_file(p, context=f"Edits sidecar: {p}")
    except JsonParseError as e:
        logger.warning("Ignoring unreadable sidecar %s: %s", p, e)
        return {}


def _write_sidecar(wav_path: Path, session: EditSession, *, history: list[dict[str, Any]]) -> Path:
    buf = session.buffer
    rec: dict[str, Any] = {
        "edited_wav": str(wav_path),
        "sample_rate": int(buf.sample_rate) if buf is not None else None,
        "duration_s": session.duration,
        "markers": session.markers,
        "locked": session.locked,
        "edits": history,
        "updated_utc": time.strftime("%Y-%m-%dT%H:%M:%SZ", time.gmtime()),
    }
    return write_json_file(_sidecar_path(wav_path), rec)


def _open(in_path: Path) -> tuple[EditSession, dict[str, Any]]:
    if not in_path.exists():
        raise SystemExit(f"Input not found: {in_path}")
    session = EditSession(settings=load_settings())
    side = _read_sidecar(in_path)
    locked = [float(x) for x in (side.get("locked") or [])]
    buffer: AudioBuffer = read_audio(in_path)
    session.load(buffer, cue_points_from_file(in_path), locked)
    return session, side


def _resp(session: EditSession, extra: dict[str, Any] | None = None) -> dict[str, Any]:
    buf = session.buffer
    out: dict[str, Any] = {
        "sample_rate": int(buf.sample_rate) if buf is not None else None,
        "channels": int(buf.channel_count) if buf is not None else None,
        "length_samples": int(buf.length) if buf is not None else 0,
        "duration_s": session.duration,
        "markers": session.markers,
        "locked": session.locked,
    }
    if extra:
        out.update(extra)
    return out


def _outcome_dict(out: EditOutcome) -> dict[str, Any]:
    return {
        "status": out.status,
        "kind": out.kind,
        "message": out.message,
        "was_limited": out.was_limited,
        "markers_cleared": out.markers_cleared,
    }


def _apply(session: EditSession, args: argparse.Namespace) -> tuple[str, dict[str, Any], dict[str, Any]]:
    """Run the requested operation; returns (op, params, extra response)."""

    cmd = str(args.cmd)
    d = session.duration

    if cmd == "crop":
        params = {"start": float(args.start), "end": float(args.end)}
        out = session.apply_edit("crop", **params)
        return cmd, params, _outcome_dict(out)

    if cmd == "fade":
        mode = str(args.mode)
        curve = str(args.curve) if args.curve else None
        if mode == "both":
            session.toggle_region("fade-in")
            session.toggle_region("fade-out")
            out = session.apply_edit("fades")
            return cmd, {"mode": mode}, _outcome_dict(out)
        kind = "fade-in" if mode == "in" else "fade-out"
        if args.start is not None and args.end is not None:
            session.set_region(kind, float(args.start), float(args.end))
        else:
            session.toggle_region(kind)
        r = session.regions.get(kind)
        params = {"mode": mode, "start": r.start if r else None, "end": r.end if r else None, "curve": curve}
        out = session.apply_edit(kind, curve=curve)
        return cmd, params, _outcome_dict(out)

    if cmd == "crossfade":
        width = float(args.width) if args.width is not None else session.settings.crossfade_duration_s
        center = float(args.center)
        session.regions.set("crossfade", max(0.0, center - width / 2.0), min(d, center + width / 2.0))
        params = {"center": center, "width": width, "curve": args.curve}
        out = session.apply_edit("crossfade", center=center, curve=args.curve)
        return cmd, params, _outcome_dict(out)

    if cmd == "reverse":
        if args.start is not None and args.end is not None:
            session.set_region("crop", float(args.start), float(args.end))
        r = session.regions.get("crop")
        params = {"range": [r.start, r.end] if r else None}
        out = session.apply_edit("reverse")
        return cmd, params, _outcome_dict(out)

    if cmd == "normalize":
        params = {"target_db": float(args.db) if args.db is not None else session.settings.normalize_target_db}
        out = session.apply_edit("normalize", **params)
        return cmd, params, _outcome_dict(out)

    if cmd == "autoslice":
        n = int(args.slices) if args.slices is not None else session.settings.default_auto_slice_count
        edit = session.auto_slice(n)
        return cmd, {"slices": n}, {"status": "applied" if edit else "noop", "was_limited": bool(edit and edit.was_limited)}

    if cmd == "bpmslice":
        params = {"bpm": float(args.bpm), "division": str(args.division), "offset": float(args.offset)}
        edit = session.bpm_slice(params["bpm"], params["division"], start_offset=params["offset"])
        return cmd, params, {"status": "applied" if edit else "noop", "was_limited": bool(edit and edit.was_limited)}

    if cmd == "transients":
        params = {"sensitivity": args.sensitivity, "frame_ms": args.frame_ms, "overlap": args.overlap}
        edit = session.detect_transients(args.sensitivity, frame_size_ms=args.frame_ms, overlap_percent=args.overlap)
        return cmd, params, {"status": "applied" if edit else "noop", "was_limited": bool(edit and edit.was_limited)}

    if cmd == "snap":
        edit = session.snap_markers()
        return cmd, {}, {"status": "applied" if edit else "noop"}

    if cmd == "half":
        edit = session.half_markers()
        return cmd, {}, {"status": "applied" if edit else "noop"}

    if cmd == "add":
        ok = session.add_marker(float(args.time))
        return cmd, {"time": float(args.time)}, {"status": "applied" if ok else "noop"}

    if cmd == "remove":
        removed = session.remove_marker_near(float(args.time))
        return cmd, {"time": float(args.time)}, {"status": "applied" if removed is not None else "noop", "removed": removed}

    if cmd == "lock":
        state = session.toggle_lock(float(args.time))
        return cmd, {"time": float(args.time)}, {"status": "noop" if state is None else "applied", "locked_now": state}

    raise SystemExit(f"Unknown edit command: {cmd}")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="splicekit edit", add_help=True)
    sub = parser.add_subparsers(dest="cmd", required=True)

    def _cmd(name: str, help_text: str) -> argparse.ArgumentParser:
        p = sub.add_parser(name, help=help_text)
        p.add_argument("--in", dest="in_path", required=True, help="Source WAV")
        p.add_argument("--out", default=None, help="Output WAV (default: overwrite --in)")
        p.add_argument("--float", action="store_true", help="Write 32-bit float instead of 16-bit PCM")
        return p

    _cmd("info", "Show duration, markers and locked markers")

    p = _cmd("crop", "Keep only [start, end) seconds")
    p.add_argument("--start", type=float, required=True)
    p.add_argument("--end", type=float, required=True)

    p = _cmd("fade", "Fade in, out, or both")
    p.add_argument("--mode", choices=["in", "out", "both"], default="in")
    p.add_argument("--start", type=float)
    p.add_argument("--end", type=float)
    p.add_argument("--curve", choices=list(FADE_CURVES))

    p = _cmd("crossfade", "Dip the level around a point")
    p.add_argument("--center", type=float, required=True)
    p.add_argument("--width", type=float)
    p.add_argument("--curve", choices=list(FADE_CURVES))

    p = _cmd("reverse", "Reverse the whole file or [start, end)")
    p.add_argument("--start", type=float)
    p.add_argument("--end", type=float)

    p = _cmd("normalize", "Peak-normalize")
    p.add_argument("--db", type=float)

    p = _cmd("autoslice", "Evenly spaced markers")
    p.add_argument("--slices", type=int)

    p = _cmd("bpmslice", "Markers on a tempo grid")
    p.add_argument("--bpm", type=float, required=True)
    p.add_argument("--division", choices=list(get_args(MusicalDivision)), default="quarter")
    p.add_argument("--offset", type=float, default=0.0)

    p = _cmd("transients", "Markers on detected transients")
    p.add_argument("--sensitivity", type=float)
    p.add_argument("--frame-ms", type=float)
    p.add_argument("--overlap", type=float)

    _cmd("snap", "Snap unlocked markers to zero crossings")
    _cmd("half", "Remove every second unlocked marker")

    for name, help_text in (("add", "Add a marker"), ("remove", "Remove the marker nearest a time"), ("lock", "Toggle the lock on a marker")):
        p = _cmd(name, help_text)
        p.add_argument("--time", type=float, required=True)

    return parser


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args([] if argv is None else argv)

    configure_runtime()

    in_path = Path(args.in_path)
    session, side = _open(in_path)

    if args.cmd == "info":
        print(json.dumps(_resp(session, {"regions": session.region_info(), "edits": side.get("edits") or []}), ensure_ascii=False))
        return 0

    op, params, extra = _apply(session, args)
    history = [dict(x) for x in (side.get("edits") or []) if isinstance(x, dict)]

    out_path = Path(args.out) if args.out else in_path
    changed = extra.get("status") == "applied"
    if changed or out_path != in_path:
        session.sample_format = "float" if args.float else "int"
        write_bytes(out_path, session.encode())
        history.append({"op": op, "params": params})
        _write_sidecar(out_path, session, history=history)
        logger.info("Wrote %s after %s", out_path, op)

    print(json.dumps(_resp(session, {"op": op, "out": str(out_path), **extra}), ensure_ascii=False))
    return 0 if extra.get("status") in ("applied", "noop") else 1


if __name__ == "__main__":
    raise SystemExit(main())
