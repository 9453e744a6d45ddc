from __future__ import annotations

import argparse
import json
import logging
import time
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any, Literal, Sequence

from .audio import AudioBuffer
from .constants import MIN_SLICE_DURATION_S
from .export import EXPORT_FORMATS, ExportFormat, encode_for_export, find_export_format
from .io_utils import read_audio, write_bytes
from .json_utils import write_json_file
from .wav_codec import cue_points_from_file


logger = logging.getLogger(__name__)

SliceExportStatus = Literal["no-audio", "no-slices", "success", "error"]


@dataclass(frozen=True)
class SliceExportResult:
    slice_number: int
    start_s: float
    end_s: float
    filename: str
    success: bool
    error: str | None = None

    @property
    def duration(self) -> float:
        return self.end_s - self.start_s


@dataclass(frozen=True)
class SliceExportReport:
    status: str
    results: list[SliceExportResult] = field(default_factory=list)
    skipped: list[int] = field(default_factory=list)

    @property
    def exported(self) -> list[SliceExportResult]:
        return [r for r in self.results if r.success]

    @property
    def failed(self) -> list[SliceExportResult]:
        return [r for r in self.results if not r.success]


def _sanitize_for_filename(s: str) -> str:
    s2 = (s or "").strip().replace(" ", "_")
    out = []
    for ch in s2:
        if ch.isalnum() or ch in {"_", "-", "."}:
            out.append(ch)
    return "".join(out) or "slice"


def slice_boundaries(markers: Sequence[float], duration: float) -> list[float]:
    """[0, *markers, duration], de-duplicated and sorted; markers outside are ignored."""

    d = float(duration)
    inner = [float(m) for m in markers if 0.0 < float(m) < d]
    return sorted(set([0.0, *inner, d]))


def slice_filename(slice_number: int, total_slices: int, fmt: ExportFormat, base: str) -> str:
    width = 3 if int(total_slices) >= 100 else 2
    return f"{_sanitize_for_filename(base)}-{int(slice_number):0{width}d}-{fmt.slug}.wav"


def _unique_path(out_dir: Path, filename: str) -> Path:
    out_path = out_dir / filename
    stem = out_path.stem
    k = 2
    while out_path.exists():
        out_path = out_dir / f"{stem}_{k}{out_path.suffix}"
        k += 1
    return out_path


def extract_slice(buffer: AudioBuffer, start_s: float, end_s: float) -> AudioBuffer:
    # Slices start on floor(t * sr) so adjacent slices share no sample.
    lo = max(0, min(int(float(start_s) * buffer.sample_rate), buffer.length))
    hi = max(lo, min(int(float(end_s) * buffer.sample_rate), buffer.length))
    return buffer.with_samples(buffer.samples[:, lo:hi])


def export_slices(
    buffer: AudioBuffer | None,
    markers: Sequence[float],
    fmt: ExportFormat,
    out_dir: Path,
    *,
    base: str = "splicekit-slice",
    write_manifest: bool = True,
) -> SliceExportReport:
    """Write one WAV per slice between consecutive markers.

    A failing slice is recorded and the rest still export. The overall
    status is "error" only when no slice could be written.
    """

    if buffer is None or buffer.length == 0:
        return SliceExportReport(status="no-audio")
    if not markers:
        return SliceExportReport(status="no-slices")

    bounds = slice_boundaries(markers, buffer.duration)
    total = len(bounds) - 1
    if total < 1:
        return SliceExportReport(status="no-slices")

    out_dir = Path(out_dir)
    results: list[SliceExportResult] = []
    skipped: list[int] = []
    for i in range(total):
        n = i + 1
        start_s, end_s = bounds[i], bounds[i + 1]
        if end_s - start_s < MIN_SLICE_DURATION_S:
            logger.warning("Skipping very short slice %d (%.1f ms)", n, (end_s - start_s) * 1000.0)
            skipped.append(n)
            continue

        name = slice_filename(n, total, fmt, base)
        try:
            out_dir.mkdir(parents=True, exist_ok=True)
            out_path = _unique_path(out_dir, name)
            data = encode_for_export(extract_slice(buffer, start_s, end_s), fmt, [])
            write_bytes(out_path, data)
            results.append(SliceExportResult(n, start_s, end_s, out_path.name, True))
            logger.debug("Slice %d/%d: %.3fs - %.3fs -> %s", n, total, start_s, end_s, out_path)
        except (OSError, ValueError) as e:
            logger.error("Error exporting slice %d: %s", n, e)
            results.append(SliceExportResult(n, start_s, end_s, name, False, str(e)))

    ok = any(r.success for r in results)
    status = "success" if ok else ("error" if results else "no-slices")
    report = SliceExportReport(status=status, results=results, skipped=skipped)

    if write_manifest and ok:
        rec: dict[str, Any] = {
            "base": base,
            "format": fmt.label,
            "source_duration_s": buffer.duration,
            "slices": [asdict(r) for r in results],
            "skipped": skipped,
            "created_utc": time.strftime("%Y-%m-%dT%H:%M:%SZ", time.gmtime()),
        }
        write_json_file(out_dir / f"{_sanitize_for_filename(base)}.slices.json", rec)

    logger.info("Slice export %s: %d written, %d failed, %d skipped", status, len(report.exported), len(report.failed), len(skipped))
    return report


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        description=(
            "Slice export\n\n"
            "Writes one WAV per slice of a source WAV, cutting at its cue points."
        )
    )
    p.add_argument("--wav", required=True, help="Source WAV with cue points")
    p.add_argument("--out-dir", default=None, help="Output folder (default: alongside the source wav)")
    p.add_argument("--base", default=None, help="Filename prefix (default: source file stem)")
    p.add_argument(
        "--format",
        default=EXPORT_FORMATS[0].slug,
        help="Export preset label or slug (see `splicekit export --list-formats`)",
    )
    return p


def main(argv: list[str] | None = None) -> int:
    p = build_parser()
    args = p.parse_args(argv)

    wav_path = Path(str(args.wav))
    if not wav_path.exists():
        raise FileNotFoundError(str(wav_path))
    try:
        fmt = find_export_format(str(args.format))
    except KeyError as e:
        p.error(str(e))

    buffer = read_audio(wav_path)
    markers = cue_points_from_file(wav_path)
    out_dir = Path(str(args.out_dir)) if args.out_dir else wav_path.parent
    report = export_slices(buffer, markers, fmt, out_dir, base=str(args.base or wav_path.stem))

    print(
        json.dumps(
            {
                "status": report.status,
                "written": [r.filename for r in report.exported],
                "failed": [{"slice": r.slice_number, "error": r.error} for r in report.failed],
                "skipped": report.skipped,
            },
            indent=2,
        )
    )
    return 0 if report.status == "success" else 1


if __name__ == "__main__":
    raise SystemExit(main())
