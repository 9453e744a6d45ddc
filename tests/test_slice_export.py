import json

import pytest

from splicekit.export import EXPORT_FORMATS
from splicekit.io_utils import read_audio
from splicekit.slice_export import export_slices, slice_boundaries, slice_filename

FMT = EXPORT_FORMATS[3]  # 44.1kHz 16-bit Stereo


def test_nothing_to_export(tmp_path, dc_stereo):
    assert export_slices(None, [0.5], FMT, tmp_path).status == "no-audio"
    assert export_slices(dc_stereo, [], FMT, tmp_path).status == "no-slices"
    assert list(tmp_path.iterdir()) == []


def test_slices_between_markers(tmp_path, dc_stereo):
    report = export_slices(dc_stereo, [1.0, 0.5], FMT, tmp_path, base="kit")
    assert report.status == "success"
    assert [r.filename for r in report.exported] == [
        "kit-01-44-1khz-16-bit-stereo.wav",
        "kit-02-44-1khz-16-bit-stereo.wav",
        "kit-03-44-1khz-16-bit-stereo.wav",
    ]
    assert [(r.start_s, r.end_s) for r in report.results] == [(0.0, 0.5), (0.5, 1.0), (1.0, 2.0)]

    last = read_audio(tmp_path / "kit-03-44-1khz-16-bit-stereo.wav")
    assert last.duration == pytest.approx(1.0)

    manifest = json.loads((tmp_path / "kit.slices.json").read_text(encoding="utf-8"))
    assert len(manifest["slices"]) == 3
    assert manifest["format"] == FMT.label


def test_short_slices_are_skipped(tmp_path, dc_stereo):
    report = export_slices(dc_stereo, [1.0, 1.005], FMT, tmp_path, base="kit", write_manifest=False)
    assert report.status == "success"
    assert report.skipped == [2]
    assert [r.slice_number for r in report.exported] == [1, 3]


def test_existing_files_are_not_overwritten(tmp_path, dc_stereo):
    existing = tmp_path / "kit-01-44-1khz-16-bit-stereo.wav"
    existing.write_bytes(b"keep")
    report = export_slices(dc_stereo, [1.0], FMT, tmp_path, base="kit", write_manifest=False)
    assert report.exported[0].filename == "kit-01-44-1khz-16-bit-stereo_2.wav"
    assert existing.read_bytes() == b"keep"


def test_boundaries_and_names():
    assert slice_boundaries([3.0, 1.0, -1.0, 1.0], 2.0) == [0.0, 1.0, 2.0]
    assert slice_filename(7, 12, FMT, "my kit") == "my_kit-07-44-1khz-16-bit-stereo.wav"
    assert slice_filename(7, 120, FMT, "kit") == "kit-007-44-1khz-16-bit-stereo.wav"
