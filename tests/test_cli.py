import json
import logging

import pytest

from splicekit import app, editops
from splicekit.io_utils import read_audio
from splicekit.wav_codec import cue_points_from_file, write_wav_file


@pytest.fixture(autouse=True)
def data_dir(tmp_path, monkeypatch):
    d = tmp_path / "appdata"
    monkeypatch.setenv("SPLICEKIT_DATA_DIR", str(d))
    log = logging.getLogger("splicekit")
    before = list(log.handlers)
    yield d
    for h in list(log.handlers):
        if h not in before:
            log.removeHandler(h)
            h.close()


@pytest.fixture()
def wav(tmp_path, dc_stereo):
    return write_wav_file(tmp_path / "in.wav", dc_stereo, [0.25, 1.0])


def _last_json(capsys):
    lines = [ln for ln in capsys.readouterr().out.splitlines() if ln.strip()]
    return json.loads(lines[-1])


def test_crop_writes_wav_and_sidecar(wav, capsys):
    rc = editops.main(["crop", "--in", str(wav), "--start", "0.5", "--end", "1.5"])
    res = _last_json(capsys)
    assert rc == 0
    assert res["status"] == "applied"
    assert res["duration_s"] == pytest.approx(1.0)
    assert res["markers"] == pytest.approx([0.5])

    assert read_audio(wav).duration == pytest.approx(1.0)
    assert cue_points_from_file(wav) == pytest.approx([0.5])
    side = json.loads(wav.with_name("in.edits.json").read_text(encoding="utf-8"))
    assert [e["op"] for e in side["edits"]] == ["crop"]


def test_lock_state_survives_in_sidecar(wav, capsys):
    assert editops.main(["lock", "--in", str(wav), "--time", "1.0"]) == 0
    assert _last_json(capsys)["locked_now"] is True

    assert editops.main(["info", "--in", str(wav)]) == 0
    info = _last_json(capsys)
    assert info["locked"] == pytest.approx([1.0])
    assert info["markers"] == pytest.approx([0.25, 1.0])


def test_noop_does_not_touch_file(wav, capsys):
    before = wav.read_bytes()
    assert editops.main(["lock", "--in", str(wav), "--time", "1.9"]) == 0
    assert _last_json(capsys)["status"] == "noop"
    assert wav.read_bytes() == before
    assert not wav.with_name("in.edits.json").exists()


def test_autoslice_to_new_file(wav, tmp_path, capsys):
    out = tmp_path / "sliced.wav"
    assert editops.main(["autoslice", "--in", str(wav), "--out", str(out), "--slices", "4"]) == 0
    assert _last_json(capsys)["markers"] == pytest.approx([0.0, 0.5, 1.0, 1.5])
    assert cue_points_from_file(out) == pytest.approx([0.0, 0.5, 1.0, 1.5])


def test_app_dispatch(wav, tmp_path, capsys):
    assert app.main(["help"]) == 0
    assert app.main(["bogus"]) == 2
    capsys.readouterr()

    assert app.main(["export", "--list-formats"]) == 0
    assert len(json.loads(capsys.readouterr().out)) == 6

    joined = tmp_path / "joined.wav"
    assert app.main(["concat", str(wav), str(wav), "--out", str(joined)]) == 0
    assert _last_json(capsys)["markers"] == pytest.approx([0.25, 1.0, 2.0, 2.25, 3.0])

    slices = tmp_path / "slices"
    assert app.main(["slices", "--wav", str(wav), "--out-dir", str(slices), "--format", "44-1khz-16-bit-stereo"]) == 0
    assert len(list(slices.glob("*.wav"))) == 3
