import numpy as np
import pytest

from splicekit.audio import AudioBuffer
from splicekit.export import EXPORT_FORMATS
from splicekit.io_utils import decode_audio
from splicekit.session import EditSession
from splicekit.wav_codec import decode_cue_points, encode_wav


@pytest.fixture()
def session(dc_mono):
    s = EditSession()
    s.load(dc_mono, markers=[0.2, 0.75, 1.25])
    return s


def test_crop_then_undo(session):
    first = session.handle
    session.toggle_region("crop")
    out = session.apply_edit("crop")
    assert out.status == "applied"
    assert session.duration == pytest.approx(1.0)
    assert session.markers == pytest.approx([0.25, 0.75])
    assert session.region_info() == {}
    assert session.can_undo

    back = session.undo()
    assert back.status == "applied"
    assert session.handle == first
    assert session.duration == pytest.approx(2.0)
    assert session.markers == pytest.approx([0.2, 0.75, 1.25])
    assert not session.can_undo


def test_only_one_edit_in_flight(session):
    session.toggle_region("crop")
    pending = session.begin_edit("crop")
    assert pending.status == "pending"
    assert pending.data[:4] == b"RIFF"
    assert session.processing

    assert session.begin_edit("normalize").status == "busy"
    assert session.begin_undo().status == "busy"
    assert not session.handle_reload(session.handle, [0.1])
    assert not session.add_marker(1.9)

    done = session.complete_edit(pending.handle)
    assert done.status == "applied"
    assert not session.processing


def test_failed_reload_rolls_back(session):
    session.toggle_region("crop")
    pending = session.begin_edit("crop")
    out = session.complete_edit(pending.handle, ok=False, error="host could not decode")
    assert out.status == "failed"
    assert "decode" in out.message
    assert not session.processing
    assert session.duration == pytest.approx(2.0)
    assert session.markers == pytest.approx([0.2, 0.75, 1.25])
    assert not session.can_undo
    assert session.region_info() != {}


def test_failed_undo_reload_keeps_state(session):
    session.toggle_region("crop")
    session.apply_edit("crop")
    cropped = session.handle

    pending = session.begin_undo()
    assert pending.status == "pending"
    assert pending.data[:4] == b"RIFF"
    # Nothing is restored until the host confirms the reload.
    assert session.handle == cropped
    assert session.duration == pytest.approx(1.0)
    assert session.can_undo

    out = session.complete_undo(pending.handle, ok=False, error="host could not decode")
    assert out.status == "failed"
    assert "decode" in out.message
    assert not session.undoing
    assert session.handle == cropped
    assert session.markers == pytest.approx([0.25, 0.75])
    assert session.can_undo

    assert session.undo().status == "applied"
    assert session.duration == pytest.approx(2.0)
    assert session.markers == pytest.approx([0.2, 0.75, 1.25])


def test_noop_without_audio_or_region(dc_mono):
    s = EditSession()
    assert s.apply_edit("crop").status == "noop"
    s.load(dc_mono)
    out = s.apply_edit("crop")
    assert out.status == "noop"
    assert not s.processing
    assert not s.can_undo
    assert s.undo().status == "noop"


def test_processor_failure_clears_processing(session):
    def boom(_buffer):
        raise RuntimeError("stretch engine crashed")

    out = session.tempo_pitch(boom)
    assert out.status == "failed"
    assert "crashed" in out.message
    assert not session.processing
    assert not session.can_undo
    assert session.duration == pytest.approx(2.0)


def test_tempo_pitch_rescales_markers(session, sr):
    def stretch(buffer):
        return AudioBuffer(np.ones(buffer.length * 2, dtype=np.float32), buffer.sample_rate)

    out = session.tempo_pitch(stretch)
    assert out.status == "applied"
    assert session.duration == pytest.approx(4.0)
    assert session.markers == pytest.approx([0.4, 1.5, 2.5])


def test_undo_lifecycle_blocks_marker_edits(session):
    session.apply_edit("normalize")
    pending = session.begin_undo()
    assert pending.status == "pending"
    assert session.undoing
    assert not session.add_marker(1.9)
    assert session.begin_undo().status == "busy"

    done = session.complete_undo(pending.handle)
    assert done.status == "applied"
    assert not session.undoing
    assert session.add_marker(1.9)


def test_crop_without_surviving_markers_clears_them(dc_mono):
    s = EditSession()
    s.load(dc_mono, markers=[0.2])
    out = s.apply_edit("crop", start=0.5, end=1.5)
    assert out.status == "applied"
    assert out.markers_cleared
    assert s.markers == []


def test_fades_consume_both_regions(session):
    session.toggle_region("fade-in")
    session.toggle_region("fade-out")
    out = session.apply_edit("fades")
    assert out.status == "applied"
    assert session.region_info() == {}
    x = session.buffer.channel(0)
    assert x[0] == pytest.approx(0.0)
    assert x[session.buffer.length // 2] == pytest.approx(1.0)


def test_load_bytes_reads_cue_markers(dc_stereo):
    raw = encode_wav(dc_stereo, [1.0, 0.5])
    s = EditSession()
    s.load_bytes(raw)
    assert s.buffer.channel_count == 2
    assert s.markers == pytest.approx([0.5, 1.0])


def test_reload_adopts_markers_only_when_empty(dc_mono):
    s = EditSession()
    h = s.load(dc_mono)
    assert not s.handle_reload(h + 100, [0.5])
    assert s.handle_reload(h, [0.5])
    assert s.markers == pytest.approx([0.5])
    assert not s.handle_reload(h, [1.5])
    assert s.markers == pytest.approx([0.5])


def test_export_bytes_carries_markers(session):
    data = session.export_bytes(EXPORT_FORMATS[3])
    assert data[:4] == b"RIFF"
    assert decode_cue_points(data) == pytest.approx(session.markers, abs=1.0 / 44100)
    assert decode_audio(data).channel_count == 2


def test_clear_markers_keeps_locked_by_default(session):
    assert session.toggle_lock(0.75) is True
    session.clear_markers()
    assert session.markers == pytest.approx([0.75])
    assert session.locked == pytest.approx([0.75])

    session.clear_markers(keep_locked=False)
    assert session.markers == []
    assert session.locked == []
