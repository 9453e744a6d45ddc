import numpy as np
import pytest

from splicekit.audio import AudioBuffer
from splicekit.concat import concatenate, is_too_long, truncate_buffer

SR = 44100


def _mono(seconds, value=0.1, sr=SR):
    return AudioBuffer(np.full(int(seconds * sr), value, dtype=np.float32), sr)


def test_boundary_and_carried_cue_markers():
    res = concatenate([(_mono(1.0), [0.25]), (_mono(0.5), [0.1])])
    assert res.buffer.duration == pytest.approx(1.5)
    assert res.markers == pytest.approx([0.25, 1.0, 1.1])
    assert not res.truncated


def test_mono_source_is_duplicated_into_stereo():
    stereo = AudioBuffer(np.zeros((2, SR), dtype=np.float32), SR)
    res = concatenate([(stereo, []), (_mono(1.0, 0.3), [])])
    assert res.buffer.channel_count == 2
    tail = res.buffer.samples[:, SR:]
    assert np.all(tail == np.float32(0.3))


def test_truncation_drops_late_markers():
    res = concatenate([(_mono(1.0), [0.25]), (_mono(0.5), [0.1])], max_duration=1.05)
    assert res.truncated
    assert res.buffer.length == int(np.floor(1.05 * SR))
    assert res.markers == pytest.approx([0.25, 1.0])


def test_mismatched_rates_are_resampled(caplog):
    with caplog.at_level("WARNING", logger="splicekit"):
        res = concatenate([(_mono(1.0), []), (_mono(1.0, sr=22050), [])])
    assert res.buffer.sample_rate == SR
    assert res.buffer.duration == pytest.approx(2.0)
    assert "Sample rate mismatch" in caplog.text


def test_empty_input_rejected():
    with pytest.raises(ValueError):
        concatenate([])


def test_length_helpers():
    assert is_too_long(174.5)
    assert not is_too_long(174.0)
    buf = _mono(2.0)
    assert truncate_buffer(buf, 1.5).length == int(1.5 * SR)
    assert truncate_buffer(buf, 3.0) is buf
