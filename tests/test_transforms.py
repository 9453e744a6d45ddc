import numpy as np
import pytest

from splicekit.audio import AudioBuffer, peak_amplitude
from splicekit.fades import EXPONENTIAL
from splicekit.transforms import (
    apply_fades,
    crop,
    crossfade,
    fade_in,
    fade_out,
    normalize,
    reverse,
    tempo_pitch,
)

SR = 44100


# -----------------------------------------------------------------------------
# Crop
# -----------------------------------------------------------------------------

def test_crop_moves_locked_marker(dc_stereo):
    res = crop(dc_stereo, 0.5, 1.5, [1.0], [1.0])
    assert res.buffer.channel_count == 2
    assert res.buffer.sample_rate == SR
    assert res.buffer.length == SR
    assert res.buffer.duration == pytest.approx(1.0)
    assert res.markers == pytest.approx([0.5])
    assert res.locked == pytest.approx([0.5])
    assert not res.markers_cleared


def test_crop_drops_markers_outside(dc_stereo):
    res = crop(dc_stereo, 0.5, 1.5, [0.2, 1.0, 1.8], [0.2])
    assert res.markers == pytest.approx([0.5])
    assert res.locked == []


def test_crop_with_no_surviving_markers_clears_everything(dc_stereo):
    res = crop(dc_stereo, 0.5, 1.5, [0.1, 1.9], [1.9])
    assert res.markers == [] and res.locked == []
    assert res.markers_cleared


def test_crop_bounds_snap_to_zero_crossings(sine_mono):
    res = crop(sine_mono, 0.2037, 0.6021, [0.3, 0.5])
    n = res.buffer.length
    # Result length is a whole number of half periods (220.5 samples) give or take a sample.
    assert abs(n / 220.5 - round(n / 220.5)) * 220.5 <= 1.0
    for m in res.markers:
        assert 0.0 <= m <= res.buffer.duration


def test_crop_rejects_empty_range(dc_stereo):
    with pytest.raises(ValueError):
        crop(dc_stereo, 1.0, 1.0)


# -----------------------------------------------------------------------------
# Fades
# -----------------------------------------------------------------------------

def test_fade_in_default_region(dc_mono):
    res = fade_in(dc_mono)
    x = res.buffer.channel(0)
    n = int(round(0.2 * SR))
    assert x[0] == 0.0
    assert x[n // 2] == pytest.approx(0.5, abs=1e-4)
    assert x[n] == 1.0
    assert np.all(x[n:] == 1.0)
    # Input is untouched.
    assert np.all(dc_mono.channel(0) == 1.0)


def test_fade_out_region_and_curve(dc_mono):
    res = fade_out(dc_mono, start=1.0, end=2.0, curve=EXPONENTIAL)
    x = res.buffer.channel(0)
    assert np.all(x[:SR] == 1.0)
    assert x[SR] == 1.0
    assert x[SR + SR // 2] == pytest.approx(0.25, abs=1e-4)
    assert x[-1] < 1e-3


def test_fades_leave_markers_alone(dc_mono):
    res = apply_fades(
        dc_mono,
        [0.1, 1.95],
        [1.95],
        fade_in_region=(0.0, 0.5),
        fade_out_region=(1.5, 2.0),
    )
    assert res.markers == [0.1, 1.95]
    assert res.locked == [1.95]
    x = res.buffer.channel(0)
    assert x[0] == 0.0 and x[-1] < 1e-3
    assert x[SR] == 1.0


def test_crossfade_dips_at_center(dc_mono):
    res = crossfade(dc_mono, [1.0], start=0.5, end=1.5, center=1.0)
    x = res.buffer.channel(0)
    assert x[int(0.5 * SR)] == 1.0
    assert x[SR] == 0.0
    assert x[int(0.75 * SR)] == pytest.approx(0.5, abs=1e-3)
    assert x[int(1.25 * SR)] == pytest.approx(0.5, abs=1e-3)
    assert np.all(x[: int(0.5 * SR)] == 1.0)
    assert np.all(x[int(1.5 * SR) :] == 1.0)
    assert res.markers == [1.0]


# -----------------------------------------------------------------------------
# Reverse
# -----------------------------------------------------------------------------

def test_reverse_twice_is_identity(noise_stereo):
    once = reverse(noise_stereo, region=(0.3, 0.7)).buffer
    twice = reverse(once, region=(0.3, 0.7)).buffer
    assert not np.array_equal(once.samples, noise_stereo.samples)
    assert np.array_equal(twice.samples, noise_stereo.samples)

    whole = reverse(reverse(noise_stereo).buffer).buffer
    assert np.array_equal(whole.samples, noise_stereo.samples)


def test_reverse_range_only_touches_range(noise_stereo):
    res = reverse(noise_stereo, region=(0.25, 0.5))
    a, b = int(0.25 * SR), int(0.5 * SR)
    assert np.array_equal(res.buffer.samples[:, :a], noise_stereo.samples[:, :a])
    assert np.array_equal(res.buffer.samples[:, b:], noise_stereo.samples[:, b:])
    assert np.array_equal(res.buffer.samples[:, a:b], noise_stereo.samples[:, a:b][:, ::-1])


def test_reverse_mirrors_markers(dc_stereo):
    res = reverse(dc_stereo, [0.5, 1.8], [0.5])
    assert res.markers == pytest.approx([0.2, 1.5])
    assert res.locked == pytest.approx([1.5])

    res = reverse(dc_stereo, [0.6, 1.8], [], region=(0.5, 1.5))
    assert res.markers == pytest.approx([1.4, 1.8])


# -----------------------------------------------------------------------------
# Normalize / tempo
# -----------------------------------------------------------------------------

@pytest.mark.parametrize("target", [-1.0, -6.0, 0.0])
def test_normalize_hits_target_peak(noise_stereo, target):
    res = normalize(noise_stereo, target_db=target)
    assert peak_amplitude(res.buffer) == pytest.approx(10 ** (target / 20.0), rel=1e-6)


def test_normalize_silence_is_unchanged(silent_mono):
    res = normalize(silent_mono)
    assert res.buffer is silent_mono

    quiet = AudioBuffer(np.full(100, 1e-7, dtype=np.float32), SR)
    assert normalize(quiet).buffer is quiet


def test_tempo_pitch_rescales_markers(dc_stereo):
    def stretch(buf):
        return buf.with_samples(np.repeat(buf.samples, 2, axis=1))

    res = tempo_pitch(dc_stereo, stretch, [0.5, 1.0], [1.0])
    assert res.buffer.duration == pytest.approx(4.0)
    assert res.markers == pytest.approx([1.0, 2.0])
    assert res.locked == pytest.approx([2.0])

    with pytest.raises(TypeError):
        tempo_pitch(dc_stereo, lambda b: b.samples)
