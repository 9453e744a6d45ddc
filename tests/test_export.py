import numpy as np
import pytest

from splicekit.audio import AudioBuffer
from splicekit.export import (
    EXPORT_FORMATS,
    convert_channels,
    encode_for_export,
    export_format,
    find_export_format,
    resample_buffer,
    resample_linear,
)
from splicekit.wav_codec import WAVE_FORMAT_IEEE_FLOAT, WAVE_FORMAT_PCM, read_cue_chunk


def test_catalogue():
    assert len(EXPORT_FORMATS) == 6
    first = EXPORT_FORMATS[0]
    assert (first.sample_rate, first.bit_depth, first.channels, first.sample_format) == (48000, 32, "stereo", "float")
    assert first.slug == "48khz-32-bit-float-stereo"
    assert EXPORT_FORMATS[-1].label == "22.05kHz 16-bit Mono"
    assert find_export_format("44.1kHz 16-bit mono") is EXPORT_FORMATS[4]
    assert find_export_format(EXPORT_FORMATS[2].slug) is EXPORT_FORMATS[2]
    with pytest.raises(KeyError):
        find_export_format("mp3")
    with pytest.raises(IndexError):
        export_format(6)


def test_resample_linear_upsample():
    y = resample_linear(np.array([0.0, 1.0, 2.0, 3.0]), 2.0)
    assert y.tolist() == [0.0, 0.5, 1.0, 1.5, 2.0, 2.5, 3.0, 3.0]


def test_resample_linear_downsample_and_length():
    y = resample_linear(np.array([0.0, 1.0, 2.0, 3.0]), 0.5)
    assert y.tolist() == [0.0, 2.0]
    assert resample_linear(np.zeros(44100), 48000 / 44100).size == 48000


def test_resample_buffer_keeps_channels(noise_stereo):
    out = resample_buffer(noise_stereo, 22050)
    assert out.sample_rate == 22050
    assert out.channel_count == 2
    assert out.length == 22050
    assert resample_buffer(noise_stereo, noise_stereo.sample_rate) is noise_stereo


def test_channel_conversion():
    st = AudioBuffer(np.array([[1.0, 0.5], [0.0, -0.5]], dtype=np.float32), 44100)
    mono = convert_channels(st, 1)
    assert mono.channel_count == 1
    assert mono.channel(0).tolist() == [0.5, 0.0]

    back = convert_channels(mono, 2)
    assert back.channel_count == 2
    assert np.array_equal(back.channel(0), back.channel(1))


def test_export_rescales_cue_offsets(noise_stereo):
    fmt = EXPORT_FORMATS[5]
    data = encode_for_export(noise_stereo, fmt, [0.5, 0.25])
    info = read_cue_chunk(data)
    assert info.sample_rate == 22050
    assert info.channels == 1
    assert info.bits_per_sample == 16
    assert info.format_tag == WAVE_FORMAT_PCM
    assert [c.sample_offset for c in info.cue_points] == [11025, 5512]
    assert info.marker_times() == pytest.approx([0.25, 0.5], abs=1.0 / 22050)
    assert len(data) == 44 + 22050 * 2 + 12 + 2 * 24


def test_export_float_preset(noise_stereo):
    data = encode_for_export(noise_stereo, EXPORT_FORMATS[0])
    info = read_cue_chunk(data)
    assert info.format_tag == WAVE_FORMAT_IEEE_FLOAT
    assert (info.sample_rate, info.channels, info.bits_per_sample) == (48000, 2, 32)
    assert info.cue_points == ()
