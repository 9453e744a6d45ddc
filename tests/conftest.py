import os
import sys

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..", "src")))

import numpy as np
import pytest

from splicekit.audio import AudioBuffer

SR = 44100


@pytest.fixture
def sr():
    return SR


@pytest.fixture
def dc_stereo():
    """2 s stereo at a constant 0.5: no zero crossings anywhere."""
    return AudioBuffer(np.full((2, 2 * SR), 0.5, dtype=np.float32), SR)


@pytest.fixture
def dc_mono():
    return AudioBuffer(np.ones((1, 2 * SR), dtype=np.float32), SR)


@pytest.fixture
def silent_mono():
    return AudioBuffer.silent(SR, SR)


@pytest.fixture
def sine_mono():
    t = np.arange(SR, dtype=np.float64) / SR
    return AudioBuffer((0.5 * np.sin(2.0 * np.pi * 100.0 * t)).astype(np.float32), SR)


@pytest.fixture
def noise_stereo():
    rng = np.random.default_rng(7)
    return AudioBuffer(rng.uniform(-0.6, 0.6, size=(2, SR)).astype(np.float32), SR)


@pytest.fixture
def clicks_mono():
    """1 s of silence with 20 ms noise bursts at 0.25, 0.5 and 0.75 s."""
    rng = np.random.default_rng(0)
    x = np.zeros(SR, dtype=np.float32)
    n = int(0.02 * SR)
    for t in (0.25, 0.5, 0.75):
        i = int(t * SR)
        x[i : i + n] = rng.uniform(-0.8, 0.8, size=n).astype(np.float32)
    return AudioBuffer(x, SR)
