import pytest

from splicekit.regions import RegionSet, default_region


def test_default_regions():
    assert default_region("crop", 4.0).bounds == (1.0, 3.0)
    assert default_region("fade-in", 4.0).bounds == pytest.approx((0.0, 0.4))
    assert default_region("fade-out", 4.0).bounds == pytest.approx((3.6, 4.0))
    assert default_region("crossfade", 4.0, center=2.0).bounds == (1.5, 2.5)
    # Clamped at the buffer edges.
    assert default_region("crossfade", 4.0, center=0.2).bounds == (0.0, 0.7)
    with pytest.raises(ValueError):
        default_region("loop", 4.0)


def test_toggle_creates_then_removes():
    rs = RegionSet()
    r = rs.toggle("crop", 2.0)
    assert r is not None and rs.has("crop")
    assert rs.toggle("crop", 2.0) is None
    assert not rs.has("crop")


def test_one_region_per_kind():
    rs = RegionSet()
    rs.set("fade-in", 0.0, 0.2)
    rs.set("fade-in", 0.5, 0.1)
    assert rs.get("fade-in").bounds == (0.1, 0.5)
    rs.toggle("fade-out", 2.0)
    info = rs.region_info()
    assert set(info) == {"fade-in", "fade-out"}
    assert info["fade-in"]["duration"] == pytest.approx(0.4)
    rs.remove("fade-in", "fade-out")
    assert rs.region_info() == {}
