import pytest

from roi.overlay import RegionOverlay
from roi.regions import Region


def _region(number, **kwargs):
    return Region(roi_number=number, name=f"ROI_{number}", **kwargs)


def test_overrides_fall_back_to_region_values():
    overlay = RegionOverlay(global_opacity=0.7)
    shown = _region(1)
    hidden = _region(2, visible=False)
    assert overlay.is_visible(shown)
    assert not overlay.is_visible(hidden)
    assert overlay.effective_opacity(shown) == pytest.approx(0.35)


def test_per_region_overrides():
    overlay = RegionOverlay(global_opacity=1.0)
    region = _region(1, opacity=0.5)
    overlay.set_opacity(1, 2.0)
    overlay.set_visibility(1, False)
    assert overlay.effective_opacity(region) == 1.0
    assert not overlay.is_visible(region)

    overlay.reset(1)
    assert overlay.is_visible(region)
    assert overlay.effective_opacity(region) == 0.5


def test_global_switch_and_opacity():
    overlay = RegionOverlay()
    regions = [_region(1), _region(2), _region(3, visible=False)]
    assert [r.roi_number for r in overlay.visible_regions(regions)] == [1, 2]

    overlay.enabled = False
    assert overlay.visible_regions(regions) == []

    overlay.global_opacity = -3.0
    assert overlay.global_opacity == 0.0


def test_selection():
    overlay = RegionOverlay()
    region = _region(4)
    assert overlay.selected is None
    overlay.select(4)
    assert overlay.is_selected(region)
    overlay.select(None)
    assert not overlay.is_selected(region)
