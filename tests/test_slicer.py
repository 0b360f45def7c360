import numpy as np
import pytest

from mpr.planes import Plane
from mpr.slicer import SliceExtractor, WindowLevel, apply_window, slice_count, slice_info
from mpr.volume import Volume


def _volume():
    data = np.arange(3 * 4 * 5, dtype=np.int16).reshape(3, 4, 5)  # z, y, x
    return Volume.from_array(data, spacing=(0.5, 0.75, 2.0), origin=(10.0, 20.0, 30.0))


def test_extract_orthogonal_shapes_and_values():
    volume = _volume()
    slices = SliceExtractor(volume).extract_orthogonal((2, 1, 1))
    assert set(slices) == set(Plane)
    assert slices[Plane.AXIAL].shape == (4, 5)
    assert slices[Plane.SAGITTAL].shape == (3, 4)
    assert slices[Plane.CORONAL].shape == (3, 5)
    np.testing.assert_array_equal(slices[Plane.AXIAL], volume.data[1])
    np.testing.assert_array_equal(slices[Plane.SAGITTAL], volume.data[:, :, 2])
    np.testing.assert_array_equal(slices[Plane.CORONAL], volume.data[:, 1, :])


def test_extract_at_world_converts_position():
    volume = _volume()
    buffer = SliceExtractor(volume).extract_at_world(Plane.AXIAL, (10.0, 20.0, 34.0))
    np.testing.assert_array_equal(buffer, volume.data[2])


def test_slice_info():
    volume = _volume()
    info = slice_info(volume, Plane.CORONAL, 2)
    assert info.position_mm == pytest.approx(21.5)
    assert info.thickness_mm == 0.75
    assert info.dimensions == (5, 3)
    assert info.spacing == (0.5, 2.0)
    assert slice_count(volume, Plane.SAGITTAL) == 5


def test_window_presets():
    soft = WindowLevel.preset()
    assert soft.name == "soft_tissue"
    assert (soft.lower, soft.upper) == (-160.0, 240.0)
    assert WindowLevel.preset("Lung").center == -600.0
    with pytest.raises(KeyError):
        WindowLevel.preset("unknown")


def test_apply_window_maps_to_bytes():
    window = WindowLevel("test", center=40.0, width=400.0)
    out = apply_window(np.array([-1000, -160, 40, 240, 1000], dtype=np.int16), window)
    assert out.dtype == np.uint8
    assert out.tolist() == [0, 0, 128, 255, 255]
    with pytest.raises(ValueError):
        apply_window(np.zeros(3), WindowLevel("bad", 0.0, 0.0))
