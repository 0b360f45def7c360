"""
Unit tests for volume assembly and sampling.
"""

import unittest

import numpy as np
import pytest

from mpr.base import SliceRecord
from mpr.planes import Plane
from mpr.progress import CancelFlagObserver, ProgressBus
from mpr.volume import (
    EmptyInputError,
    MissingDimensionsError,
    MissingPixelDataError,
    SliceShapeMismatchError,
    Volume,
    build_volume,
    orientation_matrix,
    rescale_pixels,
)


def _record(z, value=0, rows=2, columns=3, **kwargs):
    pixels = kwargs.pop("pixels", np.full((rows, columns), value, dtype=np.int16))
    return SliceRecord(position=(0.0, 0.0, float(z)), rows=rows, columns=columns, pixels=pixels, **kwargs)


def _scenario_volume():
    data = np.zeros((2, 4, 4), dtype=np.int16)
    data[1, 2, 2] = 100
    return Volume.from_array(data)


class TestBuildVolume(unittest.TestCase):
    def test_slices_ordered_superior_to_inferior(self):
        volume = build_volume([_record(0.0, 0), _record(2.0, 20), _record(1.0, 10)])
        self.assertEqual(volume.dimensions, (3, 2, 3))
        self.assertEqual([int(volume.data[i, 0, 0]) for i in range(3)], [20, 10, 0])
        self.assertEqual(volume.origin, (0.0, 0.0, 2.0))
        self.assertAlmostEqual(volume.spacing[2], 1.0)

    def test_ties_keep_input_order(self):
        volume = build_volume([_record(5.0, 1, slice_thickness=2.5), _record(5.0, 2, slice_thickness=2.5)])
        self.assertEqual(int(volume.data[0, 0, 0]), 1)
        self.assertEqual(int(volume.data[1, 0, 0]), 2)
        # Coincident positions fall back to the slice thickness
        self.assertAlmostEqual(volume.spacing[2], 2.5)

    def test_pixel_spacing_is_row_then_column(self):
        volume = build_volume([_record(0.0, pixel_spacing=(0.5, 0.7)), _record(3.0, pixel_spacing=(0.5, 0.7))])
        self.assertEqual(volume.spacing, (0.7, 0.5, 3.0))

    def test_empty_input(self):
        with self.assertRaises(EmptyInputError):
            build_volume([])

    def test_missing_dimensions(self):
        with self.assertRaises(MissingDimensionsError):
            build_volume([SliceRecord(position=(0.0, 0.0, 0.0), pixels=np.zeros((2, 2)))])

    def test_missing_pixel_data_names_slice(self):
        records = [_record(0.0, 1), _record(5.0, pixels=None)]
        with self.assertRaises(MissingPixelDataError) as ctx:
            build_volume(records)
        self.assertEqual(ctx.exception.slice_index, 0)
        self.assertEqual(ctx.exception.input_index, 1)

    def test_shape_mismatch(self):
        records = [_record(1.0), _record(0.0, pixels=np.zeros((5,), dtype=np.int16))]
        with self.assertRaises(SliceShapeMismatchError) as ctx:
            build_volume(records)
        self.assertEqual(ctx.exception.slice_index, 1)

    def test_rescale_applied_per_slice(self):
        records = [
            _record(1.0, pixels=np.full((2, 3), 1000, dtype=np.uint16), rescale_intercept=-1024.0),
            _record(0.0, pixels=np.full((2, 3), 3, dtype=np.uint16), rescale_slope=2.5),
        ]
        volume = build_volume(records)
        self.assertEqual(int(volume.data[0, 0, 0]), -24)
        self.assertEqual(int(volume.data[1, 0, 0]), 8)
        self.assertEqual(volume.data.dtype, np.int16)

    def test_volume_is_read_only(self):
        volume = build_volume([_record(0.0, 7)])
        with self.assertRaises(ValueError):
            volume.data[0, 0, 0] = 1
        with self.assertRaises(ValueError):
            volume.voxels[0] = 1

    def test_progress_callback_and_cancellation(self):
        events = []
        bus = ProgressBus().subscribe(events.append)
        build_volume([_record(float(z)) for z in range(4)], bus.stage_callback("assemble"))
        self.assertEqual(events[-1].percent, 100)

        bus.subscribe(CancelFlagObserver(lambda: True))
        with self.assertRaises(InterruptedError):
            build_volume([_record(float(z)) for z in range(4)], bus.stage_callback("assemble"))


def test_rescale_saturates_to_int16():
    out = rescale_pixels(np.array([40000, -40000, 10]), 1.0, 0.0)
    assert out.dtype == np.int16
    assert out.tolist() == [32767, -32768, 10]


def test_flat_voxels_are_z_major():
    data = np.arange(2 * 3 * 4, dtype=np.int16).reshape(2, 3, 4)
    volume = Volume.from_array(data)
    w, h, _ = volume.dimensions
    x, y, z = 3, 1, 1
    assert volume.voxels[z * w * h + y * w + x] == volume.voxel(x, y, z)
    assert volume.voxel(4, 0, 0) is None


def test_voxel_accepts_integral_floats():
    volume = Volume.from_array(np.arange(2 * 3 * 4, dtype=np.int16).reshape(2, 3, 4))
    assert volume.voxel(1.0, 2.0, 1.0) == volume.voxel(1, 2, 1) == 21
    assert volume.voxel(4.0, 0.0, 0.0) is None


def test_extract_axial_scenario():
    buffer = _scenario_volume().extract_slice(Plane.AXIAL, 1.0)
    assert buffer.shape == (4, 4)
    assert buffer.dtype == np.int16
    assert buffer[2, 2] == 100
    assert int(buffer.sum()) == 100


def test_extract_fractional_position_interpolates():
    buffer = _scenario_volume().extract_slice(Plane.AXIAL, 0.5)
    assert buffer[2, 2] == 50
    assert buffer[0, 0] == 0


def test_extract_reformatted_shapes():
    volume = Volume.from_array(np.zeros((2, 3, 4), dtype=np.int16))
    assert volume.extract_slice(Plane.SAGITTAL, 1).shape == (2, 3)
    assert volume.extract_slice(Plane.CORONAL, 1.5).shape == (2, 4)


def test_interpolated_voxel_matches_vectorised_sample():
    volume = Volume.from_array(np.full((2, 2, 4), 100, dtype=np.int16))
    assert volume.interpolated_voxel(1.25, 0.0, 0.0) == pytest.approx(100.0)
    # Neighbours outside the lattice count as zero
    assert volume.interpolated_voxel(3.5, 0.0, 0.0) == pytest.approx(50.0)
    points = np.array([[1.25, 0.0, 0.0], [3.5, 0.0, 0.0], [2.0, 0.5, 0.5]])
    expected = [volume.interpolated_voxel(*p) for p in points]
    np.testing.assert_allclose(volume.sample(points), expected)


def test_patient_transform_round_trip_with_orientation():
    orientation = orientation_matrix([0.0, 1.0, 0.0, 1.0, 0.0, 0.0])
    volume = Volume.from_array(
        np.zeros((3, 3, 3), dtype=np.int16), spacing=(0.5, 2.0, 3.0),
        origin=(-10.0, 5.0, 20.0), orientation=orientation,
    )
    voxel = np.array([1.5, 2.0, 0.25])
    patient = volume.voxel_to_patient(voxel)
    np.testing.assert_allclose(volume.patient_to_voxel(patient), voxel)
    # Row direction runs along patient y
    np.testing.assert_allclose(volume.voxel_to_patient([1.0, 0.0, 0.0]), [-10.0, 5.5, 20.0])


def test_geometry_and_statistics():
    data = np.zeros((53, 8, 8), dtype=np.int16)
    data[0, 0, 0] = -1000
    data[1, 0, 0] = 500
    volume = Volume.from_array(data, spacing=(0.7, 0.7, 3.0))
    assert volume.center == pytest.approx((2.8, 2.8, 79.5))
    assert volume.bounds[1] == pytest.approx((5.6, 5.6, 159.0))

    stats = volume.statistics()
    assert (stats.min_value, stats.max_value) == (-1000, 500)
    assert stats.voxel_count == 53 * 64
    assert stats.memory_bytes == 53 * 64 * 2


def test_anatomical_labels():
    volume = Volume.from_array(np.zeros((3, 3, 3), dtype=np.int16))
    assert volume.anatomical_label(0, Plane.AXIAL) == "Superior"
    assert volume.anatomical_label(2, Plane.AXIAL) == "Inferior"
    assert volume.anatomical_label(2, Plane.SAGITTAL) == "Left"
    assert volume.anatomical_label(0, Plane.CORONAL) == "Anterior"


def test_volume_requires_three_dimensions():
    with pytest.raises(ValueError):
        Volume.from_array(np.zeros((4, 4), dtype=np.int16))
    with pytest.raises(ValueError):
        Volume.from_array(np.zeros((1, 1, 1), dtype=np.int16), spacing=(1.0, 0.0, 1.0))


def test_interpolation_at_lattice_points_matches_voxel():
    data = np.arange(2 * 3 * 4, dtype=np.int16).reshape(2, 3, 4)
    volume = Volume.from_array(data)
    for z in range(2):
        for y in range(3):
            for x in range(4):
                assert volume.interpolated_voxel(x, y, z) == volume.voxel(x, y, z)
