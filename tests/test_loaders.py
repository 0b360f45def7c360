"""
Unit tests for the series and structure set loaders.
"""

import unittest

import numpy as np
import pytest
from pydicom.dataset import Dataset

from loaders.dicom import DicomSeriesLoader, _natural_sort_key, record_from_dataset
from loaders.rtstruct import RTStructLoader
from loaders.synthetic import (
    AIR_HU,
    BONE_HU,
    SyntheticSeriesLoader,
    circular_contour_points,
    circular_region,
    demo_structure_set,
)
from mpr.planes import Plane
from roi.regions import ContourGeometricType, regions_for_slice


class TestNaturalSortKey(unittest.TestCase):
    """Test natural sorting function for filenames."""

    def test_numeric_sorting(self):
        files = ['img_1.dcm', 'img_10.dcm', 'img_2.dcm', 'img_20.dcm', 'img_3.dcm']
        sorted_files = sorted(files, key=_natural_sort_key)
        self.assertEqual(sorted_files, ['img_1.dcm', 'img_2.dcm', 'img_3.dcm', 'img_10.dcm', 'img_20.dcm'])

    def test_case_insensitive(self):
        files = ['IMG_1.dcm', 'img_2.dcm', 'Img_3.dcm']
        self.assertEqual(sorted(files, key=_natural_sort_key), files)


# ==========================================
# DICOM series
# ==========================================

def test_series_loaded_in_anatomical_order(ct_series_dir):
    events = []
    volume = DicomSeriesLoader(max_workers=2).load(str(ct_series_dir), callback=lambda p, m: events.append(p))

    assert volume.dimensions == (5, 4, 3)
    assert volume.spacing == pytest.approx((0.75, 0.5, 2.0))
    assert volume.origin == (0.0, 0.0, 4.0)
    # Stored values offset by the rescale intercept of -1024
    assert [int(volume.data[i, 0, 0]) for i in range(3)] == [300, 200, 100]
    assert [s.instance_number for s in volume.slices] == [3, 2, 1]
    assert events[-1] == 100


def test_unreadable_files_are_skipped(ct_series_dir):
    (ct_series_dir / "broken.dcm").write_bytes(b"not a dicom file")
    records = DicomSeriesLoader().read_slices(str(ct_series_dir))
    assert len(records) == 3


def test_missing_or_empty_folder(tmp_path):
    with pytest.raises(FileNotFoundError):
        DicomSeriesLoader().load(str(tmp_path / "missing"))
    with pytest.raises(FileNotFoundError):
        DicomSeriesLoader().load(str(tmp_path))


def test_record_from_dataset(ct_slice_factory):
    record = record_from_dataset(ct_slice_factory(7.5, 1100, rows=2, columns=3, instance_number=9))
    assert record.position == (0.0, 0.0, 7.5)
    assert record.pixel_spacing == (0.5, 0.75)
    assert record.rescale_intercept == -1024.0
    assert record.instance_number == 9
    assert (record.rows, record.columns) == (2, 3)
    assert record.orientation == (1.0, 0.0, 0.0, 0.0, 1.0, 0.0)
    assert record.pixels.shape == (2, 3)
    assert record.sop_instance_uid is not None


def test_record_defaults_without_optional_attributes():
    ds = Dataset()
    ds.Rows = 2
    ds.Columns = 2
    record = record_from_dataset(ds)
    assert record.position is None
    assert record.pixels is None
    assert record.pixel_spacing == (1.0, 1.0)
    assert record.slice_thickness == 1.0
    assert record.rescale_slope == 1.0


# ==========================================
# RT Structure Set
# ==========================================

def test_rtstruct_from_file(rtstruct_file):
    structures = RTStructLoader().load(str(rtstruct_file))
    assert structures.label == "TEST"
    assert structures.names == ["Heart", "Marker"]
    assert structures.referenced_frame_of_reference_uid == "1.2.3.9"

    heart = structures.find_by_name("Heart")
    assert heart.color == (1.0, 0.0, 0.0)
    assert heart.generation_algorithm == "MANUAL"
    assert len(heart.contours) == 2
    contour = heart.contours[0]
    assert contour.points.shape == (4, 3)
    assert contour.slice_position == 10.0
    assert contour.geometric_type is ContourGeometricType.CLOSED_PLANAR
    assert contour.referenced_sop_instance_uid == "1.2.3.4"


def test_rtstruct_roi_without_contours_gets_cycle_color(rtstruct_ds):
    structures = RTStructLoader().from_dataset(rtstruct_ds)
    marker = structures.find_by_number(2)
    assert marker.contours == ()
    assert marker.color == (0.0, 1.0, 0.0)
    assert regions_for_slice(structures.regions, 12.0, Plane.AXIAL, tolerance=0.1) == [
        structures.find_by_number(1)
    ]


def test_rtstruct_rejects_other_modalities(rtstruct_ds):
    rtstruct_ds.Modality = "CT"
    with pytest.raises(ValueError):
        RTStructLoader().from_dataset(rtstruct_ds)

    with pytest.raises(FileNotFoundError):
        RTStructLoader().load("/nonexistent/rtstruct.dcm")


# ==========================================
# Synthetic
# ==========================================

def test_synthetic_phantom_volume():
    loader = SyntheticSeriesLoader(dimensions=(16, 16, 8), spacing=(1.0, 1.0, 2.0))
    volume = loader.load()
    assert volume.dimensions == (16, 16, 8)
    assert volume.spacing == pytest.approx((1.0, 1.0, 2.0))
    assert volume.origin == (0.0, 0.0, 14.0)
    assert int(volume.data.min()) == AIR_HU
    assert int(volume.data.max()) == BONE_HU
    assert int(volume.data[0, 0, 0]) == AIR_HU


def test_circular_regions():
    points = circular_contour_points(10.0, 20.0, 5.0, 3.0)
    assert points.shape == (16, 3)
    np.testing.assert_allclose(points[0], [15.0, 20.0, 3.0])

    region = circular_region(1, "Heart", (256.0, 256.0), 40.0, (60.0, 100.0), 3.0)
    assert len(region.contours) == 14
    assert region.z_range == (60.0, 99.0)

    demo = demo_structure_set()
    assert demo.names == ["Heart", "Lung_Left", "Lung_Right"]
    assert [r.name for r in regions_for_slice(demo.regions, 110.0, Plane.AXIAL, tolerance=1.5)] == [
        "Lung_Left", "Lung_Right"
    ]
