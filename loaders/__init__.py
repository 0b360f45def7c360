"""
Data loaders package.
"""

from loaders.dicom import DicomSeriesLoader, record_from_dataset
from loaders.rtstruct import RTStructLoader
from loaders.synthetic import (
    SyntheticSeriesLoader,
    circular_contour_points,
    circular_region,
    demo_structure_set,
)

__all__ = [
    'DicomSeriesLoader',
    'record_from_dataset',
    'RTStructLoader',
    'SyntheticSeriesLoader',
    'circular_contour_points',
    'circular_region',
    'demo_structure_set',
]
