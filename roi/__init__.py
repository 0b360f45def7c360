"""
Region-of-interest model: immutable contours and regions, slice
intersection and projection, and per-view overlay state.
"""

from roi.regions import (
    ContourGeometricType,
    Contour,
    Region,
    RegionStatistics,
    StructureSet,
    default_tolerance,
    intersects_slice,
    project_to_plane,
    regions_for_slice,
    plane_intersections,
    cross_section,
)
from roi.overlay import RegionDisplayState, RegionOverlay

__all__ = [
    'ContourGeometricType', 'Contour', 'Region', 'RegionStatistics', 'StructureSet',
    'default_tolerance', 'intersects_slice', 'project_to_plane', 'regions_for_slice',
    'plane_intersections', 'cross_section',
    'RegionDisplayState', 'RegionOverlay',
]
