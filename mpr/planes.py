"""
Orthogonal reconstruction planes and their axis mappings.

Convention:
- Axis indices refer to world/voxel order (x=0, y=1, z=2)
- The first plane axis runs along image columns, the second along image rows
"""

from __future__ import annotations

from enum import Enum
from typing import Sequence, Tuple

import numpy as np


class Plane(Enum):
    """Medical imaging plane orientations for MPR views."""

    AXIAL = "axial"
    SAGITTAL = "sagittal"
    CORONAL = "coronal"

    @property
    def display_name(self) -> str:
        return _DISPLAY_NAMES[self]

    @property
    def abbreviation(self) -> str:
        return _ABBREVIATIONS[self]

    @property
    def slice_axis(self) -> int:
        """Axis index perpendicular to the plane (the depth axis)."""
        return _SLICE_AXES[self]

    @property
    def plane_axes(self) -> Tuple[int, int]:
        """The two axis indices spanning the plane, as (columns, rows)."""
        return _PLANE_AXES[self]

    @property
    def normal(self) -> Tuple[float, float, float]:
        normal = [0.0, 0.0, 0.0]
        normal[self.slice_axis] = 1.0
        return tuple(normal)

    @staticmethod
    def from_string(name: str) -> "Plane":
        """Resolve a plane name; unknown names fall back to axial."""
        key = str(name).strip().lower()
        for plane in Plane:
            if plane.value == key or plane.abbreviation.lower() == key:
                return plane
        return Plane.AXIAL

    def slice_dimensions(self, volume_dimensions: Sequence[int]) -> Tuple[int, int]:
        """(width, height) of a 2-D slice of this plane."""
        a, b = self.plane_axes
        return (int(volume_dimensions[a]), int(volume_dimensions[b]))

    def slice_spacing(self, volume_spacing: Sequence[float]) -> Tuple[float, float]:
        """(column, row) pixel spacing in mm of a 2-D slice of this plane."""
        a, b = self.plane_axes
        return (float(volume_spacing[a]), float(volume_spacing[b]))

    def aspect_ratio(self, volume_spacing: Sequence[float], volume_dimensions: Sequence[int]) -> float:
        """Physical width / height of the plane."""
        w, h = self.slice_dimensions(volume_dimensions)
        sw, sh = self.slice_spacing(volume_spacing)
        return (w * sw) / (h * sh)

    def volume_to_plane(self, coord: Sequence[float]) -> Tuple[float, float]:
        a, b = self.plane_axes
        return (float(coord[a]), float(coord[b]))

    def plane_to_volume(self, coord: Sequence[float], slice_position: float) -> Tuple[float, float, float]:
        a, b = self.plane_axes
        out = [0.0, 0.0, 0.0]
        out[a] = float(coord[0])
        out[b] = float(coord[1])
        out[self.slice_axis] = float(slice_position)
        return tuple(out)

    def transform_matrix(self) -> np.ndarray:
        """
        Permutation taking a volume coordinate to (plane_x, plane_y, depth).
        """
        a, b = self.plane_axes
        m = np.zeros((3, 3), dtype=np.float64)
        m[0, a] = 1.0
        m[1, b] = 1.0
        m[2, self.slice_axis] = 1.0
        return m


_DISPLAY_NAMES = {
    Plane.AXIAL: "Axial (Transverse)",
    Plane.SAGITTAL: "Sagittal (Lateral)",
    Plane.CORONAL: "Coronal (Frontal)",
}

_ABBREVIATIONS = {
    Plane.AXIAL: "AX",
    Plane.SAGITTAL: "SAG",
    Plane.CORONAL: "COR",
}

_SLICE_AXES = {
    Plane.AXIAL: 2,
    Plane.SAGITTAL: 0,
    Plane.CORONAL: 1,
}

_PLANE_AXES = {
    Plane.AXIAL: (0, 1),
    Plane.SAGITTAL: (1, 2),
    Plane.CORONAL: (0, 2),
}


__all__ = ["Plane"]
