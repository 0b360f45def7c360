"""
Geometric model of annotated regions (ROIs) and their slice intersection.

Regions and contours are immutable values: contour points are read-only
arrays in patient space (x, y, z) mm, and display attribute changes produce
new Region instances. Per-view display state lives in ``roi.overlay``.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from enum import Enum
from typing import Iterable, List, Optional, Sequence, Tuple

import numpy as np

from config import DEFAULT_CONTOUR_TOLERANCE_MM, DEFAULT_ROI_COLOR, DEFAULT_ROI_OPACITY
from mpr.planes import Plane


class ContourGeometricType(Enum):
    """DICOM ContourGeometricType values."""

    POINT = "POINT"
    OPEN_PLANAR = "OPEN_PLANAR"
    CLOSED_PLANAR = "CLOSED_PLANAR"
    OPEN_NONPLANAR = "OPEN_NONPLANAR"
    CLOSED_NONPLANAR = "CLOSED_NONPLANAR"

    @property
    def is_closed(self) -> bool:
        return self in (ContourGeometricType.CLOSED_PLANAR, ContourGeometricType.CLOSED_NONPLANAR)

    @property
    def should_fill(self) -> bool:
        return self.is_closed

    @staticmethod
    def from_string(value: Optional[str]) -> "ContourGeometricType":
        try:
            return ContourGeometricType(str(value).strip().upper())
        except ValueError:
            return ContourGeometricType.CLOSED_PLANAR


@dataclass(frozen=True, eq=False)
class Contour:
    """
    One point sequence outlining a structure on one source slice.

    Attributes:
        points (np.ndarray): Read-only (N, 3) patient coordinates in mm.
        slice_position (float): Position of the source slice; defaults to the first point's z.
        number (int): ContourNumber within the ROI.
        geometric_type (ContourGeometricType): Closed contours wrap from the last point to the first.
        referenced_sop_instance_uid (Optional[str]): Source image of the contour.
    """
    points: np.ndarray
    slice_position: Optional[float] = None
    number: int = 0
    geometric_type: ContourGeometricType = ContourGeometricType.CLOSED_PLANAR
    referenced_sop_instance_uid: Optional[str] = None

    def __post_init__(self) -> None:
        pts = np.array(self.points, dtype=np.float64).reshape(-1, 3)
        pts.flags.writeable = False
        object.__setattr__(self, "points", pts)
        if self.slice_position is None:
            position = float(pts[0, 2]) if len(pts) else 0.0
        else:
            position = float(self.slice_position)
        object.__setattr__(self, "slice_position", position)

    @property
    def number_of_points(self) -> int:
        return int(len(self.points))

    def extent(self, axis: int) -> Tuple[float, float]:
        """(min, max) of the points along one world axis."""
        if not len(self.points):
            return (self.slice_position, self.slice_position)
        column = self.points[:, axis]
        return (float(column.min()), float(column.max()))


@dataclass(frozen=True, eq=False)
class Region:
    """
    A named, coloured anatomical structure made of per-slice contours.
    """
    roi_number: int
    name: str
    contours: Tuple[Contour, ...] = ()
    color: Tuple[float, float, float] = DEFAULT_ROI_COLOR
    visible: bool = True
    opacity: float = DEFAULT_ROI_OPACITY
    description: Optional[str] = None
    generation_algorithm: Optional[str] = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "contours", tuple(self.contours))
        object.__setattr__(self, "color", tuple(float(c) for c in self.color))
        object.__setattr__(self, "opacity", max(0.0, min(1.0, float(self.opacity))))

    # Display edits return new values; geometry is shared.

    def with_visibility(self, visible: bool) -> "Region":
        return replace(self, visible=bool(visible))

    def with_opacity(self, opacity: float) -> "Region":
        return replace(self, opacity=opacity)

    def with_color(self, color: Sequence[float]) -> "Region":
        return replace(self, color=tuple(color))

    # Queries

    def contours_for_slice(
        self,
        slice_position: float,
        plane: Plane = Plane.AXIAL,
        tolerance: float = DEFAULT_CONTOUR_TOLERANCE_MM,
    ) -> List[Contour]:
        return [c for c in self.contours if intersects_slice(c, slice_position, plane, tolerance)]

    def contours_in_range(self, min_position: float, max_position: float) -> List[Contour]:
        return [c for c in self.contours if min_position <= c.slice_position <= max_position]

    def intersects(
        self,
        slice_position: float,
        plane: Plane = Plane.AXIAL,
        tolerance: float = DEFAULT_CONTOUR_TOLERANCE_MM,
    ) -> bool:
        return any(intersects_slice(c, slice_position, plane, tolerance) for c in self.contours)

    @property
    def total_points(self) -> int:
        return sum(c.number_of_points for c in self.contours)

    @property
    def z_range(self) -> Optional[Tuple[float, float]]:
        if not self.contours:
            return None
        positions = [c.slice_position for c in self.contours]
        return (min(positions), max(positions))

    @property
    def all_points(self) -> np.ndarray:
        if not self.contours:
            return np.empty((0, 3), dtype=np.float64)
        return np.vstack([c.points for c in self.contours])

    @property
    def centroid(self) -> Optional[Tuple[float, float, float]]:
        pts = self.all_points
        if not len(pts):
            return None
        return tuple(float(v) for v in pts.mean(axis=0))


@dataclass(frozen=True)
class RegionStatistics:
    roi_count: int
    total_contours: int
    total_points: int
    z_range: Optional[Tuple[float, float]]

    @property
    def description(self) -> str:
        desc = f"RTStruct: {self.roi_count} ROIs, {self.total_contours} contours, {self.total_points} points"
        if self.z_range is not None:
            desc += f", Z: {self.z_range[0]:.1f} to {self.z_range[1]:.1f} mm"
        return desc


@dataclass(frozen=True, eq=False)
class StructureSet:
    """All regions of one study plus their identifying metadata."""
    regions: Tuple[Region, ...] = ()
    label: Optional[str] = None
    name: Optional[str] = None
    description: Optional[str] = None
    date: Optional[str] = None
    time: Optional[str] = None
    patient_name: Optional[str] = None
    study_instance_uid: Optional[str] = None
    series_instance_uid: Optional[str] = None
    referenced_frame_of_reference_uid: Optional[str] = None
    referenced_series_instance_uid: Optional[str] = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "regions", tuple(self.regions))

    def find_by_number(self, roi_number: int) -> Optional[Region]:
        return next((r for r in self.regions if r.roi_number == roi_number), None)

    def find_by_name(self, name: str) -> Optional[Region]:
        key = name.lower()
        return next((r for r in self.regions if r.name.lower() == key), None)

    @property
    def names(self) -> List[str]:
        return [r.name for r in self.regions]

    def replace_region(self, region: Region) -> "StructureSet":
        """New set with the region of the same ROI number swapped in."""
        regions = tuple(region if r.roi_number == region.roi_number else r for r in self.regions)
        return replace(self, regions=regions)

    def statistics(self) -> RegionStatistics:
        ranges = [r.z_range for r in self.regions if r.z_range is not None]
        z_range = (min(lo for lo, _ in ranges), max(hi for _, hi in ranges)) if ranges else None
        return RegionStatistics(
            roi_count=len(self.regions),
            total_contours=sum(len(r.contours) for r in self.regions),
            total_points=sum(r.total_points for r in self.regions),
            z_range=z_range,
        )


# ==========================================
# Slice intersection and projection
# ==========================================

def default_tolerance(spacing_xyz: Sequence[float], plane: Plane) -> float:
    """One in-plane voxel spacing (the finer of the plane's two axes)."""
    a, b = plane.plane_axes
    return float(min(spacing_xyz[a], spacing_xyz[b]))


def intersects_slice(
    contour: Contour,
    slice_position: float,
    plane: Plane,
    tolerance: float = DEFAULT_CONTOUR_TOLERANCE_MM,
) -> bool:
    """
    Whether a contour lies on (axial) or crosses (sagittal/coronal) the slice
    at ``slice_position`` mm along the plane's slice axis.

    Axial contours are matched by their slice position. For the reformatted
    planes the contour's extent along the slice axis, widened by
    ``tolerance``, must contain the slice. Unlike a per-vertex distance test,
    a contour whose edges span the slice matches even when no single vertex
    lies within tolerance of it.
    """
    if tolerance < 0:
        raise ValueError("Tolerance must be non-negative.")
    position = float(slice_position)
    if plane is Plane.AXIAL:
        return abs(contour.slice_position - position) <= tolerance
    low, high = contour.extent(plane.slice_axis)
    return low - tolerance <= position <= high + tolerance


def project_to_plane(
    contour: Contour,
    plane: Plane,
    volume_origin: Sequence[float],
    volume_spacing: Sequence[float],
) -> np.ndarray:
    """
    Map contour points to the plane's 2-D pixel coordinates,
    ``(coord - origin[axis]) / spacing[axis]`` for the plane's axis pair.

    Returns:
        float64 array (N, 2) as (column, row).
    """
    a, b = plane.plane_axes
    voxel = (contour.points - np.asarray(volume_origin, dtype=np.float64)) / np.asarray(
        volume_spacing, dtype=np.float64
    )
    return np.ascontiguousarray(voxel[:, [a, b]])


def regions_for_slice(
    regions: Iterable[Region],
    slice_position: float,
    plane: Plane,
    tolerance: float = DEFAULT_CONTOUR_TOLERANCE_MM,
    overlay=None,
) -> List[Region]:
    """
    Visible regions with at least one contour intersecting the slice.
    Visibility comes from ``overlay.is_visible(region)`` when an overlay is given.
    """
    result = []
    for region in regions:
        visible = overlay.is_visible(region) if overlay is not None else region.visible
        if visible and region.intersects(slice_position, plane, tolerance):
            result.append(region)
    return result


def plane_intersections(contour: Contour, plane: Plane, position: float) -> np.ndarray:
    """
    Points where contour edges cross the plane at ``position`` mm.

    Returns:
        float64 array (K, 3) in patient coordinates.
    """
    pts = contour.points
    if len(pts) < 2:
        on_plane = pts[pts[:, plane.slice_axis] == position] if len(pts) else pts
        return np.array(on_plane, dtype=np.float64).reshape(-1, 3)

    if contour.geometric_type.is_closed:
        start, end = pts, np.roll(pts, -1, axis=0)
    else:
        start, end = pts[:-1], pts[1:]

    axis = plane.slice_axis
    d0 = start[:, axis] - position
    d1 = end[:, axis] - position
    denom = d1 - d0

    crossing = (d0 * d1 <= 0) & (denom != 0)
    t = -d0[crossing] / denom[crossing]
    hits = start[crossing] + t[:, None] * (end[crossing] - start[crossing])

    coplanar = (d0 == 0) & (denom == 0)
    return np.vstack([hits, start[coplanar]]).reshape(-1, 3)


def cross_section(region: Region, plane: Plane, position: float, decimals: int = 6) -> np.ndarray:
    """
    Outline of a region where it crosses a plane, built from the edge
    crossings of every contour and ordered by angle around their centroid.

    Returns:
        float64 array (K, 2) of world mm in the plane's axis pair.
    """
    chunks = [plane_intersections(c, plane, position) for c in region.contours]
    chunks = [c for c in chunks if len(c)]
    if not chunks:
        return np.empty((0, 2), dtype=np.float64)

    a, b = plane.plane_axes
    points = np.vstack(chunks)[:, [a, b]]
    points = np.unique(np.round(points, decimals), axis=0)
    if len(points) < 3:
        return points

    center = points.mean(axis=0)
    angles = np.arctan2(points[:, 1] - center[1], points[:, 0] - center[0])
    return points[np.argsort(angles, kind="stable")]


__all__ = [
    "ContourGeometricType",
    "Contour",
    "Region",
    "RegionStatistics",
    "StructureSet",
    "default_tolerance",
    "intersects_slice",
    "project_to_plane",
    "regions_for_slice",
    "plane_intersections",
    "cross_section",
]
