"""
3D volume store assembled from an ordered CT slice series.

Convention:
- The voxel array is stored as (z, y, x); its C-order ravel is the flat
  z-major layout (index = z*W*H + y*W + x)
- World-space geometry, spacing and origin use axis order (x, y, z)
- Volumes are immutable: arrays are read-only and built before publication
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Callable, List, Optional, Sequence, Tuple

import numpy as np
from scipy import ndimage

from config import (
    DEFAULT_PIXEL_SPACING,
    DEFAULT_SLICE_THICKNESS,
    VOLUME_PROGRESS_EVERY,
)
from mpr.base import SliceRecord
from mpr.planes import Plane

logger = logging.getLogger(__name__)

INT16_MIN = int(np.iinfo(np.int16).min)
INT16_MAX = int(np.iinfo(np.int16).max)


# ==========================================
# Construction errors
# ==========================================

class VolumeBuildError(ValueError):
    """Base class for failures while assembling a volume."""


class EmptyInputError(VolumeBuildError):
    def __init__(self) -> None:
        super().__init__("No slices provided for volume reconstruction.")


class MissingDimensionsError(VolumeBuildError):
    def __init__(self) -> None:
        super().__init__("Invalid or missing image dimensions (rows/columns) on the first slice.")


class MissingPixelDataError(VolumeBuildError):
    """
    A slice has no pixel buffer.

    ``slice_index`` is the position in anatomical order, ``input_index`` the
    position in the sequence handed to ``build_volume``.
    """

    def __init__(self, slice_index: int, input_index: Optional[int] = None) -> None:
        self.slice_index = slice_index
        self.input_index = input_index
        super().__init__(f"Missing pixel data for slice {slice_index}")


class SliceShapeMismatchError(VolumeBuildError):
    def __init__(self, slice_index: int, expected: Tuple[int, int], actual_size: int) -> None:
        self.slice_index = slice_index
        self.expected = expected
        self.actual_size = actual_size
        super().__init__(
            f"Slice {slice_index} has {actual_size} pixels, expected {expected[0]}x{expected[1]}"
        )


# ==========================================
# Value types
# ==========================================

@dataclass(frozen=True)
class SliceMetadata:
    """Geometry and calibration of one source slice, in anatomical order."""
    position: Tuple[float, float, float]
    pixel_spacing: Tuple[float, float]
    slice_thickness: float
    rescale_slope: float
    rescale_intercept: float
    instance_number: int
    slice_location: float
    sop_instance_uid: Optional[str] = None


@dataclass(frozen=True)
class VolumeStatistics:
    dimensions: Tuple[int, int, int]
    spacing: Tuple[float, float, float]
    min_value: int
    max_value: int
    mean_value: float
    voxel_count: int
    memory_bytes: int

    @property
    def memory_mb(self) -> float:
        return self.memory_bytes / 1024.0 / 1024.0


@dataclass(frozen=True, eq=False)
class Volume:
    """
    Immutable voxel volume with its physical metadata.

    Attributes:
        data (np.ndarray): Read-only int16 array (Z, Y, X).
        spacing (Tuple[float, float, float]): Voxel size (x, y, z) in mm.
        origin (Tuple[float, float, float]): Patient position of voxel (0, 0, 0) in mm.
        orientation (np.ndarray): 3x3, columns are row direction, column direction, slice normal.
        slices (Tuple[SliceMetadata, ...]): Source slice metadata in anatomical order.
    """
    data: np.ndarray
    spacing: Tuple[float, float, float] = (1.0, 1.0, 1.0)
    origin: Tuple[float, float, float] = (0.0, 0.0, 0.0)
    orientation: np.ndarray = field(default_factory=lambda: np.eye(3))
    slices: Tuple[SliceMetadata, ...] = ()

    def __post_init__(self) -> None:
        arr = np.asarray(self.data)
        if arr.ndim != 3:
            raise ValueError(f"Expected 3D volume, got shape={arr.shape}")
        if arr.dtype != np.int16:
            arr = _saturate_int16(arr)
        elif arr.flags.writeable:
            arr = arr.copy()
        arr.flags.writeable = False

        orientation = np.array(self.orientation, dtype=np.float64).reshape(3, 3)
        orientation.flags.writeable = False

        spacing = tuple(float(s) for s in self.spacing)
        if any(abs(s) < 1e-12 for s in spacing):
            raise ValueError("Spacing components must be non-zero.")

        object.__setattr__(self, "data", arr)
        object.__setattr__(self, "orientation", orientation)
        object.__setattr__(self, "spacing", spacing)
        object.__setattr__(self, "origin", tuple(float(o) for o in self.origin))
        object.__setattr__(self, "slices", tuple(self.slices))

    @classmethod
    def from_array(
        cls,
        data_zyx: np.ndarray,
        spacing: Sequence[float] = (1.0, 1.0, 1.0),
        origin: Sequence[float] = (0.0, 0.0, 0.0),
        orientation: Optional[np.ndarray] = None,
    ) -> "Volume":
        """Wrap an existing (z, y, x) array without slice metadata."""
        return cls(
            data=np.asarray(data_zyx),
            spacing=tuple(spacing),
            origin=tuple(origin),
            orientation=np.eye(3) if orientation is None else orientation,
        )

    # ------------------------------------------------------------------
    # Geometry
    # ------------------------------------------------------------------

    @property
    def dimensions(self) -> Tuple[int, int, int]:
        """(width, height, depth) in voxels."""
        d, h, w = self.data.shape
        return (int(w), int(h), int(d))

    @property
    def voxels(self) -> np.ndarray:
        """Flat z-major read-only view of the samples."""
        return self.data.reshape(-1)

    @property
    def physical_size(self) -> Tuple[float, float, float]:
        return tuple(float(n * s) for n, s in zip(self.dimensions, self.spacing))

    @property
    def bounds(self) -> Tuple[Tuple[float, float, float], Tuple[float, float, float]]:
        """(min, max) corners of the physical bounding box in mm."""
        upper = tuple(o + p for o, p in zip(self.origin, self.physical_size))
        return self.origin, upper

    @property
    def center(self) -> Tuple[float, float, float]:
        return tuple(o + p / 2.0 for o, p in zip(self.origin, self.physical_size))

    def slice_position(self, plane: Plane, index: int) -> float:
        """Position in mm of a slice index along the plane's slice axis."""
        axis = plane.slice_axis
        return self.origin[axis] + float(index) * self.spacing[axis]

    # ------------------------------------------------------------------
    # Voxel access
    # ------------------------------------------------------------------

    def voxel(self, x: int, y: int, z: int) -> Optional[int]:
        """Sample at an integer lattice point, or None outside the lattice."""
        w, h, d = self.dimensions
        if not (0 <= x < w and 0 <= y < h and 0 <= z < d):
            return None
        return int(self.data[int(z), int(y), int(x)])

    def interpolated_voxel(self, x: float, y: float, z: float) -> float:
        """
        Trilinear interpolation over the 8 surrounding lattice samples.
        Neighbours outside the lattice contribute 0.
        """
        x0 = int(np.floor(x))
        y0 = int(np.floor(y))
        z0 = int(np.floor(z))
        fx = float(x) - x0
        fy = float(y) - y0
        fz = float(z) - z0

        def v(ix: int, iy: int, iz: int) -> float:
            value = self.voxel(ix, iy, iz)
            return 0.0 if value is None else float(value)

        c00 = v(x0, y0, z0) * (1 - fx) + v(x0 + 1, y0, z0) * fx
        c10 = v(x0, y0 + 1, z0) * (1 - fx) + v(x0 + 1, y0 + 1, z0) * fx
        c01 = v(x0, y0, z0 + 1) * (1 - fx) + v(x0 + 1, y0, z0 + 1) * fx
        c11 = v(x0, y0 + 1, z0 + 1) * (1 - fx) + v(x0 + 1, y0 + 1, z0 + 1) * fx

        c0 = c00 * (1 - fy) + c10 * fy
        c1 = c01 * (1 - fy) + c11 * fy
        return float(c0 * (1 - fz) + c1 * fz)

    def sample(self, points_xyz: np.ndarray) -> np.ndarray:
        """
        Vectorised trilinear sampling.

        Args:
            points_xyz: Array (..., 3) of fractional voxel coordinates (x, y, z).

        Returns:
            float64 array of shape points_xyz.shape[:-1].
        """
        pts = np.asarray(points_xyz, dtype=np.float64)
        if pts.shape[-1] != 3:
            raise ValueError(f"Expected (..., 3) coordinates, got shape={pts.shape}")
        coords_zyx = np.stack([pts[..., 2], pts[..., 1], pts[..., 0]], axis=0)
        return ndimage.map_coordinates(
            self.data,
            coords_zyx,
            order=1,
            mode="grid-constant",
            cval=0.0,
            prefilter=False,
            output=np.float64,
        )

    def extract_slice(self, plane: Plane, position: float) -> np.ndarray:
        """
        Resample a 2-D slice at a (possibly fractional) voxel position along
        the plane's slice axis.

        Returns:
            int16 array (height, width); columns follow the plane's first axis,
            rows its second.
        """
        axis = plane.slice_axis
        depth = self.dimensions[axis]
        pos = float(position)
        array_axis = 2 - axis

        if pos.is_integer() and 0 <= pos < depth:
            return np.take(self.data, int(pos), axis=array_axis)

        width, height = plane.slice_dimensions(self.dimensions)
        a, b = plane.plane_axes
        rows, cols = np.meshgrid(
            np.arange(height, dtype=np.float64),
            np.arange(width, dtype=np.float64),
            indexing="ij",
        )
        points = np.empty((height, width, 3), dtype=np.float64)
        points[..., a] = cols
        points[..., b] = rows
        points[..., axis] = pos
        return _saturate_int16(self.sample(points))

    # ------------------------------------------------------------------
    # Patient space
    # ------------------------------------------------------------------

    def patient_to_voxel(self, patient_xyz) -> np.ndarray:
        """(p - origin) rotated into the volume frame and divided by spacing."""
        rel = np.asarray(patient_xyz, dtype=np.float64) - np.asarray(self.origin)
        local = rel @ np.linalg.inv(self.orientation).T
        return local / np.asarray(self.spacing)

    def voxel_to_patient(self, voxel_xyz) -> np.ndarray:
        scaled = np.asarray(voxel_xyz, dtype=np.float64) * np.asarray(self.spacing)
        return np.asarray(self.origin) + scaled @ self.orientation.T

    # ------------------------------------------------------------------
    # Reporting
    # ------------------------------------------------------------------

    def statistics(self) -> VolumeStatistics:
        voxels = self.voxels
        if voxels.size:
            vmin, vmax = int(voxels.min()), int(voxels.max())
            mean = float(voxels.mean(dtype=np.float64))
        else:
            vmin = vmax = 0
            mean = 0.0
        return VolumeStatistics(
            dimensions=self.dimensions,
            spacing=self.spacing,
            min_value=vmin,
            max_value=vmax,
            mean_value=mean,
            voxel_count=int(voxels.size),
            memory_bytes=int(voxels.nbytes),
        )

    def anatomical_label(self, index: int, plane: Plane) -> str:
        """
        Coarse anatomical half for a slice index (LPS patient frame; axial
        index 0 is the most superior slice).
        """
        dim = self.dimensions[plane.slice_axis]
        position = float(index) / float(dim - 1) if dim > 1 else 0.0
        upper = position > 0.5
        if plane is Plane.AXIAL:
            return "Inferior" if upper else "Superior"
        if plane is Plane.SAGITTAL:
            return "Left" if upper else "Right"
        return "Posterior" if upper else "Anterior"


# ==========================================
# Construction
# ==========================================

def orientation_matrix(cosines: Optional[Sequence[float]]) -> np.ndarray:
    """
    Build the 3x3 orientation from ImageOrientationPatient cosines.
    Columns: row direction, column direction, slice normal. Identity if unavailable.
    """
    if cosines is None or len(cosines) < 6:
        return np.eye(3)
    row = np.asarray(cosines[:3], dtype=np.float64)
    col = np.asarray(cosines[3:6], dtype=np.float64)
    normal = np.cross(row, col)
    return np.column_stack((row, col, normal))


def rescale_pixels(raw: np.ndarray, slope: float, intercept: float) -> np.ndarray:
    """Apply value*slope + intercept and saturate to int16."""
    values = np.asarray(raw, dtype=np.float64)
    if slope != 1.0:
        values = values * slope
    if intercept != 0.0:
        values = values + intercept
    return _saturate_int16(values)


def calculate_volume_spacing(slices: Sequence[SliceMetadata]) -> Tuple[float, float, float]:
    """
    X/Y from the first slice's pixel spacing, Z from the mean distance between
    the first and last slice positions (slice thickness for a single slice).
    """
    if not slices:
        return (1.0, 1.0, 1.0)

    first = slices[0]
    row_spacing, col_spacing = first.pixel_spacing
    z_spacing = float(first.slice_thickness)
    if len(slices) > 1:
        distance = float(np.linalg.norm(np.subtract(slices[-1].position, first.position)))
        if distance > 1e-6:
            z_spacing = distance / (len(slices) - 1)
    return (float(col_spacing), float(row_spacing), z_spacing)


def build_volume(
    slices: Sequence[SliceRecord],
    callback: Optional[Callable[[int, str], None]] = None,
) -> Volume:
    """
    Assemble an immutable Volume from a slice series.

    Slices are ordered superior to inferior (descending position Z, ties in
    input order). The voxel array is filled privately and only wrapped into a
    Volume once complete; an exception raised by ``callback`` aborts the build.

    Raises:
        EmptyInputError, MissingDimensionsError, MissingPixelDataError,
        SliceShapeMismatchError
    """
    records = list(slices)
    if not records:
        raise EmptyInputError()

    def z_key(item: Tuple[int, SliceRecord]) -> float:
        return -_record_position(item[1], item[0])[2]

    ordered: List[Tuple[int, SliceRecord]] = sorted(enumerate(records), key=z_key)

    first = ordered[0][1]
    if not first.rows or not first.columns:
        raise MissingDimensionsError()
    rows, cols = int(first.rows), int(first.columns)
    depth = len(ordered)

    if callback:
        callback(0, f"Assembling {cols}x{rows}x{depth} volume...")

    data = np.empty((depth, rows, cols), dtype=np.int16)
    metadata: List[SliceMetadata] = []
    try:
        for index, (input_index, record) in enumerate(ordered):
            if record.pixels is None:
                raise MissingPixelDataError(index, input_index)
            raw = np.asarray(record.pixels)
            if raw.size != rows * cols:
                raise SliceShapeMismatchError(index, (rows, cols), int(raw.size))

            slope = float(record.rescale_slope)
            intercept = float(record.rescale_intercept)
            data[index] = rescale_pixels(raw.reshape(rows, cols), slope, intercept)
            metadata.append(_slice_metadata(record, input_index, index))

            if callback and (index % VOLUME_PROGRESS_EVERY == 0 or index == depth - 1):
                callback(int(100 * (index + 1) / depth), f"Slice {index + 1}/{depth}")
    except InterruptedError:
        logger.info("Volume build cancelled after %d/%d slices", len(metadata), depth)
        raise

    data.flags.writeable = False
    volume = Volume(
        data=data,
        spacing=calculate_volume_spacing(metadata),
        origin=metadata[0].position,
        orientation=orientation_matrix(first.orientation),
        slices=tuple(metadata),
    )
    stats_mb = volume.voxels.nbytes / 1024.0 / 1024.0
    logger.info(
        "Volume created: %dx%dx%d, spacing=%s mm, origin=%s, %.1f MB",
        cols, rows, depth, volume.spacing, volume.origin, stats_mb,
    )
    return volume


def _record_position(record: SliceRecord, input_index: int) -> Tuple[float, float, float]:
    if record.position is not None and len(record.position) >= 3:
        return (float(record.position[0]), float(record.position[1]), float(record.position[2]))
    return (0.0, 0.0, float(input_index))


def _slice_metadata(record: SliceRecord, input_index: int, index: int) -> SliceMetadata:
    spacing = record.pixel_spacing if record.pixel_spacing is not None else DEFAULT_PIXEL_SPACING
    thickness = record.slice_thickness if record.slice_thickness is not None else DEFAULT_SLICE_THICKNESS
    return SliceMetadata(
        position=_record_position(record, input_index),
        pixel_spacing=(float(spacing[0]), float(spacing[1])),
        slice_thickness=float(thickness),
        rescale_slope=float(record.rescale_slope),
        rescale_intercept=float(record.rescale_intercept),
        instance_number=int(record.instance_number) if record.instance_number is not None else index,
        slice_location=float(record.slice_location) if record.slice_location is not None else float(index),
        sop_instance_uid=record.sop_instance_uid,
    )


def _saturate_int16(values: np.ndarray) -> np.ndarray:
    arr = np.asarray(values)
    if np.issubdtype(arr.dtype, np.floating):
        arr = np.rint(arr)
    return np.clip(arr, INT16_MIN, INT16_MAX).astype(np.int16)


__all__ = [
    "Volume",
    "VolumeStatistics",
    "SliceMetadata",
    "VolumeBuildError",
    "EmptyInputError",
    "MissingDimensionsError",
    "MissingPixelDataError",
    "SliceShapeMismatchError",
    "build_volume",
    "calculate_volume_spacing",
    "orientation_matrix",
    "rescale_pixels",
]
