"""
Slice extraction for multi-planar reconstruction.

Extraction only reads the immutable volume array, so independent planes can
be sampled concurrently.
"""

from __future__ import annotations

import concurrent.futures
from dataclasses import dataclass
from typing import Dict, Optional, Sequence, Tuple

import numpy as np

from config import DEFAULT_WINDOW_PRESET, EXTRACT_MAX_WORKERS, WINDOW_PRESETS
from mpr.coordinates import world_to_voxel
from mpr.planes import Plane
from mpr.volume import Volume


@dataclass(frozen=True)
class SliceInfo:
    """Geometry of one reconstructed slice."""
    plane: Plane
    index: int
    position_mm: float
    thickness_mm: float
    dimensions: Tuple[int, int]      # (width, height) in pixels
    spacing: Tuple[float, float]     # (column, row) pixel spacing in mm


def slice_count(volume: Volume, plane: Plane) -> int:
    return volume.dimensions[plane.slice_axis]


def slice_info(volume: Volume, plane: Plane, index: int) -> SliceInfo:
    return SliceInfo(
        plane=plane,
        index=int(index),
        position_mm=volume.slice_position(plane, index),
        thickness_mm=volume.spacing[plane.slice_axis],
        dimensions=plane.slice_dimensions(volume.dimensions),
        spacing=plane.slice_spacing(volume.spacing),
    )


class SliceExtractor:
    """Produce 2-D int16 buffers for any plane of a volume."""

    def __init__(self, volume: Volume, max_workers: int = EXTRACT_MAX_WORKERS):
        self.volume = volume
        self.max_workers = max_workers

    def extract(self, plane: Plane, position: float) -> np.ndarray:
        """
        Args:
            plane: Reconstruction plane.
            position: Voxel coordinate along the plane's slice axis (may be fractional).

        Returns:
            int16 array (height, width), row-major in the plane's axis pair.
        """
        return self.volume.extract_slice(plane, position)

    def extract_at_world(self, plane: Plane, world_xyz: Sequence[float]) -> np.ndarray:
        """Extract the plane passing through a world position (mm)."""
        voxel = world_to_voxel(world_xyz, self.volume.spacing, self.volume.origin)
        return self.extract(plane, voxel[plane.slice_axis])

    def extract_orthogonal(self, voxel_xyz: Sequence[float]) -> Dict[Plane, np.ndarray]:
        """Extract the three planes through one voxel position in parallel."""
        with concurrent.futures.ThreadPoolExecutor(max_workers=self.max_workers) as executor:
            futures = {
                plane: executor.submit(self.extract, plane, float(voxel_xyz[plane.slice_axis]))
                for plane in Plane
            }
            return {plane: future.result() for plane, future in futures.items()}


# ==========================================
# Window / level
# ==========================================

@dataclass(frozen=True)
class WindowLevel:
    name: str
    center: float
    width: float

    @property
    def lower(self) -> float:
        return self.center - self.width / 2.0

    @property
    def upper(self) -> float:
        return self.center + self.width / 2.0

    @staticmethod
    def preset(name: Optional[str] = None) -> "WindowLevel":
        key = (name or DEFAULT_WINDOW_PRESET).strip().lower().replace(" ", "_")
        if key not in WINDOW_PRESETS:
            raise KeyError(f"Unknown window preset: {name}")
        center, width = WINDOW_PRESETS[key]
        return WindowLevel(name=key, center=center, width=width)


def apply_window(buffer: np.ndarray, window: WindowLevel) -> np.ndarray:
    """Map samples linearly from the window range to 0..255."""
    if window.width <= 0:
        raise ValueError("Window width must be positive.")
    values = (np.asarray(buffer, dtype=np.float32) - window.lower) / window.width
    return (np.clip(values, 0.0, 1.0) * 255.0 + 0.5).astype(np.uint8)


__all__ = [
    "SliceExtractor",
    "SliceInfo",
    "WindowLevel",
    "apply_window",
    "slice_count",
    "slice_info",
]
