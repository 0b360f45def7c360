"""
Synthetic series generators for testing and demos.
"""

import logging
import math
from typing import Callable, List, Optional, Sequence, Tuple

import numpy as np

from mpr.base import BaseLoader, SliceRecord
from mpr.volume import Volume, build_volume
from roi.regions import Contour, Region, StructureSet

logger = logging.getLogger(__name__)

AIR_HU = -1000
BODY_HU = 40
BONE_HU = 1000
PHANTOM_INTERCEPT = -1024.0

AXIAL_ORIENTATION = (1.0, 0.0, 0.0, 0.0, 1.0, 0.0)


class SyntheticSeriesLoader(BaseLoader):
    """
    Cylindrical body phantom with a dense sphere in the middle.

    Slices are produced as SliceRecords with stored values offset by a
    rescale intercept of -1024, so volume assembly exercises the same path
    as a scanner series.
    """

    def __init__(self,
                 dimensions: Tuple[int, int, int] = (64, 64, 32),
                 spacing: Tuple[float, float, float] = (1.0, 1.0, 2.0),
                 origin: Tuple[float, float, float] = (0.0, 0.0, 0.0)):
        self.dimensions = tuple(int(d) for d in dimensions)
        self.spacing = tuple(float(s) for s in spacing)
        self.origin = tuple(float(o) for o in origin)

    def hu_slice(self, index: int) -> np.ndarray:
        """Phantom values in HU for one axial slice, shape (rows, columns)."""
        width, height, depth = self.dimensions
        yy, xx = np.mgrid[0:height, 0:width].astype(np.float64)
        cx, cy, cz = (width - 1) / 2.0, (height - 1) / 2.0, (depth - 1) / 2.0

        image = np.full((height, width), AIR_HU, dtype=np.int32)
        body = ((xx - cx) / (0.45 * width)) ** 2 + ((yy - cy) / (0.35 * height)) ** 2 <= 1.0
        image[body] = BODY_HU

        # Sphere radius in mm, scaled to voxels per axis
        radius = 0.2 * min(w * s for w, s in zip(self.dimensions, self.spacing))
        dz = (index - cz) * self.spacing[2]
        sphere = (((xx - cx) * self.spacing[0]) ** 2 + ((yy - cy) * self.spacing[1]) ** 2 + dz ** 2
                  <= radius ** 2)
        image[sphere] = BONE_HU
        return image

    def records(self, callback: Optional[Callable[[int, str], None]] = None) -> List[SliceRecord]:
        width, height, depth = self.dimensions
        sx, sy, sz = self.spacing
        ox, oy, oz = self.origin
        logger.info("Generating synthetic phantom %dx%dx%d", width, height, depth)

        records = []
        for k in range(depth):
            stored = (self.hu_slice(k) - PHANTOM_INTERCEPT).astype(np.int16)
            records.append(SliceRecord(
                position=(ox, oy, oz + k * sz),
                pixel_spacing=(sy, sx),
                slice_thickness=sz,
                rescale_slope=1.0,
                rescale_intercept=PHANTOM_INTERCEPT,
                instance_number=k + 1,
                rows=height,
                columns=width,
                orientation=AXIAL_ORIENTATION,
                slice_location=oz + k * sz,
                pixels=stored,
                sop_instance_uid=f"2.25.{k + 1}",
            ))
            if callback and (k % 8 == 0 or k == depth - 1):
                callback(int(100 * (k + 1) / depth), f"Generated slice {k + 1}/{depth}")
        return records

    def load(self, source: Optional[str] = None,
             callback: Optional[Callable[[int, str], None]] = None,
             assemble_callback: Optional[Callable[[int, str], None]] = None) -> Volume:
        return build_volume(self.records(callback), assemble_callback or callback)


def circular_contour_points(center_x: float, center_y: float, radius: float, z: float,
                            number_of_points: int = 16) -> np.ndarray:
    """Points of a circle in the axial plane at height ``z``."""
    angles = np.arange(number_of_points) * 2.0 * math.pi / number_of_points
    return np.column_stack([
        center_x + radius * np.cos(angles),
        center_y + radius * np.sin(angles),
        np.full(number_of_points, float(z)),
    ])


def circular_region(roi_number: int, name: str, center: Sequence[float], radius: float,
                    z_range: Tuple[float, float], slice_spacing: float,
                    color=(1.0, 0.0, 0.0), opacity: float = 0.5) -> Region:
    """A cylinder-shaped region made of one circular contour per slice."""
    contours = []
    z, z_end = float(z_range[0]), float(z_range[1])
    number = 1
    while z <= z_end + 1e-9:
        contours.append(Contour(
            points=circular_contour_points(center[0], center[1], radius, z),
            slice_position=z,
            number=number,
        ))
        number += 1
        z += slice_spacing
    return Region(roi_number=roi_number, name=name, contours=tuple(contours),
                  color=tuple(color), opacity=opacity)


def demo_structure_set(slice_spacing: float = 3.0) -> StructureSet:
    """Three demo structures on a 512 x 512 field of view."""
    return StructureSet(
        regions=(
            circular_region(1, "Heart", (256.0, 256.0), 40.0, (60.0, 100.0), slice_spacing,
                            color=(1.0, 0.0, 0.0), opacity=0.7),
            circular_region(2, "Lung_Left", (180.0, 256.0), 60.0, (50.0, 120.0), slice_spacing,
                            color=(0.0, 0.0, 1.0)),
            circular_region(3, "Lung_Right", (330.0, 256.0), 60.0, (50.0, 120.0), slice_spacing,
                            color=(0.0, 1.0, 0.0)),
        ),
        label="DEMO",
        name="Demo structures",
    )


__all__ = [
    "SyntheticSeriesLoader",
    "circular_contour_points",
    "circular_region",
    "demo_structure_set",
]
