"""
Core input data structures and abstract base classes.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Callable, Optional, Tuple

import numpy as np

from config import (
    DEFAULT_PIXEL_SPACING,
    DEFAULT_RESCALE_INTERCEPT,
    DEFAULT_RESCALE_SLOPE,
    DEFAULT_SLICE_THICKNESS,
)


@dataclass(frozen=True)
class SliceRecord:
    """
    Per-slice metadata and raw pixel buffer handed over by a parsing layer.

    Attributes:
        position (Optional[Tuple[float, float, float]]): ImagePositionPatient (x, y, z) in mm.
        pixel_spacing (Tuple[float, float]): PixelSpacing as (row, column) in mm.
        slice_thickness (float): SliceThickness in mm.
        rescale_slope (float): RescaleSlope.
        rescale_intercept (float): RescaleIntercept.
        instance_number (Optional[int]): InstanceNumber.
        rows (Optional[int]): Image height in pixels.
        columns (Optional[int]): Image width in pixels.
        orientation (Optional[Tuple[float, ...]]): ImageOrientationPatient, six direction cosines.
        slice_location (Optional[float]): SliceLocation in mm.
        pixels (Optional[np.ndarray]): Raw stored pixel values, rows x columns.
        sop_instance_uid (Optional[str]): Identifier used by contours referencing this slice.
    """
    position: Optional[Tuple[float, float, float]] = None
    pixel_spacing: Tuple[float, float] = DEFAULT_PIXEL_SPACING
    slice_thickness: float = DEFAULT_SLICE_THICKNESS
    rescale_slope: float = DEFAULT_RESCALE_SLOPE
    rescale_intercept: float = DEFAULT_RESCALE_INTERCEPT
    instance_number: Optional[int] = None
    rows: Optional[int] = None
    columns: Optional[int] = None
    orientation: Optional[Tuple[float, ...]] = None
    slice_location: Optional[float] = None
    pixels: Optional[np.ndarray] = None
    sop_instance_uid: Optional[str] = None

    @property
    def has_pixels(self) -> bool:
        return self.pixels is not None


class BaseLoader(ABC):
    """Abstract base class for data acquisition strategies."""

    @abstractmethod
    def load(self, source: str, callback: Optional[Callable[[int, str], None]] = None) -> Any:
        """
        Load data from a source path.

        Args:
            source (str): Path to file or directory.
            callback: Optional progress callback (percent, message).
        """
        pass
