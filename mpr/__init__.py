"""
Core MPR package: plane geometry, volume store, coordinate system and slicing.
"""

from mpr.planes import Plane
from mpr.base import SliceRecord, BaseLoader
from mpr.volume import (
    Volume,
    VolumeStatistics,
    SliceMetadata,
    VolumeBuildError,
    EmptyInputError,
    MissingDimensionsError,
    MissingPixelDataError,
    SliceShapeMismatchError,
    build_volume,
)
from mpr.coordinates import (
    Rect,
    CoordinateSystem,
    world_to_voxel,
    voxel_to_world,
    world_to_index,
    voxel_to_normalized,
    normalized_to_voxel,
    clamp_to_bounds,
    letterbox_bounds,
)
from mpr.slicer import SliceExtractor, SliceInfo, WindowLevel, apply_window, slice_info
from mpr.progress import (
    ProgressEvent,
    ProgressObserver,
    ProgressBus,
    CancelToken,
    CancelFlagObserver,
    TerminalProgressObserver,
)
from mpr.dto import SessionConfigDTO

__all__ = [
    'Plane', 'SliceRecord', 'BaseLoader',
    'Volume', 'VolumeStatistics', 'SliceMetadata',
    'VolumeBuildError', 'EmptyInputError', 'MissingDimensionsError',
    'MissingPixelDataError', 'SliceShapeMismatchError', 'build_volume',
    'Rect', 'CoordinateSystem',
    'world_to_voxel', 'voxel_to_world', 'world_to_index',
    'voxel_to_normalized', 'normalized_to_voxel', 'clamp_to_bounds', 'letterbox_bounds',
    'SliceExtractor', 'SliceInfo', 'WindowLevel', 'apply_window', 'slice_info',
    'ProgressEvent', 'ProgressObserver', 'ProgressBus', 'CancelToken',
    'CancelFlagObserver', 'TerminalProgressObserver',
    'SessionConfigDTO',
]
