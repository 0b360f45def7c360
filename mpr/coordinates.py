"""
Coordinate conversion helpers and the shared coordinate system.

Convention:
- World-space (patient) coordinates are millimetres in axis order (x, y, z)
- Voxel coordinates are fractional lattice indices in axis order (x, y, z)
- Normalized coordinates map voxel index 0 to 0.0 and the last index to 1.0
- Screen coordinates are pixels inside a view, origin at the top-left
"""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass
from typing import Callable, Dict, Iterable, List, Optional, Sequence, Tuple

import numpy as np

from config import (
    DEFAULT_DIMENSIONS,
    DEFAULT_ORIGIN,
    DEFAULT_SPACING,
    MPR_RESAMPLE_INTERVAL_MM,
    MPR_RESAMPLED_PLANES,
    POSITION_HYSTERESIS_MM,
    SCROLL_VELOCITY_IDLE_TIMEOUT_S,
    SCROLL_VELOCITY_MIN_CHANGE,
    SCROLL_VELOCITY_MIN_INTERVAL_S,
)
from mpr.planes import Plane
from mpr.volume import Volume

logger = logging.getLogger(__name__)

Vec3 = Tuple[float, float, float]


# ==========================================
# Pure conversion helpers
# ==========================================

def world_to_voxel(
    world_xyz: Sequence[float],
    spacing_xyz: Sequence[float],
    origin_xyz: Sequence[float],
) -> Vec3:
    """
    Convert world coordinates (x, y, z) to fractional voxel indices (x, y, z).
    """
    sx, sy, sz = spacing_xyz
    if abs(sx) < 1e-12 or abs(sy) < 1e-12 or abs(sz) < 1e-12:
        raise ValueError("Spacing components must be non-zero.")
    return (
        (float(world_xyz[0]) - origin_xyz[0]) / sx,
        (float(world_xyz[1]) - origin_xyz[1]) / sy,
        (float(world_xyz[2]) - origin_xyz[2]) / sz,
    )


def voxel_to_world(
    voxel_xyz: Sequence[float],
    spacing_xyz: Sequence[float],
    origin_xyz: Sequence[float],
) -> Vec3:
    """
    Convert voxel indices (x, y, z) to world coordinates (x, y, z).
    """
    return (
        origin_xyz[0] + float(voxel_xyz[0]) * spacing_xyz[0],
        origin_xyz[1] + float(voxel_xyz[1]) * spacing_xyz[1],
        origin_xyz[2] + float(voxel_xyz[2]) * spacing_xyz[2],
    )


def world_to_index(
    world_xyz: Sequence[float],
    spacing_xyz: Sequence[float],
    origin_xyz: Sequence[float],
    *,
    rounding: str = "round",
) -> Tuple[int, int, int]:
    """
    Convert world coordinates (x, y, z) to integer voxel indices (x, y, z).

    rounding:
    - "round" (default): nearest integer
    - "floor": floor toward -inf
    - "ceil": ceil toward +inf
    """
    xf, yf, zf = world_to_voxel(world_xyz, spacing_xyz, origin_xyz)

    mode = str(rounding).strip().lower()
    if mode == "round":
        return (int(np.rint(xf)), int(np.rint(yf)), int(np.rint(zf)))
    if mode == "floor":
        return (int(np.floor(xf)), int(np.floor(yf)), int(np.floor(zf)))
    if mode == "ceil":
        return (int(np.ceil(xf)), int(np.ceil(yf)), int(np.ceil(zf)))
    raise ValueError(f"Unknown rounding mode: {rounding}")


def _normalizer(dim: int) -> float:
    # A single-voxel axis has no extent; it maps to 0.0.
    return float(dim - 1) if dim > 1 else 1.0


def voxel_to_normalized(voxel_xyz: Sequence[float], dimensions: Sequence[int]) -> Vec3:
    return tuple(float(v) / _normalizer(int(d)) for v, d in zip(voxel_xyz, dimensions))


def normalized_to_voxel(normalized_xyz: Sequence[float], dimensions: Sequence[int]) -> Vec3:
    return tuple(float(n) * (int(d) - 1 if int(d) > 1 else 0) for n, d in zip(normalized_xyz, dimensions))


def clamp_to_bounds(position: Sequence[float], lower: Sequence[float], upper: Sequence[float]) -> Vec3:
    return tuple(max(lo, min(float(p), hi)) for p, lo, hi in zip(position, lower, upper))


@dataclass(frozen=True)
class Rect:
    """Axis-aligned rectangle in screen pixels."""
    x: float
    y: float
    width: float
    height: float

    @property
    def max_x(self) -> float:
        return self.x + self.width

    @property
    def max_y(self) -> float:
        return self.y + self.height

    def contains(self, point: Sequence[float]) -> bool:
        px, py = float(point[0]), float(point[1])
        return self.x <= px <= self.max_x and self.y <= py <= self.max_y


def letterbox_bounds(physical_width: float, physical_height: float, view_size: Sequence[float]) -> Rect:
    """
    Centre a physically proportioned image inside a view, padding the
    shorter dimension so the mm aspect ratio is preserved.
    """
    view_w, view_h = float(view_size[0]), float(view_size[1])
    if view_w <= 0 or view_h <= 0 or physical_width <= 0 or physical_height <= 0:
        return Rect(0.0, 0.0, max(view_w, 0.0), max(view_h, 0.0))

    physical_aspect = physical_width / physical_height
    view_aspect = view_w / view_h
    if physical_aspect > view_aspect:
        # Wider than the view: pad top/bottom
        quad_w, quad_h = 1.0, view_aspect / physical_aspect
    else:
        quad_w, quad_h = physical_aspect / view_aspect, 1.0

    width = quad_w * view_w
    height = quad_h * view_h
    return Rect((view_w - width) / 2.0, (view_h - height) / 2.0, width, height)


# ==========================================
# Coordinate system
# ==========================================

PositionListener = Callable[[Vec3], None]


class CoordinateSystem:
    """
    Single source of truth for spatial conversions and the shared 3D cursor.

    Every reader holds a reference to the same instance. The cursor position
    is an immutable tuple replaced under a lock, so readers never observe a
    partially updated position. All mutation goes through
    ``update_world_position``, which clamps to the volume bounds and drops
    sub-threshold changes.

    Before a volume is loaded every query answers with defaults: origin
    (0, 0, 0), unit spacing, one slice per plane.
    """

    def __init__(
        self,
        resample_interval_mm: Optional[float] = MPR_RESAMPLE_INTERVAL_MM,
        resampled_planes: Iterable = MPR_RESAMPLED_PLANES,
        hysteresis_mm: float = POSITION_HYSTERESIS_MM,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if resample_interval_mm is not None and resample_interval_mm <= 0:
            raise ValueError("resample_interval_mm must be positive.")
        self.resample_interval_mm = resample_interval_mm
        self.resampled_planes = frozenset(
            p if isinstance(p, Plane) else Plane(str(p).lower()) for p in resampled_planes
        )
        self.hysteresis_mm = float(hysteresis_mm)
        self._clock = clock

        self._lock = threading.RLock()
        self._volume: Optional[Volume] = None
        self._position: Vec3 = tuple(DEFAULT_ORIGIN)
        self._max_slices_cache: Dict[Plane, int] = {}
        self._listeners: List[PositionListener] = []

        self._velocity = 0.0
        self._last_scroll_time: Optional[float] = None
        self._last_scroll_plane: Optional[Plane] = None
        self._last_scroll_index: Optional[int] = None

    # ------------------------------------------------------------------
    # Volume lifecycle
    # ------------------------------------------------------------------

    @property
    def volume(self) -> Optional[Volume]:
        return self._volume

    @property
    def has_volume(self) -> bool:
        return self._volume is not None

    def load_volume(self, volume: Volume) -> None:
        """Adopt a new volume and recentre the cursor on its physical centre."""
        with self._lock:
            self._volume = volume
            self._max_slices_cache.clear()
            self._reset_velocity()
            self._position = volume.center
            position = self._position
        logger.info(
            "Coordinate system initialised: dims=%s spacing=%s origin=%s centre=%s",
            volume.dimensions, volume.spacing, volume.origin, position,
        )
        self._notify(position)

    def unload(self) -> None:
        with self._lock:
            self._volume = None
            self._max_slices_cache.clear()
            self._reset_velocity()
            self._position = tuple(DEFAULT_ORIGIN)
            position = self._position
        self._notify(position)

    # ------------------------------------------------------------------
    # Geometry (defaults when no volume is loaded)
    # ------------------------------------------------------------------

    @property
    def origin(self) -> Vec3:
        return self._volume.origin if self._volume is not None else tuple(DEFAULT_ORIGIN)

    @property
    def spacing(self) -> Vec3:
        return self._volume.spacing if self._volume is not None else tuple(DEFAULT_SPACING)

    @property
    def dimensions(self) -> Tuple[int, int, int]:
        return self._volume.dimensions if self._volume is not None else tuple(DEFAULT_DIMENSIONS)

    @property
    def physical_size(self) -> Vec3:
        return tuple(float(n * s) for n, s in zip(self.dimensions, self.spacing))

    @property
    def bounds(self) -> Tuple[Vec3, Vec3]:
        origin = self.origin
        return origin, tuple(o + p for o, p in zip(origin, self.physical_size))

    @property
    def current_world_position(self) -> Vec3:
        with self._lock:
            return self._position

    def is_within_bounds(self, position: Sequence[float]) -> bool:
        lower, upper = self.bounds
        return all(lo <= float(p) <= hi for p, lo, hi in zip(position, lower, upper))

    # ------------------------------------------------------------------
    # Conversions
    # ------------------------------------------------------------------

    def world_to_voxel(self, world_xyz: Sequence[float]) -> Vec3:
        return world_to_voxel(world_xyz, self.spacing, self.origin)

    def voxel_to_world(self, voxel_xyz: Sequence[float]) -> Vec3:
        return voxel_to_world(voxel_xyz, self.spacing, self.origin)

    def world_to_normalized(self, world_xyz: Sequence[float]) -> Vec3:
        return voxel_to_normalized(self.world_to_voxel(world_xyz), self.dimensions)

    def normalized_to_world(self, normalized_xyz: Sequence[float]) -> Vec3:
        return self.voxel_to_world(normalized_to_voxel(normalized_xyz, self.dimensions))

    # ------------------------------------------------------------------
    # Slice navigation
    # ------------------------------------------------------------------

    def uses_resampling(self, plane: Plane) -> bool:
        return self.resample_interval_mm is not None and plane in self.resampled_planes

    def max_slices(self, plane: Plane) -> int:
        """Number of navigable slices along the plane's slice axis."""
        with self._lock:
            volume = self._volume
            if volume is None:
                return 1

            cached = self._max_slices_cache.get(plane)
            if cached is not None:
                return cached

            axis = plane.slice_axis
            count = volume.dimensions[axis]
            if self.uses_resampling(plane):
                physical = count * volume.spacing[axis]
                resampled = max(1, int(physical / self.resample_interval_mm))
                logger.debug(
                    "%s: %.1f mm resampled at %.2f mm -> %d slices (acquired %d)",
                    plane.value, physical, self.resample_interval_mm, resampled, count,
                )
                count = resampled
            self._max_slices_cache[plane] = count
            return count

    def slice_index(self, plane: Plane, position: Optional[Sequence[float]] = None) -> int:
        """Slice index of a world position (default: the cursor) for a plane."""
        if self._volume is None:
            return 0
        world = self.current_world_position if position is None else position
        axis = plane.slice_axis

        if self.uses_resampling(plane):
            raw = (float(world[axis]) - self.origin[axis]) / self.resample_interval_mm
        else:
            raw = self.world_to_voxel(world)[axis]
        index = int(np.rint(raw))
        return max(0, min(index, self.max_slices(plane) - 1))

    def world_from_slice_index(self, index: int, plane: Plane) -> float:
        """World coordinate (mm) along the plane's slice axis for a slice index."""
        axis = plane.slice_axis
        step = self.resample_interval_mm if self.uses_resampling(plane) else self.spacing[axis]
        return self.origin[axis] + float(index) * step

    def plane_position(self, plane: Plane) -> float:
        return self.current_world_position[plane.slice_axis]

    def navigation_state(self) -> Dict[Plane, Tuple[int, int]]:
        """(slice index, max slices) for every plane."""
        return {plane: (self.slice_index(plane), self.max_slices(plane)) for plane in Plane}

    # ------------------------------------------------------------------
    # Screen mapping
    # ------------------------------------------------------------------

    def _plane_geometry(self, plane: Plane):
        return (
            plane.volume_to_plane(self.origin),
            plane.slice_spacing(self.spacing),
            plane.slice_dimensions(self.dimensions),
        )

    def image_bounds(self, plane: Plane, view_size: Sequence[float]) -> Rect:
        """Letterboxed rectangle of the plane's physical image inside a view."""
        if self._volume is None:
            return Rect(0.0, 0.0, float(view_size[0]), float(view_size[1]))
        _, (sw, sh), (w, h) = self._plane_geometry(plane)
        return letterbox_bounds(w * sw, h * sh, view_size)

    def world_to_screen(
        self,
        position: Sequence[float],
        plane: Plane,
        view_size: Sequence[float],
        image_bounds: Optional[Rect] = None,
    ) -> Tuple[float, float]:
        (ou, ov), (su, sv), (w, h) = self._plane_geometry(plane)
        u, v = plane.volume_to_plane(position)
        nu = ((u - ou) / su) / _normalizer(w)
        nv = ((v - ov) / sv) / _normalizer(h)

        bounds = image_bounds or self.image_bounds(plane, view_size)
        return (bounds.x + nu * bounds.width, bounds.y + nv * bounds.height)

    def screen_to_world(
        self,
        screen_point: Sequence[float],
        plane: Plane,
        view_size: Sequence[float],
        image_bounds: Optional[Rect] = None,
    ) -> Vec3:
        """
        Map a screen point to world space, keeping the cursor's slice-axis
        coordinate. Points outside the image return the current position.
        """
        current = self.current_world_position
        bounds = image_bounds or self.image_bounds(plane, view_size)
        if bounds.width <= 0 or bounds.height <= 0 or not bounds.contains(screen_point):
            return current

        nu = (float(screen_point[0]) - bounds.x) / bounds.width
        nv = (float(screen_point[1]) - bounds.y) / bounds.height

        (ou, ov), (su, sv), (w, h) = self._plane_geometry(plane)
        u = ou + nu * (w - 1 if w > 1 else 0) * su
        v = ov + nv * (h - 1 if h > 1 else 0) * sv

        a, b = plane.plane_axes
        out = list(current)
        out[a] = u
        out[b] = v
        return tuple(out)

    # ------------------------------------------------------------------
    # Mutation
    # ------------------------------------------------------------------

    def update_world_position(self, candidate: Sequence[float]) -> bool:
        """
        Move the cursor. The candidate is clamped to the volume bounds;
        changes shorter than the hysteresis threshold are ignored.

        Returns:
            True if the position changed.
        """
        lower, upper = self.bounds
        clamped = clamp_to_bounds(candidate, lower, upper)
        with self._lock:
            delta = float(np.linalg.norm(np.subtract(clamped, self._position)))
            if delta < self.hysteresis_mm:
                return False
            self._position = clamped
        self._notify(clamped)
        return True

    def update_from_slice_scroll(self, plane: Plane, index: int) -> bool:
        """
        Move the cursor to a slice index along one plane's axis, leaving the
        other two axes untouched.
        """
        clamped_index = max(0, min(int(index), self.max_slices(plane) - 1))
        self._record_scroll(plane, clamped_index)

        position = list(self.current_world_position)
        position[plane.slice_axis] = self.world_from_slice_index(clamped_index, plane)
        return self.update_world_position(position)

    def center_on(self, points_xyz) -> bool:
        """Centre the cursor on the mean of a point set (e.g. an ROI)."""
        pts = np.asarray(points_xyz, dtype=np.float64).reshape(-1, 3)
        if pts.size == 0:
            return False
        return self.update_world_position(tuple(pts.mean(axis=0)))

    # ------------------------------------------------------------------
    # Scroll velocity
    # ------------------------------------------------------------------

    @property
    def scroll_velocity(self) -> float:
        """Recent scroll speed in slices per second; 0 once scrolling is idle."""
        with self._lock:
            if self._last_scroll_time is None:
                return 0.0
            if self._clock() - self._last_scroll_time > SCROLL_VELOCITY_IDLE_TIMEOUT_S:
                self._velocity = 0.0
            return self._velocity

    def _record_scroll(self, plane: Plane, index: int) -> None:
        now = self._clock()
        current = self.scroll_velocity
        with self._lock:
            if self._last_scroll_plane is not plane:
                # Switching planes starts a new gesture
                self._velocity = 0.0
            elif self._last_scroll_time is not None:
                elapsed = now - self._last_scroll_time
                if elapsed > SCROLL_VELOCITY_MIN_INTERVAL_S:
                    velocity = abs(index - self._last_scroll_index) / elapsed
                    if abs(velocity - current) > SCROLL_VELOCITY_MIN_CHANGE:
                        self._velocity = velocity
            self._last_scroll_time = now
            self._last_scroll_plane = plane
            self._last_scroll_index = index

    def _reset_velocity(self) -> None:
        self._velocity = 0.0
        self._last_scroll_time = None
        self._last_scroll_plane = None
        self._last_scroll_index = None

    # ------------------------------------------------------------------
    # Listeners
    # ------------------------------------------------------------------

    def subscribe(self, listener) -> "CoordinateSystem":
        """Register a callable or an object with ``on_position_changed``."""
        self._listeners.append(listener)
        return self

    def unsubscribe(self, listener) -> "CoordinateSystem":
        try:
            self._listeners.remove(listener)
        except ValueError:
            pass
        return self

    def _notify(self, position: Vec3) -> None:
        for listener in tuple(self._listeners):
            if hasattr(listener, "on_position_changed"):
                listener.on_position_changed(position)
            else:
                listener(position)

    def describe(self) -> str:
        if self._volume is None:
            return "No volume loaded"
        x, y, z = self.current_world_position
        nav = ", ".join(
            f"{plane.abbreviation}={index}/{count - 1}"
            for plane, (index, count) in self.navigation_state().items()
        )
        return (
            f"Position: ({x:.1f}, {y:.1f}, {z:.1f}) mm\n"
            f"Slices: {nav}\n"
            f"Volume: {self.dimensions} @ {self.spacing} mm\n"
            f"Physical size: {tuple(round(p, 1) for p in self.physical_size)} mm"
        )


__all__ = [
    "Rect",
    "CoordinateSystem",
    "world_to_voxel",
    "voxel_to_world",
    "world_to_index",
    "voxel_to_normalized",
    "normalized_to_voxel",
    "clamp_to_bounds",
    "letterbox_bounds",
]
