"""
Display state for region overlays.

Visibility, opacity and selection are kept here, keyed by ROI number, so the
immutable Region values can be shared by every displayed plane.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional

from config import DEFAULT_OVERLAY_OPACITY
from roi.regions import Region


@dataclass(frozen=True)
class RegionDisplayState:
    visible: Optional[bool] = None    # None = use the region's own flag
    opacity: Optional[float] = None


def _clamp_unit(value: float) -> float:
    return max(0.0, min(1.0, float(value)))


class RegionOverlay:
    """
    Mutable overlay attributes for a set of regions.

    Per-region overrides start from the region's own ``visible`` / ``opacity``
    values. A global switch and global opacity apply on top of them.
    """

    def __init__(self, global_opacity: float = DEFAULT_OVERLAY_OPACITY) -> None:
        self._lock = threading.Lock()
        self._states: Dict[int, RegionDisplayState] = {}
        self._selected: Optional[int] = None
        self.enabled = True
        self._global_opacity = _clamp_unit(global_opacity)

    # ------------------------------------------------------------------
    # Global settings
    # ------------------------------------------------------------------

    @property
    def global_opacity(self) -> float:
        return self._global_opacity

    @global_opacity.setter
    def global_opacity(self, value: float) -> None:
        self._global_opacity = _clamp_unit(value)

    @property
    def selected(self) -> Optional[int]:
        return self._selected

    def select(self, roi_number: Optional[int]) -> None:
        self._selected = roi_number

    # ------------------------------------------------------------------
    # Per-region settings
    # ------------------------------------------------------------------

    def _state(self, roi_number: int) -> RegionDisplayState:
        return self._states.get(roi_number, RegionDisplayState())

    def set_visibility(self, roi_number: int, visible: bool) -> None:
        with self._lock:
            current = self._state(roi_number)
            self._states[roi_number] = RegionDisplayState(visible=bool(visible), opacity=current.opacity)

    def set_opacity(self, roi_number: int, opacity: float) -> None:
        with self._lock:
            current = self._state(roi_number)
            self._states[roi_number] = RegionDisplayState(visible=current.visible, opacity=_clamp_unit(opacity))

    def reset(self, roi_number: Optional[int] = None) -> None:
        """Drop overrides for one region, or for all of them."""
        with self._lock:
            if roi_number is None:
                self._states.clear()
                self._selected = None
            else:
                self._states.pop(roi_number, None)

    # ------------------------------------------------------------------
    # Resolution
    # ------------------------------------------------------------------

    def is_visible(self, region: Region) -> bool:
        if not self.enabled:
            return False
        state = self._state(region.roi_number)
        return region.visible if state.visible is None else bool(state.visible)

    def effective_opacity(self, region: Region) -> float:
        """Region opacity (or its override) scaled by the global opacity."""
        state = self._state(region.roi_number)
        base = region.opacity if state.opacity is None else state.opacity
        return base * self._global_opacity

    def is_selected(self, region: Region) -> bool:
        return self._selected is not None and region.roi_number == self._selected

    def visible_regions(self, regions: Iterable[Region]) -> List[Region]:
        return [r for r in regions if self.is_visible(r)]


__all__ = ["RegionDisplayState", "RegionOverlay"]
