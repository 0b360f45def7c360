"""
Data Transfer Objects (DTOs) for headless MPR sessions.

Design rules
------------
* All DTOs are immutable (frozen=True).  Hosts build a new DTO and hand it to
  the session; nothing reads configuration back out of live objects.
* ``from_dict`` / ``from_yaml`` / ``from_json`` keep serialisation in one place.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Optional, Tuple

from config import (
    DEFAULT_CONTOUR_TOLERANCE_MM,
    DEFAULT_WINDOW_PRESET,
    LOADER_MAX_WORKERS,
    MPR_RESAMPLE_INTERVAL_MM,
    POSITION_HYSTERESIS_MM,
)


@dataclass(frozen=True)
class SessionConfigDTO:
    """
    Immutable configuration for a reconstruction session.

    Used by the CLI and by unit tests that drive the core directly.
    """

    # Input
    input_path:           str                   = ""
    rtstruct_path:        Optional[str]         = None
    loader_type:          str                   = "dicom"    # "dicom" | "synthetic"
    max_workers:          int                   = LOADER_MAX_WORKERS

    # Coordinate policy
    resample_interval_mm: Optional[float]       = MPR_RESAMPLE_INTERVAL_MM
    hysteresis_mm:        float                 = POSITION_HYSTERESIS_MM

    # Slice query (world mm; None = volume centre)
    position:             Optional[Tuple[float, float, float]] = None
    planes:               Tuple[str, ...]       = ("axial", "sagittal", "coronal")

    # ROI
    contour_tolerance_mm: Optional[float]       = DEFAULT_CONTOUR_TOLERANCE_MM

    # Output
    window_preset:        str                   = DEFAULT_WINDOW_PRESET
    output_dir:           Optional[str]         = None
    export_formats:       Tuple[str, ...]       = ("npy",)   # "npy", "windowed"

    # ------------------------------------------------------------------
    # Factories
    # ------------------------------------------------------------------

    @staticmethod
    def from_dict(d: Dict[str, Any]) -> "SessionConfigDTO":
        position = d.get("position")
        resample = d.get("resample_interval_mm", MPR_RESAMPLE_INTERVAL_MM)
        tolerance = d.get("contour_tolerance_mm", DEFAULT_CONTOUR_TOLERANCE_MM)
        return SessionConfigDTO(
            input_path           = str(d.get("input_path",    "")),
            rtstruct_path        = d.get("rtstruct_path"),
            loader_type          = str(d.get("loader_type",   "dicom")),
            max_workers          = int(d.get("max_workers",   LOADER_MAX_WORKERS)),
            resample_interval_mm = float(resample) if resample is not None else None,
            hysteresis_mm        = float(d.get("hysteresis_mm", POSITION_HYSTERESIS_MM)),
            position             = tuple(float(v) for v in position) if position is not None else None,
            planes               = tuple(str(p).lower() for p in d.get("planes", ["axial", "sagittal", "coronal"])),
            contour_tolerance_mm = float(tolerance) if tolerance is not None else None,
            window_preset        = str(d.get("window_preset", DEFAULT_WINDOW_PRESET)),
            output_dir           = d.get("output_dir"),
            export_formats       = tuple(d.get("export_formats", ["npy"])),
        )

    @staticmethod
    def from_yaml(path: str) -> "SessionConfigDTO":
        """Load config from a YAML file."""
        import yaml  # only needed when a YAML config is used
        with open(path, encoding="utf-8") as fh:
            d = yaml.safe_load(fh)
        return SessionConfigDTO.from_dict(d or {})

    @staticmethod
    def from_json(path: str) -> "SessionConfigDTO":
        """Load config from a JSON file."""
        import json
        with open(path, encoding="utf-8") as fh:
            d = json.load(fh)
        return SessionConfigDTO.from_dict(d)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "input_path":           self.input_path,
            "rtstruct_path":        self.rtstruct_path,
            "loader_type":          self.loader_type,
            "max_workers":          self.max_workers,
            "resample_interval_mm": self.resample_interval_mm,
            "hysteresis_mm":        self.hysteresis_mm,
            "position":             list(self.position) if self.position is not None else None,
            "planes":               list(self.planes),
            "contour_tolerance_mm": self.contour_tolerance_mm,
            "window_preset":        self.window_preset,
            "output_dir":           self.output_dir,
            "export_formats":       list(self.export_formats),
        }
