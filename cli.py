"""
Headless CLI entry point for the MPR reconstruction core.

Loads a series, initialises the coordinate system, extracts the orthogonal
slices through the cursor and reports which regions each slice crosses.
"""

from __future__ import annotations

import argparse
import logging
import os
import sys
import time
from typing import Any, Dict, Optional

import numpy as np

from mpr import (
    CancelFlagObserver,
    CancelToken,
    CoordinateSystem,
    Plane,
    ProgressBus,
    SessionConfigDTO,
    SliceExtractor,
    TerminalProgressObserver,
    WindowLevel,
    apply_window,
)
from loaders import DicomSeriesLoader, RTStructLoader, SyntheticSeriesLoader
from roi import default_tolerance, regions_for_slice

logger = logging.getLogger(__name__)

EXPORT_FORMATS = ("npy", "windowed")


def _make_loader(dto: SessionConfigDTO):
    if dto.loader_type == "dicom":
        return DicomSeriesLoader(max_workers=dto.max_workers)
    if dto.loader_type == "synthetic":
        return SyntheticSeriesLoader()
    raise ValueError(f"Unknown loader type: {dto.loader_type}")


def _export(buffer: np.ndarray, windowed: np.ndarray, plane: Plane, index: int,
            dto: SessionConfigDTO) -> list:
    os.makedirs(dto.output_dir, exist_ok=True)
    written = []
    for fmt in dto.export_formats:
        if fmt not in EXPORT_FORMATS:
            raise ValueError(f"Unknown export format: {fmt}")
        suffix = "" if fmt == "npy" else "_windowed"
        path = os.path.join(dto.output_dir, f"{plane.value}_{index:04d}{suffix}.npy")
        np.save(path, buffer if fmt == "npy" else windowed)
        written.append(path)
    return written


def _slice_patient_position(volume, coords: CoordinateSystem, plane: Plane, index: int, world) -> float:
    """Patient position (mm) of the displayed slice along the plane's slice axis."""
    if plane is Plane.AXIAL and not coords.uses_resampling(plane) and 0 <= index < len(volume.slices):
        return volume.slices[index].position[2]
    return world[plane.slice_axis]


def run_session(dto: SessionConfigDTO,
                cancel_token: Optional[CancelToken] = None,
                progress_bus: Optional[ProgressBus] = None) -> Dict[str, Any]:
    """
    Execute one load / navigate / extract pass.

    Returns:
        Dict with the coordinate system, per-plane slices and exported files.
    """
    bus = progress_bus or ProgressBus(stages=["read", "assemble"]).subscribe(TerminalProgressObserver())
    if cancel_token is not None:
        bus.subscribe(CancelFlagObserver(lambda: cancel_token.is_cancelled))

    window = WindowLevel.preset(dto.window_preset)
    planes = [Plane.from_string(p) for p in dto.planes]

    t_start = time.perf_counter()
    volume = _make_loader(dto).load(
        dto.input_path,
        callback=bus.stage_callback("read"),
        assemble_callback=bus.stage_callback("assemble"),
    )
    logger.info("Volume ready in %.2fs", time.perf_counter() - t_start)

    coords = CoordinateSystem(resample_interval_mm=dto.resample_interval_mm,
                              hysteresis_mm=dto.hysteresis_mm)
    coords.load_volume(volume)
    if dto.position is not None:
        coords.update_world_position(dto.position)

    structure_set = RTStructLoader().load(dto.rtstruct_path) if dto.rtstruct_path else None

    extractor = SliceExtractor(volume)
    world = coords.current_world_position
    slices: Dict[Plane, Dict[str, Any]] = {}
    exported = []
    for plane in planes:
        index = coords.slice_index(plane)
        buffer = extractor.extract_at_world(plane, world)
        windowed = apply_window(buffer, window)
        entry: Dict[str, Any] = {"index": index, "buffer": buffer, "regions": []}

        if structure_set is not None:
            tolerance = dto.contour_tolerance_mm
            if tolerance is None:
                tolerance = default_tolerance(volume.spacing, plane)
            position = _slice_patient_position(volume, coords, plane, index, world)
            hits = regions_for_slice(structure_set.regions, position, plane, tolerance)
            entry["regions"] = [r.name for r in hits]

        if dto.output_dir:
            exported.extend(_export(buffer, windowed, plane, index, dto))
        slices[plane] = entry

    return {
        "volume": volume,
        "coordinates": coords,
        "structure_set": structure_set,
        "slices": slices,
        "exported": exported,
    }


def _print_report(results: Dict[str, Any]) -> None:
    coords = results["coordinates"]
    print(coords.describe())
    stats = results["volume"].statistics()
    print(f"Values: {stats.min_value} .. {stats.max_value} (mean {stats.mean_value:.1f}), "
          f"{stats.memory_mb:.1f} MB")
    structure_set = results["structure_set"]
    if structure_set is not None:
        print(structure_set.statistics().description)

    for plane, entry in results["slices"].items():
        h, w = entry["buffer"].shape
        line = f"  {plane.abbreviation:<3} slice {entry['index']:4d}  {w}x{h}"
        if structure_set is not None:
            line += f"  ROIs: {', '.join(entry['regions']) or '-'}"
        print(line)

    if results["exported"]:
        print("Exported files:")
        for path in results["exported"]:
            print(f"  {path}")


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="python cli.py",
        description="Headless multi-planar reconstruction",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )
    parser.add_argument(
        "--config",
        metavar="FILE",
        help="Path to YAML or JSON config file. Overrides other flags.",
    )
    parser.add_argument("--input", metavar="PATH", default="", help="Series folder.")
    parser.add_argument("--loader", metavar="TYPE", default="dicom", help="Loader type: dicom | synthetic.")
    parser.add_argument("--rtstruct", metavar="FILE", default=None, help="RT Structure Set file.")
    parser.add_argument("--position", metavar="MM", type=float, nargs=3, default=None,
                        help="Cursor position x y z in mm (default: volume centre).")
    parser.add_argument("--planes", metavar="PLANE", nargs="+", default=["axial", "sagittal", "coronal"],
                        help="Planes to extract.")
    parser.add_argument("--resample-interval", metavar="MM", type=float, default=None,
                        help="Fixed slice interval for sagittal/coronal navigation.")
    parser.add_argument("--tolerance", metavar="MM", type=float, default=None,
                        help="Contour matching tolerance (default: one in-plane voxel).")
    parser.add_argument("--window", metavar="PRESET", default="soft_tissue", help="Window/level preset.")
    parser.add_argument("--output", metavar="DIR", default=None, help="Output directory.")
    parser.add_argument(
        "--formats",
        metavar="FMT",
        nargs="+",
        default=["npy"],
        help="Export formats: npy windowed (space-separated).",
    )
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable debug logging.")
    parser.add_argument("--dry-run", action="store_true", help="Print resolved config without running.")
    return parser


def _resolve_dto(args: argparse.Namespace, parser: argparse.ArgumentParser) -> SessionConfigDTO:
    """Resolve DTO from config file or inline CLI flags."""
    if args.config:
        cfg_path = args.config
        if cfg_path.endswith(".json"):
            return SessionConfigDTO.from_json(cfg_path)
        return SessionConfigDTO.from_yaml(cfg_path)

    if not args.input and args.loader != "synthetic":
        parser.error("Provide --config FILE or --input PATH")

    return SessionConfigDTO(
        input_path=args.input,
        rtstruct_path=args.rtstruct,
        loader_type=args.loader,
        resample_interval_mm=args.resample_interval,
        position=tuple(args.position) if args.position else None,
        planes=tuple(p.lower() for p in args.planes),
        contour_tolerance_mm=args.tolerance,
        window_preset=args.window,
        output_dir=args.output,
        export_formats=tuple(args.formats),
    )


def main(argv=None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    dto = _resolve_dto(args, parser)

    if args.dry_run:
        import json

        print("Resolved SessionConfigDTO:")
        print(json.dumps(dto.to_dict(), indent=2))
        return 0

    print("=" * 60)
    print("MPR Reconstruction - Headless")
    print("=" * 60)

    try:
        results = run_session(dto)
    except KeyboardInterrupt:
        print("\nAborted by user.")
        return 1
    except (OSError, ValueError, KeyError) as exc:
        logger.exception("Session failed")
        print(f"\nSession failed: {type(exc).__name__}: {exc}")
        return 2

    _print_report(results)
    return 0


if __name__ == "__main__":
    sys.exit(main())
