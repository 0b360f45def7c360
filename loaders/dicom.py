"""
DICOM series loader.

Reads a folder of single-frame image files with pydicom in parallel, turns
each dataset into a SliceRecord and hands the series to ``build_volume``.
"""

import concurrent.futures
import logging
import os
import re
from glob import glob
from typing import Callable, List, Optional

import numpy as np
import pydicom
from pydicom.errors import InvalidDicomError

from config import (
    DEFAULT_PIXEL_SPACING,
    DEFAULT_RESCALE_INTERCEPT,
    DEFAULT_RESCALE_SLOPE,
    DEFAULT_SLICE_THICKNESS,
    LOADER_MAX_WORKERS,
    LOADER_PROGRESS_EVERY,
)
from mpr.base import BaseLoader, SliceRecord
from mpr.volume import Volume, build_volume

logger = logging.getLogger(__name__)


def _natural_sort_key(text: str):
    """Natural sorting key for filenames like img_1, img_2, ..., img_10"""
    return [int(c) if c.isdigit() else c.lower() for c in re.split(r'(\d+)', text)]


def _validate_path(folder_path: str) -> None:
    if not os.path.exists(folder_path):
        raise FileNotFoundError(f"Path does not exist: {folder_path}")


def _find_dicom_files(folder_path: str) -> List[str]:
    """Find DICOM files in folder, checking extension first then content."""
    files = glob(os.path.join(folder_path, "*.dcm"))
    if not files:
        files = []
        for f in glob(os.path.join(folder_path, "*")):
            if not os.path.isfile(f):
                continue
            try:
                pydicom.dcmread(f, stop_before_pixels=True)
            except (InvalidDicomError, OSError):
                continue
            files.append(f)
    if not files:
        raise FileNotFoundError(f"No DICOM files found in {folder_path}")
    files.sort(key=lambda f: _natural_sort_key(os.path.basename(f)))
    return files


def _float_tuple(value, length: int):
    if value is None:
        return None
    items = [float(v) for v in value]
    return tuple(items) if len(items) >= length else None


def record_from_dataset(ds) -> SliceRecord:
    """
    Map the attributes the volume needs from a pydicom dataset.

    Missing optional attributes fall back to the configured defaults;
    a dataset without pixel data gives a record with ``pixels=None``.
    """
    spacing = _float_tuple(getattr(ds, "PixelSpacing", None), 2) or DEFAULT_PIXEL_SPACING
    thickness = getattr(ds, "SliceThickness", None)
    slope = getattr(ds, "RescaleSlope", None)
    intercept = getattr(ds, "RescaleIntercept", None)
    instance = getattr(ds, "InstanceNumber", None)
    location = getattr(ds, "SliceLocation", None)
    rows = getattr(ds, "Rows", None)
    columns = getattr(ds, "Columns", None)

    pixels = None
    if "PixelData" in ds:
        pixels = np.asarray(ds.pixel_array)

    return SliceRecord(
        position=_float_tuple(getattr(ds, "ImagePositionPatient", None), 3),
        pixel_spacing=spacing[:2],
        slice_thickness=float(thickness) if thickness not in (None, "") else DEFAULT_SLICE_THICKNESS,
        rescale_slope=float(slope) if slope not in (None, "") else DEFAULT_RESCALE_SLOPE,
        rescale_intercept=float(intercept) if intercept not in (None, "") else DEFAULT_RESCALE_INTERCEPT,
        instance_number=int(instance) if instance not in (None, "") else None,
        rows=int(rows) if rows is not None else None,
        columns=int(columns) if columns is not None else None,
        orientation=_float_tuple(getattr(ds, "ImageOrientationPatient", None), 6),
        slice_location=float(location) if location not in (None, "") else None,
        pixels=pixels,
        sop_instance_uid=str(ds.SOPInstanceUID) if "SOPInstanceUID" in ds else None,
    )


class DicomSeriesLoader(BaseLoader):
    """
    Loader for a folder holding one CT/MR image series.

    Files are read in parallel with a ThreadPoolExecutor; unreadable files
    are logged and skipped. Final slice ordering is done by ``build_volume``
    from ImagePositionPatient, with the natural filename order as the input
    order for ties.
    """

    def __init__(self, max_workers: int = LOADER_MAX_WORKERS):
        self.max_workers = max(1, int(max_workers))

    def read_slices(self, folder_path: str,
                    callback: Optional[Callable[[int, str], None]] = None) -> List[SliceRecord]:
        logger.info("Scanning series folder: %s", folder_path)
        if callback: callback(0, "Scanning directory...")

        _validate_path(folder_path)
        files = _find_dicom_files(folder_path)
        total = len(files)
        if callback: callback(5, f"Found {total} files. Reading...")

        def read_single(args):
            idx, f = args
            try:
                return idx, record_from_dataset(pydicom.dcmread(f))
            except (InvalidDicomError, OSError, ValueError, AttributeError) as e:
                logger.warning("Failed to read %s: %s", f, e)
                return idx, None

        results: List[Optional[SliceRecord]] = [None] * total
        with concurrent.futures.ThreadPoolExecutor(max_workers=self.max_workers) as executor:
            futures = [executor.submit(read_single, (i, f)) for i, f in enumerate(files)]
            completed = 0
            for future in concurrent.futures.as_completed(futures):
                idx, record = future.result()
                results[idx] = record
                completed += 1
                if callback and (completed % LOADER_PROGRESS_EVERY == 0 or completed == total):
                    callback(5 + int(95 * completed / total), f"Reading slice {completed}/{total}...")

        records = [r for r in results if r is not None]
        if not records:
            raise ValueError(f"No readable DICOM slices in {folder_path}")
        logger.info("Read %d/%d slices from %s", len(records), total, folder_path)
        return records

    def load(self, folder_path: str,
             callback: Optional[Callable[[int, str], None]] = None,
             assemble_callback: Optional[Callable[[int, str], None]] = None) -> Volume:
        """
        Read the series and assemble it.

        Args:
            folder_path: Series folder.
            callback: Progress of the read stage.
            assemble_callback: Progress of the assembly stage; defaults to ``callback``.
        """
        records = self.read_slices(folder_path, callback)
        return build_volume(records, assemble_callback or callback)


__all__ = ["DicomSeriesLoader", "record_from_dataset"]
