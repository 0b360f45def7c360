"""
RT Structure Set loader.

Turns an RTSTRUCT file into an immutable StructureSet: ROI names and colours
from StructureSetROISequence / ROIContourSequence, and one Contour per
ContourSequence item.
"""

import logging
import os
from typing import Dict, List

import numpy as np
import pydicom

from config import ROI_COLOR_CYCLE
from mpr.base import BaseLoader
from roi.regions import Contour, ContourGeometricType, Region, StructureSet

logger = logging.getLogger(__name__)


def _text(ds, keyword: str):
    value = getattr(ds, keyword, None)
    if value in (None, ""):
        return None
    return str(value)


def _display_color(item, index: int):
    color = getattr(item, "ROIDisplayColor", None)
    if color is not None and len(color) >= 3:
        return tuple(max(0.0, min(1.0, float(c) / 255.0)) for c in color[:3])
    return ROI_COLOR_CYCLE[index % len(ROI_COLOR_CYCLE)]


def _parse_contours(roi_contour) -> List[Contour]:
    contours = []
    for number, item in enumerate(getattr(roi_contour, "ContourSequence", []) or [], start=1):
        data = getattr(item, "ContourData", None)
        if data is None or len(data) < 3:
            continue
        points = np.asarray([float(v) for v in data], dtype=np.float64)
        points = points[: len(points) - len(points) % 3].reshape(-1, 3)

        ref_uid = None
        images = getattr(item, "ContourImageSequence", None)
        if images:
            ref_uid = _text(images[0], "ReferencedSOPInstanceUID")

        contours.append(Contour(
            points=points,
            number=int(getattr(item, "ContourNumber", number) or number),
            geometric_type=ContourGeometricType.from_string(getattr(item, "ContourGeometricType", None)),
            referenced_sop_instance_uid=ref_uid,
        ))
    return contours


class RTStructLoader(BaseLoader):
    """Loader for DICOM RT Structure Set files."""

    def load(self, path: str, callback=None) -> StructureSet:
        if not os.path.isfile(path):
            raise FileNotFoundError(f"RTSTRUCT file does not exist: {path}")
        if callback: callback(0, "Reading structure set...")

        ds = pydicom.dcmread(path)
        return self.from_dataset(ds, callback)

    def from_dataset(self, ds, callback=None) -> StructureSet:
        modality = getattr(ds, "Modality", None)
        if modality != "RTSTRUCT":
            raise ValueError(f"Not an RT Structure Set (Modality={modality!r})")
        if "StructureSetROISequence" not in ds:
            raise ValueError("RTSTRUCT has no StructureSetROISequence")

        contour_map: Dict[int, object] = {}
        for item in getattr(ds, "ROIContourSequence", []) or []:
            contour_map[int(item.ReferencedROINumber)] = item

        roi_items = list(ds.StructureSetROISequence)
        regions = []
        for index, roi_item in enumerate(roi_items):
            roi_number = int(roi_item.ROINumber)
            name = _text(roi_item, "ROIName") or f"ROI_{roi_number}"
            roi_contour = contour_map.get(roi_number)
            if roi_contour is None:
                logger.warning("ROI %d (%s) has no contour data", roi_number, name)
                contours, color = [], _display_color(roi_item, index)
            else:
                contours = _parse_contours(roi_contour)
                color = _display_color(roi_contour, index)

            regions.append(Region(
                roi_number=roi_number,
                name=name,
                contours=tuple(contours),
                color=color,
                description=_text(roi_item, "ROIDescription"),
                generation_algorithm=_text(roi_item, "ROIGenerationAlgorithm"),
            ))
            if callback:
                callback(int(100 * (index + 1) / len(roi_items)), f"Parsed ROI {name}")

        frame_uid = None
        series_uid = None
        frames = getattr(ds, "ReferencedFrameOfReferenceSequence", None)
        if frames:
            frame_uid = _text(frames[0], "FrameOfReferenceUID")
            studies = getattr(frames[0], "RTReferencedStudySequence", None)
            if studies:
                series = getattr(studies[0], "RTReferencedSeriesSequence", None)
                if series:
                    series_uid = _text(series[0], "SeriesInstanceUID")

        structure_set = StructureSet(
            regions=tuple(regions),
            label=_text(ds, "StructureSetLabel"),
            name=_text(ds, "StructureSetName"),
            description=_text(ds, "StructureSetDescription"),
            date=_text(ds, "StructureSetDate"),
            time=_text(ds, "StructureSetTime"),
            patient_name=_text(ds, "PatientName"),
            study_instance_uid=_text(ds, "StudyInstanceUID"),
            series_instance_uid=_text(ds, "SeriesInstanceUID"),
            referenced_frame_of_reference_uid=frame_uid,
            referenced_series_instance_uid=series_uid,
        )
        logger.info("Loaded %s", structure_set.statistics().description)
        return structure_set


__all__ = ["RTStructLoader"]
