import numpy as np
import pytest
from pydicom.dataset import Dataset, FileMetaDataset
from pydicom.uid import ExplicitVRLittleEndian, generate_uid

CT_IMAGE_STORAGE = "1.2.840.10008.5.1.4.1.1.2"
RT_STRUCTURE_SET_STORAGE = "1.2.840.10008.5.1.4.1.1.481.3"


def _file_meta(sop_class_uid, sop_instance_uid):
    meta = FileMetaDataset()
    meta.MediaStorageSOPClassUID = sop_class_uid
    meta.MediaStorageSOPInstanceUID = sop_instance_uid
    meta.TransferSyntaxUID = ExplicitVRLittleEndian
    return meta


def ct_slice_dataset(z, stored_value, rows=4, columns=5, instance_number=1):
    uid = generate_uid()
    ds = Dataset()
    ds.file_meta = _file_meta(CT_IMAGE_STORAGE, uid)
    ds.SOPClassUID = CT_IMAGE_STORAGE
    ds.SOPInstanceUID = uid
    ds.Modality = "CT"
    ds.Rows = rows
    ds.Columns = columns
    ds.SamplesPerPixel = 1
    ds.PhotometricInterpretation = "MONOCHROME2"
    ds.BitsAllocated = 16
    ds.BitsStored = 16
    ds.HighBit = 15
    ds.PixelRepresentation = 1
    ds.PixelSpacing = [0.5, 0.75]
    ds.SliceThickness = 2.0
    ds.ImagePositionPatient = [0.0, 0.0, float(z)]
    ds.ImageOrientationPatient = [1.0, 0.0, 0.0, 0.0, 1.0, 0.0]
    ds.RescaleSlope = 1.0
    ds.RescaleIntercept = -1024.0
    ds.InstanceNumber = instance_number
    ds.SliceLocation = float(z)
    ds.PixelData = np.full((rows, columns), stored_value, dtype=np.int16).tobytes()
    return ds


def rtstruct_dataset():
    ds = Dataset()
    uid = generate_uid()
    ds.file_meta = _file_meta(RT_STRUCTURE_SET_STORAGE, uid)
    ds.SOPClassUID = RT_STRUCTURE_SET_STORAGE
    ds.SOPInstanceUID = uid
    ds.Modality = "RTSTRUCT"
    ds.PatientName = "Phantom^Test"
    ds.StructureSetLabel = "TEST"
    ds.StructureSetName = "Test structures"
    ds.StructureSetDate = "20240101"

    heart = Dataset()
    heart.ROINumber = 1
    heart.ROIName = "Heart"
    heart.ROIGenerationAlgorithm = "MANUAL"
    marker = Dataset()
    marker.ROINumber = 2
    marker.ROIName = "Marker"
    ds.StructureSetROISequence = [heart, marker]

    image_ref = Dataset()
    image_ref.ReferencedSOPInstanceUID = "1.2.3.4"

    contours = []
    for number, z in enumerate((10.0, 12.0), start=1):
        contour = Dataset()
        contour.ContourNumber = number
        contour.ContourGeometricType = "CLOSED_PLANAR"
        contour.NumberOfContourPoints = 4
        contour.ContourData = [0.0, 0.0, z, 10.0, 0.0, z, 10.0, 10.0, z, 0.0, 10.0, z]
        contour.ContourImageSequence = [image_ref]
        contours.append(contour)

    roi_contour = Dataset()
    roi_contour.ReferencedROINumber = 1
    roi_contour.ROIDisplayColor = [255, 0, 0]
    roi_contour.ContourSequence = contours
    ds.ROIContourSequence = [roi_contour]

    frame = Dataset()
    frame.FrameOfReferenceUID = "1.2.3.9"
    ds.ReferencedFrameOfReferenceSequence = [frame]
    return ds


@pytest.fixture
def ct_series_dir(tmp_path):
    """Three CT slices written out of anatomical order."""
    for name, z, value, n in (("slice_1.dcm", 0.0, 1124, 1),
                              ("slice_2.dcm", 4.0, 1324, 3),
                              ("slice_3.dcm", 2.0, 1224, 2)):
        ct_slice_dataset(z, value, instance_number=n).save_as(tmp_path / name, enforce_file_format=True)
    return tmp_path


@pytest.fixture
def rtstruct_file(tmp_path):
    path = tmp_path / "rtstruct.dcm"
    rtstruct_dataset().save_as(path, enforce_file_format=True)
    return path


@pytest.fixture
def ct_slice_factory():
    return ct_slice_dataset


@pytest.fixture
def rtstruct_ds():
    return rtstruct_dataset()
