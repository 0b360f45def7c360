import json

import yaml

from config import DEFAULT_WINDOW_PRESET, LOADER_MAX_WORKERS
from mpr.dto import SessionConfigDTO


def test_session_config_defaults():
    dto = SessionConfigDTO()
    assert dto.loader_type == "dicom"
    assert dto.max_workers == LOADER_MAX_WORKERS
    assert dto.resample_interval_mm is None
    assert dto.planes == ("axial", "sagittal", "coronal")
    assert dto.window_preset == DEFAULT_WINDOW_PRESET
    assert dto.export_formats == ("npy",)


def test_from_dict_normalises_types():
    dto = SessionConfigDTO.from_dict({
        "input_path": "/data/ct",
        "position": [1, 2, 3],
        "planes": ["Axial", "CORONAL"],
        "resample_interval_mm": "1.5",
        "contour_tolerance_mm": None,
    })
    assert dto.position == (1.0, 2.0, 3.0)
    assert dto.planes == ("axial", "coronal")
    assert dto.resample_interval_mm == 1.5
    assert dto.contour_tolerance_mm is None


def test_yaml_and_json_round_trip(tmp_path):
    original = SessionConfigDTO(input_path="/data/ct", loader_type="synthetic", position=(1.0, 2.0, 3.0))

    yaml_path = tmp_path / "session.yaml"
    yaml_path.write_text(yaml.safe_dump(original.to_dict()), encoding="utf-8")
    assert SessionConfigDTO.from_yaml(str(yaml_path)) == original

    json_path = tmp_path / "session.json"
    json_path.write_text(json.dumps(original.to_dict()), encoding="utf-8")
    assert SessionConfigDTO.from_json(str(json_path)) == original


def test_empty_yaml_gives_defaults(tmp_path):
    path = tmp_path / "empty.yaml"
    path.write_text("", encoding="utf-8")
    assert SessionConfigDTO.from_yaml(str(path)) == SessionConfigDTO()
