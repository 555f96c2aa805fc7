"""
Tests for the JSON and CSV exporters.
"""

import csv
import json

from guidance_detector.detection import BoundingBox, Detections, NoDetections
from guidance_detector.serializer import CSV_FIELDS, save_csv, save_json


def _box(class_index=0, name="person", confidence=0.9):
    return BoundingBox(
        x1=0.1, y1=0.2, x2=0.3, y2=0.6,
        cx=0.2, cy=0.4, w=0.2, h=0.4,
        confidence=confidence, class_index=class_index, class_name=name,
    )


def _results():
    return {
        1: NoDetections(),
        0: Detections((_box(), _box(2, "car", 0.8)), elapsed_ms=17),
    }


def test_save_json(tmp_path):
    path = tmp_path / "out" / "detections.json"

    save_json(_results(), str(path))

    payload = json.loads(path.read_text(encoding="utf-8"))
    assert payload["total_frames"] == 2
    assert payload["total_detections"] == 2
    first, second = payload["frames"]
    assert first["frame_id"] == 0
    assert first["elapsed_ms"] == 17
    assert [d["class_name"] for d in first["detections"]] == ["person", "car"]
    assert second == {"frame_id": 1, "elapsed_ms": None, "detections": []}


def test_save_csv(tmp_path):
    """One row per box; frames without detections write nothing."""
    path = tmp_path / "detections.csv"

    save_csv(_results(), str(path))

    with open(path, newline="", encoding="utf-8") as f:
        reader = csv.DictReader(f)
        assert reader.fieldnames == CSV_FIELDS
        rows = list(reader)

    assert len(rows) == 2
    assert rows[0]["frame_id"] == "0"
    assert rows[0]["elapsed_ms"] == "17"
    assert rows[1]["class_name"] == "car"
    assert float(rows[1]["confidence"]) == 0.8


def test_empty_results(tmp_path):
    path = tmp_path / "empty.json"
    save_json({}, str(path))
    assert json.loads(path.read_text(encoding="utf-8"))["total_frames"] == 0
