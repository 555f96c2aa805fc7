"""
Serialization of detection results.

Responsibility:
    Export per-frame detection results to JSON or CSV for offline
    analysis of a command-line run.

Non-goals:
    - No streaming output; complete files are written at the end of a run.
"""

import csv
import json
import logging
from pathlib import Path
from typing import Dict

from guidance_detector.detection import DetectionResult, Detections

logger = logging.getLogger(__name__)

CSV_FIELDS = [
    "frame_id", "elapsed_ms",
    "x1", "y1", "x2", "y2",
    "confidence", "class_index", "class_name",
]


def save_json(results_by_frame: Dict[int, DetectionResult], output_path: str) -> None:
    """Export all results to a JSON file.

    Output schema:
        {
            "frames": [
                {"frame_id": 0, "elapsed_ms": 12, "detections": [{...}, ...]},
                {"frame_id": 1, "elapsed_ms": null, "detections": []}
            ],
            "total_frames": N,
            "total_detections": M
        }

    Frames reported as NoDetections carry a null elapsed_ms.
    """
    _ensure_parent_dir(output_path)

    frames = []
    total_detections = 0

    for frame_id in sorted(results_by_frame):
        result = results_by_frame[frame_id]
        if isinstance(result, Detections):
            boxes = [b.to_dict() for b in result.boxes]
            elapsed = result.elapsed_ms
        else:
            boxes, elapsed = [], None
        total_detections += len(boxes)
        frames.append({"frame_id": frame_id, "elapsed_ms": elapsed, "detections": boxes})

    payload = {
        "frames": frames,
        "total_frames": len(frames),
        "total_detections": total_detections,
    }

    with open(output_path, "w", encoding="utf-8") as f:
        json.dump(payload, f, indent=2)

    logger.info(
        "JSON output saved: %s (%d frames, %d detections)",
        output_path, len(frames), total_detections,
    )


def save_csv(results_by_frame: Dict[int, DetectionResult], output_path: str) -> None:
    """Export all detections to a CSV file, one row per box.

    Frames without detections produce no rows.
    """
    _ensure_parent_dir(output_path)

    total = 0
    with open(output_path, "w", newline="", encoding="utf-8") as f:
        writer = csv.DictWriter(f, fieldnames=CSV_FIELDS)
        writer.writeheader()

        for frame_id in sorted(results_by_frame):
            result = results_by_frame[frame_id]
            if not isinstance(result, Detections):
                continue
            for box in result.boxes:
                writer.writerow({
                    "frame_id": frame_id,
                    "elapsed_ms": result.elapsed_ms,
                    **box.to_dict(),
                })
                total += 1

    logger.info("CSV output saved: %s (%d rows)", output_path, total)


def _ensure_parent_dir(path: str) -> None:
    Path(path).parent.mkdir(parents=True, exist_ok=True)
