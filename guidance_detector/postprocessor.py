"""
Postprocessing for the detection pipeline.

Responsibility:
    Parse the raw model output tensor into a list of BoundingBox objects.
    Pick the best class per candidate, apply confidence thresholding,
    convert center/size geometry to corners and clamp to the unit square.

Non-goals:
    - No duplicate suppression (see nms).
    - No model loading or inference.

Hard-coded:
    - Output is read as a flat array laid out [detection][attribute] with
      attributes (cx, cy, w, h, score_0, ..., score_{C-1}), all in
      normalized coordinates.
    - Ties between class scores go to the lowest class index.
"""

import logging
from typing import List, Sequence

import numpy as np

from guidance_detector.detection import BoundingBox
from guidance_detector.labels import class_name
from guidance_detector.layout import BOX_ATTRIBUTES, TensorLayout

logger = logging.getLogger(__name__)

DEFAULT_CONFIDENCE_THRESHOLD = 0.75


def decode(
    network_output: np.ndarray,
    layout: TensorLayout,
    labels: Sequence[str],
    confidence_threshold: float = DEFAULT_CONFIDENCE_THRESHOLD,
) -> List[BoundingBox]:
    """Parse raw model output into a list of BoundingBox objects.

    Args:
        network_output: Raw output from the engine. Any shape whose element
                        count is num_detections * (4 + num_classes).
        layout: Resolved tensor layout for the loaded model.
        labels: Label table; indices beyond its end get "Unknown_<index>".
        confidence_threshold: A candidate is kept only when its best class
                              score is strictly greater than this value.

    Returns:
        Unordered list of BoundingBox objects. Empty if no candidate
        survives thresholding and clamping.

    Raises:
        ValueError: If the output size does not match the layout.
    """
    flat = np.asarray(network_output, dtype=np.float32).reshape(-1)
    if flat.size != layout.output_size:
        raise ValueError(
            f"Output has {flat.size} values, expected "
            f"{layout.num_detections} x {layout.num_attributes} = {layout.output_size}."
        )

    if layout.num_detections == 0 or layout.num_classes == 0:
        return []

    records = flat.reshape(layout.num_detections, layout.num_attributes)
    scores = records[:, BOX_ATTRIBUTES:]

    # argmax returns the first maximum, i.e. strict '>' while scanning
    class_ids = scores.argmax(axis=1)
    best = scores[np.arange(layout.num_detections), class_ids]

    keep = best > confidence_threshold
    if not keep.any():
        return []

    geometry = records[keep, :BOX_ATTRIBUTES].astype(np.float64)
    cx, cy, w, h = geometry.T
    half_w = w / 2.0
    half_h = h / 2.0

    x1 = np.clip(cx - half_w, 0.0, 1.0)
    y1 = np.clip(cy - half_h, 0.0, 1.0)
    x2 = np.clip(cx + half_w, 0.0, 1.0)
    y2 = np.clip(cy + half_h, 0.0, 1.0)

    clamped_w = x2 - x1
    clamped_h = y2 - y1
    valid = (clamped_w > 0) & (clamped_h > 0)

    boxes: List[BoundingBox] = []
    for bx1, by1, bx2, by2, bw, bh, conf, cls in zip(
        x1[valid].tolist(),
        y1[valid].tolist(),
        x2[valid].tolist(),
        y2[valid].tolist(),
        clamped_w[valid].tolist(),
        clamped_h[valid].tolist(),
        best[keep][valid].tolist(),
        class_ids[keep][valid].tolist(),
    ):
        boxes.append(BoundingBox(
            x1=bx1, y1=by1, x2=bx2, y2=by2,
            cx=(bx1 + bx2) / 2.0,
            cy=(by1 + by2) / 2.0,
            w=bw, h=bh,
            confidence=conf,
            class_index=cls,
            class_name=class_name(labels, cls),
        ))

    logger.debug(
        "Decoded %d boxes (%d above threshold of %d candidates).",
        len(boxes), int(keep.sum()), layout.num_detections,
    )
    return boxes
