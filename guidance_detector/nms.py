"""
Non-maximum suppression.

Greedy IoU suppression over BoundingBox objects. Class identity is
ignored by default: overlapping boxes of different classes still suppress
each other. Pass per_class=True to suppress within each class only.
"""

from typing import Dict, List, Sequence

from guidance_detector.detection import BoundingBox

DEFAULT_IOU_THRESHOLD = 0.3


def iou(a: BoundingBox, b: BoundingBox) -> float:
    """Intersection over union of two axis-aligned boxes.

    Returns 0.0 when the union is not positive.
    """
    inter_w = max(0.0, min(a.x2, b.x2) - max(a.x1, b.x1))
    inter_h = max(0.0, min(a.y2, b.y2) - max(a.y1, b.y1))
    intersection = inter_w * inter_h

    union = a.w * a.h + b.w * b.h - intersection
    if union <= 0:
        return 0.0
    return intersection / union


def non_max_suppression(
    boxes: Sequence[BoundingBox],
    iou_threshold: float = DEFAULT_IOU_THRESHOLD,
    per_class: bool = False,
) -> List[BoundingBox]:
    """Keep the highest-confidence boxes that do not overlap each other.

    Args:
        boxes: Candidate boxes in any order.
        iou_threshold: A candidate is dropped when its IoU with an already
                       accepted box is >= this value.
        per_class: Suppress within each class_index independently.

    Returns:
        Accepted boxes, highest confidence first.
    """
    if per_class:
        by_class: Dict[int, List[BoundingBox]] = {}
        for box in boxes:
            by_class.setdefault(box.class_index, []).append(box)

        kept: List[BoundingBox] = []
        for group in by_class.values():
            kept.extend(_greedy(group, iou_threshold))
        kept.sort(key=lambda b: b.confidence, reverse=True)
        return kept

    return _greedy(boxes, iou_threshold)


def _greedy(boxes: Sequence[BoundingBox], iou_threshold: float) -> List[BoundingBox]:
    remaining = sorted(boxes, key=lambda b: b.confidence, reverse=True)
    selected: List[BoundingBox] = []

    while remaining:
        first = remaining.pop(0)
        selected.append(first)
        remaining = [b for b in remaining if iou(first, b) < iou_threshold]

    return selected
