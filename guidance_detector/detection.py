"""
Detection data transfer objects.

This module defines BoundingBox, the single box type produced by the
decoder, and the two-case result handed to the caller after each pass:
NoDetections or Detections. All are frozen with no behavior beyond data
access and serialization.

Non-goals:
    - No rendering logic.
    - No file I/O.
    - No decoding or clamping (that belongs in postprocessor).
"""

from dataclasses import dataclass, field
from typing import Tuple, Union


@dataclass(frozen=True, slots=True)
class BoundingBox:
    """A single detected object in normalized frame coordinates.

    Attributes:
        x1: Left edge in [0, 1].
        y1: Top edge in [0, 1].
        x2: Right edge in [0, 1], x2 >= x1.
        y2: Bottom edge in [0, 1], y2 >= y1.
        cx: Horizontal center, derived from the clamped corners.
        cy: Vertical center, derived from the clamped corners.
        w: Width (x2 - x1), always > 0.
        h: Height (y2 - y1), always > 0.
        confidence: Best class score, strictly above the decode threshold.
        class_index: Index of the best-scoring class.
        class_name: Label for class_index, or "Unknown_<index>".
    """

    x1: float
    y1: float
    x2: float
    y2: float
    cx: float
    cy: float
    w: float
    h: float
    confidence: float
    class_index: int
    class_name: str

    @property
    def area(self) -> float:
        """Normalized box area."""
        return self.w * self.h

    def to_dict(self) -> dict:
        """Return a plain dict suitable for JSON serialization."""
        return {
            "x1": round(self.x1, 6),
            "y1": round(self.y1, 6),
            "x2": round(self.x2, 6),
            "y2": round(self.y2, 6),
            "confidence": round(self.confidence, 4),
            "class_index": self.class_index,
            "class_name": self.class_name,
        }


@dataclass(frozen=True)
class NoDetections:
    """Nothing survived decoding, or the inference call failed."""


@dataclass(frozen=True)
class Detections:
    """Suppressed boxes for one frame and the wall-clock time of the pass.

    Attributes:
        boxes: Accepted boxes, highest confidence first.
        elapsed_ms: Integer milliseconds from preprocessing to suppression.
    """

    boxes: Tuple[BoundingBox, ...] = field(default_factory=tuple)
    elapsed_ms: int = 0


DetectionResult = Union[NoDetections, Detections]
