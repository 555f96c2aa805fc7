"""
Guidance Detector: object detection post-processing for edge devices.

Public API:
    - InferenceSession: owns the engine and runs one detection pass.
    - DetectionWorker: serializes session work on a single thread.
    - BoundingBox, NoDetections, Detections: result types.
    - Acceleration: GPU (with CPU fallback) or CPU.
    - resolve_layout, preprocess, decode, iou, non_max_suppression:
      the individual pipeline stages.

Usage:
    from guidance_detector import InferenceSession

    session = InferenceSession(handler=print)
    session.initialize("models/model.tflite", "models/labels.txt")
    session.run_detection(rgb_frame)
"""

from guidance_detector.detection import BoundingBox, DetectionResult, Detections, NoDetections
from guidance_detector.errors import (
    DetectorError,
    EngineConstructionFailure,
    EngineExecutionFailure,
    InvalidModelShape,
    LabelLoadFailure,
    SessionStateError,
)
from guidance_detector.layout import TensorLayout, resolve_layout
from guidance_detector.model_loader import Acceleration, EngineOptions, InferenceEngine, load_model
from guidance_detector.nms import iou, non_max_suppression
from guidance_detector.postprocessor import decode
from guidance_detector.preprocessor import preprocess
from guidance_detector.session import InferenceSession, SessionState
from guidance_detector.worker import DetectionWorker

__all__ = [
    "Acceleration",
    "BoundingBox",
    "DetectionResult",
    "DetectionWorker",
    "Detections",
    "DetectorError",
    "EngineConstructionFailure",
    "EngineExecutionFailure",
    "EngineOptions",
    "InferenceEngine",
    "InferenceSession",
    "InvalidModelShape",
    "LabelLoadFailure",
    "NoDetections",
    "SessionState",
    "SessionStateError",
    "TensorLayout",
    "decode",
    "iou",
    "load_model",
    "non_max_suppression",
    "preprocess",
    "resolve_layout",
]
