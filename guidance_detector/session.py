"""
InferenceSession, the programmatic entry point for object detection.

Owns one inference engine together with the tensor layout and label table
derived from it, and runs a single detection pass at a time:

    preprocess → engine.run → decode → non_max_suppression → result

Lifecycle:
    UNINITIALIZED --initialize--> READY --run_detection--> RUNNING --> READY
    initialize/reload failure --> FAILED (until a successful reload)
    any state --release--> RELEASED (initialize required afterwards)

Constraints:
    - Fatal initialization errors (InvalidModelShape,
      EngineConstructionFailure) are raised to the caller and leave the
      session FAILED. They are never swallowed.
    - Per-frame errors are absorbed into a NoDetections result.
    - One lock serializes initialize, reload, run_detection and release.
      Callers are expected to drive the session from a single worker
      (see DetectionWorker); the lock only makes misuse safe.

Non-goals:
    - No frame acquisition, rendering, or tracking.
    - No queueing of frames (dropping stale frames is the caller's policy).
"""

import logging
import threading
import time
from enum import Enum
from typing import Callable, Optional, Tuple

import numpy as np

from guidance_detector.config import AppConfig, load_config
from guidance_detector.detection import DetectionResult, Detections, NoDetections
from guidance_detector.errors import (
    DetectorError,
    EngineConstructionFailure,
    EngineExecutionFailure,
    InvalidModelShape,
    SessionStateError,
)
from guidance_detector.labels import LabelSource, load_labels
from guidance_detector.layout import TensorLayout, resolve_layout
from guidance_detector.model_loader import (
    Acceleration,
    EngineOptions,
    InferenceEngine,
    ModelSource,
    load_model,
)
from guidance_detector.nms import non_max_suppression
from guidance_detector.postprocessor import decode
from guidance_detector.preprocessor import preprocess

logger = logging.getLogger(__name__)

EngineFactory = Callable[[ModelSource, EngineOptions], InferenceEngine]
ResultHandler = Callable[[DetectionResult], None]


class SessionState(Enum):
    UNINITIALIZED = "uninitialized"
    READY = "ready"
    RUNNING = "running"
    FAILED = "failed"
    RELEASED = "released"


class InferenceSession:
    """Detection session over a single inference engine.

    Usage:
        session = InferenceSession(handler=on_result)   # Uses safe defaults
        session.initialize(model_bytes, "models/labels.txt")
        result = session.run_detection(rgb_frame)       # also sent to handler
        session.reload(Acceleration.CPU)                # switch acceleration
        session.release()

    The engine is built once per initialize/reload. Subsequent
    run_detection calls reuse it with no per-frame setup beyond
    preprocessing.
    """

    def __init__(
        self,
        config: Optional[AppConfig] = None,
        engine_factory: EngineFactory = load_model,
        handler: Optional[ResultHandler] = None,
    ) -> None:
        """Create an uninitialized session.

        Args:
            config: Application configuration. If None, safe defaults
                    are used (no config file required).
            engine_factory: Builds an InferenceEngine from model bytes or
                            a path. Defaults to the TFLite loader.
            handler: Called with exactly one result per run_detection.
        """
        if config is None:
            config = load_config()

        self._config = config
        self._engine_factory = engine_factory
        self._handler = handler
        self._lock = threading.Lock()

        self._state = SessionState.UNINITIALIZED
        self._engine: Optional[InferenceEngine] = None
        self._layout: Optional[TensorLayout] = None
        self._labels: Tuple[str, ...] = ()
        self._model: Optional[ModelSource] = None
        self._acceleration = Acceleration(config.model.backend)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def initialize(
        self,
        model: ModelSource,
        labels: LabelSource = None,
        acceleration: Optional[Acceleration] = None,
    ) -> None:
        """Load labels, build the engine and resolve the tensor layout.

        Args:
            model: Model bytes or a path to the model file.
            labels: Label file path, label file bytes, or a sequence of
                    names. Unreadable labels are logged, not raised.
            acceleration: Overrides config.model.backend for this load.

        Raises:
            InvalidModelShape: The model's tensors break the layout contract.
            EngineConstructionFailure: The engine could not be built.
        """
        with self._lock:
            self._state = SessionState.FAILED
            self._close_engine()
            self._model = model
            self._labels = load_labels(labels)
            self._build(acceleration or self._acceleration)

    def reload(self, acceleration: Optional[Acceleration] = None) -> None:
        """Release the engine and rebuild it, e.g. to switch acceleration.

        Raises:
            SessionStateError: If the session was never initialized or
                has been released.
            InvalidModelShape: See initialize.
            EngineConstructionFailure: See initialize.
        """
        with self._lock:
            if self._model is None:
                raise SessionStateError(
                    f"reload() requires an initialized session (state={self._state.value})."
                )
            self._state = SessionState.FAILED
            self._close_engine()
            self._build(acceleration or self._acceleration)

    def release(self) -> None:
        """Free the engine. Valid from any state."""
        with self._lock:
            self._close_engine()
            self._model = None
            self._state = SessionState.RELEASED
        logger.info("Session released.")

    def _build(self, acceleration: Acceleration) -> None:
        self._acceleration = Acceleration(acceleration)
        options = EngineOptions(
            acceleration=self._acceleration,
            num_threads=self._config.model.num_threads,
            gpu_delegate=self._config.model.gpu_delegate,
        )

        engine: Optional[InferenceEngine] = None
        try:
            try:
                engine = self._engine_factory(self._model, options)
            except DetectorError:
                raise
            except Exception as e:
                raise EngineConstructionFailure(f"Failed to build engine: {e}") from e

            try:
                layout = resolve_layout(engine.input_shape(0), engine.output_shape(0))
            except DetectorError:
                raise
            except Exception as e:
                raise InvalidModelShape(f"Could not read model tensor shapes: {e!r}") from e
        except DetectorError as e:
            if engine is not None:
                engine.close()
            self._state = SessionState.FAILED
            logger.error("Session initialization failed: %s", e)
            raise

        self._engine = engine
        self._layout = layout
        self._state = SessionState.READY

        if self._labels and len(self._labels) < layout.num_classes:
            logger.warning(
                "Label table has %d entries but the model has %d classes; "
                "missing names will be reported as Unknown_<index>.",
                len(self._labels), layout.num_classes,
            )

        logger.info(
            "Session ready (acceleration=%s, confidence_threshold=%.2f, iou_threshold=%.2f)",
            self._acceleration.value,
            self._config.detection.confidence_threshold,
            self._config.detection.iou_threshold,
        )

    def _close_engine(self) -> None:
        engine, self._engine, self._layout = self._engine, None, None
        if engine is not None:
            engine.close()

    # ------------------------------------------------------------------
    # Detection
    # ------------------------------------------------------------------

    def run_detection(self, frame: np.ndarray) -> DetectionResult:
        """Run one detection pass on an RGB frame.

        Args:
            frame: Image as a numpy array (H, W, C) with dtype uint8.

        Returns:
            NoDetections if nothing survived (or the pass failed), else
            Detections with boxes ordered by descending confidence. The
            same result is passed to the handler.

        Raises:
            SessionStateError: If the session is not READY.
        """
        with self._lock:
            if self._state is not SessionState.READY:
                raise SessionStateError(
                    f"run_detection() requires a ready session (state={self._state.value})."
                )
            self._state = SessionState.RUNNING
            try:
                result = self._detect(frame)
            finally:
                self._state = SessionState.READY

        if self._handler is not None:
            self._handler(result)
        return result

    def _detect(self, frame: np.ndarray) -> DetectionResult:
        detection_config = self._config.detection
        start = time.perf_counter()

        try:
            tensor = preprocess(frame, self._layout, swap_rb=self._config.model.swap_rb)
        except ValueError as e:
            logger.warning("Skipping frame: %s", e)
            return NoDetections()

        try:
            output = self._engine.run(tensor)
        except EngineExecutionFailure as e:
            logger.warning("%s. Reporting no detections for this frame.", e)
            return NoDetections()
        except Exception:
            logger.exception("Unexpected engine error. Reporting no detections for this frame.")
            return NoDetections()

        try:
            boxes = decode(
                output,
                self._layout,
                self._labels,
                confidence_threshold=detection_config.confidence_threshold,
            )
        except ValueError as e:
            logger.warning("Discarding engine output: %s", e)
            return NoDetections()

        if not boxes:
            return NoDetections()

        kept = non_max_suppression(
            boxes,
            iou_threshold=detection_config.iou_threshold,
            per_class=detection_config.per_class_nms,
        )
        elapsed_ms = int((time.perf_counter() - start) * 1000)

        logger.debug("Detected %d boxes (%d before NMS) in %d ms.", len(kept), len(boxes), elapsed_ms)
        return Detections(boxes=tuple(kept), elapsed_ms=elapsed_ms)

    # ------------------------------------------------------------------
    # Read-only accessors
    # ------------------------------------------------------------------

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def is_ready(self) -> bool:
        return self._state is SessionState.READY

    @property
    def layout(self) -> Optional[TensorLayout]:
        """Resolved tensor layout, or None when no engine is loaded."""
        return self._layout

    @property
    def labels(self) -> Tuple[str, ...]:
        return self._labels

    @property
    def acceleration(self) -> Acceleration:
        """Acceleration requested for the current (or last) engine build."""
        return self._acceleration

    @property
    def config(self) -> AppConfig:
        """Return the active configuration (read-only)."""
        return self._config
