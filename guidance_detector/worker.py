"""
Single-worker execution for an InferenceSession.

Responsibility:
    Run initialize, reload, release and every detection pass serially on
    one dedicated thread, and apply the keep-only-latest delivery policy
    for frames arriving faster than they can be processed.

Frame delivery:
    submit_frame never blocks and never queues more than one frame. While
    a pass is in flight, a newer frame replaces the pending one and the
    replaced frame is counted as dropped. Frames arriving while the
    session is not READY are dropped as well. In-flight passes are never
    cancelled.

Non-goals:
    - No frame acquisition.
    - No parallel inference.
"""

import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Optional

import numpy as np

from guidance_detector.labels import LabelSource
from guidance_detector.model_loader import Acceleration, ModelSource
from guidance_detector.session import InferenceSession

logger = logging.getLogger(__name__)


class DetectionWorker:
    """Serializes all session work on a single background thread.

    Usage:
        worker = DetectionWorker(session)
        worker.initialize(model_bytes, labels).result()   # raises on fatal errors
        for frame in frames:
            worker.submit_frame(frame)                    # results go to the session handler
        worker.shutdown()
    """

    def __init__(self, session: InferenceSession) -> None:
        self._session = session
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="detector")
        self._lock = threading.Lock()
        self._pending: Optional[np.ndarray] = None
        self._busy = False
        self._idle = threading.Event()
        self._idle.set()
        self._closed = False
        self.dropped_frames = 0
        self.processed_frames = 0

    @property
    def session(self) -> InferenceSession:
        return self._session

    def initialize(
        self,
        model: ModelSource,
        labels: LabelSource = None,
        acceleration: Optional[Acceleration] = None,
    ) -> Future:
        """Schedule InferenceSession.initialize on the worker thread."""
        return self._executor.submit(self._session.initialize, model, labels, acceleration)

    def reload(self, acceleration: Optional[Acceleration] = None) -> Future:
        """Schedule InferenceSession.reload after any in-flight pass."""
        return self._executor.submit(self._session.reload, acceleration)

    def release(self) -> Future:
        """Schedule InferenceSession.release; the worker stays usable."""
        return self._executor.submit(self._session.release)

    def detect(self, frame: np.ndarray) -> Future:
        """Schedule a pass for this exact frame, bypassing frame dropping.

        Meant for offline sources where every frame matters. The future
        resolves to the DetectionResult, or raises SessionStateError when
        the session is not READY by the time the pass runs.
        """
        return self._executor.submit(self._session.run_detection, frame)

    def submit_frame(self, frame: np.ndarray) -> None:
        """Hand a frame to the worker, replacing any frame still waiting."""
        with self._lock:
            if self._closed:
                logger.debug("Worker is shut down; dropping frame.")
                self.dropped_frames += 1
                return

            if self._pending is not None:
                self.dropped_frames += 1
                logger.debug("Dropping stale frame (total dropped: %d).", self.dropped_frames)
            self._pending = frame

            if self._busy:
                return
            self._busy = True
            self._idle.clear()
            self._executor.submit(self._process_pending)

    def _process_pending(self) -> None:
        with self._lock:
            frame, self._pending = self._pending, None

        if frame is not None:
            self._run(frame)

        # Yield between frames so queued reload/release calls run in order.
        with self._lock:
            if self._pending is not None and not self._closed:
                self._executor.submit(self._process_pending)
                return
            if self._pending is not None:
                self.dropped_frames += 1
                self._pending = None
            self._busy = False
            self._idle.set()

    def _run(self, frame: np.ndarray) -> None:
        if not self._session.is_ready:
            logger.debug(
                "Session not ready (state=%s); dropping frame.",
                self._session.state.value,
            )
            with self._lock:
                self.dropped_frames += 1
            return

        try:
            self._session.run_detection(frame)
        except Exception:
            logger.exception("Detection pass failed.")
        with self._lock:
            self.processed_frames += 1

    def flush(self, timeout: Optional[float] = None) -> bool:
        """Block until no frame is pending or in flight.

        Returns:
            False if the timeout expired first.
        """
        return self._idle.wait(timeout)

    def shutdown(self, wait: bool = True) -> None:
        """Finish pending work, release the session and stop the thread."""
        if wait:
            self.flush()
        with self._lock:
            if self._closed:
                return
            self._closed = True

        self._executor.submit(self._session.release)
        self._executor.shutdown(wait=wait)
        logger.info(
            "Worker stopped (processed=%d, dropped=%d).",
            self.processed_frames, self.dropped_frames,
        )

    def __enter__(self) -> "DetectionWorker":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.shutdown()
