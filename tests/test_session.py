"""
Tests for the inference session.
"""

import numpy as np
import pytest

from conftest import FakeEngine, FakeEngineFactory, make_output
from guidance_detector.config import AppConfig, DetectionConfig
from guidance_detector.detection import Detections, NoDetections
from guidance_detector.errors import (
    EngineConstructionFailure,
    InvalidModelShape,
    SessionStateError,
)
from guidance_detector.model_loader import Acceleration
from guidance_detector.session import InferenceSession, SessionState

LABELS = ["person", "bicycle", "car"]


def _session(engine=None, handler=None, config=None, error=None):
    factory = FakeEngineFactory(engine, error=error)
    session = InferenceSession(config or AppConfig(), engine_factory=factory, handler=handler)
    return session, factory


def test_initialize_resolves_layout():
    """Test a successful initialization."""
    session, factory = _session()
    assert session.state is SessionState.UNINITIALIZED

    session.initialize(b"model", LABELS)

    assert session.state is SessionState.READY
    assert session.is_ready
    assert session.layout.num_classes == 3
    assert session.layout.num_detections == 4
    assert session.labels == tuple(LABELS)

    model, options = factory.calls[0]
    assert model == b"model"
    assert options.acceleration is Acceleration.GPU
    assert options.num_threads == 4


def test_detection_pipeline(frame):
    """Test preprocess, decode and suppression end to end."""
    engine = FakeEngine(output=make_output(3, [
        (0.5, 0.5, 0.2, 0.4, 0.1, 0.2, 0.9),
        (0.5, 0.52, 0.2, 0.4, 0.1, 0.8, 0.1),   # overlaps the first, lower score
        (0.1, 0.1, 0.1, 0.1, 0.95, 0.0, 0.0),
        (0.9, 0.9, 0.1, 0.1, 0.2, 0.2, 0.2),    # below threshold
    ]))
    received = []
    session, _ = _session(engine, handler=received.append)
    session.initialize(b"model", LABELS)

    result = session.run_detection(frame)

    assert isinstance(result, Detections)
    assert received == [result]
    assert [b.class_name for b in result.boxes] == ["person", "car"]
    assert result.boxes[1].x1 == pytest.approx(0.4)
    assert result.elapsed_ms >= 0
    assert isinstance(result.elapsed_ms, int)

    # the engine saw a tensor matching its declared input
    assert engine.inputs[0].shape == (1, 64, 64, 3)
    assert engine.inputs[0].dtype == np.float32
    assert session.state is SessionState.READY


def test_all_below_threshold_reports_no_detections(frame):
    """Test the quiet frame outcome."""
    received = []
    session, _ = _session(handler=received.append)
    session.initialize(b"model", LABELS)

    result = session.run_detection(frame)

    assert result == NoDetections()
    assert received == [NoDetections()]


def test_engine_failure_is_not_fatal(frame):
    """A failed run reports no detections and the session stays ready."""
    engine = FakeEngine(output=make_output(3, [(0.5, 0.5, 0.2, 0.2, 0.9, 0, 0)] + [(0, 0, 0, 0, 0, 0, 0)] * 3))
    engine.fail_next = True
    received = []
    session, _ = _session(engine, handler=received.append)
    session.initialize(b"model", LABELS)

    assert isinstance(session.run_detection(frame), NoDetections)
    assert session.state is SessionState.READY
    assert isinstance(session.run_detection(frame), Detections)
    assert len(received) == 2


def test_bad_frame_reports_no_detections():
    """A frame the preprocessor rejects is absorbed as no detections."""
    session, _ = _session()
    session.initialize(b"model", LABELS)

    result = session.run_detection(np.zeros((10, 10), dtype=np.uint8))

    assert isinstance(result, NoDetections)
    assert session.is_ready


@pytest.mark.parametrize("input_shape,output_shape", [
    ((1, 64, 64), (1, 7, 4)),
    ((1, 64, 64, 3), (1, 7)),
    ((1, 64, 64, 3), (2, 7, 4)),
])
def test_invalid_shapes_fail_initialization(input_shape, output_shape):
    """Malformed tensor shapes are fatal and leave the session FAILED."""
    engine = FakeEngine(input_shape=input_shape, output_shape=output_shape)
    session, _ = _session(engine)

    with pytest.raises(InvalidModelShape):
        session.initialize(b"model", LABELS)

    assert session.state is SessionState.FAILED
    assert engine.closed
    with pytest.raises(SessionStateError):
        session.run_detection(np.zeros((8, 8, 3), dtype=np.uint8))


def test_engine_construction_failure():
    """Factory errors surface as EngineConstructionFailure."""
    session, _ = _session(error=OSError("bad weights"))

    with pytest.raises(EngineConstructionFailure, match="bad weights"):
        session.initialize(b"model", LABELS)

    assert session.state is SessionState.FAILED


def test_label_failure_is_not_fatal(tmp_path):
    """A missing label file leaves the session usable with synthetic names."""
    session, _ = _session()
    session.initialize(b"model", tmp_path / "missing.txt")

    assert session.is_ready
    assert session.labels == ()


def test_run_before_initialize():
    session, _ = _session()
    with pytest.raises(SessionStateError):
        session.run_detection(np.zeros((8, 8, 3), dtype=np.uint8))


def test_reload_switches_acceleration():
    """Reload closes the old engine and rebuilds with the new preference."""
    session, factory = _session()
    session.initialize(b"model", LABELS)

    session.reload(Acceleration.CPU)

    assert factory.engine.closed
    assert session.is_ready
    assert session.acceleration is Acceleration.CPU
    assert [options.acceleration for _, options in factory.calls] == [
        Acceleration.GPU, Acceleration.CPU,
    ]
    assert factory.calls[1][0] == b"model"


def test_reload_recovers_from_failure():
    """A FAILED session returns to READY after a successful reload."""
    session, factory = _session(error=EngineConstructionFailure("no delegate"))
    with pytest.raises(EngineConstructionFailure):
        session.initialize(b"model", LABELS, acceleration=Acceleration.GPU)
    assert session.state is SessionState.FAILED

    factory.error = None
    session.reload(Acceleration.CPU)

    assert session.is_ready


def test_release_from_any_state(frame):
    """Release frees the engine and requires a new initialize."""
    session, factory = _session()
    session.release()
    assert session.state is SessionState.RELEASED

    session.initialize(b"model", LABELS)
    session.release()

    assert factory.engine.closed
    assert session.layout is None
    with pytest.raises(SessionStateError):
        session.run_detection(frame)
    with pytest.raises(SessionStateError):
        session.reload()

    session.initialize(b"model", LABELS)
    assert session.is_ready


def test_thresholds_from_config(frame):
    """Confidence threshold and per-class NMS come from configuration."""
    engine = FakeEngine(output=make_output(3, [
        (0.5, 0.5, 0.2, 0.4, 0.6, 0.0, 0.0),
        (0.5, 0.5, 0.2, 0.4, 0.0, 0.55, 0.0),
        (0, 0, 0, 0, 0, 0, 0),
        (0, 0, 0, 0, 0, 0, 0),
    ]))
    config = AppConfig(detection=DetectionConfig(confidence_threshold=0.5, per_class_nms=True))
    session, _ = _session(engine, config=config)
    session.initialize(b"model", LABELS)

    result = session.run_detection(frame)

    assert [b.class_index for b in result.boxes] == [0, 1]


class _NoOutputTensorEngine(FakeEngine):
    """Engine whose model declares no output tensor."""

    def output_shape(self, index: int = 0):
        return [][index]


def test_shape_query_failure_fails_initialization():
    """An engine that cannot report its shapes is a fatal init error."""
    engine = _NoOutputTensorEngine()
    session, _ = _session(engine)

    with pytest.raises(InvalidModelShape, match="Could not read model tensor shapes") as exc:
        session.initialize(b"model", LABELS)

    assert isinstance(exc.value.__cause__, IndexError)
    assert session.state is SessionState.FAILED
    assert engine.closed
    with pytest.raises(SessionStateError):
        session.run_detection(np.zeros((8, 8, 3), dtype=np.uint8))


def test_failed_reload_from_ready_leaves_session_failed(frame):
    """A reload that cannot resolve shapes drops READY and closes both engines."""
    session, factory = _session()
    session.initialize(b"model", LABELS)
    first = factory.engine
    assert session.is_ready

    broken = _NoOutputTensorEngine()
    factory.engine = broken
    with pytest.raises(InvalidModelShape):
        session.reload(Acceleration.CPU)

    assert session.state is SessionState.FAILED
    assert first.closed
    assert broken.closed
    assert session.layout is None
    with pytest.raises(SessionStateError):
        session.run_detection(frame)

    factory.engine = FakeEngine()
    session.reload()
    assert session.is_ready
