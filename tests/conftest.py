"""
Shared fixtures: a scriptable stand-in for the inference engine.
"""

import threading
from typing import List, Optional, Sequence

import numpy as np
import pytest

from guidance_detector.config import AppConfig
from guidance_detector.errors import EngineExecutionFailure


class FakeEngine:
    """In-memory engine returning a preset output for every run."""

    def __init__(
        self,
        input_shape: Sequence[int] = (1, 64, 64, 3),
        output_shape: Sequence[int] = (1, 7, 4),
        output: Optional[np.ndarray] = None,
    ) -> None:
        self._input_shape = tuple(input_shape)
        self._output_shape = tuple(output_shape)
        size = int(np.prod(self._output_shape))
        self.output = np.zeros(size, dtype=np.float32) if output is None else output
        self.fail_next = False
        self.closed = False
        self.inputs: List[np.ndarray] = []
        self.started = threading.Event()
        self.gate: Optional[threading.Event] = None

    def input_shape(self, index: int = 0):
        return self._input_shape

    def output_shape(self, index: int = 0):
        return self._output_shape

    def run(self, input_tensor: np.ndarray) -> np.ndarray:
        self.inputs.append(input_tensor)
        self.started.set()
        if self.gate is not None:
            self.gate.wait(timeout=5)
        if self.fail_next:
            self.fail_next = False
            raise EngineExecutionFailure("simulated failure")
        return self.output.reshape(self._output_shape)

    def close(self) -> None:
        self.closed = True


class FakeEngineFactory:
    """Engine factory recording every build request."""

    def __init__(self, engine: Optional[FakeEngine] = None, error: Optional[Exception] = None):
        self.engine = engine or FakeEngine()
        self.error = error
        self.calls = []

    def __call__(self, model, options):
        self.calls.append((model, options))
        if self.error is not None:
            raise self.error
        return self.engine


def make_output(num_classes: int, detections: Sequence[Sequence[float]]) -> np.ndarray:
    """Build a flat [detection][attribute] output array.

    Each detection is (cx, cy, w, h, score_0, ..., score_{C-1}).
    """
    rows = np.asarray(detections, dtype=np.float32).reshape(len(detections), 4 + num_classes)
    return rows.reshape(-1)


@pytest.fixture
def config() -> AppConfig:
    return AppConfig()


@pytest.fixture
def frame() -> np.ndarray:
    return np.full((48, 80, 3), 128, dtype=np.uint8)
