"""
Model loading and the inference engine boundary.

Responsibility:
    Build a ready-to-infer engine from model bytes or a model file and
    expose the narrow contract the session relies on: tensor shapes, a
    synchronous run, and close.

Non-goals:
    - No preprocessing or decoding.
    - No automatic model downloading.
    - No delegate selection beyond "GPU if supported, else CPU threads".

Failure behavior:
    - A missing model file, a missing runtime, or a model the interpreter
      rejects raises EngineConstructionFailure.
    - An unsupported GPU delegate is not an error: the engine falls back
      to the CPU path with a fixed thread count.
    - A failed run raises EngineExecutionFailure.
"""

import logging
import os
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any, Optional, Protocol, Tuple, Union

import numpy as np

from guidance_detector.errors import EngineConstructionFailure, EngineExecutionFailure

logger = logging.getLogger(__name__)

ModelSource = Union[bytes, str, os.PathLike]


class Acceleration(str, Enum):
    """Requested execution path."""

    GPU = "gpu"
    CPU = "cpu"


@dataclass(frozen=True)
class EngineOptions:
    """Options passed to an engine factory.

    Attributes:
        acceleration: GPU delegate (with CPU fallback) or CPU only.
        num_threads: Interpreter threads on the CPU path.
        gpu_delegate: Shared library name of the GPU delegate.
    """

    acceleration: Acceleration = Acceleration.GPU
    num_threads: int = 4
    gpu_delegate: str = "libtensorflowlite_gpu_delegate.so"


class InferenceEngine(Protocol):
    """What the session needs from an inference engine."""

    def input_shape(self, index: int = 0) -> Tuple[int, ...]:
        ...

    def output_shape(self, index: int = 0) -> Tuple[int, ...]:
        ...

    def run(self, input_tensor: np.ndarray) -> np.ndarray:
        ...

    def close(self) -> None:
        ...


class TFLiteEngine:
    """InferenceEngine backed by a TensorFlow Lite interpreter."""

    def __init__(self, interpreter: Any, accelerated: bool) -> None:
        self._interpreter = interpreter
        self.accelerated = accelerated

    def input_shape(self, index: int = 0) -> Tuple[int, ...]:
        details = self._interpreter.get_input_details()[index]
        return tuple(int(d) for d in details["shape"])

    def output_shape(self, index: int = 0) -> Tuple[int, ...]:
        details = self._interpreter.get_output_details()[index]
        return tuple(int(d) for d in details["shape"])

    def run(self, input_tensor: np.ndarray) -> np.ndarray:
        """Run one synchronous inference and return output tensor 0."""
        if self._interpreter is None:
            raise EngineExecutionFailure("Interpreter has been closed.")
        try:
            input_index = self._interpreter.get_input_details()[0]["index"]
            output_index = self._interpreter.get_output_details()[0]["index"]
            self._interpreter.set_tensor(input_index, input_tensor)
            self._interpreter.invoke()
            return self._interpreter.get_tensor(output_index)
        except (RuntimeError, ValueError) as e:
            raise EngineExecutionFailure(f"Error during TFLite inference: {e}") from e

    def close(self) -> None:
        # The interpreter frees its buffers when the last reference drops.
        self._interpreter = None
        logger.info("Interpreter closed.")


def _import_tflite():
    try:
        from tflite_runtime import interpreter as tflite  # type: ignore
    except ImportError as e:
        raise EngineConstructionFailure(
            "tflite_runtime is not installed. Install with "
            "`pip install tflite-runtime` or supply a custom engine factory."
        ) from e
    return tflite


def _load_gpu_delegate(tflite, library: str) -> Optional[Any]:
    """Return the GPU delegate, or None when the device does not support it."""
    try:
        return tflite.load_delegate(library)
    except (ValueError, OSError) as e:
        logger.debug("GPU delegate %s unavailable: %s", library, e)
        return None


def load_model(model: ModelSource, options: Optional[EngineOptions] = None) -> TFLiteEngine:
    """Build a TFLite engine from model bytes or a model file path.

    Args:
        model: Raw .tflite bytes, or a path (relative paths are used as is).
        options: Acceleration preference and CPU thread count.

    Returns:
        A TFLiteEngine with tensors allocated.

    Raises:
        EngineConstructionFailure: If the runtime is missing, the model
            file does not exist, or the interpreter rejects the model.
    """
    options = options or EngineOptions()
    tflite = _import_tflite()

    kwargs = {}
    if isinstance(model, (bytes, bytearray)):
        kwargs["model_content"] = bytes(model)
    else:
        path = Path(model)
        if not path.is_file():
            raise EngineConstructionFailure(
                f"Model file not found.\n"
                f"  Expected: {path}\n"
                f"  Provide the file or update 'model.model_path' in your config."
            )
        kwargs["model_path"] = str(path)

    delegate = None
    if options.acceleration is Acceleration.GPU:
        delegate = _load_gpu_delegate(tflite, options.gpu_delegate)

    if delegate is not None:
        kwargs["experimental_delegates"] = [delegate]
        logger.info("GPU delegate applied.")
    else:
        kwargs["num_threads"] = options.num_threads
        if options.acceleration is Acceleration.GPU:
            logger.info(
                "GPU not supported on this device, using CPU with %d threads.",
                options.num_threads,
            )
        else:
            logger.info("Using CPU with %d threads.", options.num_threads)

    try:
        interpreter = tflite.Interpreter(**kwargs)
        interpreter.allocate_tensors()
    except (ValueError, RuntimeError) as e:
        raise EngineConstructionFailure(
            f"Failed to initialize TFLite interpreter: {e}"
        ) from e

    logger.info("Model loaded successfully.")
    return TFLiteEngine(interpreter, accelerated=delegate is not None)
