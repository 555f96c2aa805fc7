"""
Preprocessing for the detection pipeline.

Responsibility:
    Convert a raw RGB frame (numpy array) into the exact float32 tensor
    the model's input expects: resized to the model's width and height,
    rescaled from [0, 255] to [0, 1], laid out channel-first or
    channel-last to match the engine.

Non-goals:
    - No frame acquisition or I/O.
    - No letterboxing, cropping, or aspect-ratio preservation. The
      distortion from non-uniform scaling is accepted.

Hard-coded:
    - Normalization is (x - INPUT_MEAN) / INPUT_STD with mean 0, std 255.
    - Nearest-neighbour sampling (unfiltered scaling).
"""

import cv2
import numpy as np

from guidance_detector.layout import TensorLayout

INPUT_MEAN = 0.0
INPUT_STD = 255.0


def preprocess(
    frame: np.ndarray,
    layout: TensorLayout,
    swap_rb: bool = False,
) -> np.ndarray:
    """Convert a raw frame into a model input tensor.

    Args:
        frame: Input image as an RGB numpy array (H, W, C), any size.
        layout: Resolved tensor layout providing the target dimensions.
        swap_rb: Set when the frame is BGR (as returned by OpenCV) so the
                 red and blue channels are swapped before normalization.

    Returns:
        A float32 array whose shape equals layout.input_shape, i.e.
        (1, H, W, C) or (1, C, H, W).

    Raises:
        ValueError: If the frame is empty or its channel count does not
            match the model input.
    """
    if frame is None or frame.size == 0:
        raise ValueError(
            "Cannot preprocess an empty frame. "
            "Ensure the input source is providing valid frames."
        )

    if frame.ndim != 3 or frame.shape[2] != layout.input_channels:
        raise ValueError(
            f"Expected a frame with shape (H, W, {layout.input_channels}), "
            f"got {frame.shape}."
        )

    resized = cv2.resize(
        frame,
        (layout.input_width, layout.input_height),
        interpolation=cv2.INTER_NEAREST,
    )
    if resized.ndim == 2:
        # cv2.resize drops a singleton channel axis
        resized = resized[:, :, np.newaxis]

    if swap_rb and layout.input_channels == 3:
        resized = resized[:, :, [2, 1, 0]]

    tensor = (resized.astype(np.float32) - INPUT_MEAN) / INPUT_STD

    if layout.channels_first:
        tensor = tensor.transpose(2, 0, 1)

    return np.ascontiguousarray(tensor[np.newaxis, ...], dtype=np.float32)
