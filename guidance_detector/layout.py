"""
Tensor layout resolution.

Responsibility:
    Inspect the engine's declared input and output tensor shapes once per
    model load and derive the input pixel dimensions and the detection
    record layout the rest of the pipeline relies on.

Hard-coded:
    - Input is rank 4. Channel-first (N, C, H, W) is assumed when the
      second dimension equals 3, channel-last (N, H, W, C) otherwise.
      A 3-channel channel-last model whose height is also 3 would be
      misread; this ambiguity is accepted.
    - Output is rank 3, shaped (1, 4 + num_classes, num_detections).
"""

import logging
from dataclasses import dataclass
from typing import Sequence, Tuple

from guidance_detector.errors import InvalidModelShape

logger = logging.getLogger(__name__)

# Fixed geometry attributes per detection: cx, cy, w, h
BOX_ATTRIBUTES = 4


@dataclass(frozen=True)
class TensorLayout:
    """Model input/output geometry derived from the engine's tensor shapes.

    Attributes:
        input_width: Pixel width the model expects.
        input_height: Pixel height the model expects.
        input_channels: Channel count of the input tensor.
        channels_first: True for (N, C, H, W), False for (N, H, W, C).
        num_classes: Number of per-class score attributes.
        num_detections: Number of candidate detection slots.
        input_shape: Input tensor shape as reported by the engine.
        output_shape: Output tensor shape as reported by the engine.
    """

    input_width: int
    input_height: int
    input_channels: int
    channels_first: bool
    num_classes: int
    num_detections: int
    input_shape: Tuple[int, ...]
    output_shape: Tuple[int, ...]

    @property
    def num_attributes(self) -> int:
        """Values per detection record (box geometry + class scores)."""
        return BOX_ATTRIBUTES + self.num_classes

    @property
    def output_size(self) -> int:
        """Expected element count of the flat output array."""
        return self.num_detections * self.num_attributes


def resolve_layout(
    input_shape: Sequence[int],
    output_shape: Sequence[int],
) -> TensorLayout:
    """Derive a TensorLayout from input tensor 0 and output tensor 0 shapes.

    Args:
        input_shape: Shape of the engine's first input tensor.
        output_shape: Shape of the engine's first output tensor.

    Returns:
        The resolved TensorLayout.

    Raises:
        InvalidModelShape: If the input is not rank 4, the output is not
            rank 3 with batch 1, or a derived dimension is not usable.
    """
    in_shape = tuple(int(d) for d in input_shape)
    out_shape = tuple(int(d) for d in output_shape)

    if len(in_shape) != 4:
        raise InvalidModelShape(
            f"Unsupported input tensor shape: {list(in_shape)}. "
            f"Expected 4 dimensions."
        )

    if in_shape[1] == 3:
        channels_first = True
        channels, height, width = in_shape[1], in_shape[2], in_shape[3]
    else:
        channels_first = False
        height, width, channels = in_shape[1], in_shape[2], in_shape[3]

    if width <= 0 or height <= 0 or channels <= 0:
        raise InvalidModelShape(
            f"Input tensor shape {list(in_shape)} has non-positive dimensions."
        )

    if len(out_shape) != 3 or out_shape[0] != 1:
        raise InvalidModelShape(
            f"Unsupported output tensor shape: {list(out_shape)}. "
            f"Expected [1, C+4, N]."
        )

    num_classes = out_shape[1] - BOX_ATTRIBUTES
    if num_classes < 0:
        raise InvalidModelShape(
            f"Output tensor shape {list(out_shape)} has fewer than "
            f"{BOX_ATTRIBUTES} attributes per detection."
        )

    if out_shape[2] <= 0:
        raise InvalidModelShape(
            f"Output tensor shape {list(out_shape)} has non-positive detection count."
        )

    layout = TensorLayout(
        input_width=width,
        input_height=height,
        input_channels=channels,
        channels_first=channels_first,
        num_classes=num_classes,
        num_detections=out_shape[2],
        input_shape=in_shape,
        output_shape=out_shape,
    )

    logger.info(
        "Model input: W=%d H=%d C=%d (%s). Output: classes=%d, detections=%d.",
        width, height, channels,
        "channels-first" if channels_first else "channels-last",
        layout.num_classes, layout.num_detections,
    )
    return layout
