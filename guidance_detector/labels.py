"""
Label table loading.

The label source is newline-delimited text, one class name per line, with
the 0-based line number as the class index. Empty lines are kept as
literal (empty) labels so indices never shift.
"""

import logging
import os
from pathlib import Path
from typing import Sequence, Tuple, Union

from guidance_detector.errors import LabelLoadFailure

logger = logging.getLogger(__name__)

LabelSource = Union[str, os.PathLike, bytes, Sequence[str], None]


def parse_labels(text: str) -> Tuple[str, ...]:
    """Split label text into an index-addressed tuple."""
    return tuple(text.splitlines())


def read_labels(source: LabelSource) -> Tuple[str, ...]:
    """Read a label table, raising on failure.

    Args:
        source: A path to a label file, raw label file bytes, an already
                split sequence of names, or None for no labels.

    Raises:
        LabelLoadFailure: If the file cannot be read or decoded.
    """
    if source is None:
        return ()

    if isinstance(source, bytes):
        try:
            return parse_labels(source.decode("utf-8"))
        except UnicodeDecodeError as e:
            raise LabelLoadFailure(f"Label bytes are not valid UTF-8: {e}") from e

    if isinstance(source, (str, os.PathLike)):
        path = Path(source)
        try:
            return parse_labels(path.read_text(encoding="utf-8"))
        except (OSError, UnicodeDecodeError) as e:
            raise LabelLoadFailure(f"Error loading labels from {path}: {e}") from e

    return tuple(str(name) for name in source)


def load_labels(source: LabelSource) -> Tuple[str, ...]:
    """Read a label table, logging failures instead of raising.

    A missing or corrupt label resource is not fatal: detections fall back
    to synthetic "Unknown_<index>" names.
    """
    try:
        labels = read_labels(source)
    except LabelLoadFailure as e:
        logger.warning("%s. Continuing without labels.", e)
        return ()

    logger.info("Loaded %d labels.", len(labels))
    return labels


def class_name(labels: Sequence[str], index: int) -> str:
    """Resolve a class index to its label, or "Unknown_<index>"."""
    if 0 <= index < len(labels):
        return labels[index]
    return f"Unknown_{index}"
