"""
Frame sources for the command-line runner.

Responsibility:
    Turn an image, a directory of images, a video file or a webcam index
    into a stream of (frame_id, rgb_frame) tuples for the detection
    worker. Live capture on the target device is handled by the host
    application; this module only exists so the pipeline can be exercised
    from the command line.

Robustness:
    - Validates the source at initialization time.
    - Logs and skips unreadable frames (never crashes the pipeline).
    - Releases capture handles on cleanup.
"""

import logging
from pathlib import Path
from typing import Iterator, List, Optional, Tuple, Union

import cv2
import numpy as np

logger = logging.getLogger(__name__)

IMAGE_EXTENSIONS = {".jpg", ".jpeg", ".png", ".bmp", ".webp"}
VIDEO_EXTENSIONS = {".mp4", ".avi", ".mov", ".mkv"}

# Consecutive failed webcam reads before giving up on the stream
_MAX_READ_FAILURES = 30


class InputHandler:
    """Uniform RGB frame iterator for images, videos, and webcam streams.

    The source type is auto-detected at initialization:
        - Digit string or int       → webcam device index
        - File with image extension → single image
        - File with video extension → video file
        - Directory                 → all images in it (sorted)
    """

    def __init__(
        self,
        source: Union[str, int],
        resize_width: Optional[int] = None,
    ) -> None:
        """Validate the source and open it if it is a stream.

        Raises:
            FileNotFoundError: If a file/directory source does not exist.
            ValueError: If the source type cannot be determined.
            RuntimeError: If a video/webcam source cannot be opened.
        """
        self._resize_width = resize_width
        self._cap: Optional[cv2.VideoCapture] = None
        self._image_paths: List[Path] = []

        text = str(source).strip()
        path = Path(text)

        if text.isdigit():
            self.mode = "webcam"
            self._open_capture(int(text))
        elif path.is_file():
            ext = path.suffix.lower()
            if ext in IMAGE_EXTENSIONS:
                self.mode = "image"
                self._image_paths = [path]
            elif ext in VIDEO_EXTENSIONS:
                self.mode = "video"
                self._open_capture(str(path))
            else:
                raise ValueError(
                    f"Unrecognized file extension: '{ext}' for source '{text}'. "
                    f"Supported images: {IMAGE_EXTENSIONS}. "
                    f"Supported videos: {VIDEO_EXTENSIONS}."
                )
        elif path.is_dir():
            self.mode = "directory"
            self._image_paths = sorted(
                p for p in path.iterdir() if p.suffix.lower() in IMAGE_EXTENSIONS
            )
            if not self._image_paths:
                raise ValueError(f"No image files found in directory: '{text}'.")
        else:
            raise FileNotFoundError(
                f"Input source not found: '{text}'. "
                f"Provide a valid file path, directory, or device index."
            )

        logger.info("InputHandler initialized: mode=%s, source=%s", self.mode, text)

    def _open_capture(self, source: Union[str, int]) -> None:
        self._cap = cv2.VideoCapture(source)
        if not self._cap.isOpened():
            raise RuntimeError(f"Failed to open capture source {source!r}.")

    def __iter__(self) -> Iterator[Tuple[int, np.ndarray]]:
        if self._cap is None:
            yield from self._iterate_images()
        else:
            yield from self._iterate_capture()

    def _iterate_images(self) -> Iterator[Tuple[int, np.ndarray]]:
        for idx, path in enumerate(self._image_paths):
            frame = cv2.imread(str(path))
            if frame is None:
                logger.warning("Skipping unreadable image (frame_id=%d): %s", idx, path)
                continue
            yield idx, self._to_rgb(frame)

    def _iterate_capture(self) -> Iterator[Tuple[int, np.ndarray]]:
        frame_id = 0
        failures = 0

        while True:
            ok, frame = self._cap.read()
            if not ok or frame is None:
                if self.mode == "video":
                    logger.info("End of video reached at frame %d.", frame_id)
                    break
                failures += 1
                if failures >= _MAX_READ_FAILURES:
                    logger.error(
                        "Webcam produced %d consecutive failed reads. Stopping.",
                        _MAX_READ_FAILURES,
                    )
                    break
                frame_id += 1
                continue

            failures = 0
            yield frame_id, self._to_rgb(frame)
            frame_id += 1

    def _to_rgb(self, frame: np.ndarray) -> np.ndarray:
        """Convert an OpenCV BGR frame to RGB, downscaling if configured."""
        if self._resize_width is not None:
            h, w = frame.shape[:2]
            if w > self._resize_width:
                new_h = int(h * self._resize_width / w)
                frame = cv2.resize(frame, (self._resize_width, new_h), interpolation=cv2.INTER_AREA)
        return cv2.cvtColor(frame, cv2.COLOR_BGR2RGB)

    def release(self) -> None:
        """Release the capture handle, if any."""
        if self._cap is not None:
            self._cap.release()
            self._cap = None
            logger.debug("VideoCapture released.")
