"""
Guidance Detector CLI Entrypoint.

Responsibility:
    Parse command-line arguments, configure the application, wire an
    InferenceSession behind a DetectionWorker, feed it frames and log or
    export the results.

Usage:
    python main.py --source images/                  # Directory of images
    python main.py --source clip.mp4 --output-mode log,save_json
    python main.py --source 0 --backend cpu          # Webcam, keep-latest frames
    python main.py --config my_config.yaml

This module is the executable entry point. It should not be imported
by other modules.
"""

import argparse
import logging
import sys
import time
from dataclasses import replace
from typing import Dict

# Configure logging before importing local modules
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    datefmt="%H:%M:%S",
)
logger = logging.getLogger("main")

from guidance_detector.config import AppConfig, load_config, resolve_path, validate
from guidance_detector.detection import DetectionResult, Detections
from guidance_detector.errors import DetectorError
from guidance_detector.input_handler import InputHandler
from guidance_detector.serializer import save_csv, save_json
from guidance_detector.session import InferenceSession
from guidance_detector.worker import DetectionWorker


def parse_args(argv=None) -> argparse.Namespace:
    """Parse command-line arguments."""
    parser = argparse.ArgumentParser(
        description="Guidance Detector: run the detection pipeline over a frame source",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )

    parser.add_argument(
        "--source",
        type=str,
        help="Input source: '0' for webcam, path to image/video file, or directory.",
    )
    parser.add_argument(
        "--config",
        type=str,
        help="Path to YAML configuration file.",
    )
    parser.add_argument(
        "--confidence",
        type=float,
        help="Detection confidence threshold (0.0 - 1.0). Overrides config.",
    )
    parser.add_argument(
        "--iou",
        type=float,
        help="NMS IoU threshold (0.0 - 1.0). Overrides config.",
    )
    parser.add_argument(
        "--backend",
        type=str,
        choices=["gpu", "cpu"],
        help="Acceleration preference. 'gpu' falls back to CPU when unsupported. "
             "Overrides config.",
    )
    parser.add_argument(
        "--output-mode",
        type=str,
        help="Output mode(s), comma separated: log, save_json, save_csv. Overrides config.",
    )
    parser.add_argument(
        "--output-path",
        type=str,
        help="Directory for output artifacts. Overrides config.",
    )
    parser.add_argument(
        "--log-level",
        type=str,
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Root logging level.",
    )

    return parser.parse_args(argv)


def apply_overrides(config: AppConfig, args: argparse.Namespace) -> AppConfig:
    """Return a copy of config with CLI arguments applied on top."""
    model, detection = config.model, config.detection
    inputs, output = config.input, config.output

    if args.source is not None:
        inputs = replace(inputs, source=args.source)
    if args.confidence is not None:
        detection = replace(detection, confidence_threshold=args.confidence)
    if args.iou is not None:
        detection = replace(detection, iou_threshold=args.iou)
    if args.backend is not None:
        model = replace(model, backend=args.backend)
    if args.output_mode is not None:
        output = replace(output, mode=args.output_mode.lower())
    if args.output_path is not None:
        output = replace(output, save_path=args.output_path)

    return AppConfig(model=model, detection=detection, input=inputs, output=output)


def log_result(frame_id: int, result: DetectionResult) -> None:
    if not isinstance(result, Detections):
        logger.debug("Frame %d: no detections.", frame_id)
        return
    summary = ", ".join(f"{b.class_name}:{b.confidence:.2f}" for b in result.boxes)
    logger.info("Frame %d: %d boxes in %d ms [%s]", frame_id, len(result.boxes), result.elapsed_ms, summary)


def _cleanup(input_handler, worker) -> None:
    if worker is not None:
        worker.shutdown()
    if input_handler is not None:
        input_handler.release()


def main(argv=None) -> int:
    """Main execution loop."""
    args = parse_args(argv)
    logging.getLogger().setLevel(args.log_level)

    # 1. Load Configuration (CLI args > ENV > YAML > Defaults)
    try:
        config = apply_overrides(load_config(args.config), args)
        validate(config)
        logger.info("Configuration active for this run.")
    except Exception as e:
        logger.error("Configuration error: %s", e)
        return 1

    results: Dict[int, DetectionResult] = {}
    modes = config.output.modes
    live_pass = [0]

    def on_result(result: DetectionResult) -> None:
        # Live sources drop frames, so results are keyed by pass number.
        if input_handler.mode == "webcam":
            if "log" in modes:
                log_result(live_pass[0], result)
            results[live_pass[0]] = result
            live_pass[0] += 1

    # 2. Initialize Components
    input_handler = None
    worker = None
    try:
        input_handler = InputHandler(
            source=config.input.source,
            resize_width=config.input.resize_width,
        )
        session = InferenceSession(config, handler=on_result)
        worker = DetectionWorker(session)
        worker.initialize(
            resolve_path(config.model.model_path),
            resolve_path(config.model.labels_path),
        ).result()

    except (FileNotFoundError, ValueError, RuntimeError, DetectorError) as e:
        logger.error("Initialization failed: %s", e)
        _cleanup(input_handler, worker)
        return 1
    except Exception as e:
        logger.exception("Unexpected initialization error: %s", e)
        _cleanup(input_handler, worker)
        return 1

    # 3. Processing Loop
    logger.info("Starting processing loop. Press Ctrl+C to stop.")

    frame_count = 0
    start_time = time.perf_counter()

    try:
        for frame_id, frame in input_handler:
            frame_count += 1

            if input_handler.mode == "webcam":
                worker.submit_frame(frame)
                continue

            result = worker.detect(frame).result()
            results[frame_id] = result
            if "log" in modes:
                log_result(frame_id, result)

            if frame_count % 30 == 0:
                logger.info("Processed %d frames...", frame_count)

    except KeyboardInterrupt:
        logger.info("Interrupted by user.")
    except Exception as e:
        logger.exception("Runtime error during processing: %s", e)
        return 1
    finally:
        # 4. Cleanup
        _cleanup(input_handler, worker)

        elapsed = time.perf_counter() - start_time
        fps = frame_count / elapsed if elapsed > 0 else 0.0
        logger.info(
            "Processing finished. Frames read: %d, dropped: %d. Avg FPS: %.2f.",
            frame_count, worker.dropped_frames, fps,
        )

    save_dir = resolve_path(config.output.save_path)
    if "save_json" in modes:
        save_json(results, str(save_dir / "detections.json"))
    if "save_csv" in modes:
        save_csv(results, str(save_dir / "detections.csv"))

    return 0


if __name__ == "__main__":
    sys.exit(main())
