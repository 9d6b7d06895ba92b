"""
Ground-target vision runner.

Loads the configuration, starts the vision task with the configured pipeline
and logs the targets seen by a simulated control loop.

Usage:
    python src/main.py --config config/config.yaml --display

Arguments:
    --config: Path to configuration file
    --display: Show the video-out stream in a window
    --loop-hz: Control loop rate
"""

import argparse
import logging
import sys
import threading
import time
from typing import Optional

import cv2
import numpy as np

from detection.detector import create_detector_from_config, load_pipeline_class
from localization.homography import CalibrationError
from models.config import Config
from observation.opencv_source import OpenCVSource, OpenCVSourceConfig
from ops.config import load_config, validate_config
from ops.logging import get_component_logger, setup_logging
from scheduler.task import VisionTask


class LatestFrame:
    """Video sink keeping only the newest frame for the display thread."""

    def __init__(self):
        self._lock = threading.Lock()
        self._frame: Optional[np.ndarray] = None

    def __call__(self, frame: np.ndarray) -> None:
        with self._lock:
            self._frame = frame

    def take(self) -> Optional[np.ndarray]:
        with self._lock:
            frame, self._frame = self._frame, None
        return frame


def main():
    """Main application function."""
    parser = argparse.ArgumentParser(description="Ground-target vision runner")
    parser.add_argument("--config", type=str, default="config/config.yaml",
                        help="Path to configuration file")
    parser.add_argument("--display", action="store_true",
                        help="Show video-out frames")
    parser.add_argument("--loop-hz", type=float, default=10.0,
                        help="Control loop rate in Hz")
    args = parser.parse_args()

    try:
        raw_config = load_config(args.config)
    except Exception as e:
        logging.error(f"Failed to load configuration: {e}")
        sys.exit(1)

    is_valid, error_msg = validate_config(raw_config)
    if not is_valid:
        logging.error(f"Configuration validation failed: {error_msg}")
        sys.exit(1)

    config = Config.from_dict(raw_config)
    setup_logging(config.log_path, config.log_level)
    logging.info("Starting ground-target vision")

    source = OpenCVSource(OpenCVSourceConfig.from_camera_config(config.camera, source_id="main-camera"))
    sink = LatestFrame() if args.display else None

    def make_task(processor):
        return VisionTask(
            "main",
            processor,
            source,
            config.scheduler,
            video_sink=sink,
            logger=get_component_logger("task", "main"),
        )

    try:
        detector = create_detector_from_config(
            config, make_task, name="main", logger=get_component_logger("detector", "main")
        )
        pipeline = load_pipeline_class(config.detection.pipeline)(**config.detection.pipeline_args)
    except (CalibrationError, ValueError, ImportError, AttributeError) as e:
        logging.error(f"Failed to create detector: {e}")
        sys.exit(1)

    task = detector.scheduler
    detector.set_pipeline(pipeline)
    period = 1.0 / args.loop_hz if args.loop_hz > 0 else 0.1

    try:
        while True:
            targets = detector.get_targets(
                key=lambda t: t.area,
                reverse=True,
                object_height_offset=config.detection.object_height_offset,
                camera_height=config.detection.camera_height,
            )
            if not detector.is_enabled():
                logging.warning("Vision disabled, stopping")
                break
            if targets:
                logging.info(f"{len(targets)} target(s), best: {targets[0]}")

            if sink is not None:
                frame = sink.take()
                if frame is not None:
                    cv2.imshow("Vision", frame)
                if cv2.waitKey(1) & 0xFF == ord("q"):
                    break
            time.sleep(period)
    except KeyboardInterrupt:
        logging.info("Interrupted by user")
    finally:
        detector.set_pipeline(None)
        if isinstance(task, VisionTask):
            task.shutdown()
        if args.display:
            cv2.destroyAllWindows()
        logging.info("Ground-target vision stopped")


if __name__ == "__main__":
    main()
