"""
Detector: orchestrates a swappable detection pipeline.

The Detector sits between two threads:
- the scheduler's processing thread calls process_frame()/annotate_frame()
  and publishes the returned tuple as the latest detection snapshot
- the control loop installs pipelines, tunes cadence and calls get_targets()

Pipeline management is serialized by one lock that the processing thread
never takes; the processing thread reads the pipeline reference once per
cycle, so a swap applies from the next cycle.
"""

from __future__ import annotations

import importlib
import logging
import threading
from typing import Any, Callable, List, Optional, Sequence, Tuple

import cv2
import numpy as np

from localization.homography import GroundPlaneMapper, parallax_factor
from models.config import Config
from models.detection import DetectedObject
from models.target import TargetInfo
from pipeline.base import Pipeline
from scheduler.base import VisionProcessor, VisionScheduler

# Colors (BGR)
ANNOTATE_COLOR = (0, 255, 0)
ANNOTATE_RECT_THICKNESS = 3

TargetFilter = Callable[[DetectedObject[Any]], bool]
SchedulerFactory = Callable[[VisionProcessor], VisionScheduler]


class Detector(VisionProcessor):
    """
    Pluggable object detector with ground-plane localization.
    
    Example:
        detector = Detector(
            "front", 640, 480,
            scheduler_factory=lambda proc: VisionTask("front", proc, source),
            mapper=GroundPlaneMapper(camera_quad, world_quad),
        )
        detector.set_pipeline(MyPipeline())
        targets = detector.get_targets(key=lambda t: t.area, reverse=True)
    """

    def __init__(
        self,
        name: str,
        image_width: int,
        image_height: int,
        scheduler_factory: SchedulerFactory,
        mapper: Optional[GroundPlaneMapper] = None,
        logger: Optional[logging.Logger] = None,
    ):
        """
        Args:
            name: Instance name used in log messages.
            image_width: Camera image width in pixels.
            image_height: Camera image height in pixels.
            scheduler_factory: Builds the scheduler that will drive this detector.
            mapper: Ground-plane mapper, None to return geometry only.
            logger: Logger to use, defaults to this module's logger.
        """
        self._name = name
        self._image_width = image_width
        self._image_height = image_height
        self._mapper = mapper
        self._logger = logger or logging.getLogger(__name__)
        self._pipeline_lock = threading.Lock()
        self._pipeline: Optional[Pipeline] = None
        self._cycle_pipeline: Optional[Pipeline] = None
        self._scheduler = scheduler_factory(self)

    def __str__(self) -> str:
        return self._name

    @property
    def mapper(self) -> Optional[GroundPlaneMapper]:
        return self._mapper

    @property
    def scheduler(self) -> VisionScheduler:
        return self._scheduler

    # Control-loop surface

    def set_pipeline(self, pipeline: Optional[Pipeline]) -> None:
        """
        Install a pipeline and enable processing, or pass None to disable.
        
        Installing the already-installed pipeline is a no-op. A new pipeline is
        reset before it becomes visible to the processing thread. reset() runs
        while the management lock is held, so a slow reset delays other
        set_pipeline() calls but never the processing thread, which does not
        take that lock.
        
        If the scheduler fails to enable, the previous pipeline is restored and
        the error is raised, so the same pipeline can be installed again later.
        """
        with self._pipeline_lock:
            if pipeline is self._pipeline:
                return

            if pipeline is not None:
                pipeline.reset()
                previous = self._pipeline
                self._pipeline = pipeline
                try:
                    self._set_enabled(True)
                except Exception:
                    self._pipeline = previous
                    self._logger.error(f"{self._name}: failed to enable vision for {type(pipeline).__name__}")
                    raise
                self._logger.info(f"{self._name}: installed pipeline {type(pipeline).__name__}")
            else:
                self._set_enabled(False)
                self._pipeline = None
                self._logger.info(f"{self._name}: pipeline removed, vision disabled")

    def get_pipeline(self) -> Optional[Pipeline]:
        return self._pipeline

    def is_enabled(self) -> bool:
        """True while the scheduler is running the installed pipeline."""
        return self._scheduler.is_task_enabled()

    def set_processing_interval(self, interval_ms: int) -> None:
        """Set the processing period in msec; 0 processes as fast as possible."""
        if interval_ms < 0:
            raise ValueError(f"Processing interval must be >= 0, got {interval_ms}")
        self._scheduler.set_processing_interval(interval_ms)

    def get_processing_interval(self) -> int:
        return self._scheduler.get_processing_interval()

    def set_video_out_enabled(self, step: int, annotate: bool) -> None:
        """
        Select the debug frame streamed to video out.
        
        Args:
            step: Pipeline stage to show (0 is the original image, -1 disables).
            annotate: Draw detected object rects on the streamed frame.
        """
        self._scheduler.set_video_out_enabled(step, annotate)

    def set_perf_report_enabled(self, enabled: bool) -> None:
        self._scheduler.set_perf_report_enabled(enabled)

    def get_targets(
        self,
        filter: Optional[TargetFilter] = None,
        key: Optional[Callable[[TargetInfo], Any]] = None,
        reverse: bool = False,
        object_height_offset: float = 0.0,
        camera_height: float = 0.0,
    ) -> List[TargetInfo]:
        """
        Build targets from the latest detection snapshot.
        
        Args:
            filter: Predicate rejecting false positives, None accepts all.
                An object whose predicate raises is skipped and logged.
            key: Sort key applied to the targets, None keeps detection order.
            reverse: Sort descending.
            object_height_offset: Height of the target reference point above the floor.
            camera_height: Camera height above the floor, 0 for no correction.
            
        Returns:
            Targets in requested order; empty when nothing qualifies or vision
            is disabled (use is_enabled() to tell the two apart).
            
        Raises:
            ValueError: If the height offset is not within [0, camera_height).
        """
        factor = parallax_factor(object_height_offset, camera_height)
        objects = self._scheduler.get_detected_objects()
        if not objects:
            return []

        targets: List[TargetInfo] = []
        for obj in objects:
            if filter is not None:
                try:
                    accepted = filter(obj)
                except Exception as e:
                    self._logger.warning(f"{self._name}: filter failed for {obj}, skipping: {e}")
                    continue
                if not accepted:
                    continue
            targets.append(
                TargetInfo.from_detected_object(
                    obj,
                    self._image_width,
                    self._image_height,
                    mapper=self._mapper,
                    height_factor=factor,
                )
            )

        if key is not None and len(targets) > 1:
            targets.sort(key=key, reverse=reverse)

        if self._logger.isEnabledFor(logging.DEBUG):
            for i, target in enumerate(targets):
                self._logger.debug(f"{self._name}: [{i}] Target={target}")
        return targets

    # VisionProcessor (called on the scheduler's processing thread)

    def process_frame(self, frame: np.ndarray) -> Tuple[DetectedObject[Any], ...]:
        pipeline = self._pipeline
        self._cycle_pipeline = pipeline
        if pipeline is None:
            return ()
        pipeline.process(frame)
        return tuple(pipeline.get_detected_objects() or ())

    def annotate_frame(self, frame: np.ndarray, objects: Sequence[DetectedObject[Any]]) -> None:
        for obj in objects:
            x1, y1, x2, y2 = obj.rect.as_int_tuple()
            cv2.rectangle(frame, (x1, y1), (x2, y2), ANNOTATE_COLOR, ANNOTATE_RECT_THICKNESS)

    def get_intermediate_output(self, step: int) -> Optional[np.ndarray]:
        # Stages come from the pipeline that ran this cycle, even after a swap
        pipeline = self._cycle_pipeline
        if pipeline is None:
            return None
        return pipeline.get_intermediate_output(step)

    def _set_enabled(self, enabled: bool) -> None:
        """Fire the scheduler only on an enable/disable edge. Caller holds the lock."""
        task_enabled = self._scheduler.is_task_enabled()
        if enabled and not task_enabled:
            self._scheduler.set_task_enabled(True)
        elif not enabled and task_enabled:
            self._scheduler.set_task_enabled(False)


def load_pipeline_class(path: str) -> type:
    """
    Import a pipeline class from a "package.module:ClassName" string.
    
    Raises:
        ValueError: If the string is malformed or the class is not a Pipeline.
    """
    module_name, sep, class_name = path.partition(":")
    if not sep or not module_name or not class_name:
        raise ValueError(f"Pipeline must be given as 'module:ClassName', got {path!r}")
    module = importlib.import_module(module_name)
    cls = getattr(module, class_name)
    if not isinstance(cls, type) or not issubclass(cls, Pipeline):
        raise ValueError(f"{path} is not a Pipeline subclass")
    return cls


def create_detector_from_config(
    config: Config,
    scheduler_factory: SchedulerFactory,
    name: str = "detector",
    logger: Optional[logging.Logger] = None,
) -> Detector:
    """
    Factory function to create a Detector from typed config.
    
    No pipeline is installed; the caller starts processing with set_pipeline(),
    typically using a class resolved by load_pipeline_class().
    
    Args:
        config: Application configuration.
        scheduler_factory: Builds the scheduler driving the detector.
        name: Instance name.
        logger: Optional logger to inject.
    """
    mapper = config.calibration.create_mapper() if config.calibration else None
    detector = Detector(
        name,
        config.camera.image_width,
        config.camera.image_height,
        scheduler_factory=scheduler_factory,
        mapper=mapper,
        logger=logger,
    )
    detector.set_processing_interval(config.scheduler.processing_interval_ms)
    detector.set_video_out_enabled(config.scheduler.video_out_step, config.scheduler.annotate)
    detector.set_perf_report_enabled(config.scheduler.perf_report)
    return detector
