"""
Background vision task.

Reference VisionScheduler: a daemon thread that reads frames from an
ObservationSource, runs them through a VisionProcessor and publishes the
detections for other threads to read.
"""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass, field
from typing import Any, Callable, List, Optional, Sequence, Tuple

import numpy as np

from models.config import SchedulerConfig
from models.detection import DetectedObject
from observation.base import ObservationSource
from .base import VisionProcessor, VisionScheduler


@dataclass
class TaskStats:
    """Runtime statistics for the vision task."""
    frame_count: int = 0
    missed_frames: int = 0
    failed_cycles: int = 0
    consecutive_failures: int = 0
    total_processing_time: float = 0.0
    report_frame_count: int = 0
    report_processing_time: float = 0.0
    last_report_time: float = field(default_factory=time.monotonic)


class VisionTask(VisionScheduler):
    """
    Threaded scheduler driving a VisionProcessor at a fixed cadence.
    
    Frames are copied into a small ring of reusable image buffers before
    processing, so a processor must not hold on to a frame after the call.
    A failing cycle is logged and skipped; after max_consecutive_failures
    in a row the task disables itself.
    
    Example:
        task = VisionTask("front", detector, source, SchedulerConfig(processing_interval_ms=50))
        task.set_task_enabled(True)
        ...
        task.shutdown()
    """

    def __init__(
        self,
        name: str,
        processor: VisionProcessor,
        source: ObservationSource,
        config: Optional[SchedulerConfig] = None,
        video_sink: Optional[Callable[[np.ndarray], None]] = None,
        logger: Optional[logging.Logger] = None,
    ):
        self._name = name
        self._processor = processor
        self._source = source
        self._config = config or SchedulerConfig()
        self._video_sink = video_sink
        self._logger = logger or logging.getLogger(__name__)
        self.stats = TaskStats()

        self._state_lock = threading.Lock()
        self._enabled = threading.Event()
        self._stopped = threading.Event()
        self._thread: Optional[threading.Thread] = None

        self._interval_ms = self._config.processing_interval_ms
        self._video_out_step = self._config.video_out_step
        self._annotate = self._config.annotate
        self._perf_report = self._config.perf_report

        self._buffers: List[Optional[np.ndarray]] = [None] * max(1, self._config.num_image_buffers)
        self._buffer_index = 0
        self._detected_objects: Optional[Tuple[DetectedObject[Any], ...]] = None

    def __str__(self) -> str:
        return self._name

    # VisionScheduler

    def set_task_enabled(self, enabled: bool) -> None:
        with self._state_lock:
            if enabled:
                if self._enabled.is_set():
                    return
                if self._stopped.is_set():
                    raise RuntimeError(f"VisionTask {self._name} has been shut down")
                if not self._source.is_open:
                    self._source.open()
                if self._thread is None:
                    self._thread = threading.Thread(
                        target=self._run, name=f"VisionTask-{self._name}", daemon=True
                    )
                    self._thread.start()
                self._enabled.set()
                self._logger.info(f"VisionTask {self._name} enabled")
            else:
                if not self._enabled.is_set():
                    return
                self._enabled.clear()
                self._detected_objects = None
                self._logger.info(f"VisionTask {self._name} disabled")

    def is_task_enabled(self) -> bool:
        return self._enabled.is_set()

    def set_processing_interval(self, interval_ms: int) -> None:
        if interval_ms < 0:
            raise ValueError(f"Processing interval must be >= 0, got {interval_ms}")
        self._interval_ms = interval_ms

    def get_processing_interval(self) -> int:
        return self._interval_ms

    def set_video_out_enabled(self, step: int, annotate: bool) -> None:
        self._video_out_step = step
        self._annotate = annotate

    def get_detected_objects(self) -> Optional[Tuple[DetectedObject[Any], ...]]:
        return self._detected_objects

    def set_perf_report_enabled(self, enabled: bool) -> None:
        self._perf_report = enabled
        self.stats.last_report_time = time.monotonic()
        self.stats.report_frame_count = 0
        self.stats.report_processing_time = 0.0

    # Lifecycle

    def shutdown(self, timeout: float = 2.0) -> None:
        """Stop the processing thread and close the source."""
        self.set_task_enabled(False)
        self._stopped.set()
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None
        try:
            self._source.close()
        except Exception as e:
            self._logger.warning(f"Error closing source: {e}")
        self._logger.info(f"VisionTask {self._name} stopped")

    def _run(self) -> None:
        while not self._stopped.is_set():
            if not self._enabled.wait(timeout=0.1):
                continue

            start = time.monotonic()
            try:
                self._run_cycle()
                self.stats.consecutive_failures = 0
            except Exception:
                self.stats.failed_cycles += 1
                self.stats.consecutive_failures += 1
                self._logger.exception(
                    f"VisionTask {self._name} cycle failed "
                    f"({self.stats.consecutive_failures}/{self._config.max_consecutive_failures})"
                )
                if self.stats.consecutive_failures >= self._config.max_consecutive_failures:
                    self._logger.error(f"Too many consecutive failures, disabling {self._name}")
                    self.set_task_enabled(False)

            if self._perf_report:
                self._report_performance()

            remaining = self._interval_ms / 1000.0 - (time.monotonic() - start)
            if remaining > 0:
                self._stopped.wait(remaining)

    def _run_cycle(self) -> None:
        frame_data = self._source.read()
        if frame_data is None:
            self.stats.missed_frames += 1
            # Avoid spinning on a stalled source
            self._stopped.wait(0.01)
            return

        frame = self._next_buffer(frame_data.frame)
        start = time.monotonic()
        objects = self._processor.process_frame(frame)
        elapsed = time.monotonic() - start

        self.stats.frame_count += 1
        self.stats.total_processing_time += elapsed
        self.stats.report_frame_count += 1
        self.stats.report_processing_time += elapsed

        snapshot = tuple(objects) if objects else ()
        # A cycle finishing after disable must not republish
        with self._state_lock:
            if self._enabled.is_set():
                self._detected_objects = snapshot
        self._send_video_out(frame, snapshot)

    def _next_buffer(self, src: np.ndarray) -> np.ndarray:
        """Copy the frame into the next buffer of the ring."""
        buf = self._buffers[self._buffer_index]
        if buf is None or buf.shape != src.shape or buf.dtype != src.dtype:
            buf = np.empty_like(src)
            self._buffers[self._buffer_index] = buf
        np.copyto(buf, src)
        self._buffer_index = (self._buffer_index + 1) % len(self._buffers)
        return buf

    def _send_video_out(self, frame: np.ndarray, objects: Sequence[DetectedObject[Any]]) -> None:
        step = self._video_out_step
        if self._video_sink is None or step < 0:
            return

        out = frame if step == 0 else self._processor.get_intermediate_output(step)
        if out is None:
            return
        out = out.copy()
        if self._annotate and objects:
            self._processor.annotate_frame(out, objects)
        self._video_sink(out)

    def _report_performance(self) -> None:
        now = time.monotonic()
        window = now - self.stats.last_report_time
        if window < self._config.perf_report_interval:
            return
        count = self.stats.report_frame_count
        if count:
            avg_ms = self.stats.report_processing_time / count * 1000.0
            self._logger.info(
                f"VisionTask {self._name} perf: frames={count}, "
                f"avg_process={avg_ms:.1f}ms, rate={count / window:.1f}fps"
            )
        self.stats.last_report_time = now
        self.stats.report_frame_count = 0
        self.stats.report_processing_time = 0.0
