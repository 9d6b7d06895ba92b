"""
Contracts between the vision scheduler and the frame processor it drives.

The scheduler owns the processing thread, frame buffers and cadence. It calls
into a VisionProcessor once per cycle and publishes the result as an
immutable snapshot that other threads read without locking.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Optional, Sequence, Tuple

import numpy as np

from models.detection import DetectedObject


class VisionProcessor(ABC):
    """Adapter surface a scheduler calls from its processing thread."""

    @abstractmethod
    def process_frame(self, frame: np.ndarray) -> Tuple[DetectedObject[Any], ...]:
        """Detect objects in the frame."""

    @abstractmethod
    def annotate_frame(self, frame: np.ndarray, objects: Sequence[DetectedObject[Any]]) -> None:
        """Draw the detected objects onto the frame in place."""

    @abstractmethod
    def get_intermediate_output(self, step: int) -> Optional[np.ndarray]:
        """Debug frame for processing stage `step` (0 = input), None if invalid."""


class VisionScheduler(ABC):
    """
    Periodic task that drives a VisionProcessor.
    
    Implementations must publish detections by replacing a single reference to
    an immutable tuple, so get_detected_objects() never exposes a partially
    written result.
    """

    @abstractmethod
    def set_task_enabled(self, enabled: bool) -> None:
        """Start or stop periodic processing."""

    @abstractmethod
    def is_task_enabled(self) -> bool:
        ...

    @abstractmethod
    def set_processing_interval(self, interval_ms: int) -> None:
        """Set the cycle period in milliseconds; 0 runs back-to-back."""

    @abstractmethod
    def get_processing_interval(self) -> int:
        ...

    @abstractmethod
    def set_video_out_enabled(self, step: int, annotate: bool) -> None:
        """Select the debug stage to stream (-1 disables) and whether to annotate."""

    @abstractmethod
    def get_detected_objects(self) -> Optional[Tuple[DetectedObject[Any], ...]]:
        """Latest published snapshot, None if nothing has been published."""

    @abstractmethod
    def set_perf_report_enabled(self, enabled: bool) -> None:
        """Toggle periodic performance logging."""
