"""
Pipeline interface for pluggable detection algorithms.

A pipeline turns one frame into zero or more DetectedObjects. The Detector
holds exactly one installed pipeline at a time and may swap it at runtime.

Lifecycle:
    1. Construct the pipeline
    2. Install it with Detector.set_pipeline() (reset() is called once)
    3. process() is called once per scheduled cycle on the processing thread
    4. Installing another pipeline (or None) retires it
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, List, Optional, Sequence, Tuple

import numpy as np

from models.detection import DetectedObject


class Pipeline(ABC):
    """
    Abstract base class for detection pipelines.
    
    Implementations own their internal state. process() runs only on the
    scheduler's processing thread and must not keep a reference to the frame
    after returning, since the scheduler reuses its image buffers.
    """

    @abstractmethod
    def reset(self) -> None:
        """Clear internal state before the pipeline is (re)used."""

    @abstractmethod
    def process(self, frame: np.ndarray) -> None:
        """Run detection on one frame."""

    @abstractmethod
    def get_detected_objects(self) -> Sequence[DetectedObject[Any]]:
        """Objects detected by the most recent process() call."""

    @abstractmethod
    def get_intermediate_output(self, step: int) -> Optional[np.ndarray]:
        """
        Debug frame for a processing stage.
        
        Args:
            step: Stage index, 0 is the original input frame.
            
        Returns:
            The stage frame, or None if the step is out of range. Never raises.
        """


class StagedPipeline(Pipeline):
    """
    Pipeline base that keeps the last result and per-stage debug frames.
    
    Subclasses implement _run(), returning the detected objects and the list
    of intermediate frames (excluding the input, which becomes step 0).
    
    Example:
        class ThresholdPipeline(StagedPipeline):
            def _run(self, frame):
                mask = cv2.inRange(frame, lower, upper)
                contours, _ = cv2.findContours(mask, cv2.RETR_EXTERNAL, cv2.CHAIN_APPROX_SIMPLE)
                return [ContourObject(c) for c in contours], [mask]
    """

    def __init__(self, keep_intermediate: bool = True):
        self._keep_intermediate = keep_intermediate
        self._detected_objects: Tuple[DetectedObject[Any], ...] = ()
        self._stages: List[np.ndarray] = []

    @property
    def num_stages(self) -> int:
        """Number of debug frames available, including the input frame."""
        return len(self._stages)

    def reset(self) -> None:
        self._detected_objects = ()
        self._stages = []

    def process(self, frame: np.ndarray) -> None:
        objects, stages = self._run(frame)
        self._detected_objects = tuple(objects)
        if self._keep_intermediate:
            # Copy the input: the caller reuses its buffer
            self._stages = [frame.copy()] + list(stages)
        else:
            self._stages = []

    def get_detected_objects(self) -> Tuple[DetectedObject[Any], ...]:
        return self._detected_objects

    def get_intermediate_output(self, step: int) -> Optional[np.ndarray]:
        stages = self._stages
        if not isinstance(step, int) or step < 0 or step >= len(stages):
            return None
        return stages[step]

    @abstractmethod
    def _run(self, frame: np.ndarray) -> Tuple[Sequence[DetectedObject[Any]], Sequence[np.ndarray]]:
        """Detect objects; return (objects, intermediate_frames)."""
