"""
Scheduler layer: the periodic task that drives frame processing.
"""

from .base import VisionProcessor, VisionScheduler
from .task import TaskStats, VisionTask

__all__ = [
    "VisionProcessor",
    "VisionScheduler",
    "TaskStats",
    "VisionTask",
]
