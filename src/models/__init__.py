"""
Typed models for the ground-target vision system.
"""

from .frame import FrameData
from .geometry import BoundingBox, ObjectGeometry
from .detection import DetectedObject, ContourObject, BoxObject
from .target import TargetInfo
from .config import (
    Config,
    CameraConfig,
    CalibrationConfig,
    DetectionConfig,
    SchedulerConfig,
)

__all__ = [
    # Frame
    "FrameData",
    # Geometry
    "BoundingBox",
    "ObjectGeometry",
    # Detection
    "DetectedObject",
    "ContourObject",
    "BoxObject",
    # Targets
    "TargetInfo",
    # Config
    "Config",
    "CameraConfig",
    "CalibrationConfig",
    "DetectionConfig",
    "SchedulerConfig",
]
