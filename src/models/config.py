"""
Typed configuration models matching the YAML config structure.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Union

from localization.homography import GroundPlaneMapper, Quad


@dataclass
class CameraConfig:
    """Camera configuration."""
    device_id: Union[int, str] = 0
    resolution: List[int] = field(default_factory=lambda: [640, 480])
    fps: int = 30
    swap_rb: bool = False
    rotate: int = 0
    flip_horizontal: bool = False
    flip_vertical: bool = False

    @property
    def image_width(self) -> int:
        return int(self.resolution[0])

    @property
    def image_height(self) -> int:
        return int(self.resolution[1])

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "CameraConfig":
        """Adapter: Create from config dictionary."""
        return cls(
            device_id=d.get("device_id", 0),
            resolution=d.get("resolution", [640, 480]),
            fps=d.get("fps", 30),
            swap_rb=d.get("swap_rb", False),
            rotate=d.get("rotate", 0),
            flip_horizontal=d.get("flip_horizontal", False),
            flip_vertical=d.get("flip_vertical", False),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "device_id": self.device_id,
            "resolution": self.resolution,
            "fps": self.fps,
            "swap_rb": self.swap_rb,
            "rotate": self.rotate,
            "flip_horizontal": self.flip_horizontal,
            "flip_vertical": self.flip_vertical,
        }


@dataclass
class CalibrationConfig:
    """
    Ground-plane calibration.
    
    Both quads are lists of four [x, y] points ordered top-left, top-right,
    bottom-left, bottom-right. camera_quad is in pixels, world_quad in floor
    units relative to the camera.
    """
    camera_quad: List[List[float]] = field(default_factory=list)
    world_quad: List[List[float]] = field(default_factory=list)

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "CalibrationConfig":
        return cls(
            camera_quad=d.get("camera_quad", []),
            world_quad=d.get("world_quad", []),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "camera_quad": self.camera_quad,
            "world_quad": self.world_quad,
        }

    def create_mapper(self) -> GroundPlaneMapper:
        """Build the mapper; raises CalibrationError for bad points."""
        return GroundPlaneMapper(
            Quad.from_list(self.camera_quad),
            Quad.from_list(self.world_quad),
        )


@dataclass
class DetectionConfig:
    """
    Detection configuration.
    
    Attributes:
        pipeline: Pipeline class as "package.module:ClassName".
        pipeline_args: Keyword arguments passed to the pipeline constructor.
        object_height_offset: Height of the target reference point above the floor.
        camera_height: Height of the camera above the floor (0 = no correction).
    """
    pipeline: str = ""
    pipeline_args: Dict[str, Any] = field(default_factory=dict)
    object_height_offset: float = 0.0
    camera_height: float = 0.0

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "DetectionConfig":
        return cls(
            pipeline=d.get("pipeline", ""),
            pipeline_args=d.get("pipeline_args") or {},
            object_height_offset=d.get("object_height_offset", 0.0),
            camera_height=d.get("camera_height", 0.0),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "pipeline": self.pipeline,
            "pipeline_args": self.pipeline_args,
            "object_height_offset": self.object_height_offset,
            "camera_height": self.camera_height,
        }


@dataclass
class SchedulerConfig:
    """Vision task configuration."""
    processing_interval_ms: int = 0
    num_image_buffers: int = 2
    video_out_step: int = -1
    annotate: bool = False
    perf_report: bool = False
    perf_report_interval: float = 5.0
    max_consecutive_failures: int = 10

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "SchedulerConfig":
        return cls(
            processing_interval_ms=d.get("processing_interval_ms", 0),
            num_image_buffers=d.get("num_image_buffers", 2),
            video_out_step=d.get("video_out_step", -1),
            annotate=d.get("annotate", False),
            perf_report=d.get("perf_report", False),
            perf_report_interval=d.get("perf_report_interval", 5.0),
            max_consecutive_failures=d.get("max_consecutive_failures", 10),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "processing_interval_ms": self.processing_interval_ms,
            "num_image_buffers": self.num_image_buffers,
            "video_out_step": self.video_out_step,
            "annotate": self.annotate,
            "perf_report": self.perf_report,
            "perf_report_interval": self.perf_report_interval,
            "max_consecutive_failures": self.max_consecutive_failures,
        }


@dataclass
class Config:
    """
    Complete application configuration.
    
    This is a typed representation of the YAML config structure.
    """
    camera: CameraConfig = field(default_factory=CameraConfig)
    calibration: Optional[CalibrationConfig] = None
    detection: DetectionConfig = field(default_factory=DetectionConfig)
    scheduler: SchedulerConfig = field(default_factory=SchedulerConfig)
    log_path: str = "logs/vision.log"
    log_level: str = "INFO"

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "Config":
        """Adapter: Create Config from raw dictionary (e.g., from load_config)."""
        calibration_dict = d.get("calibration")
        calibration = CalibrationConfig.from_dict(calibration_dict) if calibration_dict else None
        return cls(
            camera=CameraConfig.from_dict(d.get("camera", {})),
            calibration=calibration,
            detection=DetectionConfig.from_dict(d.get("detection", {})),
            scheduler=SchedulerConfig.from_dict(d.get("scheduler", {})),
            log_path=d.get("log_path", "logs/vision.log"),
            log_level=d.get("log_level", "INFO"),
        )

    def to_dict(self) -> Dict[str, Any]:
        """Convert back to dictionary (for saving or passing to existing code)."""
        d: Dict[str, Any] = {
            "camera": self.camera.to_dict(),
            "detection": self.detection.to_dict(),
            "scheduler": self.scheduler.to_dict(),
            "log_path": self.log_path,
            "log_level": self.log_level,
        }
        if self.calibration:
            d["calibration"] = self.calibration.to_dict()
        return d
