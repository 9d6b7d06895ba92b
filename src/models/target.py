"""
Target model returned to the control loop.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Any, Optional, Tuple

from localization.homography import GroundPlaneMapper
from .detection import DetectedObject
from .geometry import BoundingBox

Point = Tuple[float, float]


@dataclass(frozen=True)
class TargetInfo:
    """
    A detected object plus its optional ground-plane localization.
    
    Attributes:
        detected_object: The detection this target was built from.
        image_width: Width of the camera image in pixels.
        image_height: Height of the camera image in pixels.
        distance_from_image_center: Rect centre minus image centre, in pixels.
        ground_position: (x, y) floor position relative to the camera, or None
            when no ground-plane mapper is configured.
        bearing: Horizontal angle to the target in degrees (positive to the right).
        distance: Planar distance from the camera to the target.
        target_width: Width of the target footprint in world units.
    """
    detected_object: DetectedObject[Any]
    image_width: int
    image_height: int
    distance_from_image_center: Point
    ground_position: Optional[Point] = None
    bearing: Optional[float] = None
    distance: Optional[float] = None
    target_width: Optional[float] = None

    @property
    def rect(self) -> BoundingBox:
        return self.detected_object.rect

    @property
    def area(self) -> float:
        return self.detected_object.area

    @property
    def is_localized(self) -> bool:
        return self.ground_position is not None

    @classmethod
    def from_detected_object(
        cls,
        obj: DetectedObject[Any],
        image_width: int,
        image_height: int,
        mapper: Optional[GroundPlaneMapper] = None,
        height_factor: float = 1.0,
    ) -> "TargetInfo":
        """
        Build a target from a detection.
        
        Args:
            obj: Detected object.
            image_width: Camera image width in pixels.
            image_height: Camera image height in pixels.
            mapper: Ground-plane mapper, None for geometry only.
            height_factor: Parallax correction, see localization.homography.parallax_factor().
        """
        rect = obj.rect
        cx, cy = rect.center
        offset = (cx - image_width / 2.0, cy - image_height / 2.0)
        if mapper is None:
            return cls(
                detected_object=obj,
                image_width=image_width,
                image_height=image_height,
                distance_from_image_center=offset,
            )

        gx, gy = mapper.map_point(rect.bottom_center)
        left = mapper.map_point((rect.x1, rect.y2))
        right = mapper.map_point((rect.x2, rect.y2))
        x = gx * height_factor
        y = gy * height_factor
        return cls(
            detected_object=obj,
            image_width=image_width,
            image_height=image_height,
            distance_from_image_center=offset,
            ground_position=(x, y),
            bearing=math.degrees(math.atan2(x, y)),
            distance=math.hypot(x, y),
            target_width=math.hypot(right[0] - left[0], right[1] - left[1]) * height_factor,
        )

    def __str__(self) -> str:
        s = f"{self.detected_object},offset={self.distance_from_image_center}"
        if self.is_localized:
            s += (
                f",pos=({self.ground_position[0]:.2f},{self.ground_position[1]:.2f})"
                f",bearing={self.bearing:.1f},dist={self.distance:.2f},width={self.target_width:.2f}"
            )
        return s
