"""
Detected object models.

A DetectedObject wraps whatever payload a pipeline produces (a contour, a
model box, ...) and exposes the payload-independent geometry the rest of the
system relies on.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Generic, Optional, TypeVar

import cv2
import numpy as np

from .geometry import BoundingBox

T = TypeVar("T")


@dataclass(frozen=True, eq=False)
class DetectedObject(ABC, Generic[T]):
    """
    A single detection produced by a pipeline.
    
    Attributes:
        obj: The algorithm-specific payload.
    """
    obj: T

    @property
    @abstractmethod
    def rect(self) -> BoundingBox:
        """Bounding rectangle in pixel coordinates."""

    @property
    @abstractmethod
    def area(self) -> float:
        """Object area in square pixels."""

    def __str__(self) -> str:
        return f"Rect={self.rect.as_tuple()},area={self.area}"


@dataclass(frozen=True, eq=False)
class ContourObject(DetectedObject[np.ndarray]):
    """
    Detection backed by an OpenCV contour.
    
    Geometry is derived once at construction; the contour array must not be
    modified afterwards.
    """
    _rect: BoundingBox = field(init=False, repr=False)
    _area: float = field(init=False, repr=False)

    def __post_init__(self):
        x, y, w, h = cv2.boundingRect(self.obj)
        object.__setattr__(self, "_rect", BoundingBox.from_xywh(x, y, w, h))
        object.__setattr__(self, "_area", float(cv2.contourArea(self.obj)))

    @property
    def rect(self) -> BoundingBox:
        return self._rect

    @property
    def area(self) -> float:
        return self._area


@dataclass(frozen=True, eq=False)
class BoxObject(DetectedObject[BoundingBox]):
    """
    Detection backed by a plain bounding box, as produced by model backends.
    
    Attributes:
        confidence: Detection confidence score (0-1).
        class_id: Optional class ID from the model.
        class_name: Optional human-readable class name.
    """
    confidence: float = 1.0
    class_id: Optional[int] = None
    class_name: Optional[str] = None

    @property
    def rect(self) -> BoundingBox:
        return self.obj

    @property
    def area(self) -> float:
        return self.obj.area

    @classmethod
    def from_xyxy(
        cls,
        x1: float,
        y1: float,
        x2: float,
        y2: float,
        confidence: float = 1.0,
        class_id: Optional[int] = None,
        class_name: Optional[str] = None,
    ) -> "BoxObject":
        """Create BoxObject from x1, y1, x2, y2 coordinates."""
        return cls(
            obj=BoundingBox(x1=x1, y1=y1, x2=x2, y2=y2),
            confidence=confidence,
            class_id=class_id,
            class_name=class_name,
        )

    @classmethod
    def from_xywh(cls, x: float, y: float, w: float, h: float, **kwargs) -> "BoxObject":
        """Create BoxObject from (x, y, width, height)."""
        return cls(obj=BoundingBox.from_xywh(x, y, w, h), **kwargs)
