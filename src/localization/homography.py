"""
Ground-plane homography mapping.

A GroundPlaneMapper is calibrated once from four image points and the four
floor positions they correspond to, then maps any image point onto the floor.
World coordinates put the camera at the origin with x to the right and y
pointing forward.
"""

from __future__ import annotations

import itertools
from dataclasses import dataclass
from typing import Iterable, List, Sequence, Tuple

import cv2
import numpy as np

Point = Tuple[float, float]


class CalibrationError(ValueError):
    """Raised when calibration points cannot define a projective transform."""


@dataclass(frozen=True)
class Quad:
    """
    Four corners of a calibration rectangle.
    
    In image space the corners are pixel coordinates; in world space they are
    floor positions relative to the camera (same unit as the heights passed to
    the detector).
    """
    top_left: Point
    top_right: Point
    bottom_left: Point
    bottom_right: Point

    def corners(self) -> List[Point]:
        """Corners in the order used to solve the transform."""
        return [self.top_left, self.top_right, self.bottom_left, self.bottom_right]

    @classmethod
    def from_list(cls, points: Sequence[Sequence[float]]) -> "Quad":
        """Create from [[x, y], ...] ordered top-left, top-right, bottom-left, bottom-right."""
        if len(points) != 4:
            raise CalibrationError(f"Expected 4 corner points, got {len(points)}")
        tl, tr, bl, br = (tuple(float(c) for c in p) for p in points)
        return cls(top_left=tl, top_right=tr, bottom_left=bl, bottom_right=br)

    @classmethod
    def from_rect(cls, x: float, y: float, width: float, height: float) -> "Quad":
        """Create an axis-aligned quad from an (x, y, width, height) rectangle."""
        return cls(
            top_left=(x, y),
            top_right=(x + width, y),
            bottom_left=(x, y + height),
            bottom_right=(x + width, y + height),
        )


_COLLINEAR_TOLERANCE = 1e-9


def _check_corners(points: np.ndarray, name: str) -> None:
    """Reject corners that cannot be the vertices of a quadrilateral."""
    if not np.all(np.isfinite(points)):
        raise CalibrationError(f"{name} calibration points must be finite")
    extent = np.ptp(points, axis=0).max()
    if extent <= 0.0:
        raise CalibrationError(f"{name} calibration points are all identical")
    for i, j, k in itertools.combinations(range(4), 3):
        ab = points[j] - points[i]
        ac = points[k] - points[i]
        if abs(ab[0] * ac[1] - ab[1] * ac[0]) <= _COLLINEAR_TOLERANCE * extent * extent:
            raise CalibrationError(f"{name} calibration points are degenerate (three are collinear)")


def _solve_homography(src: List[Point], dst: List[Point]) -> np.ndarray:
    src_pts = np.asarray(src, dtype=np.float64)
    dst_pts = np.asarray(dst, dtype=np.float64)
    _check_corners(src_pts, "Camera")
    _check_corners(dst_pts, "World")

    matrix = cv2.getPerspectiveTransform(src_pts.astype(np.float32), dst_pts.astype(np.float32))
    if not np.all(np.isfinite(matrix)) or abs(np.linalg.det(matrix)) < 1e-12:
        raise CalibrationError("Calibration produced a singular transform")
    return matrix


class GroundPlaneMapper:
    """
    Immutable projective transform from image pixels to floor coordinates.
    
    Example:
        mapper = GroundPlaneMapper(camera_quad, world_quad)
        x, y = mapper.map_point((320.0, 470.0))
    """

    def __init__(self, camera_quad: Quad, world_quad: Quad):
        self._camera_quad = camera_quad
        self._world_quad = world_quad
        self._matrix = _solve_homography(camera_quad.corners(), world_quad.corners())
        self._matrix.setflags(write=False)

    @property
    def camera_quad(self) -> Quad:
        return self._camera_quad

    @property
    def world_quad(self) -> Quad:
        return self._world_quad

    @property
    def matrix(self) -> np.ndarray:
        """Copy of the 3x3 homography matrix."""
        return self._matrix.copy()

    def map_point(self, point: Point) -> Point:
        """Map one image point to world coordinates."""
        m = self._matrix
        x, y = point
        w = m[2, 0] * x + m[2, 1] * y + m[2, 2]
        return (
            float((m[0, 0] * x + m[0, 1] * y + m[0, 2]) / w),
            float((m[1, 0] * x + m[1, 1] * y + m[1, 2]) / w),
        )

    def map_points(self, points: Iterable[Point]) -> List[Point]:
        """Map a batch of image points to world coordinates."""
        src = np.asarray(list(points), dtype=np.float64).reshape(-1, 1, 2)
        if src.size == 0:
            return []
        dst = cv2.perspectiveTransform(src, self._matrix)
        return [(float(u), float(v)) for u, v in dst.reshape(-1, 2)]

    def __repr__(self) -> str:
        return f"GroundPlaneMapper(camera={self._camera_quad}, world={self._world_quad})"


def parallax_factor(object_height_offset: float, camera_height: float) -> float:
    """
    Scale factor correcting a mapped ground position for object height.
    
    The mapper assumes every pixel lies on the floor. A reference point raised
    object_height_offset above the floor projects beyond its true footprint, so
    the planar vector from the camera is shortened by similar triangles:
    (camera_height - object_height_offset) / camera_height.
    
    A camera_height of 0 or less means no height information and yields 1.0.
    
    Raises:
        ValueError: If the offset is negative or not below the camera height.
    """
    if camera_height <= 0.0:
        return 1.0
    if object_height_offset < 0.0 or object_height_offset >= camera_height:
        raise ValueError(
            f"object_height_offset must be in [0, camera_height): "
            f"offset={object_height_offset}, camera_height={camera_height}"
        )
    return (camera_height - object_height_offset) / camera_height
