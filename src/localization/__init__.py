"""
Localization layer: maps pixel detections onto the ground plane.
"""

from .homography import CalibrationError, GroundPlaneMapper, Quad, parallax_factor

__all__ = [
    "CalibrationError",
    "GroundPlaneMapper",
    "Quad",
    "parallax_factor",
]
