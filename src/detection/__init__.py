"""
Detection module: the detector orchestrating swappable pipelines.
"""

from .detector import Detector, create_detector_from_config, load_pipeline_class

__all__ = ["Detector", "create_detector_from_config", "load_pipeline_class"]
