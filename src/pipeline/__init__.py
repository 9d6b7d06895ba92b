"""
Pipeline module: the pluggable detection-algorithm contract.
"""

from .base import Pipeline, StagedPipeline

__all__ = ["Pipeline", "StagedPipeline"]
