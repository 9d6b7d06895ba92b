"""
Configuration loading and validation.

Layering:
- `config/default.yaml` (checked in)
- `config/config.yaml` (local overrides)
- plus any explicitly provided `--config` path (treated as overrides)
"""

from __future__ import annotations

import os
from typing import Any, Dict, Optional, Tuple

import yaml

VALID_LOG_LEVELS = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]


def _deep_merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    """Recursively merge override into base and return base."""
    for k, v in (override or {}).items():
        if isinstance(v, dict) and isinstance(base.get(k), dict):
            _deep_merge(base[k], v)
        else:
            base[k] = v
    return base


def _read_yaml(path: str) -> Dict[str, Any]:
    with open(path, "r") as f:
        return yaml.safe_load(f) or {}


def load_config(config_path: str) -> Dict[str, Any]:
    """
    Load the layered configuration.
    
    Raises:
        OSError / yaml.YAMLError: If a present file cannot be read or parsed.
    """
    config_dir = os.path.dirname(config_path)
    base_path = os.path.join(config_dir, "default.yaml")
    local_overrides_path = os.path.join(config_dir, "config.yaml")

    merged: Dict[str, Any] = _read_yaml(base_path) if os.path.exists(base_path) else {}
    if os.path.exists(local_overrides_path):
        merged = _deep_merge(merged, _read_yaml(local_overrides_path))

    # Finally apply explicit config_path if it's not one of the files above
    explicit = os.path.abspath(config_path)
    if (
        os.path.exists(config_path)
        and explicit != os.path.abspath(local_overrides_path)
        and explicit != os.path.abspath(base_path)
    ):
        merged = _deep_merge(merged, _read_yaml(config_path))

    return merged


def _is_point_list(value: Any) -> bool:
    return (
        isinstance(value, list)
        and len(value) == 4
        and all(
            isinstance(p, (list, tuple)) and len(p) == 2
            and all(isinstance(c, (int, float)) and not isinstance(c, bool) for c in p)
            for p in value
        )
    )


def validate_config(config: Dict[str, Any]) -> Tuple[bool, Optional[str]]:
    """
    Validate configuration structure and values.
    
    Args:
        config: Configuration dictionary
        
    Returns:
        Tuple of (is_valid, error_message)
    """
    required_sections = ["camera", "detection", "log_path", "log_level"]
    for section in required_sections:
        if section not in config:
            return False, f"Missing required configuration section: {section}"

    camera = config.get("camera") or {}
    if "device_id" not in camera:
        return False, "Missing camera.device_id"
    if not isinstance(camera["device_id"], (int, str)) or isinstance(camera["device_id"], bool):
        return False, "camera.device_id must be an integer (index) or string (URL/path)"
    if isinstance(camera["device_id"], int) and camera["device_id"] < 0:
        return False, "camera.device_id integer must be non-negative"

    if "resolution" not in camera:
        return False, "Missing camera.resolution"
    if not isinstance(camera["resolution"], list) or len(camera["resolution"]) != 2:
        return False, "camera.resolution must be a list of [width, height]"
    if not all(isinstance(x, int) and x > 0 for x in camera["resolution"]):
        return False, "camera.resolution values must be positive integers"

    if camera.get("rotate", 0) not in (0, 90, 180, 270):
        return False, "camera.rotate must be one of: 0, 90, 180, 270"

    detection = config.get("detection") or {}
    pipeline = detection.get("pipeline")
    if not isinstance(pipeline, str) or ":" not in pipeline:
        return False, "detection.pipeline must be given as 'module:ClassName'"
    if "pipeline_args" in detection and not isinstance(detection["pipeline_args"], (dict, type(None))):
        return False, "detection.pipeline_args must be a mapping"
    camera_height = detection.get("camera_height", 0.0)
    offset = detection.get("object_height_offset", 0.0)
    if not isinstance(camera_height, (int, float)) or not isinstance(offset, (int, float)):
        return False, "detection.camera_height and detection.object_height_offset must be numbers"
    if camera_height > 0 and not (0 <= offset < camera_height):
        return False, "detection.object_height_offset must be in [0, camera_height)"

    calibration = config.get("calibration")
    if calibration:
        if not _is_point_list(calibration.get("camera_quad")):
            return False, "calibration.camera_quad must be 4 [x, y] points"
        if not _is_point_list(calibration.get("world_quad")):
            return False, "calibration.world_quad must be 4 [x, y] points"

    scheduler = config.get("scheduler") or {}
    interval = scheduler.get("processing_interval_ms", 0)
    if not isinstance(interval, int) or interval < 0:
        return False, "scheduler.processing_interval_ms must be a non-negative integer"
    buffers = scheduler.get("num_image_buffers", 2)
    if not isinstance(buffers, int) or buffers <= 0:
        return False, "scheduler.num_image_buffers must be a positive integer"
    if not isinstance(scheduler.get("video_out_step", -1), int):
        return False, "scheduler.video_out_step must be an integer"

    if config["log_level"] not in VALID_LOG_LEVELS:
        return False, f"log_level must be one of: {', '.join(VALID_LOG_LEVELS)}"

    return True, None
