"""
Pytest configuration and shared fixtures.
"""

import os
import sys

import pytest

# Add src to path for imports
sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "src"))


@pytest.fixture
def temp_config_dir(tmp_path):
    """Create a temporary config directory with default.yaml."""
    config_dir = tmp_path / "config"
    config_dir.mkdir()
    
    default_yaml = config_dir / "default.yaml"
    default_yaml.write_text("""
camera:
  device_id: 0
  resolution: [640, 480]
  fps: 30

detection:
  pipeline: "pipeline.base:StagedPipeline"
  camera_height: 0.0

scheduler:
  processing_interval_ms: 20

log_path: "logs/test.log"
log_level: "INFO"
""")
    
    return config_dir


@pytest.fixture
def valid_config():
    """Return a valid configuration dictionary."""
    return {
        "camera": {
            "device_id": 0,
            "resolution": [640, 480],
            "fps": 30,
        },
        "calibration": {
            "camera_quad": [[0, 0], [640, 0], [0, 480], [640, 480]],
            "world_quad": [[-32, 48], [32, 48], [-32, 0], [32, 0]],
        },
        "detection": {
            "pipeline": "pipeline.base:StagedPipeline",
            "object_height_offset": 2.0,
            "camera_height": 10.0,
        },
        "scheduler": {
            "processing_interval_ms": 50,
            "num_image_buffers": 3,
            "video_out_step": 0,
            "annotate": True,
        },
        "log_path": "logs/test.log",
        "log_level": "INFO",
    }
