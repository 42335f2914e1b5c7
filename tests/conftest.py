"""
Pytest configuration and shared fixtures.
"""

import os
import sys

import numpy as np
import pytest

# Add src to path for imports
sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "src"))

from models.frame import FrameData  # noqa: E402

NUM_CLASSES = 80
ROW_WIDTH = 5 + NUM_CLASSES


def make_row(cx, cy, w, h, box_conf, class_id, class_score, num_classes=NUM_CLASSES):
    """Build one output row: box in input pixels, objectness, one-hot-ish scores."""
    row = np.zeros(5 + num_classes, dtype=np.float32)
    row[:5] = [cx, cy, w, h, box_conf]
    row[5 + class_id] = class_score
    return row


def make_output(rows, num_classes=NUM_CLASSES):
    """Stack rows into a [1, N, 5 + num_classes] output array."""
    if not rows:
        return np.zeros((1, 0, 5 + num_classes), dtype=np.float32)
    return np.stack(rows).reshape(1, len(rows), 5 + num_classes)


def make_frame(width=64, height=48, value=128, index=0):
    pixels = np.full((height, width, 3), value, dtype=np.uint8)
    return FrameData.from_numpy(pixels, timestamp=1000.0 + index, frame_index=index)


@pytest.fixture
def frame():
    return make_frame()


@pytest.fixture
def gradient_frame():
    """4x4 RGB frame whose red channel encodes the pixel index."""
    pixels = np.zeros((4, 4, 3), dtype=np.uint8)
    pixels[:, :, 0] = np.arange(16, dtype=np.uint8).reshape(4, 4) * 10
    pixels[:, :, 1] = 255
    return FrameData.from_numpy(pixels, timestamp=0.0)


@pytest.fixture
def temp_config_dir(tmp_path):
    """Create a temporary config directory with default.yaml."""
    config_dir = tmp_path / "config"
    config_dir.mkdir()

    default_yaml = config_dir / "default.yaml"
    default_yaml.write_text("""
pipeline:
  confidence_threshold: 0.5
  iou_threshold: 0.4
  max_detections: 10
  input_width: 320
  input_height: 320
  frame_skip_budget: 2
  scheduling_policy: "skip"

backend:
  kind: "mock"
  seed: 7

log_path: "logs/test.log"
log_level: "INFO"
""")

    return config_dir


@pytest.fixture
def valid_config():
    """Return a valid configuration dictionary."""
    return {
        "pipeline": {
            "confidence_threshold": 0.5,
            "iou_threshold": 0.4,
            "max_detections": 10,
            "input_width": 64,
            "input_height": 64,
            "frame_skip_budget": 0,
            "scheduling_policy": "coalesce",
        },
        "backend": {
            "kind": "mock",
            "seed": 1,
            "num_candidates": 50,
        },
        "log_path": "logs/test.log",
        "log_level": "INFO",
    }
