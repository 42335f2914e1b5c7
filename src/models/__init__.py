"""
Typed models for the detection pipeline.

Frames, tensors, detections, configuration and the error taxonomy shared
by every stage.
"""

from .frame import FrameData
from .tensor import Tensor
from .detection import (
    BoundingBox,
    Detection,
    DetectionBatch,
    RawCandidate,
    iou,
)
from .errors import (
    DetectionError,
    InvalidFrameError,
    TensorShapeMismatchError,
    BackendExecutionError,
)
from .labels import COCO_LABELS, load_labels
from .config import (
    Config,
    PipelineConfig,
    BackendConfig,
    CameraConfig,
    SchedulingPolicy,
    Interpolation,
)

__all__ = [
    # Frame / tensor
    "FrameData",
    "Tensor",
    # Detection
    "BoundingBox",
    "Detection",
    "DetectionBatch",
    "RawCandidate",
    "iou",
    # Errors
    "DetectionError",
    "InvalidFrameError",
    "TensorShapeMismatchError",
    "BackendExecutionError",
    # Labels
    "COCO_LABELS",
    "load_labels",
    # Config
    "Config",
    "PipelineConfig",
    "BackendConfig",
    "CameraConfig",
    "SchedulingPolicy",
    "Interpolation",
]
