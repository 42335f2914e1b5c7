"""
Detection pipeline.

The pipeline turns camera frames into detection batches:
- Frame scheduling (skip or coalesce) in front of a single worker
- Preprocessing, inference, decoding and suppression per frame
- Delivery of each batch to registered listeners
"""

from .engine import DetectionPipeline, PipelineStats, create_pipeline_from_config
from .scheduler import FrameScheduler, FrameState

__all__ = [
    "DetectionPipeline",
    "PipelineStats",
    "create_pipeline_from_config",
    "FrameScheduler",
    "FrameState",
]
