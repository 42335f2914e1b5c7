"""
Frame sources for the demo runner.

Sources produce RGB FrameData; the detection pipeline never talks to a
camera directly.
"""

from .base import FrameSource, SourceConfig
from .opencv_source import OpenCVSource, OpenCVSourceConfig

__all__ = [
    "FrameSource",
    "SourceConfig",
    "OpenCVSource",
    "OpenCVSourceConfig",
]
