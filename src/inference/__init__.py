"""
Inference backends and the shape-checking adapter the pipeline uses.
"""

from .backend import InferenceBackend, ShapeCheckedBackend
from .mock_backend import MockBackend, StaticBackend
from .factory import create_backend_from_config

__all__ = [
    "InferenceBackend",
    "ShapeCheckedBackend",
    "MockBackend",
    "StaticBackend",
    "create_backend_from_config",
]
