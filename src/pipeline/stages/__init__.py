"""
Pipeline stages for the detection pipeline.

Each stage is a pure function with no shared state:
- preprocess: Frame -> input tensor
- decode: output tensor -> raw candidates
- suppress: Non-Maximum Suppression and result cap
"""

from .preprocess import preprocess, validate_frame
from .decode import decode, to_detections
from .suppress import suppress

__all__ = ["preprocess", "validate_frame", "decode", "to_detections", "suppress"]
