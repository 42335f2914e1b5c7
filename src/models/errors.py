"""
Error taxonomy for the detection pipeline.

Every failure of a single `detect` call is one of these. None of them are
retried by the pipeline; a caller that wants retries wraps the call.
"""

from __future__ import annotations


class DetectionError(Exception):
    """Base class for failures of a single detection run."""


class InvalidFrameError(DetectionError):
    """The input frame is empty or its pixel buffer is malformed."""


class TensorShapeMismatchError(DetectionError):
    """A tensor did not match the shape the backend contract declares."""

    def __init__(self, message: str, expected=None, actual=None):
        super().__init__(message)
        self.expected = expected
        self.actual = actual


class BackendExecutionError(DetectionError):
    """The inference backend itself failed while executing."""
