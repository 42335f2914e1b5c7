"""
Backends that run without a model file.

MockBackend produces plausible random YOLO-style rows so the pipeline can
run end to end on a development machine. StaticBackend always returns the
same output and is what tests use as a stub.
"""

from __future__ import annotations

from typing import Optional, Sequence, Tuple

import numpy as np

from models.errors import BackendExecutionError


class StaticBackend:
    """Backend that returns a fixed output array for every call."""

    def __init__(self, output: np.ndarray, input_shape: Sequence[int] = (1, 640, 640, 3)):
        self._output = np.asarray(output, dtype=np.float32)
        self._input_shape = tuple(int(d) for d in input_shape)
        self.calls = 0

    def input_shape(self) -> Tuple[int, ...]:
        return self._input_shape

    def output_shape(self) -> Tuple[int, ...]:
        return tuple(self._output.shape)

    def invoke(self, input_data: np.ndarray) -> np.ndarray:
        self.calls += 1
        return self._output.copy()


class MockBackend:
    """
    Random anchor-encoded output for development.

    Each row is [cx, cy, w, h, box_conf, scores...] in input pixel space.
    About 30% of rows get a box confidence in [0.5, 0.95] and a single
    dominant class; the rest are background noise.
    """

    def __init__(
        self,
        input_width: int = 640,
        input_height: int = 640,
        num_candidates: int = 100,
        num_classes: int = 80,
        seed: Optional[int] = 0,
    ):
        if num_candidates < 1 or num_classes < 1:
            raise ValueError("num_candidates and num_classes must be positive")
        self._input_width = input_width
        self._input_height = input_height
        self._num_candidates = num_candidates
        self._num_classes = num_classes
        self._rng = np.random.default_rng(seed)

    @classmethod
    def from_bytes(cls, model: bytes, **kwargs) -> "MockBackend":
        """Accept a model blob for interface parity; its contents are ignored."""
        if not model:
            raise BackendExecutionError("Empty model blob")
        return cls(**kwargs)

    def input_shape(self) -> Tuple[int, ...]:
        return (1, self._input_height, self._input_width, 3)

    def output_shape(self) -> Tuple[int, ...]:
        return (1, self._num_candidates, 5 + self._num_classes)

    def invoke(self, input_data: np.ndarray) -> np.ndarray:
        n, k = self._num_candidates, self._num_classes
        rng = self._rng
        out = np.zeros((n, 5 + k), dtype=np.float32)

        out[:, 0] = rng.uniform(0.2, 0.8, n) * self._input_width
        out[:, 1] = rng.uniform(0.2, 0.8, n) * self._input_height
        out[:, 2] = rng.uniform(0.1, 0.3, n) * self._input_width
        out[:, 3] = rng.uniform(0.1, 0.3, n) * self._input_height
        out[:, 4] = rng.uniform(0.0, 0.3, n)
        out[:, 5:] = rng.uniform(0.0, 0.1, (n, k))

        hits = rng.random(n) > 0.7
        out[hits, 4] = rng.uniform(0.5, 0.95, int(hits.sum()))
        classes = rng.integers(0, k, int(hits.sum()))
        out[np.flatnonzero(hits), 5 + classes] = rng.uniform(0.7, 1.0, int(hits.sum()))

        return out.reshape(self.output_shape())
