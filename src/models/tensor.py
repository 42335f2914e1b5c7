"""
Tensor model passed between pipeline stages.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Sequence, Tuple

import numpy as np


@dataclass(frozen=True)
class Tensor:
    """
    A numeric buffer with an explicit shape.

    The stage that creates a Tensor owns it; stages never hand out views of
    their own buffers, so a Tensor is never aliased across stages.

    Attributes:
        data: Array holding the values, already laid out in `shape`.
    """
    data: np.ndarray

    @property
    def shape(self) -> Tuple[int, ...]:
        return tuple(int(d) for d in self.data.shape)

    @property
    def size(self) -> int:
        return int(self.data.size)

    def flat(self) -> np.ndarray:
        """Return the values as a 1-D array (a copy)."""
        return self.data.reshape(-1).copy()

    @classmethod
    def from_flat(cls, values: Sequence[float], shape: Sequence[int]) -> "Tensor":
        """Create from a flat buffer and a shape."""
        arr = np.array(values, dtype=np.float32)
        return cls(data=arr.reshape(tuple(shape)))

    @classmethod
    def from_numpy(cls, arr: np.ndarray) -> "Tensor":
        """Create from an array, copying it so the caller keeps its buffer."""
        return cls(data=np.array(arr, copy=True))
