"""
Inference backend interface.

A backend executes a model on one fixed-shape input array and returns one
fixed-shape output array. The pipeline only talks to backends through
ShapeCheckedBackend, which enforces that contract.
"""

from __future__ import annotations

import logging
from typing import Protocol, Sequence, Tuple

import numpy as np

from models.errors import BackendExecutionError, DetectionError, TensorShapeMismatchError
from models.tensor import Tensor


class InferenceBackend(Protocol):
    def invoke(self, input_data: np.ndarray) -> np.ndarray:
        ...

    def input_shape(self) -> Sequence[int]:
        ...

    def output_shape(self) -> Sequence[int]:
        ...


def _as_shape(shape: Sequence[int]) -> Tuple[int, ...]:
    return tuple(int(d) for d in shape)


class ShapeCheckedBackend:
    """
    Wraps a backend and validates tensor shapes around every call.

    Backend shapes are read once; the wrapped backend is reused for every
    call and is never invoked concurrently by the pipeline.
    """

    def __init__(self, backend: InferenceBackend):
        self._backend = backend
        self._input_shape = _as_shape(backend.input_shape())
        self._output_shape = _as_shape(backend.output_shape())
        logging.info(
            f"Inference backend ready: {type(backend).__name__} "
            f"input={self._input_shape} output={self._output_shape}"
        )

    @property
    def backend(self) -> InferenceBackend:
        return self._backend

    def input_shape(self) -> Tuple[int, ...]:
        return self._input_shape

    def output_shape(self) -> Tuple[int, ...]:
        return self._output_shape

    def invoke(self, tensor: Tensor) -> Tensor:
        """
        Run the backend on `tensor`.

        Raises:
            TensorShapeMismatchError: If the input or output shape differs
                from the declared one.
            BackendExecutionError: If the backend raised.
        """
        if tensor.shape != self._input_shape:
            raise TensorShapeMismatchError(
                f"Input tensor shape {tensor.shape} does not match backend input {self._input_shape}",
                expected=self._input_shape,
                actual=tensor.shape,
            )

        try:
            raw = self._backend.invoke(tensor.data)
        except DetectionError:
            raise
        except Exception as e:
            raise BackendExecutionError(f"Backend invoke failed: {e}") from e

        output = Tensor.from_numpy(np.asarray(raw, dtype=np.float32))
        if output.shape != self._output_shape:
            raise TensorShapeMismatchError(
                f"Output tensor shape {output.shape} does not match backend output {self._output_shape}",
                expected=self._output_shape,
                actual=output.shape,
            )
        return output
