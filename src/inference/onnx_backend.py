"""
ONNX Runtime inference backend.

Uses onnxruntime if installed (`pip install .[onnx]`). The model must have
one float input and one output with static shapes; dynamic dimensions are
resolved to 1. Channel-first inputs (`[1, 3, H, W]`, the usual YOLO export
layout) are reported as `[1, H, W, 3]` and transposed on each call.
"""

from __future__ import annotations

import logging
from typing import Any, List, Optional, Sequence, Tuple, Union

import numpy as np


def _static_shape(shape: Sequence[Any]) -> Tuple[int, ...]:
    return tuple(d if isinstance(d, int) and d > 0 else 1 for d in shape)


class OnnxBackend:
    def __init__(
        self,
        model: Union[str, bytes],
        providers: Optional[List[str]] = None,
    ):
        try:
            import onnxruntime as ort  # type: ignore
        except Exception as e:  # pragma: no cover
            raise ImportError(
                "onnxruntime is not installed. Install with `pip install onnxruntime` "
                "or switch backend.kind to 'mock'."
            ) from e

        self._session = ort.InferenceSession(
            model, providers=providers or ["CPUExecutionProvider"]
        )
        inp = self._session.get_inputs()[0]
        out = self._session.get_outputs()[0]
        self._input_name = inp.name
        shape = _static_shape(inp.shape)
        self._channels_first = len(shape) == 4 and shape[1] == 3 and shape[3] != 3
        if self._channels_first:
            shape = (shape[0], shape[2], shape[3], shape[1])
        self._input_shape = shape
        self._output_shape = _static_shape(out.shape)
        logging.info(
            f"ONNX model loaded: input={self._input_name}{self._input_shape} "
            f"output={out.name}{self._output_shape}"
            + (" (channels first)" if self._channels_first else "")
        )

    @classmethod
    def from_bytes(cls, model: bytes, providers: Optional[List[str]] = None) -> "OnnxBackend":
        return cls(model, providers=providers)

    def input_shape(self) -> Tuple[int, ...]:
        return self._input_shape

    def output_shape(self) -> Tuple[int, ...]:
        return self._output_shape

    def invoke(self, input_data: np.ndarray) -> np.ndarray:
        if self._channels_first:
            input_data = np.transpose(input_data, (0, 3, 1, 2))
        outputs = self._session.run(
            None, {self._input_name: np.ascontiguousarray(input_data, dtype=np.float32)}
        )
        return np.asarray(outputs[0])
