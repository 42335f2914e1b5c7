"""
Frame preprocessing stage.

Turns an RGB frame of any size into the float tensor the backend expects:
shape [1, H, W, 3], channel-last, optionally normalized to [-1, 1].

Resampling rules:
- nearest: output pixel (x, y) reads source pixel
  (round(x / W_out * (W_in - 1)), round(y / H_out * (H_in - 1))), with
  numpy's round-half-to-even.
- bilinear: cv2.resize with INTER_LINEAR.
"""

from __future__ import annotations

import cv2
import numpy as np

from models.config import Interpolation
from models.errors import InvalidFrameError
from models.frame import FrameData
from models.tensor import Tensor


def _nearest_indices(out_size: int, in_size: int) -> np.ndarray:
    u = np.arange(out_size, dtype=np.float64) / out_size
    return np.rint(u * (in_size - 1)).astype(np.intp)


def _to_unit_float(pixels: np.ndarray) -> np.ndarray:
    if pixels.dtype == np.uint8:
        return pixels.astype(np.float32) / 255.0
    return pixels.astype(np.float32)


def validate_frame(frame: FrameData) -> np.ndarray:
    """
    Return the frame's RGB pixels as an (H, W, 3) array.

    Raises:
        InvalidFrameError: On a zero-sized frame or a malformed buffer.
    """
    if frame is None or frame.frame is None:
        raise InvalidFrameError("Frame has no pixel data")
    if frame.width <= 0 or frame.height <= 0:
        raise InvalidFrameError(f"Frame has zero size: {frame.width}x{frame.height}")

    pixels = np.asarray(frame.frame)
    if pixels.ndim != 3 or pixels.shape[2] not in (3, 4):
        raise InvalidFrameError(f"Expected an (H, W, 3) RGB buffer, got shape {pixels.shape}")
    if pixels.shape[0] != frame.height or pixels.shape[1] != frame.width:
        raise InvalidFrameError(
            f"Buffer shape {pixels.shape[:2]} does not match frame size "
            f"{frame.height}x{frame.width}"
        )
    return pixels[:, :, :3]


def preprocess(
    frame: FrameData,
    target_width: int,
    target_height: int,
    normalize: bool = True,
    interpolation: Interpolation = Interpolation.NEAREST,
) -> Tensor:
    """
    Resample `frame` to target_width x target_height and build the input tensor.

    Args:
        frame: RGB frame. uint8 buffers are scaled to [0, 1] first.
        target_width: Model input width.
        target_height: Model input height.
        normalize: Map [0, 1] values to [-1, 1] via (v - 0.5) / 0.5.
        interpolation: Resampling rule (see module docstring).

    Raises:
        InvalidFrameError: If the frame is empty or malformed.
        ValueError: If the target size is not positive.
    """
    if target_width <= 0 or target_height <= 0:
        raise ValueError(f"Invalid target size: {target_width}x{target_height}")

    pixels = _to_unit_float(validate_frame(frame))

    if Interpolation(interpolation) is Interpolation.BILINEAR:
        resized = cv2.resize(
            pixels, (target_width, target_height), interpolation=cv2.INTER_LINEAR
        )
    else:
        rows = _nearest_indices(target_height, frame.height)
        cols = _nearest_indices(target_width, frame.width)
        resized = pixels[rows[:, None], cols[None, :]]

    if normalize:
        resized = (resized - 0.5) / 0.5

    data = np.ascontiguousarray(resized, dtype=np.float32).reshape(
        1, target_height, target_width, 3
    )
    return Tensor(data=data)
