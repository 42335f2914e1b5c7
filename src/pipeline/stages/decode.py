"""
Detection decoding stage.

Interprets a flat YOLO-style output buffer. Each candidate row is

    [cx, cy, w, h, ..., box_conf, score_0, ..., score_{K-1}]

with the box in model input pixels, box_conf at `box_confidence_index`
and the K class scores right after it.
"""

from __future__ import annotations

from typing import List, Sequence

import numpy as np

from models.detection import BoundingBox, Detection, RawCandidate
from models.errors import TensorShapeMismatchError
from models.tensor import Tensor


def decode(
    output: Tensor,
    num_classes: int,
    box_confidence_index: int = 4,
    input_width: int = 640,
    input_height: int = 640,
    confidence_threshold: float = 0.0,
) -> List[RawCandidate]:
    """
    Decode raw model output into candidates.

    Rows whose final confidence (box_conf * best class score) is below
    `confidence_threshold` are skipped here rather than after decoding; the
    result is the same either way. Rows with a non-finite box value, and
    rows whose clamped box has no area, are dropped.

    Raises:
        TensorShapeMismatchError: If the buffer is not a whole number of rows.
    """
    row_width = box_confidence_index + 1 + num_classes
    values = np.asarray(output.data, dtype=np.float64).reshape(-1)
    if values.size % row_width != 0:
        raise TensorShapeMismatchError(
            f"Output of {values.size} values is not a multiple of row width {row_width}",
            expected=row_width,
            actual=values.size,
        )
    rows = values.reshape(-1, row_width)
    if rows.shape[0] == 0:
        return []

    box_conf = rows[:, box_confidence_index]
    scores = rows[:, box_confidence_index + 1:]
    best = np.argmax(scores, axis=1)
    best_score = scores[np.arange(rows.shape[0]), best]
    final = box_conf * best_score

    keep = (
        (final >= confidence_threshold)
        & np.isfinite(final)
        & np.isfinite(rows[:, :4]).all(axis=1)
    )

    candidates: List[RawCandidate] = []
    for i in np.flatnonzero(keep):
        cx, cy, w, h = (float(v) for v in rows[i, :4])
        bbox = BoundingBox.from_center(
            cx, cy, w, h, scale_x=input_width, scale_y=input_height
        ).clamped()
        if bbox.is_degenerate:
            continue
        candidates.append(
            RawCandidate(
                cx=cx,
                cy=cy,
                w=w,
                h=h,
                box_confidence=float(box_conf[i]),
                class_scores=scores[i].copy(),
                class_id=int(best[i]),
                class_score=float(best_score[i]),
                confidence=float(final[i]),
                bbox=bbox,
            )
        )
    return candidates


def to_detections(candidates: Sequence[RawCandidate], labels: Sequence[str]) -> List[Detection]:
    """Attach labels and build Detection objects, keeping candidate order."""
    return [c.to_detection(labels) for c in candidates]
