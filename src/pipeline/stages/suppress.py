"""
Non-Maximum Suppression stage.
"""

from __future__ import annotations

from typing import List, Sequence

import numpy as np

from models.detection import Detection


def _iou_against(boxes: np.ndarray, areas: np.ndarray, i: int, others: np.ndarray) -> np.ndarray:
    """IoU of box `i` against each box in `others`; 0 where they do not overlap."""
    xx1 = np.maximum(boxes[i, 0], boxes[others, 0])
    yy1 = np.maximum(boxes[i, 1], boxes[others, 1])
    xx2 = np.minimum(boxes[i, 2], boxes[others, 2])
    yy2 = np.minimum(boxes[i, 3], boxes[others, 3])
    w = xx2 - xx1
    h = yy2 - yy1

    overlapping = (w > 0) & (h > 0)
    inter = np.where(overlapping, w * h, 0.0)
    union = areas[i] + areas[others] - inter
    with np.errstate(divide="ignore", invalid="ignore"):
        return np.where(overlapping & (union > 0), inter / union, 0.0)


def suppress(
    candidates: Sequence[Detection],
    iou_threshold: float,
    max_count: int,
    class_aware: bool = False,
) -> List[Detection]:
    """
    Greedy NMS.

    Candidates are sorted by descending confidence (stable, so ties keep
    their input order). The best remaining candidate is kept and every
    remaining candidate overlapping it by more than `iou_threshold` is
    removed, until nothing remains or `max_count` are kept.

    Args:
        candidates: Detections to filter.
        iou_threshold: Overlap above which the weaker box is removed.
        max_count: Maximum number of detections returned.
        class_aware: Only suppress boxes that share a class id.
    """
    if len(candidates) == 0:
        return []

    boxes = np.array([d.bbox.as_tuple() for d in candidates], dtype=np.float64)
    scores = np.array([d.confidence for d in candidates], dtype=np.float64)
    classes = np.array([d.class_id for d in candidates])
    areas = np.maximum(boxes[:, 2] - boxes[:, 0], 0.0) * np.maximum(boxes[:, 3] - boxes[:, 1], 0.0)

    order = np.argsort(-scores, kind="stable")
    keep: List[int] = []

    while order.size > 0 and len(keep) < max_count:
        i = int(order[0])
        keep.append(i)
        rest = order[1:]
        suppressed = _iou_against(boxes, areas, i, rest) > iou_threshold
        if class_aware:
            suppressed &= classes[rest] == classes[i]
        order = rest[~suppressed]

    return [candidates[i] for i in keep]
