"""
Detection models for object detection results.

All boxes here are in normalized image coordinates ([0, 1] on both axes).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterator, List, Optional, Sequence, Tuple

import numpy as np


def clamp01(value: float) -> float:
    return min(max(float(value), 0.0), 1.0)


@dataclass(frozen=True)
class BoundingBox:
    """
    An axis-aligned box in normalized coordinates.

    Attributes:
        x1: Left edge.
        y1: Top edge.
        x2: Right edge.
        y2: Bottom edge.
    """
    x1: float
    y1: float
    x2: float
    y2: float

    @property
    def x(self) -> float:
        return self.x1

    @property
    def y(self) -> float:
        return self.y1

    @property
    def width(self) -> float:
        return self.x2 - self.x1

    @property
    def height(self) -> float:
        return self.y2 - self.y1

    @property
    def center(self) -> Tuple[float, float]:
        return ((self.x1 + self.x2) / 2, (self.y1 + self.y2) / 2)

    @property
    def area(self) -> float:
        return max(self.width, 0.0) * max(self.height, 0.0)

    @property
    def is_degenerate(self) -> bool:
        return not (self.x2 > self.x1 and self.y2 > self.y1)

    def as_tuple(self) -> Tuple[float, float, float, float]:
        """Return as (x1, y1, x2, y2) tuple."""
        return (self.x1, self.y1, self.x2, self.y2)

    def as_xywh(self) -> Tuple[float, float, float, float]:
        """Return as (x, y, width, height) tuple."""
        return (self.x1, self.y1, self.width, self.height)

    def to_pixels(self, frame_width: int, frame_height: int) -> Tuple[int, int, int, int]:
        """Scale to integer pixel corners for a frame of the given size."""
        return (
            int(round(self.x1 * frame_width)),
            int(round(self.y1 * frame_height)),
            int(round(self.x2 * frame_width)),
            int(round(self.y2 * frame_height)),
        )

    def clamped(self) -> "BoundingBox":
        """Return a copy with every coordinate clamped to [0, 1]."""
        return BoundingBox(
            x1=clamp01(self.x1),
            y1=clamp01(self.y1),
            x2=clamp01(self.x2),
            y2=clamp01(self.y2),
        )

    @classmethod
    def from_tuple(cls, t: Tuple[float, float, float, float]) -> "BoundingBox":
        """Create from (x1, y1, x2, y2) tuple."""
        return cls(x1=t[0], y1=t[1], x2=t[2], y2=t[3])

    @classmethod
    def from_xywh(cls, x: float, y: float, w: float, h: float) -> "BoundingBox":
        """Create from (x, y, width, height) format."""
        return cls(x1=x, y1=y, x2=x + w, y2=y + h)

    @classmethod
    def from_center(
        cls,
        cx: float,
        cy: float,
        w: float,
        h: float,
        scale_x: float = 1.0,
        scale_y: float = 1.0,
    ) -> "BoundingBox":
        """
        Create from center format, dividing by the given scale.

        Args:
            cx, cy, w, h: Center point and size, in units of the scale.
            scale_x: Width of the coordinate space (e.g. model input width).
            scale_y: Height of the coordinate space.
        """
        return cls(
            x1=(cx - w / 2.0) / scale_x,
            y1=(cy - h / 2.0) / scale_y,
            x2=(cx + w / 2.0) / scale_x,
            y2=(cy + h / 2.0) / scale_y,
        )


def iou(a: BoundingBox, b: BoundingBox) -> float:
    """
    Intersection over union of two boxes.

    Returns 0 when the boxes do not overlap.
    """
    ix1 = max(a.x1, b.x1)
    iy1 = max(a.y1, b.y1)
    ix2 = min(a.x2, b.x2)
    iy2 = min(a.y2, b.y2)
    if ix2 <= ix1 or iy2 <= iy1:
        return 0.0

    intersection = (ix2 - ix1) * (iy2 - iy1)
    union = a.area + b.area - intersection
    if union <= 0:
        return 0.0
    return intersection / union


@dataclass(frozen=True)
class Detection:
    """
    A single detection reported to listeners.

    Attributes:
        bbox: Bounding box in normalized coordinates.
        confidence: Final confidence score (0-1).
        class_id: Index into the label table.
        label: Human-readable class name.
    """
    bbox: BoundingBox
    confidence: float
    class_id: int
    label: str

    @property
    def x(self) -> float:
        return self.bbox.x

    @property
    def y(self) -> float:
        return self.bbox.y

    @property
    def width(self) -> float:
        return self.bbox.width

    @property
    def height(self) -> float:
        return self.bbox.height

    @property
    def center(self) -> Tuple[float, float]:
        return self.bbox.center

    def to_dict(self) -> dict:
        return {
            "label": self.label,
            "class_id": self.class_id,
            "confidence": self.confidence,
            "box": {"x": self.x, "y": self.y, "width": self.width, "height": self.height},
        }

    def __str__(self) -> str:
        return (
            f"{self.label} ({self.confidence:.1%}) at "
            f"(x={self.x:.3f}, y={self.y:.3f}, w={self.width:.3f}, h={self.height:.3f})"
        )


@dataclass(frozen=True)
class RawCandidate:
    """
    One decoded row of model output.

    Attributes:
        cx, cy, w, h: Center-format box in model input pixel space.
        box_confidence: Objectness score of the row.
        class_scores: Per-class score vector.
        class_id: Index of the best class score.
        class_score: Best class score.
        confidence: box_confidence * class_score.
        bbox: Corner box normalized by the input size, clamped to [0, 1].
    """
    cx: float
    cy: float
    w: float
    h: float
    box_confidence: float
    class_scores: np.ndarray = field(repr=False, compare=False)
    class_id: int
    class_score: float
    confidence: float
    bbox: BoundingBox

    def to_detection(self, labels: Sequence[str]) -> Detection:
        return Detection(
            bbox=self.bbox,
            confidence=clamp01(self.confidence),
            class_id=self.class_id,
            label=label_for(self.class_id, labels),
        )


def label_for(class_id: int, labels: Sequence[str]) -> str:
    """Return the label for a class index, or a `class_<i>` placeholder."""
    if 0 <= class_id < len(labels):
        return labels[class_id]
    return f"class_{class_id}"


@dataclass(frozen=True)
class DetectionBatch:
    """
    The result of one successful pipeline run.

    Detections are ordered by descending confidence.

    Attributes:
        detections: The detections, best first.
        frame_index: Index of the frame that produced the batch.
        timestamp: Capture timestamp of that frame.
        inference_ms: Wall time of the whole run in milliseconds.
    """
    detections: Tuple[Detection, ...] = ()
    frame_index: int = 0
    timestamp: Optional[float] = None
    inference_ms: float = 0.0

    def __len__(self) -> int:
        return len(self.detections)

    def __iter__(self) -> Iterator[Detection]:
        return iter(self.detections)

    def __getitem__(self, idx: int) -> Detection:
        return self.detections[idx]

    @property
    def is_empty(self) -> bool:
        return not self.detections

    def labels(self) -> List[str]:
        return [d.label for d in self.detections]


def detections_to_numpy(detections: Sequence[Detection]) -> np.ndarray:
    """
    Adapter: Convert detections to an array.

    Returns:
        Array of shape (N, 6) with [x1, y1, x2, y2, confidence, class_id].
    """
    if not detections:
        return np.zeros((0, 6), dtype=np.float32)
    return np.array(
        [[*d.bbox.as_tuple(), d.confidence, d.class_id] for d in detections],
        dtype=np.float32,
    )
