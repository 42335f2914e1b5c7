"""
Class label tables.
"""

from __future__ import annotations

import os
from typing import List, Optional

import yaml

COCO_LABELS: List[str] = [
    "person", "bicycle", "car", "motorcycle", "airplane", "bus", "train", "truck", "boat",
    "traffic light", "fire hydrant", "stop sign", "parking meter", "bench", "bird", "cat",
    "dog", "horse", "sheep", "cow", "elephant", "bear", "zebra", "giraffe", "backpack",
    "umbrella", "handbag", "tie", "suitcase", "frisbee", "skis", "snowboard", "sports ball",
    "kite", "baseball bat", "baseball glove", "skateboard", "surfboard", "tennis racket",
    "bottle", "wine glass", "cup", "fork", "knife", "spoon", "bowl", "banana", "apple",
    "sandwich", "orange", "broccoli", "carrot", "hot dog", "pizza", "donut", "cake",
    "chair", "couch", "potted plant", "bed", "dining table", "toilet", "tv", "laptop",
    "mouse", "remote", "keyboard", "cell phone", "microwave", "oven", "toaster", "sink",
    "refrigerator", "book", "clock", "vase", "scissors", "teddy bear", "hair drier", "toothbrush",
]


def load_labels(path: Optional[str]) -> List[str]:
    """
    Load a label table.

    Accepts a YAML file holding a list (or an index -> name mapping, or a
    `names:` key in either form), or a plain text file with one label per
    line. Returns the COCO labels when `path` is empty.
    """
    if not path:
        return list(COCO_LABELS)
    if not os.path.exists(path):
        raise FileNotFoundError(f"Label file not found: {path}")

    with open(path, "r") as f:
        text = f.read()

    if path.endswith((".yaml", ".yml")):
        data = yaml.safe_load(text) or []
        if isinstance(data, dict) and "names" in data:
            data = data["names"]
        if isinstance(data, dict):
            return [str(data[k]) for k in sorted(data, key=int)]
        return [str(name) for name in data]

    return [line.strip() for line in text.splitlines() if line.strip()]
