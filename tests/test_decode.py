"""
Tests for decoding raw model output.
"""

import numpy as np
import pytest

from models.errors import TensorShapeMismatchError
from models.labels import COCO_LABELS
from models.tensor import Tensor
from pipeline.stages.decode import decode, to_detections

from conftest import make_output, make_row


def _decode(rows, threshold=0.0, **kwargs):
    return decode(
        Tensor(data=make_output(rows)),
        num_classes=80,
        box_confidence_index=4,
        input_width=kwargs.pop("input_width", 640),
        input_height=kwargs.pop("input_height", 640),
        confidence_threshold=threshold,
    )


class TestDecodeScenario:
    def test_single_row_final_confidence(self):
        """boxConfidence 0.9 x class 3 score 0.8 -> 0.72 for class 3."""
        candidates = _decode([make_row(320, 320, 64, 64, 0.9, 3, 0.8)], threshold=0.5)
        assert len(candidates) == 1
        c = candidates[0]
        assert c.class_id == 3
        assert c.class_score == pytest.approx(0.8)
        assert c.box_confidence == pytest.approx(0.9)
        assert c.confidence == pytest.approx(0.72)

    def test_to_detection_uses_label_table(self):
        candidates = _decode([make_row(320, 320, 64, 64, 0.9, 3, 0.8)])
        [det] = to_detections(candidates, COCO_LABELS)
        assert det.label == "motorcycle"
        assert det.class_id == 3

    def test_placeholder_label_outside_table(self):
        candidates = _decode([make_row(320, 320, 64, 64, 0.9, 5, 0.8)])
        [det] = to_detections(candidates, ["person", "bicycle"])
        assert det.label == "class_5"


class TestDecodeGeometry:
    def test_center_to_normalized_corners(self):
        [c] = _decode([make_row(320, 160, 128, 64, 1.0, 0, 1.0)])
        assert c.bbox.as_tuple() == pytest.approx((0.4, 0.2, 0.6, 0.3))

    def test_non_square_input(self):
        [c] = _decode(
            [make_row(160, 120, 32, 24, 1.0, 0, 1.0)], input_width=320, input_height=240
        )
        assert c.bbox.as_tuple() == pytest.approx((0.45, 0.45, 0.55, 0.55))

    def test_coordinates_clamped(self):
        [c] = _decode([make_row(10, 630, 100, 100, 1.0, 0, 1.0)])
        x1, y1, x2, y2 = c.bbox.as_tuple()
        assert x1 == 0.0
        assert y2 == 1.0
        assert 0.0 <= x2 <= 1.0 and 0.0 <= y1 <= 1.0

    def test_degenerate_boxes_dropped(self):
        rows = [
            make_row(320, 320, 0, 64, 1.0, 0, 1.0),      # zero width
            make_row(-100, 320, 50, 64, 1.0, 0, 1.0),    # entirely left of image
            make_row(320, 320, 64, 64, 1.0, 0, 1.0),
        ]
        assert len(_decode(rows)) == 1

    def test_non_finite_rows_dropped(self):
        rows = [
            make_row(float("nan"), 320, 64, 64, 0.9, 3, 0.8),
            make_row(320, 320, float("inf"), 64, 0.9, 3, 0.8),
            make_row(320, 320, 64, 64, float("inf"), 3, 0.8),
            make_row(320, 320, 64, 64, 0.9, 3, 0.8),
        ]
        candidates = _decode(rows, threshold=0.5)
        assert len(candidates) == 1
        assert candidates[0].confidence == pytest.approx(0.72)
        assert all(0.0 <= v <= 1.0 for v in candidates[0].bbox.as_tuple())


class TestDecodeThreshold:
    def test_rows_below_threshold_skipped(self):
        rows = [
            make_row(100, 100, 50, 50, 0.9, 1, 0.5),   # 0.45
            make_row(300, 300, 50, 50, 0.9, 2, 0.9),   # 0.81
        ]
        candidates = _decode(rows, threshold=0.5)
        assert [c.class_id for c in candidates] == [2]

    def test_early_filter_matches_late_filter(self):
        rng = np.random.default_rng(3)
        rows = [
            make_row(*rng.uniform(50, 590, 2), *rng.uniform(10, 100, 2),
                     rng.uniform(), int(rng.integers(80)), rng.uniform())
            for _ in range(40)
        ]
        early = _decode(rows, threshold=0.3)
        late = [c for c in _decode(rows, threshold=0.0) if c.confidence >= 0.3]
        assert [(c.class_id, c.confidence) for c in early] == [(c.class_id, c.confidence) for c in late]

    def test_high_class_score_with_low_objectness_kept_by_product(self):
        # objectness below threshold but class score above 1 keeps the product above it
        [c] = _decode([make_row(320, 320, 64, 64, 0.4, 0, 2.0)], threshold=0.5)
        assert c.confidence == pytest.approx(0.8)


class TestDecodeLayout:
    def test_argmax_first_index_on_ties(self):
        row = make_row(320, 320, 64, 64, 1.0, 7, 0.6)
        row[5 + 2] = 0.6
        [c] = _decode([row])
        assert c.class_id == 2

    def test_all_zero_scores_pick_class_zero(self):
        row = make_row(320, 320, 64, 64, 1.0, 0, 0.0)
        [c] = _decode([row], threshold=0.0)
        assert c.class_id == 0
        assert c.confidence == 0.0

    def test_empty_output(self):
        assert _decode([]) == []

    def test_flat_buffer_accepted(self):
        flat = make_row(320, 320, 64, 64, 0.9, 3, 0.8)
        candidates = decode(Tensor(data=flat), num_classes=80)
        assert len(candidates) == 1

    def test_partial_row_rejected(self):
        with pytest.raises(TensorShapeMismatchError):
            decode(Tensor(data=np.zeros(100, dtype=np.float32)), num_classes=80)

    def test_custom_box_confidence_index(self):
        # 4 box params, an extra column, then box confidence at index 5
        row = np.zeros(6 + 3, dtype=np.float32)
        row[:4] = [320, 320, 64, 64]
        row[4] = 123.0
        row[5] = 0.5
        row[6 + 1] = 1.0
        [c] = decode(Tensor(data=row), num_classes=3, box_confidence_index=5)
        assert c.class_id == 1
        assert c.confidence == pytest.approx(0.5)
