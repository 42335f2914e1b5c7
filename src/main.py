"""
Live object detection runner.

Reads frames from a camera or video file, feeds them through the detection
pipeline and logs (or draws) each detection batch.

Usage:
    python src/main.py --config config/config.yaml --display

Arguments:
    --config: Path to configuration file
    --display: Show frames with detection boxes in a window
    --max-frames: Stop after this many frames (0 = until the source ends)
"""

import argparse
import logging
import os
import sys
import threading
from typing import Any, Dict, Optional, Tuple

import cv2
import numpy as np
import yaml

from models.config import Interpolation, SchedulingPolicy
from models.detection import DetectionBatch
from observation import OpenCVSource, OpenCVSourceConfig
from ops.logging import setup_logging
from pipeline.engine import DetectionPipeline, create_pipeline_from_config

VALID_LOG_LEVELS = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]


def _deep_merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    """Recursively merge override into base and return base."""
    for k, v in (override or {}).items():
        if isinstance(v, dict) and isinstance(base.get(k), dict):
            _deep_merge(base[k], v)
        else:
            base[k] = v
    return base


def load_config(config_path: str) -> Dict[str, Any]:
    """
    Load configuration with layering:
    - `config/default.yaml` (checked in)
    - `config/config.yaml` (local overrides)
    - plus any explicitly provided `--config` path (treated as overrides)
    """
    try:
        config_dir = os.path.dirname(config_path)
        base_path = os.path.join(config_dir, "default.yaml")
        local_path = os.path.join(config_dir, "config.yaml")

        merged: Dict[str, Any] = {}
        for path in (base_path, local_path):
            if os.path.exists(path):
                with open(path, "r") as f:
                    merged = _deep_merge(merged, yaml.safe_load(f) or {})

        if os.path.exists(config_path) and os.path.abspath(config_path) not in (
            os.path.abspath(base_path),
            os.path.abspath(local_path),
        ):
            with open(config_path, "r") as f:
                merged = _deep_merge(merged, yaml.safe_load(f) or {})

        return merged
    except Exception as e:
        logging.error(f"Failed to load configuration: {e}")
        sys.exit(1)


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _is_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def validate_config(config: Dict[str, Any]) -> Tuple[bool, Optional[str]]:
    """
    Validate configuration structure and values.

    Returns:
        Tuple of (is_valid, error_message)
    """
    for section in ["pipeline", "backend", "log_path", "log_level"]:
        if section not in config:
            return False, f"Missing required configuration section: {section}"

    pipeline = config.get("pipeline") or {}
    for key in ("confidence_threshold", "iou_threshold"):
        if key in pipeline:
            value = pipeline[key]
            if not _is_number(value) or not 0 <= value <= 1:
                return False, f"pipeline.{key} must be a number between 0 and 1"

    if "max_detections" in pipeline:
        if not _is_int(pipeline["max_detections"]) or pipeline["max_detections"] < 1:
            return False, "pipeline.max_detections must be an integer >= 1"

    for key in ("input_width", "input_height"):
        if key in pipeline:
            if not _is_int(pipeline[key]) or pipeline[key] <= 0:
                return False, f"pipeline.{key} must be a positive integer"

    if "frame_skip_budget" in pipeline:
        if not _is_int(pipeline["frame_skip_budget"]) or pipeline["frame_skip_budget"] < 0:
            return False, "pipeline.frame_skip_budget must be a non-negative integer"

    policies = [p.value for p in SchedulingPolicy]
    if pipeline.get("scheduling_policy", "skip") not in policies:
        return False, f"pipeline.scheduling_policy must be one of: {', '.join(policies)}"

    modes = [m.value for m in Interpolation]
    if pipeline.get("interpolation", "nearest") not in modes:
        return False, f"pipeline.interpolation must be one of: {', '.join(modes)}"

    backend = config.get("backend") or {}
    kind = backend.get("kind", "mock")
    if kind not in ("mock", "onnx"):
        return False, "backend.kind must be one of: mock, onnx"
    if kind == "onnx":
        model = backend.get("model")
        if not isinstance(model, str) or not model:
            return False, "backend.model is required when backend.kind is 'onnx'"

    if config["log_level"] not in VALID_LOG_LEVELS:
        return False, f"log_level must be one of: {', '.join(VALID_LOG_LEVELS)}"

    return True, None


def draw_detections(frame: np.ndarray, batch: Optional[DetectionBatch]) -> np.ndarray:
    """Draw boxes and labels on a BGR copy of an RGB frame."""
    out = cv2.cvtColor(frame, cv2.COLOR_RGB2BGR)
    if batch is None:
        return out

    h, w = out.shape[:2]
    color = (0, 255, 0)
    font = cv2.FONT_HERSHEY_SIMPLEX
    for det in batch:
        x1, y1, x2, y2 = det.bbox.to_pixels(w, h)
        cv2.rectangle(out, (x1, y1), (x2, y2), color, 2)
        label = f"{det.label} {det.confidence:.2f}"
        (tw, th), _ = cv2.getTextSize(label, font, 0.5, 1)
        cv2.rectangle(out, (x1, max(y1 - th - 6, 0)), (x1 + tw + 4, y1), color, -1)
        cv2.putText(out, label, (x1 + 2, max(y1 - 4, th)), font, 0.5, (0, 0, 0), 1)
    return out


class LatestBatch:
    """Keeps the most recent batch for the display loop."""

    def __init__(self):
        self._lock = threading.Lock()
        self._batch: Optional[DetectionBatch] = None

    def __call__(self, batch: DetectionBatch) -> None:
        with self._lock:
            self._batch = batch

    def get(self) -> Optional[DetectionBatch]:
        with self._lock:
            return self._batch


def log_batch(batch: DetectionBatch) -> None:
    if batch.is_empty:
        logging.debug(f"Frame {batch.frame_index}: no detections")
        return
    summary = ", ".join(str(d) for d in batch)
    logging.info(f"Frame {batch.frame_index} ({batch.inference_ms:.1f}ms): {summary}")


def run(pipeline: DetectionPipeline, source: OpenCVSource, display: bool, max_frames: int) -> None:
    latest = LatestBatch()
    unsubscribe_log = pipeline.add_listener(log_batch)
    unsubscribe_latest = pipeline.add_listener(latest)
    unsubscribe_errors = pipeline.add_error_listener(
        lambda frame, err: logging.warning(f"Frame {frame.frame_index} failed: {err}")
    )

    try:
        with pipeline, source:
            for frame_data in source:
                pipeline.submit_frame(frame_data)
                if display:
                    cv2.imshow("Detections", draw_detections(frame_data.frame, latest.get()))
                    if cv2.waitKey(1) & 0xFF == ord("q"):
                        break
                if max_frames and frame_data.frame_index >= max_frames:
                    break
    except KeyboardInterrupt:
        logging.info("Interrupted by user")
    finally:
        unsubscribe_log()
        unsubscribe_latest()
        unsubscribe_errors()
        if display:
            cv2.destroyAllWindows()

    sched = pipeline.scheduler.stats
    logging.info(
        f"Frames: arrived={sched.arrived}, admitted={sched.admitted}, dropped={sched.dropped}, "
        f"delivered={pipeline.stats.delivered}, failed={pipeline.stats.failed}"
    )


def main():
    """Main application function."""
    parser = argparse.ArgumentParser(description="Real-time object detection")
    parser.add_argument("--config", type=str, default="config/config.yaml",
                        help="Path to configuration file")
    parser.add_argument("--display", action="store_true",
                        help="Show frames with detections")
    parser.add_argument("--max-frames", type=int, default=0,
                        help="Stop after this many frames (0 = no limit)")
    args = parser.parse_args()

    config = load_config(args.config)
    is_valid, error = validate_config(config)
    if not is_valid:
        print(f"Invalid configuration: {error}", file=sys.stderr)
        sys.exit(1)

    setup_logging(config["log_path"], config["log_level"])
    logging.info(f"Configuration loaded from {args.config}")

    pipeline = create_pipeline_from_config(config)
    source = OpenCVSource(
        OpenCVSourceConfig.from_camera_config(config.get("camera", {}) or {}, source_id="main-camera")
    )
    run(pipeline, source, display=args.display, max_frames=args.max_frames)


if __name__ == "__main__":
    main()
