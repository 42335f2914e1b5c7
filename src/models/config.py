"""
Typed configuration models matching the YAML config structure.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Dict, List, Optional, Union


class SchedulingPolicy(str, Enum):
    """How the frame scheduler sheds load."""
    SKIP = "skip"
    COALESCE = "coalesce"


class Interpolation(str, Enum):
    """Resampling rule used by the preprocessor."""
    NEAREST = "nearest"
    BILINEAR = "bilinear"


@dataclass(frozen=True)
class PipelineConfig:
    """
    Detection pipeline settings.

    Instances are immutable; the pipeline swaps in a new instance when a
    setter is called, and every `detect` call works on the instance that
    was current when it started.
    """
    confidence_threshold: float = 0.5
    iou_threshold: float = 0.4
    max_detections: int = 10
    input_width: int = 640
    input_height: int = 640
    normalize_input: bool = True
    interpolation: Interpolation = Interpolation.NEAREST
    frame_skip_budget: int = 3
    scheduling_policy: SchedulingPolicy = SchedulingPolicy.SKIP
    class_aware_nms: bool = False
    num_classes: int = 80
    box_confidence_index: int = 4

    def __post_init__(self):
        error = self.validate()
        if error:
            raise ValueError(error)

    def validate(self) -> Optional[str]:
        """Return an error message, or None when every value is in range."""
        if not 0.0 <= self.confidence_threshold <= 1.0:
            return "confidence_threshold must be between 0 and 1"
        if not 0.0 <= self.iou_threshold <= 1.0:
            return "iou_threshold must be between 0 and 1"
        if self.max_detections < 1:
            return "max_detections must be at least 1"
        if self.input_width <= 0 or self.input_height <= 0:
            return "input_width and input_height must be positive"
        if self.frame_skip_budget < 0:
            return "frame_skip_budget must be non-negative"
        if self.num_classes < 1:
            return "num_classes must be at least 1"
        if self.box_confidence_index < 4:
            return "box_confidence_index must be at least 4"
        return None

    @property
    def row_width(self) -> int:
        """Number of values per candidate row in the model output."""
        return self.box_confidence_index + 1 + self.num_classes

    def with_changes(self, **changes: Any) -> "PipelineConfig":
        return replace(self, **changes)

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "PipelineConfig":
        """Adapter: Create from config dictionary."""
        return cls(
            confidence_threshold=float(d.get("confidence_threshold", 0.5)),
            iou_threshold=float(d.get("iou_threshold", 0.4)),
            max_detections=int(d.get("max_detections", 10)),
            input_width=int(d.get("input_width", 640)),
            input_height=int(d.get("input_height", 640)),
            normalize_input=bool(d.get("normalize_input", True)),
            interpolation=Interpolation(d.get("interpolation", "nearest")),
            frame_skip_budget=int(d.get("frame_skip_budget", 3)),
            scheduling_policy=SchedulingPolicy(d.get("scheduling_policy", "skip")),
            class_aware_nms=bool(d.get("class_aware_nms", False)),
            num_classes=int(d.get("num_classes", 80)),
            box_confidence_index=int(d.get("box_confidence_index", 4)),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "confidence_threshold": self.confidence_threshold,
            "iou_threshold": self.iou_threshold,
            "max_detections": self.max_detections,
            "input_width": self.input_width,
            "input_height": self.input_height,
            "normalize_input": self.normalize_input,
            "interpolation": self.interpolation.value,
            "frame_skip_budget": self.frame_skip_budget,
            "scheduling_policy": self.scheduling_policy.value,
            "class_aware_nms": self.class_aware_nms,
            "num_classes": self.num_classes,
            "box_confidence_index": self.box_confidence_index,
        }


@dataclass
class BackendConfig:
    """Inference backend selection."""
    kind: str = "mock"
    model: Optional[str] = None
    labels: Optional[str] = None
    providers: Optional[List[str]] = None
    seed: int = 0
    num_candidates: int = 100

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "BackendConfig":
        return cls(
            kind=d.get("kind", "mock"),
            model=d.get("model"),
            labels=d.get("labels"),
            providers=d.get("providers"),
            seed=d.get("seed", 0),
            num_candidates=d.get("num_candidates", 100),
        )

    def to_dict(self) -> Dict[str, Any]:
        d: Dict[str, Any] = {
            "kind": self.kind,
            "seed": self.seed,
            "num_candidates": self.num_candidates,
        }
        if self.model is not None:
            d["model"] = self.model
        if self.labels is not None:
            d["labels"] = self.labels
        if self.providers is not None:
            d["providers"] = self.providers
        return d


@dataclass
class CameraConfig:
    """Frame source configuration for the demo runner."""
    device_id: Union[int, str] = 0
    resolution: List[int] = field(default_factory=lambda: [1280, 720])
    fps: int = 30
    rotate: int = 0
    flip_horizontal: bool = False

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "CameraConfig":
        return cls(
            device_id=d.get("device_id", 0),
            resolution=d.get("resolution", [1280, 720]),
            fps=d.get("fps", 30),
            rotate=d.get("rotate", 0) or 0,
            flip_horizontal=d.get("flip_horizontal", False),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "device_id": self.device_id,
            "resolution": self.resolution,
            "fps": self.fps,
            "rotate": self.rotate,
            "flip_horizontal": self.flip_horizontal,
        }


@dataclass
class Config:
    """
    Complete application configuration.

    This is a typed representation of the YAML config structure.
    """
    pipeline: PipelineConfig = field(default_factory=PipelineConfig)
    backend: BackendConfig = field(default_factory=BackendConfig)
    camera: CameraConfig = field(default_factory=CameraConfig)
    log_path: str = "logs/detector.log"
    log_level: str = "INFO"

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "Config":
        """Adapter: Create Config from raw dictionary (e.g., from load_config)."""
        return cls(
            pipeline=PipelineConfig.from_dict(d.get("pipeline", {}) or {}),
            backend=BackendConfig.from_dict(d.get("backend", {}) or {}),
            camera=CameraConfig.from_dict(d.get("camera", {}) or {}),
            log_path=d.get("log_path", "logs/detector.log"),
            log_level=d.get("log_level", "INFO"),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "pipeline": self.pipeline.to_dict(),
            "backend": self.backend.to_dict(),
            "camera": self.camera.to_dict(),
            "log_path": self.log_path,
            "log_level": self.log_level,
        }
