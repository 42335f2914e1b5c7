"""
OpenCV-based frame source.

Supports:
- USB webcams (device_id as int, e.g., 0)
- Stream URLs (device_id as str URL)
- Video files (device_id as file path)

OpenCV captures BGR; frames are converted to RGB before they are handed
to the pipeline.
"""

from __future__ import annotations

import logging
import os
import time
from dataclasses import dataclass
from typing import Any, Dict, Optional, Union

import cv2
import numpy as np

from models.frame import FrameData
from .base import FrameSource, SourceConfig


@dataclass
class OpenCVSourceConfig(SourceConfig):
    """
    Configuration for OpenCV capture.

    Attributes:
        device_id: Camera index (int), stream URL (str), or file path (str).
        buffer_size: Capture buffer size; 1 keeps live feeds fresh.
        max_retries: Attempts to open the device before giving up.
        rotate: Rotation in degrees (0, 90, 180, 270).
        flip_horizontal: Mirror the frame.
    """
    device_id: Union[int, str] = 0
    buffer_size: int = 1
    max_retries: int = 3
    rotate: int = 0
    flip_horizontal: bool = False

    @classmethod
    def from_camera_config(cls, camera_cfg: Dict[str, Any], source_id: str = "camera") -> "OpenCVSourceConfig":
        """Adapter: Create from the `camera` section of the config file."""
        resolution = camera_cfg.get("resolution")
        return cls(
            source_id=source_id,
            resolution=tuple(resolution) if resolution else None,
            fps=camera_cfg.get("fps"),
            device_id=camera_cfg.get("device_id", 0),
            buffer_size=camera_cfg.get("buffer_size", 1),
            max_retries=camera_cfg.get("max_retries", 3),
            rotate=camera_cfg.get("rotate", 0) or 0,
            flip_horizontal=camera_cfg.get("flip_horizontal", False),
        )


class OpenCVSource(FrameSource):
    """Wraps cv2.VideoCapture and yields RGB FrameData."""

    def __init__(self, config: OpenCVSourceConfig):
        super().__init__(config)
        self._cv_config = config
        self._cap: Optional[cv2.VideoCapture] = None

    @property
    def device_id(self) -> Union[int, str]:
        return self._cv_config.device_id

    @property
    def is_file(self) -> bool:
        return isinstance(self.device_id, str) and os.path.exists(self.device_id)

    def open(self) -> None:
        if self._is_open:
            return

        for attempt in range(self._cv_config.max_retries):
            if attempt > 0:
                wait_time = min(2 ** attempt, 10)
                logging.info(
                    f"Retrying open (attempt {attempt + 1}/{self._cv_config.max_retries}) "
                    f"after {wait_time}s"
                )
                time.sleep(wait_time)
            self._cap = cv2.VideoCapture(self.device_id)
            if self._cap.isOpened():
                break
            self._cap.release()
            self._cap = None

        if self._cap is None:
            raise RuntimeError(
                f"Failed to open device {self.device_id} after {self._cv_config.max_retries} attempts"
            )

        if isinstance(self.device_id, int) and self._cv_config.resolution:
            w, h = self._cv_config.resolution
            self._cap.set(cv2.CAP_PROP_FRAME_WIDTH, w)
            self._cap.set(cv2.CAP_PROP_FRAME_HEIGHT, h)
            if self._cv_config.fps:
                self._cap.set(cv2.CAP_PROP_FPS, self._cv_config.fps)
            self._cap.set(cv2.CAP_PROP_BUFFERSIZE, self._cv_config.buffer_size)

        self._is_open = True
        self._frame_index = 0
        logging.info(f"OpenCVSource opened: source_id={self.source_id}, device={self.device_id}")

    def read(self) -> Optional[FrameData]:
        if not self._is_open or self._cap is None:
            return None

        ret, frame = self._cap.read()
        if not ret or frame is None:
            if self.is_file:
                logging.info("End of video file reached")
            else:
                logging.warning(f"Failed to read frame from {self.device_id}")
            return None

        rgb = self._apply_transforms(frame)
        self._frame_index += 1
        return FrameData.from_numpy(
            rgb,
            timestamp=time.time(),
            frame_index=self._frame_index,
            source=self.source_id,
        )

    def _apply_transforms(self, frame: np.ndarray) -> np.ndarray:
        """Rotate/flip as configured and convert BGR to RGB."""
        cfg = self._cv_config
        if cfg.rotate == 90:
            frame = cv2.rotate(frame, cv2.ROTATE_90_CLOCKWISE)
        elif cfg.rotate == 180:
            frame = cv2.rotate(frame, cv2.ROTATE_180)
        elif cfg.rotate == 270:
            frame = cv2.rotate(frame, cv2.ROTATE_90_COUNTERCLOCKWISE)

        if cfg.flip_horizontal:
            frame = cv2.flip(frame, 1)

        return cv2.cvtColor(frame, cv2.COLOR_BGR2RGB)

    def close(self) -> None:
        if self._cap is not None:
            self._cap.release()
            self._cap = None
        if self._is_open:
            logging.info(f"OpenCVSource closed: source_id={self.source_id}")
        self._is_open = False
