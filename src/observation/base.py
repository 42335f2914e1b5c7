"""
FrameSource interface for camera/video inputs feeding the pipeline.

Capture itself is outside the detection core; sources only have to hand
over RGB FrameData objects.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, Iterator, Optional, Tuple

from models.frame import FrameData


@dataclass
class SourceConfig:
    """
    Base configuration for frame sources.

    Attributes:
        source_id: Identifier stamped on every frame (e.g., "main-camera").
        resolution: Requested resolution as (width, height). None = source default.
        fps: Requested frames per second. None = source default.
        metadata: Additional source-specific settings.
    """
    source_id: str = "default"
    resolution: Optional[Tuple[int, int]] = None
    fps: Optional[int] = None
    metadata: Dict[str, Any] = field(default_factory=dict)


class FrameSource(ABC):
    """
    Abstract producer of RGB frames.

    Lifecycle: open(), read() until it returns None, close(). Also usable
    as a context manager and as an iterator once open:

        with OpenCVSource(config) as source:
            for frame_data in source:
                pipeline.submit_frame(frame_data)
    """

    def __init__(self, config: SourceConfig):
        self._config = config
        self._is_open = False
        self._frame_index = 0

    @property
    def source_id(self) -> str:
        return self._config.source_id

    @property
    def is_open(self) -> bool:
        return self._is_open

    @property
    def frame_index(self) -> int:
        """Number of frames read since open."""
        return self._frame_index

    @abstractmethod
    def open(self) -> None:
        """
        Open the source.

        Raises:
            RuntimeError: If the source cannot be opened.
        """

    @abstractmethod
    def read(self) -> Optional[FrameData]:
        """Return the next frame, or None when the source is exhausted or failing."""

    @abstractmethod
    def close(self) -> None:
        """Release the source. Safe to call more than once."""

    def __enter__(self) -> "FrameSource":
        self.open()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    def __iter__(self) -> Iterator[FrameData]:
        if not self._is_open:
            raise RuntimeError("Source must be open before iterating")
        while True:
            frame_data = self.read()
            if frame_data is None:
                break
            yield frame_data
