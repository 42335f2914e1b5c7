"""
Detection pipeline engine.

Wires preprocessing, inference, decoding and suppression into one
`detect(frame)` call, and runs that call on a single worker thread fed by
the frame scheduler.
"""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass
from typing import Any, Callable, List, Optional, Sequence

from inference.backend import InferenceBackend, ShapeCheckedBackend
from models.config import Interpolation, PipelineConfig, SchedulingPolicy
from models.detection import DetectionBatch
from models.errors import TensorShapeMismatchError
from models.frame import FrameData
from models.labels import COCO_LABELS
from pipeline.scheduler import FrameScheduler, FrameState, StateCallback
from pipeline.stages.decode import decode, to_detections
from pipeline.stages.preprocess import preprocess
from pipeline.stages.suppress import suppress

DetectionListener = Callable[[DetectionBatch], None]
ErrorListener = Callable[[FrameData, Exception], None]


@dataclass
class PipelineStats:
    """Runtime statistics for the pipeline."""
    delivered: int = 0
    failed: int = 0
    last_inference_ms: float = 0.0
    last_detection_count: int = 0


class DetectionPipeline:
    """
    Object detection pipeline with a single inference worker.

    At most one `detect` call runs at a time. Frames offered while a run is
    in progress are handled by the scheduler (dropped or coalesced), not by
    blocking the producer.

    Detection listeners are called on the thread that ran `detect`: the
    worker thread for frames submitted with `submit_frame`, the caller's
    thread for direct `detect` calls.

    Example:
        pipeline = DetectionPipeline(MockBackend(), PipelineConfig())
        unsubscribe = pipeline.add_listener(lambda batch: print(batch.labels()))
        with pipeline:
            for frame in frames:
                pipeline.submit_frame(frame)
        unsubscribe()
    """

    def __init__(
        self,
        backend: InferenceBackend,
        config: Optional[PipelineConfig] = None,
        labels: Optional[Sequence[str]] = None,
    ):
        self._config = config or PipelineConfig()
        self._backend = ShapeCheckedBackend(backend)
        self._labels = list(labels) if labels is not None else list(COCO_LABELS)
        self._check_shapes(self._config)

        self._config_lock = threading.Lock()
        self._inference_lock = threading.Lock()
        self._listeners_lock = threading.Lock()
        self._listeners: List[DetectionListener] = []
        self._error_listeners: List[ErrorListener] = []
        self._state_listeners: List[StateCallback] = []

        self.scheduler = FrameScheduler(
            policy=self._config.scheduling_policy,
            frame_skip_budget=self._config.frame_skip_budget,
            on_state=self._emit_state,
        )
        self.stats = PipelineStats()
        self._worker: Optional[threading.Thread] = None
        self._running = False
        self._processing = False

    # ------------------------------------------------------------------
    # Configuration
    # ------------------------------------------------------------------

    @property
    def config(self) -> PipelineConfig:
        with self._config_lock:
            return self._config

    @property
    def labels(self) -> List[str]:
        return list(self._labels)

    @property
    def is_processing(self) -> bool:
        return self._processing

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def queued_frames(self) -> int:
        return self.scheduler.queued_frames

    def set_confidence_threshold(self, threshold: float) -> None:
        self._update_config(confidence_threshold=min(max(float(threshold), 0.0), 1.0))

    def set_iou_threshold(self, threshold: float) -> None:
        self._update_config(iou_threshold=min(max(float(threshold), 0.0), 1.0))

    def set_max_detections(self, max_detections: int) -> None:
        self._update_config(max_detections=max(1, int(max_detections)))

    def set_input_size(self, width: int, height: int) -> None:
        """Change the model input size; must match the backend's input shape."""
        new_config = self.config.with_changes(input_width=int(width), input_height=int(height))
        self._check_shapes(new_config)
        with self._config_lock:
            self._config = new_config
        logging.info(f"Pipeline input size set to {width}x{height}")

    def set_normalize_input(self, normalize: bool) -> None:
        self._update_config(normalize_input=bool(normalize))

    def set_interpolation(self, interpolation: Interpolation) -> None:
        self._update_config(interpolation=Interpolation(interpolation))

    def set_class_aware_nms(self, enabled: bool) -> None:
        self._update_config(class_aware_nms=bool(enabled))

    def set_frame_skip_budget(self, budget: int) -> None:
        budget = max(0, int(budget))
        self._update_config(frame_skip_budget=budget)
        self.scheduler.set_frame_skip_budget(budget)

    def set_scheduling_policy(self, policy: SchedulingPolicy) -> None:
        policy = SchedulingPolicy(policy)
        self._update_config(scheduling_policy=policy)
        self.scheduler.set_policy(policy)

    def _update_config(self, **changes: Any) -> None:
        with self._config_lock:
            self._config = self._config.with_changes(**changes)
        logging.debug(f"Pipeline config updated: {changes}")

    def _check_shapes(self, config: PipelineConfig) -> None:
        expected_in = (1, config.input_height, config.input_width, 3)
        if self._backend.input_shape() != expected_in:
            raise TensorShapeMismatchError(
                f"Backend input {self._backend.input_shape()} does not match "
                f"configured input {expected_in}",
                expected=expected_in,
                actual=self._backend.input_shape(),
            )
        out = self._backend.output_shape()
        if not out or out[-1] != config.row_width:
            raise TensorShapeMismatchError(
                f"Backend output {out} does not have rows of {config.row_width} values",
                expected=config.row_width,
                actual=out,
            )

    # ------------------------------------------------------------------
    # Listeners
    # ------------------------------------------------------------------

    def add_listener(self, listener: DetectionListener) -> Callable[[], None]:
        """
        Register a callback for each delivered batch.

        Returns a function that unregisters the listener.
        """
        with self._listeners_lock:
            self._listeners.append(listener)
        return lambda: self.remove_listener(listener)

    def remove_listener(self, listener: DetectionListener) -> None:
        with self._listeners_lock:
            if listener in self._listeners:
                self._listeners.remove(listener)

    def add_error_listener(self, listener: ErrorListener) -> Callable[[], None]:
        """Register a callback for failed runs. Returns an unsubscribe function."""
        with self._listeners_lock:
            self._error_listeners.append(listener)

        def unsubscribe() -> None:
            with self._listeners_lock:
                if listener in self._error_listeners:
                    self._error_listeners.remove(listener)

        return unsubscribe

    def add_state_listener(self, listener: StateCallback) -> Callable[[], None]:
        """Register a callback for frame lifecycle transitions."""
        with self._listeners_lock:
            self._state_listeners.append(listener)

        def unsubscribe() -> None:
            with self._listeners_lock:
                if listener in self._state_listeners:
                    self._state_listeners.remove(listener)

        return unsubscribe

    def _emit_state(self, frame: FrameData, state: FrameState) -> None:
        with self._listeners_lock:
            listeners = list(self._state_listeners)
        for listener in listeners:
            try:
                listener(frame, state)
            except Exception as e:
                logging.warning(f"State listener error: {e}")

    def _notify(self, batch: DetectionBatch) -> None:
        with self._listeners_lock:
            listeners = list(self._listeners)
        for listener in listeners:
            try:
                listener(batch)
            except Exception as e:
                logging.warning(f"Detection listener error: {e}")

    def _notify_error(self, frame: FrameData, error: Exception) -> None:
        with self._listeners_lock:
            listeners = list(self._error_listeners)
        for listener in listeners:
            try:
                listener(frame, error)
            except Exception as e:
                logging.warning(f"Error listener error: {e}")

    # ------------------------------------------------------------------
    # Detection
    # ------------------------------------------------------------------

    def detect(self, frame: FrameData) -> DetectionBatch:
        """
        Run the full pipeline on one frame.

        Delivers the batch to listeners and returns it. On any stage failure
        the exception propagates and no listener is called.

        Raises:
            InvalidFrameError: Empty or malformed frame.
            TensorShapeMismatchError: Backend contract violated.
            BackendExecutionError: Backend failed.
        """
        with self._inference_lock:
            self._processing = True
            try:
                batch = self._run(frame)
            except Exception:
                self.stats.failed += 1
                self._emit_state(frame, FrameState.FAILED)
                raise
            finally:
                self._processing = False
            self.stats.delivered += 1
            self.stats.last_inference_ms = batch.inference_ms
            self.stats.last_detection_count = len(batch)

        if batch.is_empty:
            logging.debug(f"Frame {frame.frame_index}: no detections above threshold")
        self._notify(batch)
        self._emit_state(frame, FrameState.DELIVERED)
        return batch

    def _run(self, frame: FrameData) -> DetectionBatch:
        cfg = self.config
        start = time.perf_counter()

        self._emit_state(frame, FrameState.PREPROCESSING)
        input_tensor = preprocess(
            frame,
            cfg.input_width,
            cfg.input_height,
            normalize=cfg.normalize_input,
            interpolation=cfg.interpolation,
        )

        self._emit_state(frame, FrameState.INFERRING)
        output = self._backend.invoke(input_tensor)

        self._emit_state(frame, FrameState.DECODING)
        candidates = decode(
            output,
            num_classes=cfg.num_classes,
            box_confidence_index=cfg.box_confidence_index,
            input_width=cfg.input_width,
            input_height=cfg.input_height,
            confidence_threshold=cfg.confidence_threshold,
        )

        self._emit_state(frame, FrameState.SUPPRESSING)
        detections = suppress(
            to_detections(candidates, self._labels),
            iou_threshold=cfg.iou_threshold,
            max_count=cfg.max_detections,
            class_aware=cfg.class_aware_nms,
        )

        elapsed_ms = (time.perf_counter() - start) * 1000.0
        logging.debug(
            f"Frame {frame.frame_index}: {len(candidates)} candidates -> "
            f"{len(detections)} detections in {elapsed_ms:.1f}ms"
        )
        return DetectionBatch(
            detections=tuple(detections),
            frame_index=frame.frame_index,
            timestamp=frame.timestamp,
            inference_ms=elapsed_ms,
        )

    # ------------------------------------------------------------------
    # Streaming
    # ------------------------------------------------------------------

    def submit_frame(self, frame: FrameData) -> bool:
        """
        Offer a frame from the producer thread. Never blocks.

        Returns True if the frame was admitted for processing.
        """
        return self.scheduler.submit(frame)

    def start(self) -> None:
        """
        Start the inference worker thread.

        Raises:
            RuntimeError: If a worker from an earlier `stop` that timed out
                is still running.
        """
        if self._running:
            return
        if self._worker is not None:
            if self._worker.is_alive():
                raise RuntimeError("Previous detection worker is still running")
            self._worker = None
        self._running = True
        self.scheduler.reopen()
        self._worker = threading.Thread(
            target=self._worker_loop, name="detection-worker", daemon=True
        )
        self._worker.start()
        logging.info(
            f"Detection pipeline started: policy={self.scheduler.policy.value}, "
            f"skip_budget={self.scheduler.frame_skip_budget}"
        )

    def stop(self, timeout: Optional[float] = 5.0) -> None:
        """
        Stop the worker after the current run and any frame left in the slot.

        If the worker does not finish within `timeout` it keeps running in
        the background and `start` refuses to launch a second one until it
        has exited.
        """
        if not self._running:
            return
        self._running = False
        self.scheduler.close()
        if self._worker is not None:
            self._worker.join(timeout)
            if self._worker.is_alive():
                logging.warning("Detection worker did not stop in time")
            else:
                self._worker = None
        logging.info(
            f"Detection pipeline stopped: delivered={self.stats.delivered}, "
            f"failed={self.stats.failed}, dropped={self.scheduler.stats.dropped}"
        )

    def _worker_loop(self) -> None:
        while True:
            frame = self.scheduler.take()
            if frame is None:
                if self.scheduler.closed:
                    break
                continue
            try:
                self.detect(frame)
            except Exception as e:
                logging.error(f"Detection failed for frame {frame.frame_index}: {e}")
                logging.debug("Detection failure details", exc_info=True)
                self._notify_error(frame, e)

    def __enter__(self) -> "DetectionPipeline":
        self.start()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.stop()


def create_pipeline_from_config(
    config: dict,
    backend: Optional[InferenceBackend] = None,
) -> DetectionPipeline:
    """
    Factory function to create a DetectionPipeline from a config dict.

    Args:
        config: Full application config dict (see config/default.yaml).
        backend: Backend to use; built from `config["backend"]` when omitted.
    """
    from inference.factory import create_backend_from_config
    from models.config import BackendConfig
    from models.labels import load_labels

    pipeline_cfg = PipelineConfig.from_dict(config.get("pipeline", {}) or {})
    backend_cfg = BackendConfig.from_dict(config.get("backend", {}) or {})
    if backend is None:
        backend = create_backend_from_config(backend_cfg, pipeline_cfg)
    labels = load_labels(backend_cfg.labels)
    return DetectionPipeline(backend, pipeline_cfg, labels=labels)
