"""
Backend construction from configuration.

The concrete backend is chosen here, once, and injected into the pipeline.
"""

from __future__ import annotations

import logging
import os

from models.config import BackendConfig, PipelineConfig
from .backend import InferenceBackend
from .mock_backend import MockBackend


def create_backend_from_config(
    backend_cfg: BackendConfig,
    pipeline_cfg: PipelineConfig,
) -> InferenceBackend:
    """
    Build the backend named by `backend_cfg.kind` ("mock" or "onnx").

    Raises:
        ValueError: Unknown backend kind or missing model path.
        FileNotFoundError: Model file does not exist.
    """
    kind = backend_cfg.kind
    if kind == "mock":
        logging.info("Using mock inference backend")
        return MockBackend(
            input_width=pipeline_cfg.input_width,
            input_height=pipeline_cfg.input_height,
            num_candidates=backend_cfg.num_candidates,
            num_classes=pipeline_cfg.num_classes,
            seed=backend_cfg.seed,
        )

    if kind == "onnx":
        if not backend_cfg.model:
            raise ValueError("backend.model is required when backend.kind is 'onnx'")
        if not os.path.exists(backend_cfg.model):
            raise FileNotFoundError(f"Model file not found: {backend_cfg.model}")
        from .onnx_backend import OnnxBackend

        with open(backend_cfg.model, "rb") as f:
            blob = f.read()
        return OnnxBackend.from_bytes(blob, providers=backend_cfg.providers)

    raise ValueError(f"Unknown backend kind: {kind}")
