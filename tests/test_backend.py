"""
Tests for inference backends and the shape-checking adapter.
"""

from unittest.mock import MagicMock, patch

import numpy as np
import pytest

from inference.backend import ShapeCheckedBackend
from inference.factory import create_backend_from_config
from inference.mock_backend import MockBackend, StaticBackend
from models.config import BackendConfig, PipelineConfig
from models.errors import BackendExecutionError, TensorShapeMismatchError
from models.tensor import Tensor

from conftest import make_output, make_row


class FailingBackend:
    def input_shape(self):
        return (1, 8, 8, 3)

    def output_shape(self):
        return (1, 1, 85)

    def invoke(self, input_data):
        raise RuntimeError("NPU fault")


class WrongOutputBackend(FailingBackend):
    def invoke(self, input_data):
        return np.zeros((1, 2, 85), dtype=np.float32)


class TestShapeCheckedBackend:
    def test_invoke_returns_fresh_tensor(self):
        output = make_output([make_row(4, 4, 2, 2, 0.9, 0, 0.9)])
        backend = StaticBackend(output, input_shape=(1, 8, 8, 3))
        adapter = ShapeCheckedBackend(backend)

        result = adapter.invoke(Tensor(data=np.zeros((1, 8, 8, 3), dtype=np.float32)))

        assert result.shape == (1, 1, 85)
        result.data[0, 0, 0] = -1
        assert backend.invoke(None)[0, 0, 0] == 4

    def test_input_shape_mismatch(self):
        adapter = ShapeCheckedBackend(StaticBackend(make_output([]), input_shape=(1, 8, 8, 3)))
        with pytest.raises(TensorShapeMismatchError) as exc_info:
            adapter.invoke(Tensor(data=np.zeros((1, 4, 4, 3), dtype=np.float32)))
        assert exc_info.value.expected == (1, 8, 8, 3)
        assert exc_info.value.actual == (1, 4, 4, 3)

    def test_output_shape_mismatch(self):
        adapter = ShapeCheckedBackend(WrongOutputBackend())
        with pytest.raises(TensorShapeMismatchError):
            adapter.invoke(Tensor(data=np.zeros((1, 8, 8, 3), dtype=np.float32)))

    def test_backend_errors_wrapped(self):
        adapter = ShapeCheckedBackend(FailingBackend())
        with pytest.raises(BackendExecutionError) as exc_info:
            adapter.invoke(Tensor(data=np.zeros((1, 8, 8, 3), dtype=np.float32)))
        assert isinstance(exc_info.value.__cause__, RuntimeError)

    def test_shapes_read_once(self):
        backend = MagicMock()
        backend.input_shape.return_value = [1, 8, 8, 3]
        backend.output_shape.return_value = [1, 1, 85]
        backend.invoke.return_value = np.zeros((1, 1, 85), dtype=np.float32)
        adapter = ShapeCheckedBackend(backend)

        for _ in range(3):
            adapter.invoke(Tensor(data=np.zeros((1, 8, 8, 3), dtype=np.float32)))

        assert backend.input_shape.call_count == 1
        assert backend.output_shape.call_count == 1
        assert backend.invoke.call_count == 3
        assert adapter.input_shape() == (1, 8, 8, 3)


class TestMockBackend:
    def test_shapes(self):
        backend = MockBackend(input_width=320, input_height=240, num_candidates=20, num_classes=80)
        assert backend.input_shape() == (1, 240, 320, 3)
        assert backend.output_shape() == (1, 20, 85)
        out = backend.invoke(np.zeros((1, 240, 320, 3), dtype=np.float32))
        assert out.shape == (1, 20, 85)

    def test_seeded_output_is_reproducible(self):
        a = MockBackend(seed=42).invoke(None)
        b = MockBackend(seed=42).invoke(None)
        assert np.array_equal(a, b)

    def test_boxes_inside_input(self):
        out = MockBackend(input_width=640, input_height=640, seed=1).invoke(None)[0]
        assert np.all(out[:, 0] >= 0.2 * 640) and np.all(out[:, 0] <= 0.8 * 640)
        assert np.all((out[:, 4] >= 0) & (out[:, 4] <= 1))

    def test_from_bytes(self):
        backend = MockBackend.from_bytes(b"model", num_candidates=5)
        assert backend.output_shape() == (1, 5, 85)

    def test_from_empty_bytes(self):
        with pytest.raises(BackendExecutionError):
            MockBackend.from_bytes(b"")


class TestBackendFactory:
    def test_mock_backend_uses_pipeline_input(self):
        backend = create_backend_from_config(
            BackendConfig(kind="mock", num_candidates=10),
            PipelineConfig(input_width=320, input_height=320),
        )
        assert isinstance(backend, MockBackend)
        assert backend.input_shape() == (1, 320, 320, 3)

    def test_unknown_kind(self):
        with pytest.raises(ValueError):
            create_backend_from_config(BackendConfig(kind="tpu"), PipelineConfig())

    def test_onnx_requires_model(self):
        with pytest.raises(ValueError):
            create_backend_from_config(BackendConfig(kind="onnx"), PipelineConfig())

    def test_onnx_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            create_backend_from_config(
                BackendConfig(kind="onnx", model=str(tmp_path / "missing.onnx")),
                PipelineConfig(),
            )

    def test_onnx_loaded_from_bytes(self, tmp_path):
        model_path = tmp_path / "model.onnx"
        model_path.write_bytes(b"onnx-bytes")
        with patch("inference.onnx_backend.OnnxBackend.from_bytes") as from_bytes:
            create_backend_from_config(
                BackendConfig(kind="onnx", model=str(model_path)), PipelineConfig()
            )
        from_bytes.assert_called_once_with(b"onnx-bytes", providers=None)


class TestOnnxBackend:
    def test_session_shapes_and_invoke(self):
        ort = pytest.importorskip("onnxruntime")
        from inference.onnx_backend import OnnxBackend

        session = MagicMock()
        session.get_inputs.return_value = [MagicMock(shape=["batch", 64, 64, 3])]
        session.get_inputs.return_value[0].name = "images"
        session.get_outputs.return_value = [MagicMock(shape=[1, 10, 85])]
        session.run.return_value = [np.zeros((1, 10, 85), dtype=np.float32)]

        with patch.object(ort, "InferenceSession", return_value=session):
            backend = OnnxBackend(b"model")

        assert backend.input_shape() == (1, 64, 64, 3)
        assert backend.output_shape() == (1, 10, 85)
        out = backend.invoke(np.zeros((1, 64, 64, 3), dtype=np.float32))
        assert out.shape == (1, 10, 85)
        args, _ = session.run.call_args
        assert "images" in args[1]

    def test_channels_first_model_presented_as_nhwc(self):
        ort = pytest.importorskip("onnxruntime")
        from inference.onnx_backend import OnnxBackend
        from pipeline.engine import DetectionPipeline

        session = MagicMock()
        session.get_inputs.return_value = [MagicMock(shape=[1, 3, 64, 64])]
        session.get_inputs.return_value[0].name = "images"
        session.get_outputs.return_value = [MagicMock(shape=[1, 2, 85])]
        session.run.return_value = [np.zeros((1, 2, 85), dtype=np.float32)]

        with patch.object(ort, "InferenceSession", return_value=session):
            backend = OnnxBackend.from_bytes(b"model")

        assert backend.input_shape() == (1, 64, 64, 3)
        pipeline = DetectionPipeline(backend, PipelineConfig(input_width=64, input_height=64))
        assert pipeline.config.input_width == 64

        nhwc = np.zeros((1, 64, 64, 3), dtype=np.float32)
        nhwc[0, 5, 7, :] = [0.1, 0.2, 0.3]
        backend.invoke(nhwc)

        args, _ = session.run.call_args
        sent = args[1]["images"]
        assert sent.shape == (1, 3, 64, 64)
        assert sent.flags["C_CONTIGUOUS"]
        assert list(sent[0, :, 5, 7]) == pytest.approx([0.1, 0.2, 0.3])
