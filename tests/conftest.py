"""
Pytest configuration and shared fixtures for artface tests.

This file provides common fixtures and configuration for all test modules.
"""

import pytest
import numpy as np
from unittest.mock import Mock
from PIL import Image


class MockONNXSession:
    """Mock ONNX session for testing.

    Subclasses (built with ``make_session_class``) set the input shape and an
    ``output_fn(session, tensor) -> dict[name, array]`` producing the outputs.
    """

    input_name = "input"
    input_shape = [1, 3, 640, 640]
    reject_providers = ()

    @staticmethod
    def output_fn(session, tensor):
        return {"output0": np.zeros((1, 0, 6), dtype=np.float32)}

    def __init__(self, model_path, sess_options=None, providers=None):
        providers = list(providers or ["CPUExecutionProvider"])
        names = [p[0] if isinstance(p, tuple) else p for p in providers]
        for rejected in self.reject_providers:
            if rejected in names:
                raise RuntimeError(f"{rejected} failed to bind")

        self.model_path = model_path
        self.sess_options = sess_options
        self.provider_names = names
        self.calls = []

    def get_providers(self):
        return list(self.provider_names)

    def get_inputs(self):
        info = Mock()
        info.name = self.input_name
        info.shape = list(self.input_shape)
        info.type = "tensor(float)"
        return [info]

    def get_outputs(self):
        outputs = []
        shape = [d if isinstance(d, int) else 1 for d in self.input_shape]
        for name in self.output_fn(self, np.zeros(shape, dtype=np.float32)):
            info = Mock()
            info.name = name
            outputs.append(info)
        return outputs

    def run(self, output_names, input_feed):
        tensor = input_feed[self.input_name]
        self.calls.append(tensor)
        return [np.asarray(v) for v in self.output_fn(self, tensor).values()]


def make_session_class(input_shape=None, output_fn=None, reject_providers=()):
    """Build a MockONNXSession subclass with fixed input shape and outputs."""
    attrs = {"reject_providers": tuple(reject_providers)}
    if input_shape is not None:
        attrs["input_shape"] = list(input_shape)
    if output_fn is not None:
        attrs["output_fn"] = staticmethod(output_fn)
    return type("ConfiguredMockONNXSession", (MockONNXSession,), attrs)


@pytest.fixture
def mock_onnx(monkeypatch):
    """Install a configured mock in place of onnxruntime.InferenceSession.

    Returns an ``install(input_shape, output_fn, available, reject_providers)``
    function that returns the installed session class.
    """
    import onnxruntime

    def install(
        input_shape=None,
        output_fn=None,
        available=("CPUExecutionProvider",),
        reject_providers=(),
    ):
        session_class = make_session_class(input_shape, output_fn, reject_providers)
        monkeypatch.setattr(onnxruntime, "InferenceSession", session_class)
        monkeypatch.setattr(
            onnxruntime, "get_available_providers", lambda: list(available)
        )
        return session_class

    return install


@pytest.fixture
def model_file(tmp_path):
    """Create a mock ONNX model file for testing.

    The content is never parsed: sessions are mocked at the ONNX Runtime level.
    """
    model_path = tmp_path / "mock_model.onnx"
    model_path.write_bytes(b"mock_onnx_model_content")
    return model_path


@pytest.fixture
def sample_image():
    """Random 200x200 RGB image."""
    rng = np.random.default_rng(42)
    return rng.integers(0, 256, (200, 200, 3), dtype=np.uint8)


@pytest.fixture
def image_file(tmp_path, sample_image):
    """The sample image written to disk as PNG."""
    path = tmp_path / "sample.png"
    Image.fromarray(sample_image).save(path)
    return path


@pytest.fixture
def five_landmarks():
    """Frontal 5-point landmarks for a face box at (50, 50, 60, 60)."""
    return ((65.0, 70.0), (95.0, 70.0), (80.0, 91.0), (68.0, 100.0), (92.0, 100.0))


# Custom pytest markers for categorizing tests
def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "unit: marks tests as unit tests"
    )


def pytest_collection_modifyitems(config, items):
    """Add markers to tests based on their location."""
    for item in items:
        if "unit" in item.path.parts:
            item.add_marker(pytest.mark.unit)
