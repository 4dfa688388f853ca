"""
ONNX Runtime session handling shared by every detector and encoder.

Each inference-bearing component owns exactly one InferenceSessionHandle.
The handle resolves execution providers from a device selector, falls back
to the CPU provider when the requested accelerator cannot be bound, and
releases the native session on close().
"""

from __future__ import annotations

import logging
import time
from pathlib import Path

import numpy as np
import numpy.typing as npt
import onnxruntime as ort

from .backend_exceptions import (
    BackendNotInitializedError,
    DeviceUnavailableError,
    InferenceError,
    ModelLoadingError,
)

logger = logging.getLogger(__name__)

CPU_PROVIDER = "CPUExecutionProvider"

_DEVICE_PROVIDERS = {
    "cuda": "CUDAExecutionProvider",
    "gpu": "CUDAExecutionProvider",
    "coreml": "CoreMLExecutionProvider",
    "directml": "DmlExecutionProvider",
    "dml": "DmlExecutionProvider",
    "openvino": "OpenVINOExecutionProvider",
    "tensorrt": "TensorrtExecutionProvider",
}


def resolve_providers(device: str | None, device_id: int = 0) -> list:
    """Map a device selector to an ONNX Runtime provider list.

    The CPU provider is always appended last so the runtime can place
    unsupported nodes there.
    """
    desired = _DEVICE_PROVIDERS.get((device or "cpu").lower())
    if desired is None:
        return [CPU_PROVIDER]

    available = set(ort.get_available_providers())
    if desired not in available:
        raise DeviceUnavailableError(
            f"{desired} is not available (available: {sorted(available)})"
        )

    if desired in ("CUDAExecutionProvider", "DmlExecutionProvider"):
        return [(desired, {"device_id": device_id}), CPU_PROVIDER]
    return [desired, CPU_PROVIDER]


def _provider_name(provider) -> str:
    return provider[0] if isinstance(provider, tuple) else str(provider)


def _infer_device(providers: list[str]) -> str:
    provs = [p.lower() for p in providers]
    if any("cuda" in p or "tensorrt" in p for p in provs):
        return "cuda"
    if any("coreml" in p for p in provs):
        return "coreml"
    if any("dml" in p for p in provs):
        return "directml"
    if any("openvino" in p for p in provs):
        return "openvino"
    return "cpu"


class InferenceSessionHandle:
    """Owns one native ONNX Runtime session for a single model file."""

    def __init__(
        self,
        model_path: str | Path,
        device: str | None = "cuda",
        device_id: int = 0,
        label: str = "model",
    ) -> None:
        self.model_path = Path(model_path)
        self.label = label
        self.load_time: float | None = None

        if not self.model_path.exists():
            raise ModelLoadingError(f"{label}: model not found: {self.model_path}")

        start = time.time()
        self._session: ort.InferenceSession | None = self._open(device, device_id)
        self.load_time = time.time() - start

        self.providers: list[str] = list(self._session.get_providers())
        self.device = _infer_device(self.providers)
        self.input_name: str = self._session.get_inputs()[0].name
        self.output_names: list[str] = [o.name for o in self._session.get_outputs()]
        logger.info(
            "%s loaded from %s in %.2fs (providers=%s)",
            label,
            self.model_path.name,
            self.load_time,
            ",".join(self.providers),
        )

    def _open(self, device: str | None, device_id: int) -> ort.InferenceSession:
        sess_options = ort.SessionOptions()
        sess_options.graph_optimization_level = (
            ort.GraphOptimizationLevel.ORT_ENABLE_ALL
        )

        try:
            providers = resolve_providers(device, device_id)
        except DeviceUnavailableError as exc:
            logger.warning("%s: %s, falling back to CPU", self.label, exc)
            providers = [CPU_PROVIDER]

        if providers != [CPU_PROVIDER]:
            try:
                return ort.InferenceSession(
                    str(self.model_path), sess_options, providers=providers
                )
            except Exception as exc:
                logger.warning(
                    "%s: could not bind %s (%s), falling back to CPU",
                    self.label,
                    _provider_name(providers[0]),
                    exc,
                )

        try:
            return ort.InferenceSession(
                str(self.model_path), sess_options, providers=[CPU_PROVIDER]
            )
        except Exception as exc:
            raise ModelLoadingError(
                f"{self.label}: failed to open {self.model_path} on any device: {exc}"
            ) from exc

    @property
    def is_open(self) -> bool:
        return self._session is not None

    def input_hw(self, fallback: tuple[int, int]) -> tuple[int, int]:
        """Return the (height, width) of a static NCHW input, or the fallback."""
        if self._session is None:
            return fallback
        shape = self._session.get_inputs()[0].shape
        if len(shape) >= 4:
            h, w = shape[2], shape[3]
            if isinstance(h, int) and isinstance(w, int) and h > 0 and w > 0:
                return (h, w)
        return fallback

    def run(self, tensor: npt.NDArray[np.float32]) -> list[np.ndarray]:
        """Run the model on a single input tensor and return ordered outputs."""
        if self._session is None:
            raise BackendNotInitializedError(f"{self.label}: session is closed")
        try:
            outputs = self._session.run(None, {self.input_name: tensor})
        except Exception as exc:
            raise InferenceError(f"{self.label}: inference failed: {exc}") from exc
        return [np.asarray(o) for o in outputs]

    def run_named(self, tensor: npt.NDArray[np.float32]) -> dict[str, np.ndarray]:
        """Run the model and key the outputs by their graph names."""
        return dict(zip(self.output_names, self.run(tensor)))

    def close(self) -> None:
        if self._session is not None:
            logger.debug("%s: releasing session", self.label)
        self._session = None

    def __repr__(self) -> str:
        return (
            f"InferenceSessionHandle(label={self.label!r}, "
            f"model={self.model_path.name!r}, device={self.device!r}, "
            f"open={self.is_open})"
        )
