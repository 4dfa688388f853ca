"""
Base classes for inference backends.

Two kinds of inference-bearing components exist: face detectors (image ->
raw detections) and embedding encoders (crop -> unit-norm vector). Both own
one InferenceSessionHandle, follow the initialize()/close() lifecycle and
report a BackendInfo for diagnostics.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from collections.abc import Iterable
from dataclasses import dataclass, field
from pathlib import Path

import numpy as np
import numpy.typing as npt

from ..models import BoundingBox, RawDetection
from ..processing.nms import non_max_suppression
from ..processing.preprocess import ResizeMeta, convert_image_to_uint8, l2_normalize
from ..processing.quality import ScoringPolicy
from .backend_exceptions import (
    BackendNotInitializedError,
    InferenceError,
    InvalidInputError,
)
from .session import InferenceSessionHandle

logger = logging.getLogger(__name__)


@dataclass
class BackendInfo:
    """Runtime configuration and model metadata for one backend.

    Attributes:
        runtime: Runtime framework name ("onnx").
        kind: Component kind ("detector" or "encoder").
        model_name: Backend tag or encoder name (e.g. "yolo11", "arcface").
        model_path: Path to the weights file.
        device: Device the session actually bound to ("cuda", "cpu", ...).
        input_size: Square model input side in pixels.
        embedding_dim: Output vector length for encoders, None for detectors.
        load_time: Session creation time in seconds.
        extra: Additional key/value pairs (providers, thresholds).
    """

    runtime: str
    kind: str
    model_name: str
    model_path: str | None = None
    device: str | None = None
    input_size: int | None = None
    embedding_dim: int | None = None
    load_time: float | None = None
    extra: dict[str, str] = field(default_factory=dict)

    def as_dict(self) -> dict[str, object]:
        """Convert to a plain dict (safe for JSON serialization)."""
        return {
            "runtime": self.runtime,
            "kind": self.kind,
            "model_name": self.model_name,
            "model_path": self.model_path,
            "device": self.device,
            "input_size": self.input_size,
            "embedding_dim": self.embedding_dim,
            "load_time": self.load_time,
            "extra": dict(self.extra),
        }


class OnnxComponent(ABC):
    """Shared lifecycle for anything that owns an inference session."""

    kind = "component"
    model_name = "onnx"

    def __init__(
        self,
        model_path: str | Path,
        device: str | None = "cuda",
        device_id: int = 0,
        input_size: int = 640,
    ) -> None:
        self.model_path = Path(model_path)
        self.device = device
        self.device_id = device_id
        self.input_size = input_size
        self._session: InferenceSessionHandle | None = None
        self._initialized: bool = False

    def initialize(self) -> None:
        """Open the inference session. Idempotent.

        Raises:
            ModelLoadingError: If the weights are missing or no device binds.
        """
        if self._initialized:
            return
        self._session = InferenceSessionHandle(
            self.model_path,
            device=self.device,
            device_id=self.device_id,
            label=self.model_name,
        )
        h, w = self._session.input_hw(fallback=(self.input_size, self.input_size))
        if h != w:
            logger.warning(
                "%s: non-square model input %dx%d, using %d",
                self.model_name,
                h,
                w,
                h,
            )
        self.input_size = h
        self._initialized = True

    def is_initialized(self) -> bool:
        return self._initialized

    def close(self) -> None:
        """Release the inference session. Safe to call more than once."""
        if self._session is not None:
            self._session.close()
        self._session = None
        self._initialized = False

    def _require_session(self) -> InferenceSessionHandle:
        if not self._initialized or self._session is None:
            raise BackendNotInitializedError(f"{self.model_name} not initialized")
        return self._session

    def get_runtime_info(self) -> BackendInfo:
        session = self._session
        return BackendInfo(
            runtime="onnx",
            kind=self.kind,
            model_name=self.model_name,
            model_path=str(self.model_path),
            device=session.device if session else None,
            input_size=self.input_size,
            load_time=session.load_time if session else None,
            extra={"providers": ",".join(session.providers)} if session else {},
        )


class FaceDetectorBackend(OnnxComponent):
    """Abstract face detector.

    Subclasses implement the model-specific preprocessing and output parsing;
    confidence filtering, coordinate mapping, clamping, size filtering and NMS
    are shared here.
    """

    kind = "detector"
    scoring_policy: ScoringPolicy

    def __init__(
        self,
        model_path: str | Path,
        device: str | None = "cuda",
        device_id: int = 0,
        input_size: int = 640,
        confidence_threshold: float = 0.5,
        nms_threshold: float = 0.4,
        min_face_size: int = 10,
    ) -> None:
        super().__init__(model_path, device, device_id, input_size)
        self.confidence_threshold = confidence_threshold
        self.nms_threshold = nms_threshold
        self.min_face_size = min_face_size

    @abstractmethod
    def preprocess(
        self, image: npt.NDArray[np.uint8]
    ) -> tuple[npt.NDArray[np.float32], ResizeMeta]:
        """Turn an RGB image into the model input tensor plus resize metadata."""

    @abstractmethod
    def decode(
        self, session: InferenceSessionHandle, tensor: npt.NDArray[np.float32]
    ) -> tuple[np.ndarray, np.ndarray, np.ndarray | None]:
        """Run the model and return (boxes_xyxy, scores, landmarks) in input space."""

    def detect_raw(self, image: npt.NDArray[np.uint8]) -> list[RawDetection]:
        """Detect faces, propagating any failure."""
        session = self._require_session()
        if image is None or np.asarray(image).size == 0:
            raise InvalidInputError("image cannot be empty")

        rgb = convert_image_to_uint8(image)
        tensor, meta = self.preprocess(rgb)
        boxes, scores, landmarks = self.decode(session, tensor)
        faces = build_detections(
            boxes,
            scores,
            landmarks,
            meta,
            confidence_threshold=self.confidence_threshold,
            nms_threshold=self.nms_threshold,
            min_face_size=self.min_face_size,
        )
        logger.debug(
            "%s: %d faces after NMS (from %d candidates)",
            self.model_name,
            len(faces),
            len(scores),
        )
        return faces

    def detect(
        self, image: npt.NDArray[np.uint8], source: str | None = None
    ) -> list[RawDetection]:
        """Detect faces; an inference failure yields an empty list and a log line."""
        try:
            return self.detect_raw(image)
        except BackendNotInitializedError:
            raise
        except Exception as exc:
            logger.warning(
                "%s detection failed for %s: %s",
                self.model_name,
                source or "<array>",
                exc,
            )
            return []

    def get_runtime_info(self) -> BackendInfo:
        info = super().get_runtime_info()
        info.extra.update(
            {
                "confidence_threshold": f"{self.confidence_threshold:.3f}",
                "nms_threshold": f"{self.nms_threshold:.3f}",
                "min_face_size": str(self.min_face_size),
                "scoring_policy": self.scoring_policy.name,
            }
        )
        return info


def build_detections(
    boxes: np.ndarray,
    scores: np.ndarray,
    landmarks: np.ndarray | None,
    meta: ResizeMeta,
    confidence_threshold: float = 0.5,
    nms_threshold: float = 0.4,
    min_face_size: int = 10,
) -> list[RawDetection]:
    """Shared detector postprocessing.

    Args:
        boxes: (N, 4) boxes as (x1, y1, x2, y2) in model-input pixels.
        scores: (N,) confidences.
        landmarks: (N, K, 2) points in model-input pixels, or None.
        meta: Letterbox metadata used to map back to the source image.

    Returns:
        Detections in source-image pixels after confidence filtering,
        clamping, minimum-size filtering and NMS.
    """
    boxes = np.asarray(boxes, dtype=np.float32).reshape(-1, 4)
    scores = np.asarray(scores, dtype=np.float32).reshape(-1)
    rows = min(len(boxes), len(scores))
    if rows == 0:
        return []
    boxes, scores = boxes[:rows], scores[:rows]

    if landmarks is not None:
        landmarks = np.asarray(landmarks, dtype=np.float32)
        if len(landmarks) < rows:
            logger.warning(
                "Discarding landmarks due to row mismatch (landmarks=%s rows=%d)",
                landmarks.shape,
                rows,
            )
            landmarks = None
        else:
            landmarks = landmarks[:rows].reshape(rows, -1, 2)

    mask = scores >= confidence_threshold
    if not np.any(mask):
        return []
    boxes, scores = boxes[mask].copy(), scores[mask]
    if landmarks is not None:
        landmarks = landmarks[mask].copy()

    orig_h, orig_w = meta.orig_size
    boxes[:, 0], boxes[:, 1] = meta.to_source(boxes[:, 0], boxes[:, 1])
    boxes[:, 2], boxes[:, 3] = meta.to_source(boxes[:, 2], boxes[:, 3])
    boxes[:, [0, 2]] = np.clip(boxes[:, [0, 2]], 0, orig_w)
    boxes[:, [1, 3]] = np.clip(boxes[:, [1, 3]], 0, orig_h)
    if landmarks is not None:
        landmarks[..., 0], landmarks[..., 1] = meta.to_source(
            landmarks[..., 0], landmarks[..., 1]
        )

    candidates: list[RawDetection] = []
    for idx, (x1, y1, x2, y2) in enumerate(boxes):
        box = BoundingBox.from_xyxy(x1, y1, x2, y2)
        if box.width < min_face_size or box.height < min_face_size:
            continue
        points = None
        if landmarks is not None:
            points = tuple((float(px), float(py)) for px, py in landmarks[idx])
        candidates.append(
            RawDetection(box=box, confidence=float(scores[idx]), landmarks=points)
        )

    return non_max_suppression(candidates, nms_threshold)


class EmbeddingEncoder(OnnxComponent):
    """Abstract crop -> unit-norm vector encoder."""

    kind = "encoder"

    def __init__(
        self,
        model_path: str | Path,
        device: str | None = "cuda",
        device_id: int = 0,
        input_size: int = 112,
        embedding_dim: int = 512,
    ) -> None:
        super().__init__(model_path, device, device_id, input_size)
        self.embedding_dim = embedding_dim

    @abstractmethod
    def preprocess(self, pixels: npt.NDArray[np.uint8]) -> npt.NDArray[np.float32]:
        """Turn an RGB crop into the model input tensor."""

    def encode(self, pixels: npt.NDArray[np.uint8]) -> npt.NDArray[np.float32]:
        """Embed one RGB crop.

        Raises:
            BackendNotInitializedError: If called before initialize() or after close().
            InvalidInputError: If the crop is empty.
            InferenceError: If the model fails, returns the wrong dimension or
                produces NaN/inf values.
        """
        session = self._require_session()
        arr = np.asarray(pixels)
        if arr.size == 0 or arr.ndim < 2:
            raise InvalidInputError(f"{self.model_name}: empty crop")

        tensor = self.preprocess(convert_image_to_uint8(arr))
        output = session.run(tensor)[0]
        vector = np.asarray(output, dtype=np.float32).reshape(-1)
        if vector.size != self.embedding_dim:
            raise InferenceError(
                f"{self.model_name}: expected {self.embedding_dim}D output, got {vector.size}"
            )
        if not np.all(np.isfinite(vector)):
            raise InferenceError(f"{self.model_name}: non-finite values in embedding output")
        return l2_normalize(vector)

    def encode_batch(
        self, crops: Iterable[npt.NDArray[np.uint8]]
    ) -> list[npt.NDArray[np.float32]]:
        return [self.encode(crop) for crop in crops]

    def get_runtime_info(self) -> BackendInfo:
        info = super().get_runtime_info()
        info.embedding_dim = self.embedding_dim
        return info
