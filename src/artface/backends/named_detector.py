"""
Named-tensor detector (RetinaFace family).

Outputs are discovered by name rather than position: a score tensor
(``score``/``conf``), a box tensor (``bbox``/``box``, x1 y1 x2 y2 in input
pixels) and an optional landmark tensor (``landmark``/``kps``, five points).
"""

from __future__ import annotations

import logging
from collections.abc import Mapping

import numpy as np
import numpy.typing as npt

from ..processing.preprocess import ResizeMeta, letterbox, to_nchw
from ..processing.quality import NAMED_POLICY
from .backend_exceptions import InferenceError
from .base import FaceDetectorBackend
from .session import InferenceSessionHandle

logger = logging.getLogger(__name__)

_SCORE_KEYS = ("score", "conf")
_BOX_KEYS = ("bbox", "box")
_LANDMARK_KEYS = ("landmark", "kps")


def _find_output(outputs: Mapping[str, np.ndarray], keys: tuple[str, ...]) -> np.ndarray | None:
    for name, value in outputs.items():
        lowered = name.lower()
        if any(key in lowered for key in keys):
            return value
    return None


def parse_named_outputs(
    outputs: Mapping[str, np.ndarray],
) -> tuple[np.ndarray, np.ndarray, np.ndarray | None]:
    """Decode named tensors into (boxes_xyxy, scores, landmarks).

    Landmark names are matched before box names so that a tensor such as
    ``landmark_box`` is never taken for the boxes.
    """
    landmarks = _find_output(outputs, _LANDMARK_KEYS)
    remaining = {k: v for k, v in outputs.items() if v is not landmarks}
    scores = _find_output(remaining, _SCORE_KEYS)
    boxes = _find_output(
        {k: v for k, v in remaining.items() if v is not scores}, _BOX_KEYS
    )

    if scores is None or boxes is None:
        raise InferenceError(
            f"Missing score/box outputs, got {sorted(outputs.keys())}"
        )

    boxes = np.asarray(boxes, dtype=np.float32).reshape(-1, 4)
    rows = boxes.shape[0]

    scores = np.asarray(scores, dtype=np.float32)
    if rows > 0 and scores.size == 2 * rows:
        # background/face pairs
        scores = scores.reshape(-1, 2)[:, 1]
    scores = scores.reshape(-1)

    if landmarks is not None:
        landmarks = np.asarray(landmarks, dtype=np.float32)
        if landmarks.size != rows * 10:
            logger.warning(
                "Ignoring landmarks with unexpected shape %s for %d boxes",
                landmarks.shape,
                rows,
            )
            landmarks = None
        else:
            landmarks = landmarks.reshape(rows, 5, 2)

    return boxes, scores, landmarks


class NamedFaceDetector(FaceDetectorBackend):
    """Face detector for models with named score/box/landmark outputs."""

    model_name = "retinaface"
    scoring_policy = NAMED_POLICY

    def preprocess(
        self, image: npt.NDArray[np.uint8]
    ) -> tuple[npt.NDArray[np.float32], ResizeMeta]:
        canvas, meta = letterbox(image, self.input_size, pad_value=0, center=False)
        tensor = to_nchw(
            canvas,
            mean=(127.5, 127.5, 127.5),
            std=(128.0, 128.0, 128.0),
            channel_order="bgr",
        )
        return tensor, meta

    def decode(
        self, session: InferenceSessionHandle, tensor: npt.NDArray[np.float32]
    ) -> tuple[np.ndarray, np.ndarray, np.ndarray | None]:
        return parse_named_outputs(session.run_named(tensor))
