"""
Single-stage grid detector (YOLO-face family).

The model returns one tensor, either ``[1, N, C]`` or ``[1, C, N]``. Each
row is ``cx, cy, w, h, confidence`` optionally followed by a class column
and, for pose variants (C >= 20), five keypoints as (x, y, visibility)
triplets in the last fifteen columns.
"""

from __future__ import annotations

import logging

import numpy as np
import numpy.typing as npt

from ..processing.preprocess import ResizeMeta, letterbox, to_nchw
from ..processing.quality import GRID_POLICY
from .backend_exceptions import InferenceError
from .base import FaceDetectorBackend
from .session import InferenceSessionHandle

logger = logging.getLogger(__name__)

LETTERBOX_FILL = 114
KEYPOINT_COLUMNS = 15


def parse_grid_output(
    output: np.ndarray,
) -> tuple[np.ndarray, np.ndarray, np.ndarray | None]:
    """Decode a raw grid tensor into (boxes_xyxy, scores, landmarks).

    Orientation is inferred by comparing the two trailing dimensions: the
    channel axis is always the shorter one.
    """
    arr = np.asarray(output, dtype=np.float32)
    if arr.ndim == 3:
        arr = arr[0]
    elif arr.ndim != 2:
        logger.warning("Unexpected grid output shape %s, assuming [N, 6]", arr.shape)
        arr = arr.reshape(-1, 6)

    if arr.shape[0] < arr.shape[1]:
        arr = arr.T

    if arr.shape[0] == 0:
        return np.zeros((0, 4), np.float32), np.zeros((0,), np.float32), None
    if arr.shape[1] < 5:
        raise InferenceError(f"Grid output needs at least 5 channels, got {arr.shape[1]}")

    cx, cy, w, h = arr[:, 0], arr[:, 1], arr[:, 2], arr[:, 3]
    boxes = np.stack([cx - w / 2, cy - h / 2, cx + w / 2, cy + h / 2], axis=1)
    scores = arr[:, 4]

    landmarks = None
    if arr.shape[1] >= 5 + KEYPOINT_COLUMNS:
        kps = arr[:, -KEYPOINT_COLUMNS:].reshape(-1, 5, 3)
        landmarks = kps[:, :, :2]

    return boxes, scores, landmarks


class GridFaceDetector(FaceDetectorBackend):
    """Face detector for single-tensor grid models."""

    model_name = "yolo11"
    scoring_policy = GRID_POLICY

    def preprocess(
        self, image: npt.NDArray[np.uint8]
    ) -> tuple[npt.NDArray[np.float32], ResizeMeta]:
        canvas, meta = letterbox(image, self.input_size, pad_value=LETTERBOX_FILL)
        tensor = to_nchw(canvas, mean=(0.0, 0.0, 0.0), std=(1.0, 1.0, 1.0), scale=1 / 255.0)
        return tensor, meta

    def decode(
        self, session: InferenceSessionHandle, tensor: npt.NDArray[np.float32]
    ) -> tuple[np.ndarray, np.ndarray, np.ndarray | None]:
        outputs = session.run(tensor)
        if not outputs:
            raise InferenceError("Grid detector returned no outputs")
        return parse_grid_output(outputs[0])
