"""
Image preprocessing for detectors and encoders.

Turns an RGB uint8 image into the NCHW float tensor a given model expects
and keeps enough metadata (ResizeMeta) to map detections back to the
source image.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from typing import Any

import cv2
import numpy as np
import numpy.typing as npt


@dataclass(frozen=True)
class ResizeMeta:
    """Metadata produced when letterboxing an image for detection."""

    orig_size: tuple[int, int]  # (height, width)
    scale: float
    pad_x: int
    pad_y: int

    def to_source(self, xs: np.ndarray, ys: np.ndarray) -> tuple[np.ndarray, np.ndarray]:
        """Map model-input coordinates back to source-image coordinates."""
        return (xs - self.pad_x) / self.scale, (ys - self.pad_y) / self.scale


def convert_image_to_uint8(image: npt.NDArray[Any]) -> npt.NDArray[np.uint8]:
    """Ensure the image array is contiguous uint8 with three channels."""
    arr = np.asarray(image)
    if arr.ndim == 2:
        arr = cv2.cvtColor(arr.astype(np.uint8), cv2.COLOR_GRAY2RGB)
    elif arr.ndim == 3 and arr.shape[2] == 4:
        arr = cv2.cvtColor(arr.astype(np.uint8), cv2.COLOR_RGBA2RGB)

    if arr.dtype != np.uint8:
        if np.issubdtype(arr.dtype, np.floating):
            max_val = float(arr.max()) if arr.size else 1.0
            scale = 255.0 if max_val <= 1.0 else 1.0
            arr = np.clip(arr * scale, 0.0, 255.0).astype(np.uint8)
        else:
            arr = np.clip(arr, 0, 255).astype(np.uint8)

    return np.ascontiguousarray(arr)


def letterbox(
    image: npt.NDArray[np.uint8],
    input_size: int,
    pad_value: int = 0,
    center: bool = True,
) -> tuple[npt.NDArray[np.uint8], ResizeMeta]:
    """Aspect-preserving resize into a square canvas.

    Args:
        image: RGB uint8 image (H, W, 3).
        input_size: Side of the square model input.
        pad_value: Fill value for the padding area.
        center: Center the image on the canvas; otherwise place it top-left.
    """
    orig_h, orig_w = image.shape[:2]
    if orig_h == 0 or orig_w == 0:
        raise ValueError(f"Cannot letterbox an empty image of shape {image.shape}")

    scale = min(input_size / orig_w, input_size / orig_h)
    new_w = max(1, int(orig_w * scale))
    new_h = max(1, int(orig_h * scale))
    resized = cv2.resize(image, (new_w, new_h), interpolation=cv2.INTER_LINEAR)

    if center:
        pad_x = (input_size - new_w) // 2
        pad_y = (input_size - new_h) // 2
    else:
        pad_x = pad_y = 0

    canvas = np.full((input_size, input_size, 3), pad_value, dtype=np.uint8)
    canvas[pad_y : pad_y + new_h, pad_x : pad_x + new_w] = resized

    meta = ResizeMeta(orig_size=(orig_h, orig_w), scale=scale, pad_x=pad_x, pad_y=pad_y)
    return canvas, meta


def to_nchw(
    image: npt.NDArray[np.uint8],
    mean: Sequence[float],
    std: Sequence[float],
    scale: float = 1.0,
    channel_order: str = "rgb",
) -> npt.NDArray[np.float32]:
    """Normalize ``(pixel * scale - mean) / std`` and lay out as (1, 3, H, W).

    ``image`` is expected in RGB order; ``channel_order="bgr"`` swaps the
    channels before normalization (mean/std are given in model order).
    """
    if channel_order.lower() == "bgr":
        image = image[..., ::-1]
    mean_arr = np.asarray(mean, dtype=np.float32)
    std_arr = np.maximum(np.asarray(std, dtype=np.float32), 1e-6)

    normalized = (image.astype(np.float32) * np.float32(scale) - mean_arr) / std_arr
    tensor = np.transpose(normalized, (2, 0, 1))[np.newaxis, ...]
    return np.ascontiguousarray(tensor, dtype=np.float32)


def resize_center_crop(
    image: npt.NDArray[np.uint8], size: int
) -> npt.NDArray[np.uint8]:
    """Resize so the shorter side equals ``size`` and center crop a square."""
    h, w = image.shape[:2]
    scale = max(size / w, size / h)
    new_w = max(size, int(round(w * scale)))
    new_h = max(size, int(round(h * scale)))
    resized = cv2.resize(image, (new_w, new_h), interpolation=cv2.INTER_CUBIC)

    top = (new_h - size) // 2
    left = (new_w - size) // 2
    return resized[top : top + size, left : left + size]


def l2_normalize(vector: npt.ArrayLike, eps: float = 1e-12) -> npt.NDArray[np.float32]:
    """Scale a vector to unit L2 norm.

    A (near) zero or non-finite vector is returned unchanged; callers must
    treat it as invalid.
    """
    arr = np.asarray(vector, dtype=np.float32).reshape(-1)
    norm = float(np.linalg.norm(arr))
    if not np.isfinite(norm) or norm <= eps:
        return arr
    return arr / np.float32(norm)
