"""
Face cropping and alignment.

Two flavours:

- fixed-pad crops: the detector box grown by a padding ratio, squared on its
  larger side, clamped to the image and optionally resized for storage;
- alignment-aware crops: a similarity warp onto the ArcFace 5-point template
  when landmarks exist, or a de-rotation around the box center when only a
  roll angle is known.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass

import cv2
import numpy as np
import numpy.typing as npt

from ..models import BoundingBox

logger = logging.getLogger(__name__)

# ArcFace reference landmarks for a 112x112 crop
ARCFACE_TEMPLATE = np.array(
    [
        [38.2946, 51.6963],
        [73.5318, 51.5014],
        [56.0252, 71.7366],
        [41.5493, 92.3655],
        [70.7299, 92.2041],
    ],
    dtype=np.float32,
)


@dataclass(frozen=True)
class FaceCrop:
    """A cropped face plus the source region it was cut from."""

    pixels: npt.NDArray[np.uint8]
    region: BoundingBox

    @property
    def width(self) -> int:
        return int(self.pixels.shape[1])

    @property
    def height(self) -> int:
        return int(self.pixels.shape[0])


def padded_square_region(
    box: BoundingBox, image_width: int, image_height: int, padding_ratio: float = 0.3
) -> BoundingBox:
    """Grow ``box`` by ``padding_ratio * max(w, h)`` per side, square it, clamp it."""
    side = max(box.width, box.height)
    padding = int(side * padding_ratio)
    size = side + 2 * padding

    cx = box.x + box.width // 2
    cy = box.y + box.height // 2

    x = max(0, cx - size // 2)
    y = max(0, cy - size // 2)
    w = max(0, min(image_width - x, size))
    h = max(0, min(image_height - y, size))
    return BoundingBox(x, y, w, h)


def crop_face(
    image: npt.NDArray[np.uint8],
    box: BoundingBox,
    padding_ratio: float = 0.3,
    storage_size: int | None = 256,
) -> FaceCrop:
    """Cut a padded square face crop, resized to ``storage_size`` when given."""
    img_h, img_w = image.shape[:2]
    region = padded_square_region(box, img_w, img_h, padding_ratio)
    pixels = image[region.y : region.y2, region.x : region.x2]

    if storage_size and pixels.size:
        pixels = cv2.resize(
            pixels, (storage_size, storage_size), interpolation=cv2.INTER_AREA
        )
    return FaceCrop(pixels=np.ascontiguousarray(pixels), region=region)


def encode_jpeg(pixels: npt.NDArray[np.uint8], quality: int = 90) -> bytes:
    """Encode an RGB crop as JPEG bytes."""
    ok, buffer = cv2.imencode(
        ".jpg",
        cv2.cvtColor(pixels, cv2.COLOR_RGB2BGR),
        [int(cv2.IMWRITE_JPEG_QUALITY), int(quality)],
    )
    if not ok:
        raise ValueError("JPEG encoding failed")
    return buffer.tobytes()


def align_face(
    image: npt.NDArray[np.uint8],
    landmarks: Sequence[Sequence[float]],
    output_size: tuple[int, int] = (112, 112),
) -> npt.NDArray[np.uint8] | None:
    """Warp the face onto the ArcFace template using 5 landmarks.

    Returns None when the landmarks are unusable.
    """
    if len(landmarks) < 5:
        return None

    out_h, out_w = output_size
    dst = ARCFACE_TEMPLATE.copy()
    if (out_h, out_w) != (112, 112):
        dst[:, 0] *= out_w / 112.0
        dst[:, 1] *= out_h / 112.0

    src = np.asarray(landmarks[:5], dtype=np.float32)
    transform, _ = cv2.estimateAffinePartial2D(src, dst, method=cv2.LMEDS)
    if transform is None:
        return None

    return cv2.warpAffine(
        image,
        transform,
        (out_w, out_h),
        borderMode=cv2.BORDER_CONSTANT,
        borderValue=(0, 0, 0),
    )


def rotate_crop(
    image: npt.NDArray[np.uint8],
    box: BoundingBox,
    angle: float,
    padding_ratio: float = 0.2,
) -> FaceCrop:
    """Undo an in-plane roll of ``angle`` degrees around the box center, then crop."""
    cx, cy = box.center
    matrix = cv2.getRotationMatrix2D((cx, cy), angle, 1.0)
    img_h, img_w = image.shape[:2]
    rotated = cv2.warpAffine(
        image, matrix, (img_w, img_h), borderMode=cv2.BORDER_REPLICATE
    )
    return crop_face(rotated, box, padding_ratio=padding_ratio, storage_size=None)


def aligned_face_crop(
    image: npt.NDArray[np.uint8],
    box: BoundingBox,
    landmarks: Sequence[Sequence[float]] | None = None,
    roll: float = 0.0,
    output_size: tuple[int, int] = (112, 112),
    padding_ratio: float = 0.2,
) -> npt.NDArray[np.uint8]:
    """Best available crop for an identity encoder.

    Landmark alignment when five points exist, de-rotation when a roll angle
    is known, plain padded crop otherwise.
    """
    if landmarks is not None and len(landmarks) >= 5:
        aligned = align_face(image, landmarks, output_size)
        if aligned is not None:
            return aligned
        logger.debug("Landmark alignment failed for box %s, using plain crop", box)

    if abs(roll) > 1.0:
        return rotate_crop(image, box, roll, padding_ratio).pixels
    return crop_face(image, box, padding_ratio, storage_size=None).pixels
