"""
Embedding encoders: identity (ArcFace-style) and universal (CLIP-style).
"""

from __future__ import annotations

import logging
from pathlib import Path

import cv2
import numpy as np
import numpy.typing as npt

from ..processing.preprocess import resize_center_crop, to_nchw
from .base import EmbeddingEncoder

logger = logging.getLogger(__name__)

CLIP_MEAN = (0.48145466, 0.4578275, 0.40821073)
CLIP_STD = (0.26862954, 0.26130258, 0.27577711)


class IdentityEncoder(EmbeddingEncoder):
    """512D face-identity encoder.

    Expects an aligned (or at least tightly cropped) face. Pixels are mapped
    to [-1, 1]; ``channel_order`` follows the model's training convention.
    """

    model_name = "arcface"

    def __init__(
        self,
        model_path: str | Path,
        device: str | None = "cuda",
        device_id: int = 0,
        input_size: int = 112,
        embedding_dim: int = 512,
        channel_order: str = "rgb",
    ) -> None:
        super().__init__(model_path, device, device_id, input_size, embedding_dim)
        self.channel_order = channel_order

    def preprocess(self, pixels: npt.NDArray[np.uint8]) -> npt.NDArray[np.float32]:
        if pixels.shape[:2] != (self.input_size, self.input_size):
            pixels = cv2.resize(
                pixels, (self.input_size, self.input_size), interpolation=cv2.INTER_LINEAR
            )
        return to_nchw(
            pixels,
            mean=(127.5, 127.5, 127.5),
            std=(127.5, 127.5, 127.5),
            channel_order=self.channel_order,
        )


class UniversalEncoder(EmbeddingEncoder):
    """1280D style-robust vision encoder (CLIP ViT-H image tower)."""

    model_name = "clip-vision"

    def __init__(
        self,
        model_path: str | Path,
        device: str | None = "cuda",
        device_id: int = 0,
        input_size: int = 224,
        embedding_dim: int = 1280,
        channel_order: str = "rgb",
    ) -> None:
        super().__init__(model_path, device, device_id, input_size, embedding_dim)
        self.channel_order = channel_order

    def preprocess(self, pixels: npt.NDArray[np.uint8]) -> npt.NDArray[np.float32]:
        square = resize_center_crop(pixels, self.input_size)
        return to_nchw(
            square,
            mean=CLIP_MEAN,
            std=CLIP_STD,
            scale=1 / 255.0,
            channel_order=self.channel_order,
        )
