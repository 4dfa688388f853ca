"""
Art-style classification used to pick embedding blend weights.

The engine only needs the contract (image -> ImageStyle). The bundled
HeuristicStyleClassifier scores colour, edge and texture statistics on a
256x256 thumbnail; it is cheap and deliberately coarse. Any classifier with
a compatible ``classify`` method can be passed to the engine instead.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Protocol, runtime_checkable

import cv2
import numpy as np
import numpy.typing as npt

logger = logging.getLogger(__name__)

THUMBNAIL_SIZE = 256
MIN_STYLE_SCORE = 0.4


class ImageStyle(str, Enum):
    """Art style of a whole image."""

    REALISTIC = "realistic"
    ANIME = "anime"
    THREED = "threed"
    MIXED = "mixed"

    @classmethod
    def parse(cls, value: "str | ImageStyle | None") -> "ImageStyle":
        """Lenient conversion; anything unrecognised is MIXED."""
        if isinstance(value, ImageStyle):
            return value
        if value is None:
            return cls.MIXED
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            return cls.MIXED


@runtime_checkable
class StyleClassifier(Protocol):
    def classify(self, image: npt.NDArray[np.uint8]) -> ImageStyle: ...


@dataclass(frozen=True)
class StyleFeatures:
    """Image statistics the heuristic votes on (all in [0, 1])."""

    saturation: float
    unique_color_ratio: float
    edge_sharpness: float
    edge_density: float
    smoothness: float
    complexity: float


def _color_metrics(rgb: np.ndarray) -> tuple[float, float]:
    pixels = rgb.reshape(-1, 3).astype(np.int32)
    cmax = pixels.max(axis=1)
    cmin = pixels.min(axis=1)
    saturation = np.where(cmax > 0, (cmax - cmin) / np.maximum(cmax, 1), 0.0)

    # 32 levels per channel
    quantized = ((pixels[:, 0] >> 3) << 10) | ((pixels[:, 1] >> 3) << 5) | (pixels[:, 2] >> 3)
    unique = len(np.unique(quantized))
    ratio = unique / float(min(len(pixels), 32 * 32 * 32))
    return float(saturation.mean()), ratio


def _edge_metrics(rgb: np.ndarray) -> tuple[float, float]:
    intensity = rgb.astype(np.float32).sum(axis=2)
    gx = np.abs(intensity[1:-1, 2:] - intensity[1:-1, :-2]) / 3.0
    gy = np.abs(intensity[2:, 1:-1] - intensity[:-2, 1:-1]) / 3.0
    gradient = np.sqrt(gx * gx + gy * gy)

    edges = int((gradient > 30).sum())
    strong = int((gradient > 80).sum())
    density = edges / float(max(gradient.size, 1))
    sharpness = strong / float(edges) if edges else 0.0
    return sharpness, density


def _texture_metrics(rgb: np.ndarray) -> tuple[float, float]:
    luma = (
        rgb[..., 0] * 0.299 + rgb[..., 1] * 0.587 + rgb[..., 2] * 0.114
    ).astype(np.float32) / 255.0
    h, w = luma.shape
    rows = len(range(0, h - 8, 8))
    cols = len(range(0, w - 8, 8))
    if rows == 0 or cols == 0:
        return 1.0, 0.0

    blocks = luma[: rows * 8, : cols * 8].reshape(rows, 8, cols, 8)
    mean = blocks.mean(axis=(1, 3))
    variance = (blocks * blocks).mean(axis=(1, 3)) - mean * mean
    avg = float(variance.mean())

    complexity = min(avg * 10.0, 1.0)
    return 1.0 - complexity, complexity


def extract_style_features(image: npt.NDArray[np.uint8]) -> StyleFeatures:
    """Compute style statistics on a 256x256 thumbnail of an RGB image."""
    thumb = cv2.resize(image, (THUMBNAIL_SIZE, THUMBNAIL_SIZE), interpolation=cv2.INTER_AREA)
    saturation, unique_ratio = _color_metrics(thumb)
    edge_sharpness, edge_density = _edge_metrics(thumb)
    smoothness, complexity = _texture_metrics(thumb)
    return StyleFeatures(
        saturation=saturation,
        unique_color_ratio=unique_ratio,
        edge_sharpness=edge_sharpness,
        edge_density=edge_density,
        smoothness=smoothness,
        complexity=complexity,
    )


def score_styles(f: StyleFeatures) -> dict[ImageStyle, float]:
    """Vote scores per concrete style."""
    anime = 0.0
    anime += 0.3 if f.saturation > 0.5 else 0.0
    anime += 0.3 if f.unique_color_ratio < 0.3 else 0.0
    anime += 0.2 if f.edge_sharpness > 0.6 else 0.0
    anime += 0.2 if f.smoothness > 0.7 else 0.0

    realistic = 0.0
    realistic += 0.2 if f.saturation < 0.4 else 0.0
    realistic += 0.3 if f.unique_color_ratio > 0.5 else 0.0
    realistic += 0.3 if f.complexity > 0.5 else 0.0
    realistic += 0.2 if f.edge_sharpness < 0.4 else 0.0

    threed = 0.0
    threed += 0.3 if f.saturation > 0.4 and f.unique_color_ratio > 0.4 else 0.0
    threed += 0.3 if 0.3 < f.edge_sharpness < 0.6 else 0.0
    threed += 0.4 if f.complexity > 0.3 and f.smoothness > 0.4 else 0.0

    return {
        ImageStyle.ANIME: anime,
        ImageStyle.REALISTIC: realistic,
        ImageStyle.THREED: threed,
    }


def pick_style(scores: dict[ImageStyle, float]) -> ImageStyle:
    """Highest score wins, ties resolved anime > realistic > threed."""
    best = max(scores.values())
    if best < MIN_STYLE_SCORE:
        return ImageStyle.MIXED
    for style in (ImageStyle.ANIME, ImageStyle.REALISTIC, ImageStyle.THREED):
        if scores.get(style, 0.0) >= best:
            return style
    return ImageStyle.MIXED


class HeuristicStyleClassifier:
    """Colour/edge/texture voting classifier."""

    def classify(self, image: npt.NDArray[np.uint8]) -> ImageStyle:
        try:
            arr = np.asarray(image)
            if arr.ndim != 3 or arr.shape[2] != 3 or arr.size == 0:
                raise ValueError(f"expected an RGB image, got shape {arr.shape}")
            return pick_style(score_styles(extract_style_features(arr)))
        except Exception as exc:
            logger.warning("Style classification failed: %s", exc)
            return ImageStyle.MIXED
