"""
Quality and sharpness heuristics for face crops.

Quality is a weighted mix of detector confidence, crop size and (when
landmarks exist) frontal pose. The weights are a ScoringPolicy so each
detector backend can carry its own. Sharpness uses a single calibrated
local-contrast formula for every backend.
"""

from __future__ import annotations

from dataclasses import dataclass

import numpy as np
import numpy.typing as npt

from ..models import Pose

SIZE_REFERENCE = 150.0
SHARPNESS_DIVISOR = 100.0


@dataclass(frozen=True)
class ScoringPolicy:
    """Weights for the composite quality score."""

    name: str
    confidence_weight: float
    size_weight: float
    pose_weight: float = 0.0
    size_reference: float = SIZE_REFERENCE

    def quality(
        self,
        confidence: float,
        crop_width: int,
        crop_height: int,
        pose: Pose | None = None,
    ) -> float:
        """Composite quality in [0, 1].

        The pose term only counts when a pose is supplied; the weights that
        were actually used are renormalized so the result stays in range.
        """
        size_term = min(min(crop_width, crop_height) / self.size_reference, 1.0)
        total = confidence * self.confidence_weight + size_term * self.size_weight
        weight = self.confidence_weight + self.size_weight

        if pose is not None and self.pose_weight > 0:
            pose_term = max(0.0, 1.0 - (abs(pose.yaw) + abs(pose.pitch)) / 90.0)
            total += pose_term * self.pose_weight
            weight += self.pose_weight

        if weight <= 0:
            return 0.0
        return float(min(1.0, max(0.0, total / weight)))


GRID_POLICY = ScoringPolicy("grid", confidence_weight=0.6, size_weight=0.4)
NAMED_POLICY = ScoringPolicy(
    "named", confidence_weight=0.5, size_weight=0.3, pose_weight=0.2
)


def sharpness_score(pixels: npt.NDArray[np.uint8]) -> float:
    """Local-contrast sharpness of an RGB or grayscale crop, in [0, 1].

    For each interior pixel takes |center - mean(4-neighbours)| on the gray
    image, then the variance E[x^2] - E[x]^2 of those deviations divided by
    SHARPNESS_DIVISOR.
    """
    arr = np.asarray(pixels, dtype=np.float32)
    gray = arr.mean(axis=2) if arr.ndim == 3 else arr
    if gray.shape[0] < 3 or gray.shape[1] < 3:
        return 0.0

    center = gray[1:-1, 1:-1]
    neighbours = (
        gray[:-2, 1:-1] + gray[2:, 1:-1] + gray[1:-1, :-2] + gray[1:-1, 2:]
    ) / 4.0
    lap = np.abs(center - neighbours)

    mean = float(lap.mean())
    variance = float((lap * lap).mean()) - mean * mean
    return float(min(1.0, max(0.0, variance / SHARPNESS_DIVISOR)))
