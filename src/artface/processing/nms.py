"""Box overlap and non-maximum suppression shared by every detector backend."""

from __future__ import annotations

from collections.abc import Sequence

from ..models import BoundingBox, RawDetection


def iou(a: BoundingBox, b: BoundingBox) -> float:
    """Intersection over union of two boxes; 0.0 when they do not overlap."""
    x1 = max(a.x, b.x)
    y1 = max(a.y, b.y)
    x2 = min(a.x2, b.x2)
    y2 = min(a.y2, b.y2)

    inter = max(0, x2 - x1) * max(0, y2 - y1)
    if inter == 0:
        return 0.0

    union = a.area + b.area - inter
    return inter / union if union > 0 else 0.0


def non_max_suppression(
    detections: Sequence[RawDetection], threshold: float = 0.4
) -> list[RawDetection]:
    """Greedy NMS.

    Detections are stably sorted by confidence (highest first); the best
    remaining box is kept and every remaining box whose IoU with it is at
    least ``threshold`` is dropped. Output order is selection order.
    """
    remaining = sorted(detections, key=lambda d: d.confidence, reverse=True)
    keep: list[RawDetection] = []

    while remaining:
        best = remaining.pop(0)
        keep.append(best)
        remaining = [d for d in remaining if iou(best.box, d.box) < threshold]

    return keep
