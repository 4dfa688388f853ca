"""
Detector factory keyed by output-family kind.

Configuration names a detector by kind ("grid" or "named"); the registry
maps that kind to a backend class so new model families can be plugged in
without touching the facade.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from .base import FaceDetectorBackend
from .grid_detector import GridFaceDetector
from .named_detector import NamedFaceDetector

if TYPE_CHECKING:
    from ..config import DetectorSettings

logger = logging.getLogger(__name__)


class DetectorKind:
    """Detector output families."""

    GRID = "grid"
    NAMED = "named"


# Global registry for detectors
_DETECTOR_REGISTRY: dict[str, type[FaceDetectorBackend]] = {
    DetectorKind.GRID: GridFaceDetector,
    DetectorKind.NAMED: NamedFaceDetector,
}

def register_detector(kind: str, detector_class: type[FaceDetectorBackend]) -> None:
    """Register a detector class for a given kind."""
    _DETECTOR_REGISTRY[kind.lower()] = detector_class


def available_detectors() -> list[str]:
    """Get the registered detector kinds."""
    return sorted(_DETECTOR_REGISTRY)


def create_detector(
    settings: DetectorSettings,
    device: str | None = "cuda",
    device_id: int = 0,
) -> FaceDetectorBackend:
    """
    Create an (uninitialized) detector from its settings.

    Args:
        settings: Detector settings (kind, model path, thresholds)
        device: Requested accelerator; falls back to CPU on initialize()
        device_id: Accelerator index

    Returns:
        A detector instance; call initialize() before use.

    Raises:
        ValueError: If the kind is not registered
    """
    kind = settings.kind.lower()

    if kind not in _DETECTOR_REGISTRY:
        raise ValueError(
            f"Detector '{settings.kind}' is not available. Available detectors: {available_detectors()}"
        )

    detector_class = _DETECTOR_REGISTRY[kind]
    logger.debug("Creating %s detector from %s", detector_class.__name__, settings.model_path)
    return detector_class(
        model_path=settings.model_path,
        device=device,
        device_id=device_id,
        input_size=settings.input_size,
        confidence_threshold=settings.confidence_threshold,
        nms_threshold=settings.nms_threshold,
        min_face_size=settings.min_face_size,
    )
