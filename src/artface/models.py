"""
Data model produced by the face pipeline.

RawDetection is the detector-level output (before cropping and embedding);
FaceDetection is the finished, immutable per-face record; ImageFaceResults
collects every face found in one source image.
"""

from __future__ import annotations

from dataclasses import dataclass, field

import numpy as np
import numpy.typing as npt


@dataclass(frozen=True)
class BoundingBox:
    """Axis-aligned box in source-image pixels (top-left origin)."""

    x: int
    y: int
    width: int
    height: int

    @property
    def x2(self) -> int:
        return self.x + self.width

    @property
    def y2(self) -> int:
        return self.y + self.height

    @property
    def area(self) -> int:
        return max(0, self.width) * max(0, self.height)

    @property
    def center(self) -> tuple[float, float]:
        return (self.x + self.width / 2.0, self.y + self.height / 2.0)

    @classmethod
    def from_xyxy(cls, x1: float, y1: float, x2: float, y2: float) -> BoundingBox:
        return cls(x=int(x1), y=int(y1), width=int(x2 - x1), height=int(y2 - y1))

    def as_tuple(self) -> tuple[int, int, int, int]:
        return (self.x, self.y, self.width, self.height)


@dataclass(frozen=True)
class Pose:
    """Heuristic head pose in degrees.

    Derived from 2D landmarks without camera intrinsics; good enough to rank
    frontal against profile faces, not a calibrated head-pose measurement.
    """

    yaw: float = 0.0
    pitch: float = 0.0
    roll: float = 0.0


@dataclass(frozen=True)
class RawDetection:
    """A detector hit mapped back to source-image coordinates."""

    box: BoundingBox
    confidence: float
    landmarks: tuple[tuple[float, float], ...] | None = None


@dataclass(frozen=True)
class FaceDetection:
    """A fully processed face: box, crop, pose, embeddings and scores.

    Attributes:
        box: Bounding box in source-image pixels.
        confidence: Detector confidence in [0, 1].
        landmarks: Five or more (x, y) points, or None when the detector
            produced none or landmark extraction failed.
        pose: Heuristic yaw/pitch/roll; zeros when landmarks are missing.
        detection_model: Tag of the detector backend (e.g. "yolo11").
        style_type: Style label of the source image ("realistic", "anime", ...).
        face_crop: JPEG-encoded crop bytes.
        crop_width: Stored crop width in pixels.
        crop_height: Stored crop height in pixels.
        identity_embedding: Unit-norm 512D identity vector (read-only), or None.
        universal_embedding: Unit-norm 1280D style-robust vector (read-only),
            or None.
        quality_score: Composite quality in [0, 1].
        sharpness_score: Local-contrast sharpness in [0, 1].
    """

    box: BoundingBox
    confidence: float
    landmarks: tuple[tuple[float, float], ...] | None = None
    pose: Pose = field(default_factory=Pose)
    detection_model: str = ""
    style_type: str = "mixed"
    face_crop: bytes = b""
    crop_width: int = 0
    crop_height: int = 0
    # arrays are excluded from == and hash(); faces compare by detection and crop
    identity_embedding: npt.NDArray[np.float32] | None = field(
        default=None, compare=False
    )
    universal_embedding: npt.NDArray[np.float32] | None = field(
        default=None, compare=False
    )
    quality_score: float = 0.0
    sharpness_score: float = 0.0

    @property
    def has_embedding(self) -> bool:
        return self.identity_embedding is not None or self.universal_embedding is not None


@dataclass
class ImageFaceResults:
    """Per-image result, populated progressively while the image is processed."""

    image_path: str
    image_width: int = 0
    image_height: int = 0
    image_style: str = "mixed"
    faces: list[FaceDetection] = field(default_factory=list)
    processing_time_ms: float = 0.0
    error_message: str | None = None

    @property
    def ok(self) -> bool:
        return self.error_message is None

    @property
    def face_count(self) -> int:
        return len(self.faces)
