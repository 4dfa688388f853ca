"""
Heuristic head pose from five facial landmarks.

Landmark order: left eye, right eye, nose tip, left mouth corner, right
mouth corner. The angles are rough trigonometric approximations (no camera
model), useful as a quality signal only.
"""

from __future__ import annotations

import math
from collections.abc import Sequence

from ..models import BoundingBox, Pose

YAW_RANGE = 45.0
PITCH_RANGE = 30.0
EXPECTED_NOSE_OFFSET = 0.35  # nose sits ~35% of face height below the eye line


def _clamp(value: float, limit: float) -> float:
    return max(-limit, min(limit, value))


def estimate_pose(
    landmarks: Sequence[Sequence[float]] | None, box: BoundingBox
) -> Pose:
    """Estimate yaw, pitch and roll (degrees) from 5-point landmarks.

    Returns a zero pose when fewer than five landmarks are available or the
    box is degenerate.
    """
    if not landmarks or len(landmarks) < 5 or box.width <= 0 or box.height <= 0:
        return Pose()

    left_eye, right_eye, nose = landmarks[0], landmarks[1], landmarks[2]

    eye_cx = (left_eye[0] + right_eye[0]) / 2.0
    eye_cy = (left_eye[1] + right_eye[1]) / 2.0

    yaw = (nose[0] - eye_cx) / (box.width / 2.0) * YAW_RANGE

    expected = box.height * EXPECTED_NOSE_OFFSET
    pitch = ((nose[1] - eye_cy) - expected) / expected * PITCH_RANGE

    roll = math.degrees(
        math.atan2(right_eye[1] - left_eye[1], right_eye[0] - left_eye[0])
    )

    return Pose(
        yaw=_clamp(yaw, YAW_RANGE),
        pitch=_clamp(pitch, PITCH_RANGE),
        roll=roll,
    )
