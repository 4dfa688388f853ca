"""Image processing and classical postprocessing for the face pipeline."""

from .crop import FaceCrop, aligned_face_crop, crop_face, encode_jpeg
from .nms import iou, non_max_suppression
from .pose import estimate_pose
from .quality import GRID_POLICY, NAMED_POLICY, ScoringPolicy, sharpness_score

__all__ = [
    "FaceCrop",
    "GRID_POLICY",
    "NAMED_POLICY",
    "ScoringPolicy",
    "aligned_face_crop",
    "crop_face",
    "encode_jpeg",
    "estimate_pose",
    "iou",
    "non_max_suppression",
    "sharpness_score",
]
