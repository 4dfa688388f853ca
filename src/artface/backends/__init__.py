"""
Inference backends for artface.

This package exposes:
- InferenceSessionHandle: one ONNX Runtime session with device fallback
- FaceDetectorBackend: shared detector contract (GridFaceDetector, NamedFaceDetector)
- EmbeddingEncoder: shared encoder contract (IdentityEncoder, UniversalEncoder)
- create_detector: detector factory keyed by output family
"""

from .base import BackendInfo, EmbeddingEncoder, FaceDetectorBackend, build_detections
from .encoders import IdentityEncoder, UniversalEncoder
from .factory import available_detectors, create_detector, register_detector
from .grid_detector import GridFaceDetector, parse_grid_output
from .named_detector import NamedFaceDetector, parse_named_outputs
from .session import InferenceSessionHandle, resolve_providers

__all__ = [
    "BackendInfo",
    "EmbeddingEncoder",
    "FaceDetectorBackend",
    "GridFaceDetector",
    "IdentityEncoder",
    "InferenceSessionHandle",
    "NamedFaceDetector",
    "UniversalEncoder",
    "available_detectors",
    "build_detections",
    "create_detector",
    "parse_grid_output",
    "parse_named_outputs",
    "register_detector",
    "resolve_providers",
]
