"""
artface: face detection, embedding and identity clustering for AI-art libraries.

Features:
- Two detector families (single-tensor grid and named-tensor outputs) with shared NMS
- Heuristic pose, padded and landmark-aligned face crops, quality and sharpness scores
- Identity (512D) and style-robust universal (1280D) embeddings
- Style-aware similarity blending and greedy or union-find identity clustering
- ONNX Runtime sessions with graceful accelerator -> CPU fallback
"""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("artface")
except PackageNotFoundError:
    # package is not installed
    __version__ = "0.0.0"

from .backends.backend_exceptions import (
    BackendError,
    ConfigError,
    EmbeddingDimensionError,
    EngineClosedError,
    FaceEngineError,
    ModelLoadingError,
)
from .clustering import cluster_by_similarity, cluster_faces
from .config import CropSettings, DetectorSettings, EncoderSettings, FaceEngineConfig
from .models import BoundingBox, FaceDetection, ImageFaceResults, Pose, RawDetection
from .runtime_info import EngineRuntimeInfo
from .service import FaceEngine
from .similarity import (
    cosine_similarity,
    find_similar_faces,
    find_similar_faces_style_aware,
    style_aware_similarity,
)
from .style import HeuristicStyleClassifier, ImageStyle, StyleClassifier
from .utils.logger import setup_logging

__all__ = [
    "BackendError",
    "BoundingBox",
    "ConfigError",
    "CropSettings",
    "DetectorSettings",
    "EmbeddingDimensionError",
    "EncoderSettings",
    "EngineClosedError",
    "EngineRuntimeInfo",
    "FaceDetection",
    "FaceEngine",
    "FaceEngineConfig",
    "FaceEngineError",
    "HeuristicStyleClassifier",
    "ImageFaceResults",
    "ImageStyle",
    "ModelLoadingError",
    "Pose",
    "RawDetection",
    "StyleClassifier",
    "cluster_by_similarity",
    "cluster_faces",
    "cosine_similarity",
    "find_similar_faces",
    "find_similar_faces_style_aware",
    "setup_logging",
    "style_aware_similarity",
]
