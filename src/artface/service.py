"""
FaceEngine: the orchestration facade.

Owns every inference-bearing component (one detector, up to two encoders)
as a unit: they are opened together at construction and released together
by close(). Per image the pipeline is decode -> style -> detect -> crop ->
embed -> score. Failures are contained at the narrowest level that still
leaves a useful result:

- a failing face keeps its box and crop, with landmarks or embeddings None;
- a failing image records ``error_message`` and the batch moves on;
- only model loading (construction) and embedding-dimension mismatches in
  similarity calls surface to the caller.
"""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable, Iterable, Sequence
from contextlib import ExitStack
from pathlib import Path

import numpy as np
import numpy.typing as npt
from PIL import Image, ImageOps

from . import clustering, similarity
from .backends.backend_exceptions import EngineClosedError
from .backends.base import EmbeddingEncoder, FaceDetectorBackend, OnnxComponent
from .backends.encoders import IdentityEncoder, UniversalEncoder
from .backends.factory import create_detector
from .clustering import ClusterMethod
from .config import EncoderSettings, FaceEngineConfig
from .models import FaceDetection, ImageFaceResults, Pose, RawDetection
from .processing.crop import aligned_face_crop, crop_face, encode_jpeg
from .processing.pose import estimate_pose
from .processing.quality import sharpness_score
from .runtime_info import EngineRuntimeInfo
from .style import HeuristicStyleClassifier, ImageStyle, StyleClassifier

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[int, int, str], None]

_ZERO_NORM = 1e-6


def decode_image(path: str | Path) -> npt.NDArray[np.uint8]:
    """Decode an image file into an RGB uint8 array, honouring EXIF orientation."""
    with Image.open(path) as img:
        img = ImageOps.exif_transpose(img)
        return np.asarray(img.convert("RGB"), dtype=np.uint8).copy()


def _build_encoder(
    cls: type[EmbeddingEncoder], settings: EncoderSettings, config: FaceEngineConfig
) -> EmbeddingEncoder:
    return cls(
        model_path=settings.model_path,
        device=config.device,
        device_id=config.device_id,
        input_size=settings.input_size,
        embedding_dim=settings.embedding_dim,
        channel_order=settings.channel_order,
    )


class FaceEngine:
    """Face detection, embedding and clustering over image files.

    Not thread-safe: each engine owns exclusive inference sessions. Run
    several engines for parallelism.

    Example:
        ```python
        config = FaceEngineConfig.from_yaml("artface.yaml")
        with FaceEngine(config) as engine:
            results = engine.process_batch(paths, progress_callback=report)
            faces = [f for r in results for f in r.faces if f.identity_embedding is not None]
            groups = engine.cluster_faces([f.identity_embedding for f in faces])
        ```
    """

    def __init__(
        self,
        config: FaceEngineConfig,
        style_classifier: StyleClassifier | None = None,
        *,
        detector: FaceDetectorBackend | None = None,
        identity_encoder: EmbeddingEncoder | None = None,
        universal_encoder: EmbeddingEncoder | None = None,
    ) -> None:
        """Open every configured component.

        Pre-built components may be injected; anything not injected is
        built from ``config``. If any component fails to load, the ones
        already opened are closed before the error propagates.

        Raises:
            ModelLoadingError: If a model cannot be loaded on any device.
        """
        self.config = config
        self._closed = False
        start = time.perf_counter()

        if detector is None:
            detector = create_detector(config.detector, config.device, config.device_id)
        if identity_encoder is None and config.identity_encoder is not None:
            identity_encoder = _build_encoder(IdentityEncoder, config.identity_encoder, config)
        if universal_encoder is None and config.universal_encoder is not None:
            universal_encoder = _build_encoder(UniversalEncoder, config.universal_encoder, config)

        if style_classifier is None and config.classify_style:
            style_classifier = HeuristicStyleClassifier()

        self.detector: FaceDetectorBackend = detector
        self.identity_encoder = identity_encoder
        self.universal_encoder = universal_encoder
        self.style_classifier = style_classifier

        with ExitStack() as stack:
            for role, component in self._components().items():
                component.initialize()
                stack.callback(component.close)
                logger.info("Loaded %s (%s)", role, component.model_name)
            self._resources = stack.pop_all()

        self._load_time = time.perf_counter() - start
        logger.info("FaceEngine ready in %.2fs", self._load_time)

    def _components(self) -> dict[str, OnnxComponent]:
        components: dict[str, OnnxComponent] = {"detector": self.detector}
        if self.identity_encoder is not None:
            components["identity_encoder"] = self.identity_encoder
        if self.universal_encoder is not None:
            components["universal_encoder"] = self.universal_encoder
        return components

    # Lifecycle

    @property
    def closed(self) -> bool:
        return self._closed

    def close(self) -> None:
        """Release every inference session. Idempotent."""
        if self._closed:
            return
        self._closed = True
        self._resources.close()
        logger.info("FaceEngine closed")

    def __enter__(self) -> FaceEngine:
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def _ensure_open(self) -> None:
        if self._closed:
            raise EngineClosedError("FaceEngine has been closed")

    def info(self) -> EngineRuntimeInfo:
        return EngineRuntimeInfo.from_components(
            self._components(),
            load_time=self._load_time,
            closed=self._closed,
            style_classifier=type(self.style_classifier).__name__
            if self.style_classifier is not None
            else None,
        )

    # Per-image pipeline

    def process_image(self, path: str | Path) -> ImageFaceResults:
        """Detect, crop, embed and score every face in one image file.

        Never raises for problems with the image itself; those are recorded
        in ``error_message``.

        Raises:
            EngineClosedError: If called after close().
        """
        self._ensure_open()
        source = str(path)
        start = time.perf_counter()
        result = ImageFaceResults(image_path=source)

        try:
            image = decode_image(path)
        except Exception as exc:
            logger.warning("decode failed for %s: %s", source, exc)
            result.error_message = f"decode: {exc}"
            result.processing_time_ms = (time.perf_counter() - start) * 1000.0
            return result

        try:
            self._process_decoded(image, source, result)
        except Exception as exc:
            logger.warning("processing failed for %s: %s", source, exc)
            result.error_message = str(exc)

        result.processing_time_ms = (time.perf_counter() - start) * 1000.0
        logger.debug(
            "%s: %d faces in %.1fms", source, result.face_count, result.processing_time_ms
        )
        return result

    def process_array(
        self, image: npt.NDArray[np.uint8], source: str = "<array>"
    ) -> ImageFaceResults:
        """Same as process_image for an already decoded RGB image."""
        self._ensure_open()
        start = time.perf_counter()
        result = ImageFaceResults(image_path=source)
        try:
            self._process_decoded(np.asarray(image), source, result)
        except Exception as exc:
            logger.warning("processing failed for %s: %s", source, exc)
            result.error_message = str(exc)
        result.processing_time_ms = (time.perf_counter() - start) * 1000.0
        return result

    def _process_decoded(
        self, image: npt.NDArray[np.uint8], source: str, result: ImageFaceResults
    ) -> None:
        result.image_height, result.image_width = image.shape[:2]

        style = self._classify(image, source)
        result.image_style = style.value

        detections = self.detector.detect(image, source=source)
        for raw in detections:
            face = self._build_face(image, raw, style, source)
            if face is not None:
                result.faces.append(face)

    def _classify(self, image: npt.NDArray[np.uint8], source: str) -> ImageStyle:
        if self.style_classifier is None:
            return ImageStyle.MIXED
        try:
            return ImageStyle.parse(self.style_classifier.classify(image))
        except Exception as exc:
            logger.warning("style failed for %s: %s", source, exc)
            return ImageStyle.MIXED

    def _build_face(
        self,
        image: npt.NDArray[np.uint8],
        raw: RawDetection,
        style: ImageStyle,
        source: str,
    ) -> FaceDetection | None:
        crop_settings = self.config.crop
        min_size = self.detector.min_face_size

        try:
            crop = crop_face(
                image,
                raw.box,
                padding_ratio=crop_settings.padding_ratio,
                storage_size=crop_settings.storage_size,
            )
            if min(crop.region.width, crop.region.height, crop.width, crop.height) < min_size:
                logger.debug("%s: dropping face %s below %dpx", source, raw.box, min_size)
                return None
            crop_bytes = encode_jpeg(crop.pixels, crop_settings.jpeg_quality)
        except Exception as exc:
            logger.warning("crop failed for %s face %s: %s", source, raw.box, exc)
            return None

        landmarks = raw.landmarks
        pose: Pose | None = None
        if landmarks is not None:
            try:
                pose = estimate_pose(landmarks, raw.box)
            except Exception as exc:
                logger.warning("landmarks failed for %s face %s: %s", source, raw.box, exc)
                landmarks = None

        identity = None
        if self.identity_encoder is not None:
            identity = self._embed_identity(
                self.identity_encoder, image, raw, landmarks, pose, source
            )

        universal = None
        if self.universal_encoder is not None:
            universal = self._embed(self.universal_encoder, crop.pixels, "universal", source, raw)

        policy = self.detector.scoring_policy
        try:
            quality = policy.quality(
                raw.confidence, crop.region.width, crop.region.height, pose
            )
            sharpness = sharpness_score(crop.pixels)
        except Exception as exc:
            logger.warning("score failed for %s face %s: %s", source, raw.box, exc)
            quality, sharpness = 0.0, 0.0

        return FaceDetection(
            box=raw.box,
            confidence=raw.confidence,
            landmarks=landmarks,
            pose=pose or Pose(),
            detection_model=self.detector.model_name,
            style_type=style.value,
            face_crop=crop_bytes,
            crop_width=crop.width,
            crop_height=crop.height,
            identity_embedding=identity,
            universal_embedding=universal,
            quality_score=quality,
            sharpness_score=sharpness,
        )

    def _embed_identity(
        self,
        encoder: EmbeddingEncoder,
        image: npt.NDArray[np.uint8],
        raw: RawDetection,
        landmarks: Sequence[Sequence[float]] | None,
        pose: Pose | None,
        source: str,
    ) -> npt.NDArray[np.float32] | None:
        try:
            if self.config.crop.align:
                pixels = aligned_face_crop(
                    image,
                    raw.box,
                    landmarks=landmarks,
                    roll=pose.roll if pose is not None else 0.0,
                    output_size=(encoder.input_size, encoder.input_size),
                )
            else:
                pixels = crop_face(image, raw.box, padding_ratio=0.2, storage_size=None).pixels
        except Exception as exc:
            logger.warning("identity failed for %s face %s: %s", source, raw.box, exc)
            return None
        return self._embed(encoder, pixels, "identity", source, raw)

    @staticmethod
    def _embed(
        encoder: EmbeddingEncoder,
        pixels: npt.NDArray[np.uint8],
        stage: str,
        source: str,
        raw: RawDetection,
    ) -> npt.NDArray[np.float32] | None:
        try:
            vector = encoder.encode(pixels)
        except Exception as exc:
            logger.warning("%s failed for %s face %s: %s", stage, source, raw.box, exc)
            return None
        norm = float(np.linalg.norm(vector))
        if not np.isfinite(norm):
            logger.warning("%s produced non-finite values for %s face %s", stage, source, raw.box)
            return None
        if norm < _ZERO_NORM:
            logger.warning("%s produced a zero vector for %s face %s", stage, source, raw.box)
            return None
        vector = np.asarray(vector, dtype=np.float32)
        vector.flags.writeable = False
        return vector

    # Batch

    def process_batch(
        self,
        paths: Iterable[str | Path],
        progress_callback: ProgressCallback | None = None,
        cancel_event: threading.Event | None = None,
    ) -> list[ImageFaceResults]:
        """Process images sequentially.

        ``progress_callback(current, total, path)`` runs after each image.
        ``cancel_event`` is checked before each image; once set, the results
        gathered so far are returned.
        """
        self._ensure_open()
        paths = list(paths)
        total = len(paths)
        results: list[ImageFaceResults] = []

        for current, path in enumerate(paths, start=1):
            if cancel_event is not None and cancel_event.is_set():
                logger.info("Batch cancelled after %d/%d images", current - 1, total)
                break
            results.append(self.process_image(path))
            if progress_callback is not None:
                progress_callback(current, total, str(path))

        failed = sum(1 for r in results if not r.ok)
        logger.info(
            "Batch done: %d/%d images, %d failed, %d faces",
            len(results),
            total,
            failed,
            sum(r.face_count for r in results),
        )
        return results

    # Similarity and clustering

    def find_similar_faces(
        self,
        query: npt.ArrayLike,
        candidates: Sequence[npt.ArrayLike],
        threshold: float | None = None,
        max_results: int | None = None,
    ) -> list[tuple[int, float]]:
        """Rank candidate embeddings against ``query`` (see similarity.find_similar_faces)."""
        self._ensure_open()
        return similarity.find_similar_faces(
            query,
            candidates,
            threshold=self.config.similarity_threshold if threshold is None else threshold,
            max_results=self.config.max_similar_results if max_results is None else max_results,
        )

    def find_similar_faces_style_aware(
        self,
        query_face: FaceDetection,
        candidate_faces: Sequence[FaceDetection],
        threshold: float | None = None,
        max_results: int | None = None,
    ) -> list[tuple[int, float]]:
        self._ensure_open()
        return similarity.find_similar_faces_style_aware(
            query_face,
            candidate_faces,
            threshold=self.config.similarity_threshold if threshold is None else threshold,
            max_results=self.config.max_similar_results if max_results is None else max_results,
        )

    def cluster_faces(
        self,
        embeddings: Sequence[npt.ArrayLike],
        threshold: float | None = None,
        method: ClusterMethod = "greedy",
    ) -> list[list[int]]:
        """Group embeddings into identities (see clustering.cluster_faces)."""
        self._ensure_open()
        return clustering.cluster_faces(
            embeddings,
            threshold=self.config.cluster_threshold if threshold is None else threshold,
            method=method,
        )
