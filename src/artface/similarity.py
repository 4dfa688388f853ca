"""
Cosine similarity, style-aware blending and similarity search.

Identity embeddings separate people well on photographs but degrade on
stylised art; universal embeddings generalise across styles with a weaker
identity signal. The blend weights follow the source image's style.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence

import numpy as np
import numpy.typing as npt

from .backends.backend_exceptions import EmbeddingDimensionError
from .models import FaceDetection
from .style import ImageStyle

logger = logging.getLogger(__name__)

# (identity weight, universal weight)
STYLE_WEIGHTS: dict[ImageStyle, tuple[float, float]] = {
    ImageStyle.REALISTIC: (0.8, 0.2),
    ImageStyle.ANIME: (0.2, 0.8),
    ImageStyle.THREED: (0.2, 0.8),
    ImageStyle.MIXED: (0.5, 0.5),
}


def cosine_similarity(a: npt.ArrayLike, b: npt.ArrayLike) -> float:
    """dot(a, b) / (|a| |b|).

    Returns 0.0 when either vector has zero norm.

    Raises:
        EmbeddingDimensionError: If the vectors differ in length.
    """
    va = np.asarray(a, dtype=np.float32).reshape(-1)
    vb = np.asarray(b, dtype=np.float32).reshape(-1)
    if va.shape != vb.shape:
        raise EmbeddingDimensionError(
            f"Embedding dimension mismatch: {va.size} vs {vb.size}"
        )

    denom = float(np.linalg.norm(va)) * float(np.linalg.norm(vb))
    if denom <= 0.0:
        return 0.0
    return float(np.dot(va, vb)) / denom


def blend_weights(style: str | ImageStyle | None) -> tuple[float, float]:
    """(identity, universal) weights for a style label; unknown labels blend evenly."""
    return STYLE_WEIGHTS[ImageStyle.parse(style)]


def style_aware_similarity(
    identity_pair: tuple[npt.ArrayLike, npt.ArrayLike] | None,
    universal_pair: tuple[npt.ArrayLike, npt.ArrayLike] | None,
    style: str | ImageStyle | None = ImageStyle.MIXED,
) -> float:
    """Weighted similarity over whichever embedding pairs are present.

    Normalised by the weights actually used, so a single available pair
    yields its plain cosine similarity. Exactly 0.0 when neither pair is
    given.
    """
    identity_weight, universal_weight = blend_weights(style)
    total = 0.0
    used = 0.0

    if identity_pair is not None:
        total += identity_weight * cosine_similarity(*identity_pair)
        used += identity_weight
    if universal_pair is not None:
        total += universal_weight * cosine_similarity(*universal_pair)
        used += universal_weight

    if used <= 0.0:
        return 0.0
    return float(np.clip(total / used, -1.0, 1.0))


def face_similarity(query: FaceDetection, candidate: FaceDetection) -> float:
    """Style-aware similarity between two faces, using the query's style tag."""
    identity_pair = None
    if query.identity_embedding is not None and candidate.identity_embedding is not None:
        identity_pair = (query.identity_embedding, candidate.identity_embedding)

    universal_pair = None
    if query.universal_embedding is not None and candidate.universal_embedding is not None:
        universal_pair = (query.universal_embedding, candidate.universal_embedding)

    return style_aware_similarity(identity_pair, universal_pair, query.style_type)


def _rank(scored: list[tuple[int, float]], threshold: float, max_results: int) -> list[tuple[int, float]]:
    hits = [(idx, sim) for idx, sim in scored if sim >= threshold]
    hits.sort(key=lambda item: item[1], reverse=True)
    return hits[: max(0, max_results)]


def find_similar_faces(
    query: npt.ArrayLike,
    candidates: Sequence[npt.ArrayLike],
    threshold: float = 0.6,
    max_results: int = 100,
) -> list[tuple[int, float]]:
    """Rank candidate embeddings by cosine similarity to ``query``.

    Returns (candidate index, similarity) pairs at or above ``threshold``,
    best first (ties keep input order), truncated to ``max_results``.
    """
    scored = [(idx, cosine_similarity(query, vec)) for idx, vec in enumerate(candidates)]
    return _rank(scored, threshold, max_results)


def find_similar_faces_style_aware(
    query_face: FaceDetection,
    candidate_faces: Sequence[FaceDetection],
    threshold: float = 0.6,
    max_results: int = 100,
) -> list[tuple[int, float]]:
    """Like find_similar_faces, but over faces with blended similarity.

    Candidates sharing no embedding type with the query score 0.0.
    """
    scored = [(idx, face_similarity(query_face, face)) for idx, face in enumerate(candidate_faces)]
    return _rank(scored, threshold, max_results)
