"""
Tests for cosine similarity, style-aware blending and similarity search.
"""

import numpy as np
import pytest

from artface.backends.backend_exceptions import EmbeddingDimensionError
from artface.models import BoundingBox, FaceDetection
from artface.similarity import (
    STYLE_WEIGHTS,
    blend_weights,
    cosine_similarity,
    find_similar_faces,
    find_similar_faces_style_aware,
    style_aware_similarity,
)
from artface.style import ImageStyle


def _unit(*values):
    v = np.asarray(values, dtype=np.float32)
    return v / np.linalg.norm(v)


def _face(identity=None, universal=None, style="mixed"):
    return FaceDetection(
        box=BoundingBox(0, 0, 10, 10),
        confidence=0.9,
        style_type=style,
        identity_embedding=None if identity is None else np.asarray(identity, dtype=np.float32),
        universal_embedding=None if universal is None else np.asarray(universal, dtype=np.float32),
    )


class TestCosineSimilarity:
    """Test base cosine similarity."""

    def test_self_and_opposite(self):
        rng = np.random.default_rng(3)
        v = rng.standard_normal(512)
        v /= np.linalg.norm(v)
        assert cosine_similarity(v, v) == pytest.approx(1.0, abs=1e-5)
        assert cosine_similarity(v, -v) == pytest.approx(-1.0, abs=1e-5)

    def test_orthogonal(self):
        assert cosine_similarity([1, 0], [0, 1]) == pytest.approx(0.0)

    def test_not_normalized_inputs(self):
        assert cosine_similarity([2, 0], [5, 0]) == pytest.approx(1.0)

    def test_zero_vector(self):
        assert cosine_similarity([0, 0], [1, 0]) == 0.0

    def test_dimension_mismatch(self):
        with pytest.raises(EmbeddingDimensionError):
            cosine_similarity(np.ones(512), np.ones(1280))

    def test_dimension_mismatch_is_value_error(self):
        with pytest.raises(ValueError):
            cosine_similarity([1, 0], [1, 0, 0])


class TestStyleAwareBlending:
    """Test style-dependent weighting."""

    def test_weight_table(self):
        assert blend_weights("realistic") == (0.8, 0.2)
        assert blend_weights(ImageStyle.ANIME) == (0.2, 0.8)
        assert blend_weights("threed") == (0.2, 0.8)
        assert blend_weights("mixed") == (0.5, 0.5)
        assert blend_weights("watercolor") == (0.5, 0.5)
        assert blend_weights(None) == STYLE_WEIGHTS[ImageStyle.MIXED]

    def test_no_pairs_is_exactly_zero(self):
        assert style_aware_similarity(None, None, "realistic") == 0.0

    def test_single_pair_is_plain_cosine(self):
        a, b = _unit(1, 1), _unit(1, 0)
        expected = cosine_similarity(a, b)
        assert style_aware_similarity((a, b), None, "anime") == pytest.approx(expected)
        assert style_aware_similarity(None, (a, b), "realistic") == pytest.approx(expected)

    @pytest.mark.parametrize(
        "style, expected",
        [("realistic", 0.8), ("anime", 0.2), ("threed", 0.2), ("mixed", 0.5), ("unknown", 0.5)],
    )
    def test_weighted_by_style(self, style, expected):
        same, orthogonal = (_unit(1, 0), _unit(1, 0)), (_unit(1, 0), _unit(0, 1))
        assert style_aware_similarity(same, orthogonal, style) == pytest.approx(expected)

    def test_bounded(self):
        pair = (_unit(1, 0), _unit(-1, 0))
        assert style_aware_similarity(pair, pair, "mixed") == pytest.approx(-1.0)

    def test_dimension_mismatch_propagates(self):
        with pytest.raises(EmbeddingDimensionError):
            style_aware_similarity((np.ones(4), np.ones(3)), None)


class TestFindSimilarFaces:
    """Test ranked similarity search."""

    def test_ranked_and_thresholded(self):
        query = _unit(1, 0)
        candidates = [_unit(0, 1), _unit(1, 0.1), _unit(1, 0.5), _unit(1, 0)]
        hits = find_similar_faces(query, candidates, threshold=0.8)

        assert [idx for idx, _ in hits] == [3, 1, 2]
        sims = [sim for _, sim in hits]
        assert sims == sorted(sims, reverse=True)

    def test_max_results(self):
        query = _unit(1, 0)
        candidates = [_unit(1, 0)] * 5
        hits = find_similar_faces(query, candidates, threshold=0.0, max_results=2)
        assert [idx for idx, _ in hits] == [0, 1]

    def test_no_candidates(self):
        assert find_similar_faces(_unit(1, 0), []) == []

    def test_style_aware_uses_query_style(self):
        query = _face(identity=_unit(1, 0), universal=_unit(1, 0), style="realistic")
        same_person = _face(identity=_unit(1, 0), universal=_unit(0, 1))
        same_look = _face(identity=_unit(0, 1), universal=_unit(1, 0))

        hits = find_similar_faces_style_aware(query, [same_look, same_person], threshold=0.5)
        assert hits == [(1, pytest.approx(0.8))]

    def test_style_aware_missing_embeddings_score_zero(self):
        query = _face(identity=_unit(1, 0))
        hits = find_similar_faces_style_aware(query, [_face(universal=_unit(1, 0))], threshold=-1.0)
        assert hits == [(0, 0.0)]
