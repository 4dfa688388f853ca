"""
Tests for identity clustering.
"""

import math

import numpy as np
import pytest

from artface.backends.backend_exceptions import EmbeddingDimensionError
from artface.clustering import cluster_by_similarity, cluster_faces


def _angle(degrees):
    rad = math.radians(degrees)
    return np.array([math.cos(rad), math.sin(rad)], dtype=np.float32)


class TestGreedyClustering:
    """Test the default greedy single-link clustering."""

    def test_two_identities(self):
        clusters = cluster_faces([[1, 0], [1, 0], [0, 1]], threshold=0.9)
        assert clusters == [[0, 1], [2]]

    def test_sorted_by_size(self):
        clusters = cluster_faces([[0, 1], [1, 0], [1, 0], [1, 0]], threshold=0.9)
        assert clusters == [[1, 2, 3], [0]]

    def test_each_face_in_exactly_one_cluster(self):
        rng = np.random.default_rng(7)
        vectors = rng.standard_normal((40, 16))
        clusters = cluster_faces(vectors, threshold=0.3)

        members = sorted(i for cluster in clusters for i in cluster)
        assert members == list(range(40))

    def test_deterministic(self):
        rng = np.random.default_rng(11)
        vectors = rng.standard_normal((30, 8))
        assert cluster_faces(vectors, 0.2) == cluster_faces(vectors, 0.2)

    def test_order_dependent(self):
        # 0 deg ~ 30 deg ~ 60 deg, but 0 deg and 60 deg are not similar
        a, b, c = _angle(0), _angle(30), _angle(60)
        assert cluster_faces([a, b, c], threshold=0.8) == [[0, 1], [2]]
        assert cluster_faces([b, a, c], threshold=0.8) == [[0, 1, 2]]

    def test_empty(self):
        assert cluster_faces([]) == []

    def test_dimension_mismatch(self):
        with pytest.raises(EmbeddingDimensionError):
            cluster_faces([[1, 0], [1, 0, 0]])


class TestUnionFindClustering:
    """Test the order-independent alternative."""

    def test_transitive_chain(self):
        a, b, c = _angle(0), _angle(30), _angle(60)
        assert cluster_faces([a, b, c], threshold=0.8, method="union_find") == [[0, 1, 2]]
        assert cluster_faces([a, c, b], threshold=0.8, method="union_find") == [[0, 1, 2]]

    def test_separate_components(self):
        clusters = cluster_faces([[1, 0], [0, 1], [1, 0]], threshold=0.9, method="union_find")
        assert clusters == [[0, 2], [1]]


class TestClusterBySimilarity:
    """Test clustering over a precomputed similarity source."""

    def test_callable_similarity(self):
        labels = ["ann", "bob", "ann", "cid", "bob"]
        clusters = cluster_by_similarity(
            len(labels), lambda i, j: 1.0 if labels[i] == labels[j] else 0.0, threshold=0.5
        )
        assert clusters == [[0, 2], [1, 4], [3]]

    def test_unknown_method(self):
        with pytest.raises(ValueError):
            cluster_by_similarity(3, lambda i, j: 1.0, method="spectral")
