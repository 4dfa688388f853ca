"""
Identity clustering over face embeddings.

Two methods:

- ``greedy`` (default): each still-unassigned face, in input order, opens a
  cluster and absorbs every later unassigned face whose similarity to that
  anchor reaches the threshold. O(N^2), order dependent: reordering the
  input can change membership.
- ``union_find``: joins every pair at or above the threshold (transitive
  closure, i.e. exact single-link components). Order independent.

Clusters are returned as lists of input indices, largest first; ties keep
the order in which clusters were formed.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Sequence
from typing import Literal

import numpy as np
import numpy.typing as npt

from .similarity import cosine_similarity

logger = logging.getLogger(__name__)

ClusterMethod = Literal["greedy", "union_find"]
SimilarityFn = Callable[[int, int], float]


def _greedy(count: int, similarity: SimilarityFn, threshold: float) -> list[list[int]]:
    assigned: set[int] = set()
    clusters: list[list[int]] = []

    for i in range(count):
        if i in assigned:
            continue
        cluster = [i]
        assigned.add(i)
        for j in range(i + 1, count):
            if j in assigned:
                continue
            if similarity(i, j) >= threshold:
                cluster.append(j)
                assigned.add(j)
        clusters.append(cluster)

    return clusters


def _union_find(count: int, similarity: SimilarityFn, threshold: float) -> list[list[int]]:
    parent = list(range(count))

    def find(x: int) -> int:
        while parent[x] != x:
            parent[x] = parent[parent[x]]
            x = parent[x]
        return x

    for i in range(count):
        for j in range(i + 1, count):
            if similarity(i, j) >= threshold:
                ri, rj = find(i), find(j)
                if ri != rj:
                    parent[max(ri, rj)] = min(ri, rj)

    groups: dict[int, list[int]] = {}
    for i in range(count):
        groups.setdefault(find(i), []).append(i)
    # roots are the smallest member, so this is first-appearance order
    return [groups[root] for root in sorted(groups)]


def cluster_by_similarity(
    count: int,
    similarity: SimilarityFn,
    threshold: float = 0.6,
    method: ClusterMethod = "greedy",
) -> list[list[int]]:
    """Cluster ``count`` items given a pairwise similarity callable."""
    if count <= 0:
        return []
    if method == "greedy":
        clusters = _greedy(count, similarity, threshold)
    elif method == "union_find":
        clusters = _union_find(count, similarity, threshold)
    else:
        raise ValueError(f"Unknown clustering method: {method}")

    clusters.sort(key=len, reverse=True)
    logger.debug(
        "Clustered %d items into %d groups (method=%s, threshold=%.3f)",
        count,
        len(clusters),
        method,
        threshold,
    )
    return clusters


def cluster_faces(
    embeddings: Sequence[npt.ArrayLike],
    threshold: float = 0.6,
    method: ClusterMethod = "greedy",
) -> list[list[int]]:
    """Cluster embeddings by cosine similarity.

    Raises:
        EmbeddingDimensionError: If the embeddings differ in length.
    """
    vectors = [np.asarray(vec, dtype=np.float32).reshape(-1) for vec in embeddings]
    return cluster_by_similarity(
        len(vectors),
        lambda i, j: cosine_similarity(vectors[i], vectors[j]),
        threshold=threshold,
        method=method,
    )
