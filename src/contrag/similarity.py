"""Similarity metrics used by the vector store.

Both scalar metrics are total over their inputs: degenerate arguments produce a
documented value instead of an exception so the search loop never has to guard
individual comparisons.

* :func:`cosine_similarity` returns ``0.0`` when the lengths differ, when either
  vector is empty, when either magnitude is zero, or when either vector holds a
  non-finite component.
* :func:`euclidean_distance` returns :data:`MAX_DISTANCE` when the lengths
  differ.
"""
from __future__ import annotations

import math
from typing import Sequence

import numpy as np

MAX_DISTANCE: float = math.inf
"""Sentinel returned by :func:`euclidean_distance` for incomparable vectors."""


def _as_float64(vector: Sequence[float] | np.ndarray) -> np.ndarray:
    return np.asarray(vector, dtype=np.float64).reshape(-1)


def cosine_similarity(vec_a: Sequence[float] | np.ndarray, vec_b: Sequence[float] | np.ndarray) -> float:
    """Return the cosine similarity of two vectors in ``[-1.0, 1.0]``."""

    a = _as_float64(vec_a)
    b = _as_float64(vec_b)
    if a.size != b.size or a.size == 0:
        return 0.0

    scale_a = float(np.max(np.abs(a)))
    scale_b = float(np.max(np.abs(b)))
    if scale_a == 0.0 or scale_b == 0.0 or not (math.isfinite(scale_a) and math.isfinite(scale_b)):
        return 0.0

    # Cosine is scale-invariant; rescaling to a unit max component keeps the
    # squared norms away from float64 underflow and overflow.
    a = a / scale_a
    b = b / scale_b
    squared_a = float(np.dot(a, a))
    squared_b = float(np.dot(b, b))

    # sqrt(|a|^2 * |b|^2) keeps cosine(v, v) at exactly 1.0.
    score = float(np.dot(a, b)) / math.sqrt(squared_a * squared_b)
    return max(-1.0, min(1.0, score))


def euclidean_distance(vec_a: Sequence[float] | np.ndarray, vec_b: Sequence[float] | np.ndarray) -> float:
    """Return the L2 distance, or :data:`MAX_DISTANCE` on length mismatch."""

    a = _as_float64(vec_a)
    b = _as_float64(vec_b)
    if a.size != b.size:
        return MAX_DISTANCE
    return float(np.sqrt(np.sum((a - b) ** 2)))


def squared_norms(matrix: np.ndarray) -> np.ndarray:
    """Row-wise squared L2 norms in float64."""

    rows = np.asarray(matrix, dtype=np.float64)
    if rows.ndim != 2:
        raise ValueError("matrix must be two-dimensional")
    return np.einsum("ij,ij->i", rows, rows)


def cosine_scores(matrix: np.ndarray, row_squared_norms: np.ndarray, query: Sequence[float] | np.ndarray) -> np.ndarray:
    """Batched :func:`cosine_similarity` of ``query`` against every row of ``matrix``.

    Rows with zero magnitude, or a zero query, score ``0.0``. A query whose length
    differs from the row width scores ``0.0`` everywhere.
    """

    rows = np.asarray(matrix, dtype=np.float64)
    q = _as_float64(query)
    if rows.ndim != 2 or rows.shape[0] == 0:
        return np.zeros(0, dtype=np.float64)
    if rows.shape[1] != q.size or q.size == 0:
        return np.zeros(rows.shape[0], dtype=np.float64)

    query_scale = float(np.max(np.abs(q)))
    if query_scale == 0.0 or not math.isfinite(query_scale):
        return np.zeros(rows.shape[0], dtype=np.float64)

    # Stored rows are finite float32, so only the query needs rescaling to keep
    # the norm product inside float64 range.
    q = q / query_scale
    query_squared = float(np.dot(q, q))

    dots = rows @ q
    denominators = np.sqrt(np.asarray(row_squared_norms, dtype=np.float64) * query_squared)
    scores = np.zeros(rows.shape[0], dtype=np.float64)
    np.divide(dots, denominators, out=scores, where=denominators > 0.0)
    return np.clip(scores, -1.0, 1.0)


__all__ = [
    "MAX_DISTANCE",
    "cosine_scores",
    "cosine_similarity",
    "euclidean_distance",
    "squared_norms",
]
