"""
Vector operations on embeddings.

Pure numpy functions. Stored vectors are unit length, so cosine
similarity between two stored vectors is a plain dot product.
"""

from __future__ import annotations

from typing import Sequence

import numpy as np

from semantic_retrieval.core.errors import DegenerateVector

DEFAULT_DIMENSIONS = 1536
NORM_TOLERANCE = 1e-6


def as_vector(values: Sequence[float] | np.ndarray) -> np.ndarray:
    return np.asarray(values, dtype=np.float32)


def _check_same_shape(vec1: np.ndarray, vec2: np.ndarray) -> None:
    if vec1.shape != vec2.shape:
        raise ValueError(f"Vector dimension mismatch: {vec1.shape[0]} vs {vec2.shape[0]}")


def magnitude(vector: np.ndarray) -> float:
    return float(np.linalg.norm(vector.astype(np.float64)))


def normalize(vector: Sequence[float] | np.ndarray) -> np.ndarray:
    """
    Scale a vector to unit Euclidean norm.

    Raises:
        DegenerateVector: zero vector or non-finite components
    """
    vec = np.asarray(vector, dtype=np.float64)
    if vec.ndim != 1 or vec.size == 0:
        raise DegenerateVector("Cannot normalize an empty or non-1D vector")
    if not np.all(np.isfinite(vec)):
        raise DegenerateVector("Vector contains non-finite values")
    mag = float(np.linalg.norm(vec))
    if mag == 0.0:
        raise DegenerateVector("Cannot normalize zero vector")
    return (vec / mag).astype(np.float32)


def is_normalized(vector: np.ndarray, tolerance: float = NORM_TOLERANCE) -> bool:
    return abs(magnitude(vector) - 1.0) <= tolerance


def dot_product(vec1: np.ndarray, vec2: np.ndarray) -> float:
    vec1, vec2 = as_vector(vec1), as_vector(vec2)
    _check_same_shape(vec1, vec2)
    return float(np.dot(vec1.astype(np.float64), vec2.astype(np.float64)))


def cosine_similarity(vec1: np.ndarray, vec2: np.ndarray) -> float:
    """
    Raw cosine similarity in [-1, 1].

    Returns 0.0 if either vector has zero magnitude.
    """
    vec1, vec2 = as_vector(vec1), as_vector(vec2)
    _check_same_shape(vec1, vec2)
    mag1, mag2 = magnitude(vec1), magnitude(vec2)
    if mag1 == 0.0 or mag2 == 0.0:
        return 0.0
    similarity = dot_product(vec1, vec2) / (mag1 * mag2)
    return max(-1.0, min(1.0, similarity))


def euclidean_distance(vec1: np.ndarray, vec2: np.ndarray) -> float:
    vec1, vec2 = as_vector(vec1), as_vector(vec2)
    _check_same_shape(vec1, vec2)
    return float(np.linalg.norm(vec1.astype(np.float64) - vec2.astype(np.float64)))


def validate_dimensions(vector: np.ndarray, expected: int = DEFAULT_DIMENSIONS) -> bool:
    actual = int(np.asarray(vector).shape[0])
    if actual != expected:
        raise ValueError(f"Expected {expected} dimensions, got {actual}")
    return True


def cosine_scores(matrix: np.ndarray, query: np.ndarray) -> np.ndarray:
    """Cosine similarity of ``query`` against every row of ``matrix``."""
    if matrix.size == 0:
        return np.zeros(0, dtype=np.float64)
    m = matrix.astype(np.float64)
    q = query.astype(np.float64)
    if m.shape[1] != q.shape[0]:
        raise ValueError(f"Vector dimension mismatch: {m.shape[1]} vs {q.shape[0]}")
    norms = np.linalg.norm(m, axis=1) * np.linalg.norm(q)
    with np.errstate(divide="ignore", invalid="ignore"):
        scores = np.where(norms > 0, (m @ q) / norms, 0.0)
    return np.clip(scores, -1.0, 1.0)
