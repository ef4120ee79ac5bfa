import logging
from typing import Optional, Sequence

import numpy as np

from match_service.exceptions import DimensionMismatchError

logger = logging.getLogger(__name__)


def cosine_similarity(vec1: Sequence[float], vec2: Sequence[float]) -> float:
    """
    Calculate cosine similarity between two vectors.

    Returns 0.0 for empty or zero-magnitude vectors. Vectors of different
    length are a data error and raise DimensionMismatchError.
    """
    a = np.asarray(vec1, dtype=float)
    b = np.asarray(vec2, dtype=float)

    if a.shape != b.shape:
        raise DimensionMismatchError(a.size, b.size)
    if a.size == 0:
        return 0.0

    norm_a = np.linalg.norm(a)
    norm_b = np.linalg.norm(b)
    if norm_a == 0 or norm_b == 0:
        return 0.0

    return float(np.dot(a, b) / (norm_a * norm_b))


def semantic_similarity(vec1: Sequence[float], vec2: Sequence[float]) -> float:
    """Cosine similarity mapped from [-1, 1] onto [0, 1]"""
    return (cosine_similarity(vec1, vec2) + 1.0) / 2.0


def embedding_score(vec1: Optional[Sequence[float]], vec2: Optional[Sequence[float]]) -> float:
    """Similarity on a 0-100 scale; 0 when either embedding is missing"""
    if vec1 is None or vec2 is None or len(vec1) == 0 or len(vec2) == 0:
        return 0.0
    return 100.0 * semantic_similarity(vec1, vec2)


def title_score(vec1: Optional[Sequence[float]], vec2: Optional[Sequence[float]]) -> float:
    """Title similarity on a 0-20 scale"""
    if vec1 is None or vec2 is None or len(vec1) == 0 or len(vec2) == 0:
        return 0.0
    return 20.0 * semantic_similarity(vec1, vec2)
