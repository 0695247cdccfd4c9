from math import sqrt
from typing import List, Sequence


def dot(left: Sequence[float], right: Sequence[float]) -> float:
    return sum(a * b for a, b in zip(left, right))


def l2_normalize(vector: Sequence[float]) -> List[float]:
    norm = sqrt(sum(v * v for v in vector))
    if norm == 0:
        return [0.0] * len(vector)
    return [v / norm for v in vector]


def cosine_similarity(left: Sequence[float], right: Sequence[float]) -> float:
    """Cosine of two vectors; 0.0 for zero vectors or mismatched dimensions."""
    if len(left) != len(right) or not left:
        return 0.0
    norms = sqrt(dot(left, left)) * sqrt(dot(right, right))
    if norms == 0:
        return 0.0
    return dot(left, right) / norms
