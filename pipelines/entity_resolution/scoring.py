"""
Scoring Logic for Entity Resolution (v1).

Responsibilities:
- Compute a deterministic composite score between a query and each candidate:
  a weighted sum of raw cosine similarity and rule-based bonuses.
- Emit an itemized bonus breakdown per candidate.

Non-Responsibilities:
- No database access.
- No candidate selection.
- No threshold decisions.

Invariant:
Given identical inputs, this module must always return
the same scores in the same order. Every score is in [0, 1].
"""

from dataclasses import dataclass, field
from typing import Dict, List, Mapping, Optional

from poresolve.models import Candidate, EntityKind, MatchQuery

from .features import compute_features


@dataclass(frozen=True)
class ScoreWeights:
    """Weight of raw similarity plus one weight per bonus feature."""

    similarity: float
    bonuses: Mapping[str, float] = field(default_factory=dict)

    def __post_init__(self):
        total = self.similarity + sum(self.bonuses.values())
        if self.similarity < 0 or any(w < 0 for w in self.bonuses.values()):
            raise ValueError("weights must be non-negative")
        if total > 1.0 + 1e-9:
            raise ValueError(f"weights sum to {total:.3f}, must not exceed 1.0")


WEIGHTS: Dict[EntityKind, ScoreWeights] = {
    # Organizations carry the richest attribute set
    EntityKind.CUSTOMER: ScoreWeights(
        similarity=0.70,
        bonuses={"domain": 0.15, "phone": 0.05, "address": 0.05, "alias": 0.05},
    ),
    EntityKind.CONTACT: ScoreWeights(
        similarity=0.70,
        bonuses={"domain": 0.20, "alias": 0.10},
    ),
    EntityKind.ITEM: ScoreWeights(
        similarity=0.70,
        bonuses={"code": 0.20, "alias": 0.10},
    ),
}


def _clamp(value: float) -> float:
    return max(0.0, min(1.0, value))


class Reranker:
    """Table-driven composite scorer."""

    def __init__(self, weights: Optional[Mapping[EntityKind, ScoreWeights]] = None):
        self.weights = dict(WEIGHTS if weights is None else weights)

    def score(self, query: MatchQuery, candidate: Candidate) -> Candidate:
        weights = self.weights[query.kind]
        features = compute_features(query, candidate.entity, weights.bonuses.keys())
        candidate.similarity = _clamp(candidate.similarity)
        candidate.bonuses = {name: weights.bonuses[name] * value for name, value in features.items()}
        candidate.score = _clamp(weights.similarity * candidate.similarity + sum(candidate.bonuses.values()))
        return candidate

    def rank(self, query: MatchQuery, candidates: List[Candidate]) -> List[Candidate]:
        """Score every candidate and sort descending.

        Ties keep their incoming order, which is the retrieval order.
        """
        scored = [self.score(query, c) for c in candidates]
        return sorted(scored, key=lambda c: -c.score)
