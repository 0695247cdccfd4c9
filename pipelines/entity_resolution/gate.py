"""
Confidence Gate.

Responsibilities:
- Turn a ranked candidate list into a MatchResult using fixed bands:
  clear winner at or above the accept threshold is accepted, close calls
  at or above the review threshold go to the tiebreak, a clear winner in
  the review band is accepted only with a corroborating signal, and
  everything else is unmatched with its alternatives kept.
- Explain each decision with reasons.

Non-Responsibilities:
- No retrieval or scoring.

Invariant:
A clear winner (margin at or above the margin threshold) never reaches the LLM.
"""

from dataclasses import dataclass
from typing import List, Optional, Tuple

from poresolve.logger import get_logger
from poresolve.models import Candidate, MatchMethod, MatchQuery, MatchResult

from .features import compute_features
from .kinds import EntityProfile
from .tiebreak import TiebreakDecision, TiebreakResolver

logger = get_logger()

REASON_FEATURES = ("domain", "phone", "address", "alias", "code", "affiliation")
REASON_LABELS = {
    "domain": "domain_match",
    "phone": "phone_match",
    "address": "address_match",
    "alias": "alias_match",
    "code": "code_match",
    "affiliation": "affiliated_customer",
}


@dataclass(frozen=True)
class GateThresholds:
    accept: float = 0.85
    review: float = 0.75
    margin: float = 0.03
    tiebreak_confidence: float = 0.8
    tiebreak_candidates: int = 3
    alternatives: int = 3

    @classmethod
    def from_config(cls, config) -> "GateThresholds":
        return cls(
            accept=config.accept_threshold,
            review=config.review_threshold,
            margin=config.margin_threshold,
            tiebreak_confidence=config.tiebreak_confidence,
            tiebreak_candidates=config.tiebreak_candidates,
            alternatives=config.alternatives_limit,
        )


@dataclass
class GateDecision:
    result: MatchResult
    tiebreak: Optional[TiebreakDecision] = None


def build_reasons(query: MatchQuery, candidate: Candidate) -> List[str]:
    features = compute_features(query, candidate.entity, REASON_FEATURES)
    reasons = [REASON_LABELS[name] for name in REASON_FEATURES if features[name] >= 1.0]
    if candidate.similarity > 0.8:
        reasons.append("high_semantic_similarity")
    if candidate.score > 0.85:
        reasons.append("high_composite_score")
    return reasons


class ConfidenceGate:
    def __init__(self, thresholds: GateThresholds, tiebreaker: TiebreakResolver):
        self.thresholds = thresholds
        self.tiebreaker = tiebreaker

    def decide(
        self,
        query: MatchQuery,
        profile: EntityProfile,
        ranked: List[Candidate],
        degraded: bool = False,
        extra_reasons: Tuple[str, ...] = (),
    ) -> GateDecision:
        t = self.thresholds
        if not ranked:
            return GateDecision(
                MatchResult.no_match(reasons=("no_candidates",) + tuple(extra_reasons), degraded=degraded)
            )

        top = ranked[0]
        runner_up = ranked[1] if len(ranked) > 1 else None
        margin = top.score - runner_up.score if runner_up else 1.0
        logger.debug(
            "Gate input",
            kind=query.kind.value,
            top=top.key,
            score=round(top.score, 4),
            margin=round(margin, 4),
        )

        if runner_up is not None and top.score >= t.review and margin < t.margin:
            decision = self.tiebreaker.decide(query, ranked[: t.tiebreak_candidates])
            degraded = degraded or decision.degraded
            chosen = next((c for c in ranked if c.key == decision.selected_key), None)
            if chosen is not None:
                result = MatchResult(
                    matched=True,
                    method=MatchMethod.SEMANTIC_LLM,
                    confidence=t.tiebreak_confidence,
                    key=chosen.key,
                    name=chosen.entity.name,
                    alternatives=self._alternatives(ranked, exclude=chosen.key),
                    reasons=tuple(build_reasons(query, chosen) + [f"llm_tiebreak: {decision.reason}"]),
                    degraded=degraded,
                )
                return GateDecision(result, decision)
            # NONE falls through to the no-match band
            reasons = (
                "ambiguous_candidates",
                f"tiebreak_none: {decision.reason}",
                f"top_score: {top.score:.3f}",
            )
            return GateDecision(self._no_match(ranked, top, reasons + tuple(extra_reasons), degraded), decision)

        if top.score >= t.accept:
            return GateDecision(self._accept(query, ranked, top, (), degraded))

        if top.score >= t.review:
            corroborated = self._corroborators(query, profile, top)
            if corroborated:
                return GateDecision(
                    self._accept(query, ranked, top, tuple(f"corroborated_by: {c}" for c in corroborated), degraded)
                )
            reasons = ("uncorroborated_medium_confidence", f"top_score: {top.score:.3f}")
            return GateDecision(self._no_match(ranked, top, reasons + tuple(extra_reasons), degraded))

        reasons = ("confidence_too_low", f"top_score: {top.score:.3f}")
        return GateDecision(self._no_match(ranked, top, reasons + tuple(extra_reasons), degraded))

    def _accept(self, query, ranked, top, extra, degraded) -> MatchResult:
        return MatchResult(
            matched=True,
            method=MatchMethod.SEMANTIC,
            confidence=min(1.0, top.score),
            key=top.key,
            name=top.entity.name,
            alternatives=self._alternatives(ranked, exclude=top.key),
            reasons=tuple(build_reasons(query, top)) + extra,
            degraded=degraded,
        )

    def _no_match(self, ranked, top, reasons, degraded) -> MatchResult:
        return MatchResult.no_match(
            alternatives=tuple((c.key, c.score) for c in ranked[: self.thresholds.alternatives]),
            reasons=reasons,
            degraded=degraded,
            confidence=min(1.0, max(0.0, top.score)),
        )

    def _alternatives(self, ranked, exclude: str) -> Tuple[Tuple[str, float], ...]:
        others = [c for c in ranked if c.key != exclude]
        return tuple((c.key, c.score) for c in others[: self.thresholds.alternatives - 1])

    def _corroborators(self, query: MatchQuery, profile: EntityProfile, candidate: Candidate) -> List[str]:
        features = compute_features(query, candidate.entity, sorted(profile.corroborators))
        return [name for name, value in features.items() if value >= 1.0]
