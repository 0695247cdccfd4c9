"""
Entity Resolution Cascade.

Responsibilities:
- Coordinate the stages for any entity kind: normalize, deterministic
  lookup, semantic retrieval, rerank, tiebreak, confidence gate.
- Short-circuit charge lines for items before any semantic path.
- Write exactly one audit record per call, matched or not.

Non-Responsibilities:
- No feature computation or weighting.
- No mutation of reference data.

Invariant:
This module must be deterministic given the same inputs and the same
provider replies. A store failure is audited and re-raised, never
reported as "no match".
"""

from typing import Any, List, Mapping, Optional, Sequence, Union

from poresolve.errors import StoreUnavailable
from poresolve.health import HealthTracker
from poresolve.interfaces import AuditSink, EmbeddingProvider, LLMProvider, ReferenceStore
from poresolve.logger import get_logger
from poresolve.models import (
    AuditRecord,
    Candidate,
    EntityKind,
    MatchMethod,
    MatchQuery,
    MatchResult,
)
from poresolve.normalize import normalize_contact, normalize_query

from .candidate_selector import DeterministicMatcher, SemanticRetriever
from .charge_codes import ChargeCodebook, ChargeMatch
from .gate import ConfidenceGate, GateThresholds
from .kinds import PROFILES, EntityProfile
from .scoring import Reranker
from .tiebreak import TiebreakResolver

logger = get_logger()

AUDIT_TOP_CANDIDATES = 5


class EntityResolver:
    """
    One cascade, parametrized by entity kind.

    Args:
        store: Reference store (usually a CachedReferenceStore)
        embedder: Embedding provider, or None to skip semantic retrieval
        llm: LLM provider for tiebreaks, or None to disable them
        audit_sink: Receives one AuditRecord per resolve call
        health: Shared HealthTracker for provider-backed stages
        thresholds: Confidence gate bands
        top_k: Candidates retrieved per semantic lookup
        min_phone_digits: Shortest phone number used for exact lookup
        excluded_domains: Mail domains never used as a contact identity
        codebook: Charge code tables for item lines
    """

    def __init__(
        self,
        store: ReferenceStore,
        embedder: Optional[EmbeddingProvider],
        llm: Optional[LLMProvider],
        audit_sink: AuditSink,
        health: Optional[HealthTracker] = None,
        thresholds: Optional[GateThresholds] = None,
        top_k: int = 25,
        min_phone_digits: int = 10,
        excluded_domains: Sequence[str] = (),
        codebook: Optional[ChargeCodebook] = None,
        profiles: Optional[Mapping[EntityKind, EntityProfile]] = None,
        reranker: Optional[Reranker] = None,
    ):
        self.store = store
        self.health = health or HealthTracker()
        self.audit_sink = audit_sink
        self.excluded_domains = tuple(excluded_domains)
        self.codebook = codebook or ChargeCodebook()
        self.profiles = dict(PROFILES if profiles is None else profiles)
        self.matcher = DeterministicMatcher(store, min_phone_digits=min_phone_digits, seed_limit=top_k)
        self.retriever = SemanticRetriever(store, embedder, health=self.health, top_k=top_k)
        self.reranker = reranker or Reranker()
        self.gate = ConfidenceGate(thresholds or GateThresholds(), TiebreakResolver(llm, health=self.health))

    def normalize(self, kind: EntityKind, raw: Mapping[str, Any]) -> MatchQuery:
        kind = EntityKind(kind)
        if kind == EntityKind.CONTACT:
            return normalize_contact(raw, excluded_domains=self.excluded_domains)
        return normalize_query(kind, raw)

    def resolve(self, kind: Union[EntityKind, str], query: Union[MatchQuery, Mapping[str, Any]]) -> MatchResult:
        """
        Resolve one query to a reference entity.

        Args:
            kind: customer, contact or item
            query: A MatchQuery, or raw attributes to normalize first

        Raises:
            StoreUnavailable: The reference store failed; the call is audited first
        """
        kind = EntityKind(kind)
        if not isinstance(query, MatchQuery):
            query = self.normalize(kind, query)
        elif query.kind != kind:
            raise ValueError(f"query kind {query.kind.value} does not match {kind.value}")

        profile = self.profiles[kind]
        ranked: List[Candidate] = []
        tiebreak_raw: Optional[str] = None
        logger.debug("Resolving", kind=kind.value, query=query.attributes())

        try:
            if kind == EntityKind.ITEM:
                charge = self.codebook.classify(query.key, query.name)
                if charge is not None:
                    result = self._charge_result(charge)
                    self._finish(kind, query, ranked, result, tiebreak_raw)
                    return result

            outcome = self.matcher.match(query, profile)
            if outcome.entity is not None:
                rule = outcome.rule
                result = MatchResult(
                    matched=True,
                    method=rule.method,
                    confidence=rule.confidence,
                    key=outcome.entity.key,
                    name=outcome.entity.name,
                    reasons=(f"{rule.name}_match",),
                )
                ranked = [Candidate(entity=outcome.entity, similarity=1.0, score=rule.confidence)]
                self._finish(kind, query, ranked, result, tiebreak_raw)
                return result

            retrieval = self.retriever.retrieve(query, profile, seeds=outcome.seeds)
            ranked = self.reranker.rank(query, retrieval.candidates)
            extra = list(retrieval.reasons)
            if outcome.seed_rule:
                extra.append(f"seeded_by: {outcome.seed_rule}")
            decision = self.gate.decide(
                query,
                profile,
                ranked,
                degraded=retrieval.degraded,
                extra_reasons=tuple(extra),
            )
            if decision.tiebreak is not None:
                tiebreak_raw = decision.tiebreak.raw
            result = decision.result
        except StoreUnavailable as e:
            self._audit(kind, query, ranked, None, tiebreak_raw, error=str(e))
            logger.record_resolution(kind.value, "error", False)
            raise

        self._finish(kind, query, ranked, result, tiebreak_raw)
        return result

    def _charge_result(self, charge: ChargeMatch) -> MatchResult:
        if charge.placeholder:
            # Recognisably a charge, but not a specific one
            return MatchResult.no_match(reasons=(charge.reason(), "charge_placeholder"))
        return MatchResult(
            matched=True,
            method=MatchMethod.EXACT,
            confidence=1.0,
            key=charge.code,
            name=charge.label,
            reasons=(charge.reason(),),
        )

    def _finish(self, kind, query, ranked, result: MatchResult, tiebreak_raw):
        self._audit(kind, query, ranked, result, tiebreak_raw)
        logger.record_resolution(kind.value, result.method.value, result.matched)
        logger.info(
            "Resolution finished",
            kind=kind.value,
            matched=result.matched,
            method=result.method.value,
            key=result.key,
            confidence=round(result.confidence, 4),
            degraded=result.degraded,
        )

    def _audit(self, kind, query, ranked, result: Optional[MatchResult], tiebreak_raw, error=None):
        record = AuditRecord(
            kind=kind.value,
            query=query.attributes(),
            top_candidates=tuple(c.to_dict() for c in ranked[:AUDIT_TOP_CANDIDATES]),
            chosen_key=result.key if result else None,
            confidence=result.confidence if result else 0.0,
            method=result.method.value if result else MatchMethod.NONE.value,
            reasons=tuple(result.reasons) if result else ("store_unavailable",),
            tiebreak_response=tiebreak_raw,
            error=error,
        )
        try:
            self.audit_sink.append(record)
        except Exception as e:
            # Audit failures never reach the caller
            logger.error("Audit sink raised", kind=kind.value, error=str(e))
