"""
Candidate Selection Logic.

Responsibilities:
- Run the ordered deterministic lookups for an entity kind and stop at the
  first rule with exactly one hit.
- Otherwise select a bounded set of candidates (top-K by cosine
  similarity), restricted to the deterministic seeds when there are any.

Non-Responsibilities:
- No scoring.
- No resolution decisions.

Invariant:
Candidate selection must never exclude a valid match.
It may include false positives but never false negatives:
ambiguous deterministic hits are forwarded as seeds, not discarded.
A provider failure yields no new candidates; a store failure propagates.
"""

from dataclasses import dataclass, field
from typing import Iterator, List, Optional, Sequence

from poresolve.errors import MalformedProviderResponse, ProviderUnavailable
from poresolve.health import HealthTracker
from poresolve.interfaces import EmbeddingProvider, ReferenceStore
from poresolve.logger import get_logger
from poresolve.models import Candidate, EntityKind, MatchQuery, ReferenceEntity

from .charge_codes import color_code
from .kinds import DeterministicRule, EntityProfile

logger = get_logger()

EMBEDDING_STAGE = "embedding"


@dataclass
class DeterministicOutcome:
    entity: Optional[ReferenceEntity] = None
    rule: Optional[DeterministicRule] = None
    seeds: List[ReferenceEntity] = field(default_factory=list)
    seed_rule: Optional[str] = None


class DeterministicMatcher:
    """Ordered exact-equality lookups against the reference store."""

    def __init__(self, store: ReferenceStore, min_phone_digits: int = 10, seed_limit: int = 25):
        self.store = store
        self.min_phone_digits = min_phone_digits
        self.seed_limit = seed_limit

    def match(self, query: MatchQuery, profile: EntityProfile) -> DeterministicOutcome:
        outcome = DeterministicOutcome()
        for rule in profile.rules:
            hits = self._lookup(query, rule)
            if len(hits) == 1:
                logger.info(
                    "Deterministic match",
                    kind=query.kind.value,
                    rule=rule.name,
                    key=hits[0].key,
                )
                outcome.entity = hits[0]
                outcome.rule = rule
                return outcome
            if len(hits) > 1:
                logger.debug("Ambiguous deterministic hits", kind=query.kind.value, rule=rule.name, hits=len(hits))
                if not outcome.seeds:
                    outcome.seeds = hits
                    outcome.seed_rule = rule.name
        return outcome

    def _lookup(self, query: MatchQuery, rule: DeterministicRule) -> List[ReferenceEntity]:
        if rule.lookup == "keys":
            for keys in self._key_groups(query):
                hits = self.store.find_by_keys(query.kind, keys)
                if rule.active_only:
                    hits = [h for h in hits if h.active]
                if hits:
                    return hits
            return []

        value = getattr(query, rule.field)
        if not value:
            return []
        if rule.field == "phone_digits" and len(value) < self.min_phone_digits:
            return []
        return self.store.find_by_field(
            query.kind,
            rule.lookup,
            value,
            active_only=rule.active_only,
            limit=self.seed_limit,
        )

    def _key_groups(self, query: MatchQuery) -> Iterator[Sequence[str]]:
        """Key sets to try in order; the first group with hits wins."""
        if query.kind == EntityKind.ITEM and query.key:
            code = color_code(query.color)
            if code and not query.key.endswith(f"-{code}"):
                yield [f"{query.key}-{code}"]
            yield [query.key]
            return
        keys = [k for k in (query.key, query.external_id) if k]
        if keys:
            yield keys


@dataclass
class RetrievalOutcome:
    candidates: List[Candidate] = field(default_factory=list)
    query_text: str = ""
    degraded: bool = False
    reasons: List[str] = field(default_factory=list)


def build_query_text(query: MatchQuery, profile: EntityProfile) -> str:
    """Present attributes in the profile's field order, joined with " | "."""
    parts = [getattr(query, name) for name in profile.query_fields]
    return " | ".join(str(p) for p in parts if p)


class SemanticRetriever:
    """Embeds the query once and pulls the top-K nearest reference entities."""

    def __init__(
        self,
        store: ReferenceStore,
        embedder: Optional[EmbeddingProvider],
        health: Optional[HealthTracker] = None,
        top_k: int = 25,
    ):
        self.store = store
        self.embedder = embedder
        self.health = health
        self.top_k = top_k

    def retrieve(
        self,
        query: MatchQuery,
        profile: EntityProfile,
        seeds: Sequence[ReferenceEntity] = (),
    ) -> RetrievalOutcome:
        text = build_query_text(query, profile)
        seed_candidates = [Candidate(entity=s, similarity=0.0, seed=True) for s in seeds]
        if not text:
            return RetrievalOutcome(candidates=seed_candidates, reasons=["empty_query"])

        try:
            vector = self._embed(text)
        except (ProviderUnavailable, MalformedProviderResponse) as e:
            logger.warning(
                "Embedding unavailable, continuing without semantic candidates",
                kind=query.kind.value,
                seeds=len(seed_candidates),
                error=str(e),
            )
            return RetrievalOutcome(
                candidates=seed_candidates,
                query_text=text,
                degraded=True,
                reasons=["embedding_unavailable"],
            )

        restrict = [s.key for s in seeds] if seeds else None
        hits = self.store.nearest(query.kind, vector, self.top_k, restrict_keys=restrict)
        candidates = [Candidate(entity=e, similarity=sim, seed=bool(seeds)) for e, sim in hits]

        # Seeds without a stored embedding still compete on their bonuses
        seen = {c.key for c in candidates}
        candidates.extend(c for c in seed_candidates if c.key not in seen)

        logger.info(
            "Semantic retrieval",
            kind=query.kind.value,
            candidates=len(candidates),
            restricted=restrict is not None,
        )
        return RetrievalOutcome(candidates=candidates, query_text=text)

    def _embed(self, text: str):
        if self.embedder is None:
            raise ProviderUnavailable(EMBEDDING_STAGE, "no embedding provider configured")
        if self.health is None:
            return self.embedder.embed(text)
        return self.health.call(EMBEDDING_STAGE, self.embedder.embed, text)
