"""
LLM Tiebreak.

Responsibilities:
- Package the normalized query and the top candidates into a prompt that
  asks for exactly one candidate id or "NONE" as a single JSON object.
- Parse the reply strictly against {selected_id: string|null, reason: string}.

Non-Responsibilities:
- No scoring or threshold decisions.
- No reference-store fields beyond those already used for scoring.

Invariant:
A reply that is not valid JSON, has missing or extra keys, or names an id
that was not offered selects nothing.
"""

import json
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence

from poresolve.errors import MalformedProviderResponse, ProviderUnavailable
from poresolve.health import HealthTracker
from poresolve.interfaces import LLMProvider
from poresolve.logger import get_logger
from poresolve.models import Candidate, MatchQuery

logger = get_logger()

LLM_STAGE = "llm"
NONE_TOKEN = "NONE"
RESPONSE_KEYS = frozenset({"selected_id", "reason"})

SYSTEM_PROMPT = (
    "You are a deterministic resolver. Choose exactly one candidate_id from the "
    "candidates, or say \"NONE\" if no candidate clearly refers to the query. "
    "Base your choice ONLY on the provided fields; do not infer new facts. "
    "Respond with a single JSON object and nothing else: "
    "{\"selected_id\": \"<candidate_id or NONE>\", \"reason\": \"<short justification>\"}"
)

# Reference fields the reranker already compares
PROMPT_FIELDS = ("name", "aliases", "domain", "phone_digits", "city", "state", "postal_code", "parent_key")


@dataclass(frozen=True)
class TiebreakPrompt:
    system: str
    user: str
    offered_ids: tuple


@dataclass(frozen=True)
class TiebreakDecision:
    selected_key: Optional[str]
    reason: str
    raw: Optional[str] = None
    degraded: bool = False


def build_prompt(query: MatchQuery, candidates: Sequence[Candidate]) -> TiebreakPrompt:
    offered = []
    for candidate in candidates:
        entry: Dict[str, Any] = {"candidate_id": candidate.key}
        for name in PROMPT_FIELDS:
            value = getattr(candidate.entity, name)
            if value:
                entry[name] = list(value) if isinstance(value, tuple) else value
        entry["final_score"] = round(candidate.score, 4)
        offered.append(entry)

    payload = {
        "entity_kind": query.kind.value,
        "query": query.attributes(),
        "candidates": offered,
    }
    return TiebreakPrompt(
        system=SYSTEM_PROMPT,
        user=json.dumps(payload, sort_keys=True),
        offered_ids=tuple(c.key for c in candidates),
    )


def parse_tiebreak_response(raw: str, offered_ids: Sequence[str]) -> TiebreakDecision:
    """
    Strictly parse a tiebreak reply.

    Raises:
        MalformedProviderResponse: on any deviation from the expected shape
    """
    try:
        data = json.loads(raw)
    except (TypeError, ValueError) as e:
        raise MalformedProviderResponse("tiebreak reply is not valid JSON", raw=raw) from e

    if not isinstance(data, dict):
        raise MalformedProviderResponse("tiebreak reply is not a JSON object", raw=raw)
    if set(data) != RESPONSE_KEYS:
        raise MalformedProviderResponse(
            f"tiebreak reply keys {sorted(data)} != {sorted(RESPONSE_KEYS)}", raw=raw
        )

    selected = data["selected_id"]
    reason = data["reason"]
    if not isinstance(reason, str):
        raise MalformedProviderResponse("tiebreak reason must be a string", raw=raw)
    if selected is not None and not isinstance(selected, str):
        raise MalformedProviderResponse("tiebreak selected_id must be a string or null", raw=raw)

    if selected is None or selected == NONE_TOKEN:
        return TiebreakDecision(selected_key=None, reason=reason, raw=raw)
    if selected not in offered_ids:
        raise MalformedProviderResponse(f"tiebreak selected unknown id {selected!r}", raw=raw)
    return TiebreakDecision(selected_key=selected, reason=reason, raw=raw)


class TiebreakResolver:
    """Delegates a close call to the LLM; every failure means NONE."""

    def __init__(self, llm: Optional[LLMProvider], health: Optional[HealthTracker] = None):
        self.llm = llm
        self.health = health

    def decide(self, query: MatchQuery, candidates: List[Candidate]) -> TiebreakDecision:
        logger.record_tiebreak()
        if self.llm is None:
            logger.info("Tiebreak skipped, no LLM configured", kind=query.kind.value)
            return TiebreakDecision(selected_key=None, reason="tiebreak_disabled")

        prompt = build_prompt(query, candidates)
        try:
            raw = self._complete(prompt)
        except ProviderUnavailable as e:
            logger.warning("Tiebreak unavailable", kind=query.kind.value, error=str(e))
            return TiebreakDecision(selected_key=None, reason="tiebreak_unavailable", degraded=True)
        except MalformedProviderResponse as e:
            logger.warning("Tiebreak provider reply unusable", kind=query.kind.value, error=str(e))
            return TiebreakDecision(selected_key=None, reason="tiebreak_malformed", raw=e.raw, degraded=True)

        try:
            decision = parse_tiebreak_response(raw, prompt.offered_ids)
        except MalformedProviderResponse as e:
            logger.warning("Tiebreak reply rejected", kind=query.kind.value, error=str(e))
            return TiebreakDecision(selected_key=None, reason="tiebreak_malformed", raw=raw)

        logger.info(
            "Tiebreak decision",
            kind=query.kind.value,
            selected=decision.selected_key or NONE_TOKEN,
            offered=list(prompt.offered_ids),
        )
        return decision

    def _complete(self, prompt: TiebreakPrompt) -> str:
        if self.health is None:
            return self.llm.complete(prompt)
        return self.health.call(LLM_STAGE, self.llm.complete, prompt)
