"""
Feature Extraction for Entity Resolution.

Responsibilities:
- Compute individual comparison features between a query and a candidate
  (domain, phone, address, alias/name containment, SKU code, affiliation).
- Each feature is a float in [0, 1].

Non-Responsibilities:
- No weighting logic.
- No threshold logic.
- No persistence.

Invariant:
Missing data must never be treated as a mismatch.
An absent attribute on either side contributes 0.0, never a penalty.
"""

from typing import Callable, Dict, Iterable, Optional

from poresolve.models import MatchQuery, ReferenceEntity
from poresolve.normalize import normalize_sku, normalize_text, tokens


def _same(left: Optional[str], right: Optional[str]) -> bool:
    return bool(left) and bool(right) and left == right


def domain_match(query: MatchQuery, entity: ReferenceEntity) -> float:
    return 1.0 if _same(query.domain, normalize_text(entity.domain)) else 0.0


def phone_match(query: MatchQuery, entity: ReferenceEntity) -> float:
    return 1.0 if _same(query.phone_digits, entity.phone_digits) else 0.0


def address_match(query: MatchQuery, entity: ReferenceEntity) -> float:
    """Postal code, or city and state together, is a full match; either alone is half."""
    if _same(query.postal_code, entity.postal_code):
        return 1.0
    city = _same(query.city, entity.city)
    state = _same(query.state, entity.state)
    if city and state:
        return 1.0
    if city or state:
        return 0.5
    return 0.0


def containment_ratio(query_name: Optional[str], candidate_name: Optional[str]) -> float:
    """Fraction of query tokens found inside some candidate token."""
    query_tokens = tokens(query_name)
    candidate_tokens = tokens(candidate_name)
    if not query_tokens or not candidate_tokens:
        return 0.0
    hits = sum(1 for q in query_tokens if any(q in c for c in candidate_tokens))
    return hits / len(query_tokens)


def alias_match(query: MatchQuery, entity: ReferenceEntity) -> float:
    """Best containment ratio over the display name and every alias."""
    names: Iterable[str] = (entity.name,) + tuple(entity.aliases)
    return max((containment_ratio(query.name, n) for n in names), default=0.0)


def _sku_base(sku: Optional[str]) -> Optional[str]:
    sku = normalize_sku(sku)
    if not sku:
        return None
    return sku.split("-", 1)[0]


def code_match(query: MatchQuery, entity: ReferenceEntity) -> float:
    """Same SKU stem, e.g. T100 against T100-06."""
    return 1.0 if _same(_sku_base(query.key), _sku_base(entity.key)) else 0.0


def affiliation_match(query: MatchQuery, entity: ReferenceEntity) -> float:
    """Candidate belongs to the customer already resolved for this record."""
    return 1.0 if _same(normalize_sku(query.customer_key), normalize_sku(entity.parent_key)) else 0.0


FEATURES: Dict[str, Callable[[MatchQuery, ReferenceEntity], float]] = {
    "domain": domain_match,
    "phone": phone_match,
    "address": address_match,
    "alias": alias_match,
    "code": code_match,
    "affiliation": affiliation_match,
}


def compute_features(query: MatchQuery, entity: ReferenceEntity, names: Iterable[str]) -> Dict[str, float]:
    return {name: FEATURES[name](query, entity) for name in names}
