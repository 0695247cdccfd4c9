"""
Entity Kind Profiles.

Responsibilities:
- Describe what differs between customer, contact and item resolution:
  the deterministic rule sequence, the semantic query field order, and
  which features corroborate a medium-confidence match.

Non-Responsibilities:
- No lookups, scoring or decisions; the cascade reads these tables.

Invariant:
Adding an entity kind means adding a profile, never a new cascade.
"""

from dataclasses import dataclass
from typing import Dict, FrozenSet, Optional, Tuple

from poresolve.models import EntityKind, MatchMethod


@dataclass(frozen=True)
class DeterministicRule:
    """
    One exact-equality lookup.

    field names the query attribute. lookup "keys" means natural key or
    external id; anything else is a store field.
    """

    name: str
    field: str
    lookup: str
    method: MatchMethod
    confidence: float
    active_only: bool = True


KEY_RULE = DeterministicRule("key", "key", "keys", MatchMethod.EXACT, 1.0, active_only=False)
EMAIL_RULE = DeterministicRule("email", "email", "email", MatchMethod.EXACT, 1.0)
DOMAIN_RULE = DeterministicRule("domain", "domain", "domain", MatchMethod.DOMAIN, 0.90)
PHONE_RULE = DeterministicRule("phone", "phone_digits", "phone_digits", MatchMethod.EXACT, 0.90)
NAME_RULE = DeterministicRule("name", "name", "name", MatchMethod.EXACT, 0.85)


@dataclass(frozen=True)
class EntityProfile:
    kind: EntityKind
    rules: Tuple[DeterministicRule, ...]
    query_fields: Tuple[str, ...]
    corroborators: FrozenSet[str]


PROFILES: Dict[EntityKind, EntityProfile] = {
    EntityKind.CUSTOMER: EntityProfile(
        kind=EntityKind.CUSTOMER,
        rules=(KEY_RULE, EMAIL_RULE, DOMAIN_RULE, PHONE_RULE, NAME_RULE),
        query_fields=("name", "email", "domain", "phone_digits", "city", "state", "postal_code"),
        corroborators=frozenset({"domain", "phone"}),
    ),
    EntityKind.CONTACT: EntityProfile(
        kind=EntityKind.CONTACT,
        rules=(KEY_RULE, EMAIL_RULE, DOMAIN_RULE, PHONE_RULE, NAME_RULE),
        query_fields=("name", "job_title", "email", "domain", "phone_digits"),
        corroborators=frozenset({"domain", "phone", "affiliation"}),
    ),
    EntityKind.ITEM: EntityProfile(
        kind=EntityKind.ITEM,
        rules=(KEY_RULE, NAME_RULE),
        query_fields=("key", "name", "color"),
        corroborators=frozenset({"code"}),
    ),
}


def profile_for(kind: EntityKind) -> EntityProfile:
    return PROFILES[EntityKind(kind)]


ROLE_KEYWORDS: Tuple[Tuple[str, Tuple[str, ...]], ...] = (
    ("Purchasing", ("purchas", "procurement", "buyer")),
    ("Accounts Payable", ("account", "payable", "ap ")),
    ("Sales", ("sales", "rep")),
    ("Owner", ("owner", "president", "ceo", "founder")),
    ("CSR", ("csr", "customer service", "support")),
)


def infer_role(job_title: Optional[str]) -> str:
    """Coarse contact role from a job title."""
    if not job_title:
        return "Unknown"
    title = job_title.lower() + " "
    for role, keywords in ROLE_KEYWORDS:
        if any(k in title for k in keywords):
            return role
    return "Unknown"
