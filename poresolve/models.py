"""
Data model for the resolution cascade.

Reference entities and queries are immutable. Candidates live only for
the duration of one resolve call. MatchResult enforces its own invariants
so no stage can hand back an impossible result.
"""

from dataclasses import dataclass, field, asdict
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple


# Placeholder codes for lines that could not be tied to a real catalog code
MISC_ITEM_CODE = "OE-MISC-ITEM"
MISC_CHARGE_CODE = "OE-MISC-CHARGE"
PLACEHOLDER_CODES = frozenset({MISC_ITEM_CODE, MISC_CHARGE_CODE})


class EntityKind(str, Enum):
    CUSTOMER = "customer"
    CONTACT = "contact"
    ITEM = "item"


class MatchMethod(str, Enum):
    EXACT = "exact"
    DOMAIN = "domain"
    SEMANTIC = "semantic"
    SEMANTIC_LLM = "semantic+llm"
    NONE = "none"


class OrderStatus(str, Enum):
    READY = "ready"
    NEW_CUSTOMER = "new_customer"
    MISSING_CONTACT = "missing_contact"
    INVALID_ITEMS = "invalid_items"
    PENDING_REVIEW = "pending_review"
    ERROR = "error"


@dataclass(frozen=True)
class ReferenceEntity:
    """One authoritative customer, contact or catalog item."""

    kind: EntityKind
    key: str
    name: str
    external_id: Optional[str] = None
    email: Optional[str] = None
    domain: Optional[str] = None
    phone_digits: Optional[str] = None
    aliases: Tuple[str, ...] = ()
    job_title: Optional[str] = None
    description: Optional[str] = None
    color: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    postal_code: Optional[str] = None
    parent_key: Optional[str] = None
    embedding: Optional[Tuple[float, ...]] = field(default=None, compare=False, repr=False)
    active: bool = True


@dataclass(frozen=True)
class MatchQuery:
    """
    Normalized input attributes for one resolution attempt.

    Absent attributes are None, never "".
    """

    kind: EntityKind
    key: Optional[str] = None
    external_id: Optional[str] = None
    name: Optional[str] = None
    email: Optional[str] = None
    domain: Optional[str] = None
    phone_digits: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    postal_code: Optional[str] = None
    job_title: Optional[str] = None
    description: Optional[str] = None
    color: Optional[str] = None
    customer_key: Optional[str] = None

    def attributes(self) -> Dict[str, str]:
        """Present attributes only, for prompts and audit records."""
        data = asdict(self)
        data.pop("kind")
        return {k: v for k, v in data.items() if v is not None}

    def is_empty(self) -> bool:
        return not self.attributes()


@dataclass
class Candidate:
    """A reference entity under consideration, with its itemized score."""

    entity: ReferenceEntity
    similarity: float = 0.0
    bonuses: Dict[str, float] = field(default_factory=dict)
    score: float = 0.0
    seed: bool = False

    @property
    def key(self) -> str:
        return self.entity.key

    def to_dict(self) -> Dict[str, Any]:
        return {
            "key": self.entity.key,
            "name": self.entity.name,
            "similarity": round(self.similarity, 4),
            "bonuses": {k: round(v, 4) for k, v in self.bonuses.items()},
            "score": round(self.score, 4),
        }


@dataclass(frozen=True)
class MatchResult:
    """Outcome of one resolve call."""

    matched: bool
    method: MatchMethod
    confidence: float
    key: Optional[str] = None
    name: Optional[str] = None
    alternatives: Tuple[Tuple[str, float], ...] = ()
    reasons: Tuple[str, ...] = ()
    degraded: bool = False

    def __post_init__(self):
        if not isinstance(self.method, MatchMethod):
            object.__setattr__(self, "method", MatchMethod(self.method))
        if not 0.0 <= self.confidence <= 1.0:
            raise ValueError(f"confidence out of range: {self.confidence}")
        if self.matched and not self.key:
            raise ValueError("a matched result needs a resolved key")
        if self.matched == (self.method == MatchMethod.NONE):
            raise ValueError(f"method {self.method.value!r} inconsistent with matched={self.matched}")

    @classmethod
    def no_match(
        cls,
        alternatives: Tuple[Tuple[str, float], ...] = (),
        reasons: Tuple[str, ...] = (),
        degraded: bool = False,
        confidence: float = 0.0,
    ) -> "MatchResult":
        return cls(
            matched=False,
            method=MatchMethod.NONE,
            confidence=confidence,
            alternatives=tuple(alternatives),
            reasons=tuple(reasons),
            degraded=degraded,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "matched": self.matched,
            "method": self.method.value,
            "confidence": round(self.confidence, 4),
            "key": self.key,
            "name": self.name,
            "alternatives": [{"key": k, "score": round(s, 4)} for k, s in self.alternatives],
            "reasons": list(self.reasons),
            "degraded": self.degraded,
        }


@dataclass(frozen=True)
class AuditRecord:
    """Immutable trace of one resolution decision."""

    kind: str
    query: Dict[str, Any]
    top_candidates: Tuple[Dict[str, Any], ...]
    chosen_key: Optional[str]
    confidence: float
    method: str
    reasons: Tuple[str, ...]
    tiebreak_response: Optional[str] = None
    error: Optional[str] = None
    created_at: datetime = field(default_factory=datetime.now)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "kind": self.kind,
            "query": dict(self.query),
            "top_candidates": [dict(c) for c in self.top_candidates],
            "chosen_key": self.chosen_key,
            "confidence": self.confidence,
            "method": self.method,
            "reasons": list(self.reasons),
            "tiebreak_response": self.tiebreak_response,
            "error": self.error,
            "created_at": self.created_at.isoformat(),
        }


@dataclass(frozen=True)
class LineItem:
    """One extracted order line."""

    sku: Optional[str] = None
    description: Optional[str] = None
    quantity: float = 0
    color: Optional[str] = None
    unit_price: Optional[float] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "LineItem":
        quantity = data.get("quantity") or 0
        price = data.get("unit_price", data.get("unitPrice"))
        return cls(
            sku=data.get("sku"),
            description=data.get("description"),
            quantity=float(quantity),
            color=data.get("color", data.get("itemColor")),
            unit_price=float(price) if price not in (None, "") else None,
        )

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class ItemResolution:
    """Resolution of one line; final_code may be rewritten by the guardrail."""

    line: LineItem
    result: MatchResult
    final_code: str
    is_charge: bool = False
    notes: List[str] = field(default_factory=list)

    @property
    def resolved(self) -> bool:
        return self.result.matched and self.final_code not in PLACEHOLDER_CODES

    def to_dict(self) -> Dict[str, Any]:
        return {
            "line": self.line.to_dict(),
            "final_code": self.final_code,
            "is_charge": self.is_charge,
            "resolved": self.resolved,
            "notes": list(self.notes),
            "result": self.result.to_dict(),
        }


@dataclass
class ValidationOutcome:
    """Aggregate decision for one order."""

    status: OrderStatus
    customer: Optional[MatchResult] = None
    contact: Optional[MatchResult] = None
    contact_default_identity: bool = False
    contact_role: Optional[str] = None
    items: List[ItemResolution] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)
    degraded_stages: List[str] = field(default_factory=list)
    processing_ms: float = 0.0
    timestamp: datetime = field(default_factory=datetime.now)

    @property
    def valid_items(self) -> int:
        return sum(1 for item in self.items if item.resolved)

    @property
    def total_items(self) -> int:
        return len(self.items)

    @property
    def needs_manual_review(self) -> bool:
        return self.status != OrderStatus.READY or bool(self.degraded_stages)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "status": self.status.value,
            "customer": self.customer.to_dict() if self.customer else None,
            "contact": self.contact.to_dict() if self.contact else None,
            "contact_default_identity": self.contact_default_identity,
            "contact_role": self.contact_role,
            "items": [item.to_dict() for item in self.items],
            "valid_items": self.valid_items,
            "total_items": self.total_items,
            "errors": list(self.errors),
            "degraded_stages": list(self.degraded_stages),
            "needs_manual_review": self.needs_manual_review,
            "processing_ms": round(self.processing_ms, 1),
            "timestamp": self.timestamp.isoformat(),
        }
