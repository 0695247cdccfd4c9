"""
Collaborator interfaces consumed by the cascade.

Implementations live in storage.repositories and poresolve.providers;
tests swap in small in-memory versions.
"""

from typing import List, Optional, Protocol, Sequence

from .models import AuditRecord, EntityKind, ReferenceEntity


class ReferenceStore(Protocol):
    """Read-only access to the authoritative reference data."""

    def find_by_keys(self, kind: EntityKind, keys: Sequence[str]) -> List[ReferenceEntity]:
        """Exact lookup by natural key or external id."""
        ...

    def find_by_field(
        self,
        kind: EntityKind,
        field: str,
        value: str,
        active_only: bool = True,
        limit: int = 25,
    ) -> List[ReferenceEntity]:
        """Case-insensitive equality on email, domain, phone_digits or name."""
        ...

    def nearest(
        self,
        kind: EntityKind,
        vector: Sequence[float],
        k: int,
        restrict_keys: Optional[Sequence[str]] = None,
    ) -> List[tuple]:
        """Top-k active entities by cosine similarity, as (entity, similarity)."""
        ...

    def active_page(self, kind: EntityKind, limit: int, offset: int = 0) -> List[ReferenceEntity]:
        """Bounded page of active entities."""
        ...


class EmbeddingProvider(Protocol):
    def embed(self, text: str) -> List[float]:
        ...


class LLMProvider(Protocol):
    def complete(self, prompt) -> str:
        """Return the raw text of a single JSON object."""
        ...


class AuditSink(Protocol):
    def append(self, record: AuditRecord) -> None:
        """Persist one record. Must not raise."""
        ...
