"""
Reference Store Repository.

Responsibilities:
- Exact lookups by natural key, external id, email, domain, phone and name.
- Brute-force nearest-neighbour search over stored embeddings.
- Bounded pages of active entities for cache warm-up.

Non-Responsibilities:
- No scoring beyond raw cosine similarity.
- No writes; reference data is maintained by import jobs.

Invariant:
A store failure raises StoreUnavailable. It is never reported as an empty result.
"""

from contextlib import contextmanager
from typing import List, Optional, Sequence, Tuple

from sqlalchemy import func, or_
from sqlalchemy.exc import SQLAlchemyError

from poresolve.database import ROW_TYPES
from poresolve.errors import StoreUnavailable
from poresolve.logger import get_logger
from poresolve.models import EntityKind, ReferenceEntity
from poresolve.vectors import cosine_similarity


LOOKUP_FIELDS = ("email", "domain", "phone_digits", "name")


class SqlReferenceStore:
    """Reference store over the SQLAlchemy reference tables."""

    def __init__(self, session_factory):
        self._session_factory = session_factory
        self.logger = get_logger()

    @contextmanager
    def _session(self, operation: str):
        session = self._session_factory()
        try:
            yield session
        except SQLAlchemyError as e:
            self.logger.record_store_failure()
            self.logger.error("Reference store query failed", operation=operation, error=str(e))
            raise StoreUnavailable(f"{operation} failed: {e}") from e
        finally:
            session.close()

    def find_by_keys(self, kind: EntityKind, keys: Sequence[str]) -> List[ReferenceEntity]:
        wanted = sorted({k.strip().upper() for k in keys if k and k.strip()})
        if not wanted:
            return []
        row_type = ROW_TYPES[EntityKind(kind)]
        with self._session("find_by_keys") as session:
            rows = (
                session.query(row_type)
                .filter(or_(func.upper(row_type.key).in_(wanted), func.upper(row_type.external_id).in_(wanted)))
                .order_by(row_type.key)
                .all()
            )
            return [row.to_entity() for row in rows]

    def find_by_field(
        self,
        kind: EntityKind,
        field: str,
        value: str,
        active_only: bool = True,
        limit: int = 25,
    ) -> List[ReferenceEntity]:
        if field not in LOOKUP_FIELDS:
            raise ValueError(f"Unsupported lookup field: {field}")
        if not value:
            return []
        row_type = ROW_TYPES[EntityKind(kind)]
        column = getattr(row_type, field)
        with self._session(f"find_by_{field}") as session:
            query = session.query(row_type).filter(func.lower(column) == value.lower())
            if active_only:
                query = query.filter(row_type.active.is_(True))
            if field == "name":
                # Shortest exact name first
                query = query.order_by(func.length(row_type.name), row_type.key)
            else:
                query = query.order_by(row_type.key)
            return [row.to_entity() for row in query.limit(limit).all()]

    def nearest(
        self,
        kind: EntityKind,
        vector: Sequence[float],
        k: int,
        restrict_keys: Optional[Sequence[str]] = None,
    ) -> List[Tuple[ReferenceEntity, float]]:
        row_type = ROW_TYPES[EntityKind(kind)]
        with self._session("nearest") as session:
            query = session.query(row_type).filter(
                row_type.active.is_(True),
                row_type.embedding.isnot(None),
            )
            if restrict_keys is not None:
                if not restrict_keys:
                    return []
                query = query.filter(row_type.key.in_(list(restrict_keys)))
            entities = [row.to_entity() for row in query.all()]

        scored = [
            (entity, cosine_similarity(vector, entity.embedding))
            for entity in entities
            if entity.embedding
        ]
        scored.sort(key=lambda pair: (-pair[1], pair[0].key))
        return scored[:k]

    def active_page(self, kind: EntityKind, limit: int, offset: int = 0) -> List[ReferenceEntity]:
        row_type = ROW_TYPES[EntityKind(kind)]
        with self._session("active_page") as session:
            rows = (
                session.query(row_type)
                .filter(row_type.active.is_(True))
                .order_by(row_type.key)
                .offset(offset)
                .limit(limit)
                .all()
            )
            return [row.to_entity() for row in rows]
