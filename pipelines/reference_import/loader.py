"""
Reference Import Pipeline.

Responsibilities:
- Upsert customer, contact and item reference rows from JSON records.
- Optionally embed each entity with the same field order the semantic
  retriever uses for queries.

Non-Responsibilities:
- No resolution.
- No deletes; retired entities are imported with active=false.

Invariant:
Re-importing the same records is idempotent.
"""

from typing import Any, Dict, Iterable, Mapping, Optional

from sqlalchemy.exc import SQLAlchemyError

from poresolve.database import ROW_TYPES
from poresolve.errors import MalformedProviderResponse, ProviderUnavailable, StoreUnavailable
from poresolve.interfaces import EmbeddingProvider
from poresolve.logger import get_logger
from poresolve.models import EntityKind
from poresolve.normalize import normalize_sku

from pipelines.entity_resolution.candidate_selector import build_query_text
from pipelines.entity_resolution.kinds import profile_for

logger = get_logger()

COMMON_COLUMNS = ("external_id", "name", "aliases", "email", "phone_digits", "active", "embedding")
KIND_COLUMNS = {
    EntityKind.CUSTOMER: ("city", "state", "postal_code"),
    EntityKind.CONTACT: ("job_title", "customer_key"),
    EntityKind.ITEM: ("description", "color"),
}
# Accepted spellings in import files
COLUMN_ALIASES = {
    "key": ("key", "customer_number", "contact_id", "sku"),
    "external_id": ("external_id", "netsuite_id"),
    "phone_digits": ("phone_digits", "phone"),
    "postal_code": ("postal_code", "zip"),
}


def _value(record: Mapping[str, Any], column: str):
    for name in COLUMN_ALIASES.get(column, (column,)):
        if record.get(name) is not None:
            return record[name]
    return None


def row_values(kind: EntityKind, record: Mapping[str, Any]) -> Dict[str, Any]:
    """Column values for one import record; absent fields are omitted."""
    values: Dict[str, Any] = {"key": normalize_sku(_value(record, "key"))}
    for column in COMMON_COLUMNS + KIND_COLUMNS[EntityKind(kind)]:
        value = _value(record, column)
        if value is not None:
            values[column] = value
    if "customer_key" in values:
        values["customer_key"] = normalize_sku(values["customer_key"])
    if "aliases" in values:
        values["aliases"] = [str(a) for a in values["aliases"]]
    return values


def load_reference(
    session_factory,
    kind: EntityKind,
    records: Iterable[Mapping[str, Any]],
    embedder: Optional[EmbeddingProvider] = None,
    dry_run: bool = False,
) -> Dict[str, int]:
    """
    Upsert reference records of one kind.

    Args:
        session_factory: Session factory from poresolve.database
        kind: customer, contact or item
        records: Import records (dicts)
        embedder: When given, rows without an embedding are embedded
        dry_run: Validate and count without writing

    Returns:
        Counts of inserted, updated, skipped and embedded rows

    Raises:
        StoreUnavailable: The database write failed; nothing is committed
    """
    kind = EntityKind(kind)
    row_type = ROW_TYPES[kind]
    profile = profile_for(kind)
    counts = {"inserted": 0, "updated": 0, "skipped": 0, "embedded": 0}

    session = session_factory()
    try:
        for record in records:
            values = row_values(kind, record)
            if not values["key"] or not values.get("name"):
                logger.warning("Skipping reference record without key or name", kind=kind.value, key=values["key"])
                counts["skipped"] += 1
                continue

            row = session.get(row_type, values["key"])
            if row is None:
                row = row_type(key=values["key"])
                session.add(row)
                counts["inserted"] += 1
            else:
                counts["updated"] += 1
            for column, value in values.items():
                if column != "key":
                    setattr(row, column, value)
            if row.aliases is None:
                row.aliases = []
            if row.active is None:
                row.active = True

            if embedder is not None and not values.get("embedding"):
                text = build_query_text(row.to_entity(), profile)
                try:
                    row.embedding = list(embedder.embed(text))
                    counts["embedded"] += 1
                except (ProviderUnavailable, MalformedProviderResponse) as e:
                    logger.warning("Embedding failed, row kept without vector", key=row.key, error=str(e))

        if dry_run:
            session.rollback()
        else:
            session.commit()
    except SQLAlchemyError as e:
        session.rollback()
        logger.record_store_failure()
        logger.error("Reference import failed", kind=kind.value, error=str(e))
        raise StoreUnavailable(f"reference import failed: {e}") from e
    finally:
        session.close()

    logger.info("Reference import finished", kind=kind.value, dry_run=dry_run, **counts)
    return counts
