"""
Resolution Audit Repository.

Responsibilities:
- Append one record per resolution decision.

Non-Responsibilities:
- No reads for business logic; records exist for compliance and debugging.
- No updates or deletes.

Invariant:
A failed audit write is logged and never propagated to the resolver.
"""

import json
import threading
from pathlib import Path

from sqlalchemy.exc import SQLAlchemyError

from poresolve.database import ResolutionAuditRow
from poresolve.logger import get_logger
from poresolve.models import AuditRecord


class SqlAuditSink:
    """Audit sink writing to the resolution_audit table."""

    def __init__(self, session_factory):
        self._session_factory = session_factory
        self.logger = get_logger()

    def append(self, record: AuditRecord) -> None:
        session = self._session_factory()
        try:
            session.add(
                ResolutionAuditRow(
                    kind=record.kind,
                    query=record.query,
                    top_candidates=list(record.top_candidates),
                    chosen_key=record.chosen_key,
                    confidence=record.confidence,
                    method=record.method,
                    reasons=list(record.reasons),
                    tiebreak_response=record.tiebreak_response,
                    error=record.error,
                    created_at=record.created_at,
                )
            )
            session.commit()
        except SQLAlchemyError as e:
            session.rollback()
            self.logger.error("Audit write failed", sink="sql", kind=record.kind, error=str(e))
        finally:
            session.close()


class JsonlAuditSink:
    """Audit sink appending one JSON object per line to a file."""

    def __init__(self, path: Path):
        self.path = Path(path)
        self._lock = threading.Lock()
        self.logger = get_logger()

    def append(self, record: AuditRecord) -> None:
        try:
            line = json.dumps(record.to_dict(), default=str)
            with self._lock:
                self.path.parent.mkdir(parents=True, exist_ok=True)
                with open(self.path, "a", encoding="utf-8") as f:
                    f.write(line + "\n")
        except (OSError, TypeError, ValueError) as e:
            self.logger.error("Audit write failed", sink="jsonl", path=str(self.path), error=str(e))
