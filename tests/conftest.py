"""
Pytest configuration and shared fixtures.
"""

import math
from typing import Any, Dict, List, Optional

import pytest

from poresolve.database import ContactRow, CustomerRow, ItemRow, init_database, session_factory
from poresolve.errors import ProviderUnavailable, StoreUnavailable
from poresolve.health import HealthTracker
from poresolve.logger import reset_logger
from storage.repositories.reference import SqlReferenceStore
from pipelines.entity_resolution.resolver import EntityResolver


QUERY_VECTOR = (1.0, 0.0)


def vec(similarity: float) -> List[float]:
    """Unit vector whose cosine against QUERY_VECTOR is exactly `similarity`."""
    return [similarity, math.sqrt(max(0.0, 1.0 - similarity * similarity))]


class FixedEmbedder:
    """Embeds every text to QUERY_VECTOR, or raises a scripted error."""

    def __init__(self, vector=QUERY_VECTOR, error: Optional[Exception] = None):
        self.vector = list(vector)
        self.error = error
        self.calls: List[str] = []

    def embed(self, text: str) -> List[float]:
        self.calls.append(text)
        if self.error is not None:
            raise self.error
        return list(self.vector)


class ScriptedLLM:
    """Returns scripted replies in order; an Exception entry is raised instead."""

    def __init__(self, *replies: Any):
        self.replies = list(replies)
        self.prompts: List[Any] = []

    def complete(self, prompt) -> str:
        self.prompts.append(prompt)
        reply = self.replies.pop(0) if self.replies else '{"selected_id": "NONE", "reason": "no script"}'
        if isinstance(reply, Exception):
            raise reply
        return reply


class BrokenStore:
    """Reference store whose every lookup fails."""

    def find_by_keys(self, kind, keys):
        raise StoreUnavailable("database is locked")

    def find_by_field(self, kind, field, value, active_only=True, limit=25):
        raise StoreUnavailable("database is locked")

    def nearest(self, kind, vector, k, restrict_keys=None):
        raise StoreUnavailable("database is locked")

    def active_page(self, kind, limit, offset=0):
        raise StoreUnavailable("database is locked")


class ListAuditSink:
    """Audit sink collecting records in memory."""

    def __init__(self):
        self.records = []

    def append(self, record) -> None:
        self.records.append(record)


@pytest.fixture(autouse=True)
def fresh_logger():
    """Each test starts with a fresh global logger."""
    reset_logger()
    yield
    reset_logger()


@pytest.fixture
def db_path(tmp_path):
    """Temporary SQLite reference database with all tables created."""
    path = tmp_path / "reference.db"
    init_database(path)
    return path


@pytest.fixture
def sessions(db_path):
    return session_factory(db_path)


@pytest.fixture
def seed(sessions):
    """Insert reference rows: seed(CustomerRow(...), ContactRow(...), ...)."""

    def _seed(*rows):
        session = sessions()
        try:
            for row in rows:
                if row.aliases is None:
                    row.aliases = []
                if row.active is None:
                    row.active = True
                session.add(row)
            session.commit()
        finally:
            session.close()

    return _seed


@pytest.fixture
def store(sessions):
    return SqlReferenceStore(sessions)


@pytest.fixture
def embedder():
    return FixedEmbedder()


@pytest.fixture
def audit_sink():
    return ListAuditSink()


@pytest.fixture
def health():
    return HealthTracker(failure_threshold=3)


@pytest.fixture
def make_resolver(store, embedder, audit_sink, health):
    """Factory for an EntityResolver over the seeded store."""

    def _make(llm=None, **overrides) -> EntityResolver:
        kwargs: Dict[str, Any] = dict(
            store=store,
            embedder=embedder,
            llm=llm,
            audit_sink=audit_sink,
            health=health,
            excluded_domains=("highcaliberline.com",),
        )
        kwargs.update(overrides)
        return EntityResolver(**kwargs)

    return _make


@pytest.fixture
def acme_customers(seed):
    """Two customers sharing acme.com with near-identical similarity."""
    seed(
        CustomerRow(
            key="C-100",
            name="Acme Corporation",
            email="orders@acme.com",
            phone_digits="5551234567",
            city="springfield",
            state="il",
            embedding=vec(0.80),
        ),
        CustomerRow(
            key="C-200",
            name="Acme Corp West",
            email="west@acme.com",
            embedding=vec(0.79),
        ),
    )


@pytest.fixture
def catalog_items(seed):
    """Catalog items including colour variants."""
    seed(
        ItemRow(key="T100", name="Classic Tote", description="canvas tote bag", embedding=vec(0.70)),
        ItemRow(key="T100-06", name="Classic Tote Black", description="canvas tote bag", color="black", embedding=vec(0.70)),
        ItemRow(key="MUG-11", name="Ceramic Mug 11oz", description="ceramic mug", embedding=vec(0.95)),
        ItemRow(key="PEN-1", name="Click Pen", description="plastic pen", embedding=vec(0.20)),
    )


@pytest.fixture
def contact_rows(seed):
    seed(
        ContactRow(
            key="K-1",
            name="Jane Buyer",
            email="buyer@acme.com",
            job_title="Purchasing Manager",
            customer_key="C-100",
            embedding=vec(0.6),
        ),
    )


def provider_down(provider: str = "embedding") -> ProviderUnavailable:
    return ProviderUnavailable(provider, "connection refused")
