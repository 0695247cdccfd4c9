"""
Tests for the reference import pipeline.
"""

import pytest

from conftest import FixedEmbedder, provider_down
from poresolve.database import ContactRow, CustomerRow, ItemRow, session_factory
from poresolve.errors import StoreUnavailable
from poresolve.models import EntityKind
from pipelines.reference_import.loader import load_reference, row_values


CUSTOMERS = [
    {"customer_number": "c-100", "name": "Acme Corporation", "email": "Orders@Acme.com", "zip": "62701"},
    {"customer_number": "C-200", "name": "Initech", "phone": "(555) 765-4321", "aliases": ["Initech LLC"]},
]


def _rows(sessions, row_type):
    session = sessions()
    try:
        return {row.key: row for row in session.query(row_type).all()}
    finally:
        session.close()


class TestRowValues:
    def test_aliases_and_normalized_key(self):
        values = row_values(EntityKind.CUSTOMER, {"customer_number": " c-1 ", "netsuite_id": "NS-1", "zip": "62701"})

        assert values == {"key": "C-1", "external_id": "NS-1", "postal_code": "62701"}

    def test_kind_specific_columns(self):
        """Columns of other kinds are ignored."""
        values = row_values(EntityKind.ITEM, {"sku": "T100", "name": "Tote", "color": "black", "job_title": "x"})

        assert values == {"key": "T100", "name": "Tote", "color": "black"}

    def test_contact_customer_key_normalized(self):
        values = row_values(EntityKind.CONTACT, {"contact_id": "k-1", "name": "Jane", "customer_key": "c-100"})

        assert values["customer_key"] == "C-100"


class TestLoadReference:
    def test_insert(self, sessions):
        counts = load_reference(sessions, "customer", CUSTOMERS)

        assert counts == {"inserted": 2, "updated": 0, "skipped": 0, "embedded": 0}
        rows = _rows(sessions, CustomerRow)
        assert rows["C-100"].domain == "acme.com"
        assert rows["C-100"].postal_code == "62701"
        assert rows["C-200"].phone_digits == "5557654321"
        assert rows["C-200"].aliases == ["Initech LLC"]
        assert rows["C-200"].active is True

    def test_reimport_is_idempotent(self, sessions):
        """Importing the same records twice updates instead of duplicating."""
        load_reference(sessions, "customer", CUSTOMERS)

        counts = load_reference(sessions, "customer", CUSTOMERS)

        assert counts["inserted"] == 0
        assert counts["updated"] == 2
        assert len(_rows(sessions, CustomerRow)) == 2

    def test_update_changes_fields(self, sessions):
        load_reference(sessions, "item", [{"sku": "MUG-11", "name": "Mug"}])

        load_reference(sessions, "item", [{"sku": "MUG-11", "name": "Ceramic Mug", "active": False}])

        row = _rows(sessions, ItemRow)["MUG-11"]
        assert row.name == "Ceramic Mug"
        assert row.active is False

    def test_records_without_key_or_name_skipped(self, sessions):
        counts = load_reference(sessions, "contact", [{"name": "No Id"}, {"contact_id": "K-1"}])

        assert counts["skipped"] == 2
        assert _rows(sessions, ContactRow) == {}

    def test_dry_run_writes_nothing(self, sessions):
        counts = load_reference(sessions, "customer", CUSTOMERS, dry_run=True)

        assert counts["inserted"] == 2
        assert _rows(sessions, CustomerRow) == {}

    def test_embeds_with_query_field_order(self, sessions):
        """Rows are embedded from the same text the retriever builds for queries."""
        embedder = FixedEmbedder()

        counts = load_reference(sessions, "customer", CUSTOMERS[:1], embedder=embedder)

        assert counts["embedded"] == 1
        assert embedder.calls == ["Acme Corporation | orders@acme.com | acme.com | 62701"]
        assert _rows(sessions, CustomerRow)["C-100"].embedding == [1.0, 0.0]

    def test_existing_embedding_kept(self, sessions):
        embedder = FixedEmbedder()
        record = dict(CUSTOMERS[0], embedding=[0.0, 1.0])

        counts = load_reference(sessions, "customer", [record], embedder=embedder)

        assert counts["embedded"] == 0
        assert embedder.calls == []

    def test_embedding_failure_keeps_row(self, sessions):
        embedder = FixedEmbedder(error=provider_down())

        counts = load_reference(sessions, "customer", CUSTOMERS[:1], embedder=embedder)

        assert counts["inserted"] == 1
        assert counts["embedded"] == 0
        assert _rows(sessions, CustomerRow)["C-100"].embedding is None

    def test_store_failure(self, tmp_path):
        """Database errors roll back and surface as StoreUnavailable."""
        sessions = session_factory(tmp_path / "uninitialized.db")

        with pytest.raises(StoreUnavailable):
            load_reference(sessions, "customer", CUSTOMERS)
