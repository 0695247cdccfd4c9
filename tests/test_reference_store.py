"""
Tests for the SQL reference store repository.
"""

import pytest

from conftest import vec
from poresolve.database import ContactRow, CustomerRow, ItemRow, session_factory
from poresolve.errors import StoreUnavailable
from poresolve.models import EntityKind
from storage.repositories.reference import SqlReferenceStore


@pytest.fixture
def customers(seed):
    seed(
        CustomerRow(key="C-100", name="Acme Corporation", external_id="NS-1", email="orders@acme.com", embedding=vec(0.9)),
        CustomerRow(key="C-200", name="Acme Corp West", email="west@acme.com", embedding=vec(0.5)),
        CustomerRow(key="C-300", name="Acme", email="old@acme.com", active=False, embedding=vec(0.99)),
        CustomerRow(key="C-400", name="Acme Corporation International", phone_digits="555-123-4567"),
    )


class TestKeyLookups:
    def test_by_key_case_insensitive(self, store, customers):
        result = store.find_by_keys(EntityKind.CUSTOMER, ["c-100"])

        assert [e.key for e in result] == ["C-100"]

    def test_by_external_id(self, store, customers):
        result = store.find_by_keys(EntityKind.CUSTOMER, ["ns-1"])

        assert [e.key for e in result] == ["C-100"]

    def test_inactive_rows_returned(self, store, customers):
        """Key lookups return inactive rows; callers decide."""
        result = store.find_by_keys(EntityKind.CUSTOMER, ["C-300"])

        assert result[0].active is False

    def test_blank_keys(self, store, customers):
        assert store.find_by_keys(EntityKind.CUSTOMER, ["", "  "]) == []

    def test_kinds_are_separate(self, store, seed, customers):
        seed(ItemRow(key="C-100", name="Confusingly named item"))

        assert store.find_by_keys(EntityKind.ITEM, ["C-100"])[0].kind == EntityKind.ITEM


class TestFieldLookups:
    def test_by_domain_active_only(self, store, customers):
        """Domain lookups skip inactive rows by default."""
        result = store.find_by_field(EntityKind.CUSTOMER, "domain", "acme.com")

        assert [e.key for e in result] == ["C-100", "C-200"]

    def test_include_inactive(self, store, customers):
        result = store.find_by_field(EntityKind.CUSTOMER, "domain", "acme.com", active_only=False)

        assert len(result) == 3

    def test_by_email(self, store, customers):
        result = store.find_by_field(EntityKind.CUSTOMER, "email", "WEST@acme.com")

        assert [e.key for e in result] == ["C-200"]

    def test_by_phone(self, store, customers):
        result = store.find_by_field(EntityKind.CUSTOMER, "phone_digits", "5551234567")

        assert [e.key for e in result] == ["C-400"]

    def test_name_shortest_first(self, store, seed):
        """Equal names order shortest first, then by key."""
        seed(
            CustomerRow(key="C-2", name="Acme"),
            CustomerRow(key="C-1", name="ACME"),
        )

        result = store.find_by_field(EntityKind.CUSTOMER, "name", "acme")

        assert [e.key for e in result] == ["C-1", "C-2"]

    def test_limit(self, store, customers):
        assert len(store.find_by_field(EntityKind.CUSTOMER, "domain", "acme.com", limit=1)) == 1

    def test_unsupported_field(self, store):
        with pytest.raises(ValueError):
            store.find_by_field(EntityKind.CUSTOMER, "city", "springfield")


class TestNearest:
    def test_ordered_by_similarity(self, store, customers):
        """Active rows with embeddings, most similar first."""
        result = store.nearest(EntityKind.CUSTOMER, [1.0, 0.0], k=5)

        assert [e.key for e, _ in result] == ["C-100", "C-200"]
        assert result[0][1] == pytest.approx(0.9)

    def test_k_bounds_results(self, store, customers):
        assert len(store.nearest(EntityKind.CUSTOMER, [1.0, 0.0], k=1)) == 1

    def test_restrict_keys(self, store, customers):
        result = store.nearest(EntityKind.CUSTOMER, [1.0, 0.0], k=5, restrict_keys=["C-200"])

        assert [e.key for e, _ in result] == ["C-200"]

    def test_empty_restriction(self, store, customers):
        assert store.nearest(EntityKind.CUSTOMER, [1.0, 0.0], k=5, restrict_keys=[]) == []


class TestActivePage:
    def test_paging(self, store, seed):
        seed(*[ContactRow(key=f"K-{i}", name=f"Contact {i}") for i in range(5)])

        first = store.active_page(EntityKind.CONTACT, limit=2)
        rest = store.active_page(EntityKind.CONTACT, limit=10, offset=2)

        assert [e.key for e in first] == ["K-0", "K-1"]
        assert [e.key for e in rest] == ["K-2", "K-3", "K-4"]


class TestStoreFailure:
    def test_missing_tables_raise_store_unavailable(self, tmp_path):
        """Database errors surface as StoreUnavailable, never as empty results."""
        store = SqlReferenceStore(session_factory(tmp_path / "uninitialized.db"))

        with pytest.raises(StoreUnavailable):
            store.find_by_keys(EntityKind.CUSTOMER, ["C-1"])
        with pytest.raises(StoreUnavailable):
            store.nearest(EntityKind.ITEM, [1.0, 0.0], k=3)
