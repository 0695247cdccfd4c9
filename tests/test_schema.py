"""
Tests for schema validation.
"""

import pytest

from poresolve.schema import validate_line_item, validate_order, validate_query


@pytest.fixture
def valid_order():
    return {
        "customer": {"name": "Acme Corporation", "email": "orders@acme.com"},
        "contact": {"name": "Jane Buyer", "email": "jane@acme.com"},
        "items": [
            {"sku": "MUG-11", "description": "Ceramic mug", "quantity": 100, "unit_price": 2.5},
            {"description": "Setup charge", "quantity": 1},
        ],
    }


class TestValidateQuery:
    """Test single-query validation."""

    def test_valid_customer(self):
        assert validate_query("customer", {"customer_number": "C-100"}) == []

    def test_address_counts_as_identity(self):
        """A customer known only by address is still resolvable."""
        assert validate_query("customer", {"address": {"zip": "62701"}}) == []

    def test_empty_query(self):
        """A query without any identifying field should error."""
        errors = validate_query("contact", {"name": "   "})

        assert len(errors) == 1
        assert errors[0].startswith("contact needs at least one of:")

    def test_non_string_field(self):
        errors = validate_query("item", {"sku": 123})

        assert errors == ["Field 'sku' must be a string if provided"]

    def test_not_an_object(self):
        assert validate_query("item", ["MUG-11"]) == ["item must be a JSON object"]


class TestValidateLineItem:
    """Test line item validation."""

    def test_valid(self):
        assert validate_line_item({"sku": "MUG-11", "quantity": 3}, 0) == []

    def test_needs_sku_or_description(self):
        errors = validate_line_item({"quantity": 3}, 2)

        assert errors == ["items[2] needs a sku or a description"]

    @pytest.mark.parametrize("quantity", [-1, "ten", True])
    def test_bad_quantity(self, quantity):
        errors = validate_line_item({"sku": "MUG-11", "quantity": quantity}, 0)

        assert errors == ["Field 'items[0].quantity' must be a non-negative number"]

    def test_bad_price(self):
        errors = validate_line_item({"sku": "MUG-11", "unitPrice": "2.50"}, 0)

        assert errors == ["Field 'items[0].unit_price' must be a number if provided"]

    def test_not_an_object(self):
        assert validate_line_item("MUG-11", 4) == ["items[4] must be a JSON object"]


class TestValidateOrder:
    """Test whole-order validation."""

    def test_valid_order(self, valid_order):
        """Valid order should have no errors."""
        assert validate_order(valid_order) == []

    def test_contact_optional(self, valid_order):
        del valid_order["contact"]

        assert validate_order(valid_order) == []

    def test_empty_items_allowed(self, valid_order):
        valid_order["items"] = []

        assert validate_order(valid_order) == []

    def test_missing_required_fields(self):
        """Missing customer and items should both error."""
        errors = validate_order({})

        assert errors == ["Missing required field: customer", "Missing required field: items"]

    def test_wrong_types(self, valid_order):
        valid_order["contact"] = "Jane"
        valid_order["items"] = {"sku": "MUG-11"}

        errors = validate_order(valid_order)

        assert "Field 'contact' must be a JSON object if provided" in errors
        assert "Field 'items' must be a list" in errors

    def test_nested_errors_are_prefixed(self, valid_order):
        valid_order["customer"] = {"name": 42}
        valid_order["items"][1] = {"quantity": 1}

        errors = validate_order(valid_order)

        assert "Field 'customer.name' must be a string if provided" in errors
        assert "items[1] needs a sku or a description" in errors

    def test_not_an_object(self):
        assert validate_order([]) == ["Order must be a JSON object"]
