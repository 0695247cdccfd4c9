from typing import Any, Dict, List

from .models import EntityKind

CUSTOMER_FIELDS = [
    "customer_number",
    "key",
    "external_id",
    "netsuite_id",
    "name",
    "company",
    "customer_name",
    "email",
    "customer_email",
    "domain",
    "phone",
    "phone_digits",
    "city",
    "state",
    "zip",
    "postal_code",
]
CONTACT_FIELDS = [
    "contact_id",
    "key",
    "external_id",
    "netsuite_id",
    "name",
    "contact_name",
    "email",
    "contact_email",
    "sender_name",
    "sender_email",
    "original_sender",
    "phone",
    "phone_digits",
    "job_title",
    "title",
]
ITEM_FIELDS = ["sku", "description"]

IDENTIFYING_FIELDS = {
    EntityKind.CUSTOMER: CUSTOMER_FIELDS,
    EntityKind.CONTACT: CONTACT_FIELDS,
    EntityKind.ITEM: ITEM_FIELDS,
}

OPTIONAL_STR_ITEM_FIELDS = ["sku", "description", "color", "itemColor"]


def _is_non_empty_str(v: Any) -> bool:
    return isinstance(v, str) and v.strip() != ""


def _is_number(v: Any) -> bool:
    return isinstance(v, (int, float)) and not isinstance(v, bool)


def _check_optional_strings(data: Dict[str, Any], fields: List[str], prefix: str) -> List[str]:
    return [
        f"Field '{prefix}{f}' must be a string if provided"
        for f in fields
        if data.get(f) is not None and not isinstance(data[f], str)
    ]


def validate_query(kind: EntityKind, data: Any, prefix: str = "") -> List[str]:
    """
    Returns a list of validation error messages for one resolution query.
    Empty list means valid.
    """
    kind = EntityKind(kind)
    label = prefix.rstrip(".") or kind.value
    if not isinstance(data, dict):
        return [f"{label} must be a JSON object"]

    fields = IDENTIFYING_FIELDS[kind]
    errors = _check_optional_strings(data, fields, prefix)
    has_identity = any(_is_non_empty_str(data.get(f)) for f in fields)
    if kind == EntityKind.CUSTOMER and isinstance(data.get("address"), dict):
        has_identity = has_identity or any(_is_non_empty_str(v) for v in data["address"].values())
    if not has_identity and not errors:
        errors.append(f"{label} needs at least one of: {', '.join(fields)}")
    return errors


def validate_line_item(data: Any, index: int) -> List[str]:
    prefix = f"items[{index}]."
    if not isinstance(data, dict):
        return [f"items[{index}] must be a JSON object"]

    errors = _check_optional_strings(data, OPTIONAL_STR_ITEM_FIELDS, prefix)
    if not (_is_non_empty_str(data.get("sku")) or _is_non_empty_str(data.get("description"))):
        errors.append(f"{prefix[:-1]} needs a sku or a description")

    quantity = data.get("quantity")
    if quantity is not None and (not _is_number(quantity) or quantity < 0):
        errors.append(f"Field '{prefix}quantity' must be a non-negative number")

    price = data.get("unit_price", data.get("unitPrice"))
    if price is not None and not _is_number(price):
        errors.append(f"Field '{prefix}unit_price' must be a number if provided")
    return errors


def validate_order(data: Any) -> List[str]:
    """
    Returns a list of validation error messages for an extracted order.
    Empty list means valid.

    Expected shape: {"customer": {...}, "contact": {...}, "items": [{...}]};
    contact is optional.
    """
    if not isinstance(data, dict):
        return ["Order must be a JSON object"]

    errors: List[str] = []
    if "customer" not in data:
        errors.append("Missing required field: customer")
    else:
        errors.extend(validate_query(EntityKind.CUSTOMER, data["customer"], prefix="customer."))

    contact = data.get("contact")
    if contact is not None and not isinstance(contact, dict):
        errors.append("Field 'contact' must be a JSON object if provided")

    items = data.get("items")
    if items is None:
        errors.append("Missing required field: items")
    elif not isinstance(items, list):
        errors.append("Field 'items' must be a list")
    else:
        for i, item in enumerate(items):
            errors.extend(validate_line_item(item, i))

    return errors
