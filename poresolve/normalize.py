"""
Input normalization.

Pure functions from raw extracted attributes to a MatchQuery. Blank values
become None so later stages can tell "unknown" from a real value.
"""

import re
from typing import Any, Iterable, Mapping, Optional, Tuple

from .models import EntityKind, MatchQuery


_ANGLE_ADDRESS = re.compile(r"<\s*([^<>\s]+)\s*>")
_SENDER_NAME = re.compile(r"^(.+?)\s*<")
_NON_DIGITS = re.compile(r"\D")


def normalize_text(s: Optional[str]) -> Optional[str]:
    if s is None:
        return None
    text = " ".join(str(s).strip().lower().split())
    return text or None


def normalize_email(s: Optional[str]) -> Optional[str]:
    """Reduce an address to local@domain, unwrapping "Name <addr>" forms."""
    text = normalize_text(s)
    if text is None:
        return None
    match = _ANGLE_ADDRESS.search(text)
    if match:
        text = match.group(1)
    text = text.strip("<>\"' ").removeprefix("mailto:")
    local, sep, domain = text.partition("@")
    if not sep or not local or not domain or "@" in domain:
        return None
    return f"{local}@{domain}"


def email_domain(email: Optional[str]) -> Optional[str]:
    if not email:
        return None
    return email.split("@", 1)[1] or None


def normalize_domain(s: Optional[str]) -> Optional[str]:
    text = normalize_text(s)
    if text is None:
        return None
    if "@" in text:
        return email_domain(normalize_email(text))
    text = text.removeprefix("http://").removeprefix("https://").removeprefix("www.")
    return text.split("/", 1)[0] or None


def normalize_phone(s: Optional[Any]) -> Optional[str]:
    """Digits only. A leading country code is kept as given."""
    if s is None:
        return None
    digits = _NON_DIGITS.sub("", str(s))
    return digits or None


def normalize_sku(s: Optional[str]) -> Optional[str]:
    if s is None:
        return None
    sku = " ".join(str(s).strip().upper().split())
    return sku or None


def _first(raw: Mapping[str, Any], *names: str) -> Optional[Any]:
    for name in names:
        value = raw.get(name)
        if value is not None and str(value).strip() != "":
            return value
    return None


def _in_domains(email: Optional[str], domains: Iterable[str]) -> bool:
    domain = email_domain(email)
    return domain is not None and domain in set(domains)


def parse_sender(raw: Optional[str]) -> Tuple[Optional[str], Optional[str]]:
    """Split "Name <addr>" into (name, email)."""
    text = normalize_text(raw)
    if text is None:
        return None, None
    name_match = _SENDER_NAME.match(text)
    name = normalize_text(name_match.group(1).strip("\"' ")) if name_match else None
    return name, normalize_email(text)


def normalize_customer(raw: Mapping[str, Any]) -> MatchQuery:
    address = raw.get("address") or {}
    email = normalize_email(_first(raw, "email", "customer_email"))
    return MatchQuery(
        kind=EntityKind.CUSTOMER,
        key=normalize_sku(_first(raw, "customer_number", "key")),
        external_id=normalize_sku(_first(raw, "external_id", "netsuite_id")),
        name=normalize_text(_first(raw, "name", "company", "customer_name")),
        email=email,
        domain=normalize_domain(_first(raw, "domain")) or email_domain(email),
        phone_digits=normalize_phone(_first(raw, "phone", "phone_digits")),
        city=normalize_text(_first(address, "city") or _first(raw, "city")),
        state=normalize_text(_first(address, "state") or _first(raw, "state")),
        postal_code=normalize_phone(_first(address, "zip", "postal_code") or _first(raw, "zip", "postal_code")),
    )


def normalize_contact(
    raw: Mapping[str, Any],
    customer_key: Optional[str] = None,
    excluded_domains: Iterable[str] = (),
) -> MatchQuery:
    """
    Contact query with sender fallback.

    Addresses on an excluded (forwarder) domain are never used as the
    contact identity. When the sender is excluded and an original_sender
    ("Name <addr>") is present, that sender replaces it.
    """
    excluded = tuple(excluded_domains)
    name = normalize_text(_first(raw, "name", "contact_name"))
    email = normalize_email(_first(raw, "email", "contact_email"))
    sender_name = normalize_text(_first(raw, "sender_name"))
    sender_email = normalize_email(_first(raw, "sender_email"))

    if _in_domains(sender_email, excluded):
        original_name, original_email = parse_sender(_first(raw, "original_sender"))
        if original_email and not _in_domains(original_email, excluded):
            sender_email = original_email
            sender_name = original_name or sender_name
        else:
            sender_email = None
    if _in_domains(email, excluded):
        email = None

    email = email or sender_email
    return MatchQuery(
        kind=EntityKind.CONTACT,
        key=normalize_sku(_first(raw, "contact_id", "key")),
        external_id=normalize_sku(_first(raw, "external_id", "netsuite_id")),
        name=name or sender_name,
        email=email,
        domain=email_domain(email),
        phone_digits=normalize_phone(_first(raw, "phone", "phone_digits")),
        job_title=normalize_text(_first(raw, "job_title", "title")),
        customer_key=normalize_sku(customer_key or _first(raw, "customer_key")),
    )


def normalize_item(raw: Mapping[str, Any]) -> MatchQuery:
    """Item query: the SKU is the natural key and the description the name."""
    return MatchQuery(
        kind=EntityKind.ITEM,
        key=normalize_sku(_first(raw, "sku")),
        name=normalize_text(_first(raw, "description")),
        color=normalize_text(_first(raw, "color", "item_color")),
    )


def normalize_query(kind: EntityKind, raw: Mapping[str, Any], **context) -> MatchQuery:
    kind = EntityKind(kind)
    if kind == EntityKind.CUSTOMER:
        return normalize_customer(raw)
    if kind == EntityKind.CONTACT:
        return normalize_contact(raw, **context)
    return normalize_item(raw)


def tokens(text: Optional[str]) -> Tuple[str, ...]:
    """Word tokens of already-normalized text, punctuation stripped."""
    if not text:
        return ()
    return tuple(t for t in re.split(r"[^a-z0-9&]+", text.lower()) if t)
