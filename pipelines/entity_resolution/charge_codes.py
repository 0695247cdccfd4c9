"""
Charge Code Classification.

Responsibilities:
- Recognise non-inventory charge lines (setup, rush, proof, freight, ...)
  from an explicit SKU token or, failing that, a description phrase.
- Map catalog colour names to colour codes.

Non-Responsibilities:
- No store access.
- No fuzzy or semantic matching.

Invariant:
Classification is a fixed table lookup; it runs before any semantic path.
"""

import re
from dataclasses import dataclass
from typing import Dict, Optional, Sequence, Tuple

from poresolve.models import MISC_CHARGE_CODE, MISC_ITEM_CODE
from poresolve.normalize import normalize_sku, normalize_text, tokens


CHARGE_CODEBOOK: Dict[str, str] = {
    "SETUP": "Setup charges",
    "48-RUSH": "Rush charges",
    "EC": "Extra charges",
    "P": "Proof charges",
    "PROOF": "Proof charges",
    "FREIGHT": "Freight charges",
    "RUN-CHARGE": "Run charges",
    "LTM": "Less than minimum charges",
    "LESS-THAN-MIN": "Less than minimum charges",
    "MIN-FEE": "Minimum fee charges",
    MISC_CHARGE_CODE: "Miscellaneous charges",
}

# Raw SKU spellings that mean a codebook entry
SKU_ALIASES: Dict[str, str] = {
    "SET UP": "SETUP",
    "SET-UP": "SETUP",
}

# Ordered (all-of phrases, code, needs charge context). First match wins.
# Phrases match whole words; hyphens and spaces inside a phrase are interchangeable.
DESCRIPTION_PHRASES: Tuple[Tuple[Tuple[str, ...], str, bool], ...] = (
    (("less", "minimum"), "LTM", False),
    (("ltm fee",), "LTM", False),
    (("setup",), "SETUP", False),
    (("set up",), "SETUP", False),
    (("run charge",), "RUN-CHARGE", False),
    (("rush", "48"), "48-RUSH", False),
    (("rush", "hour"), "48-RUSH", False),
    (("freight",), "FREIGHT", False),
    (("proof",), "PROOF", False),
    # Recognisably a charge, but no specific code. These words also name
    # products ("shipping tote"), so the line must read as a charge.
    (("shipping",), MISC_CHARGE_CODE, True),
    (("s & h",), MISC_CHARGE_CODE, True),
    (("handling",), MISC_CHARGE_CODE, True),
    (("pms match",), MISC_CHARGE_CODE, True),
)

CHARGE_WORDS = frozenset({"charge", "charges", "fee", "fees", "cost", "costs"})

# Tokens a bare charge line may consist of
CHARGE_FILLER = frozenset({"shipping", "handling", "s", "h", "&", "s&h", "and", "pms", "match", "only"})

CHARGE_REASON_PREFIX = "charge_"

COLOR_CODES: Dict[str, str] = {
    "white": "00",
    "black": "06",
    "clear": "CL",
    "red": "RD",
    "blue": "BL",
    "green": "GR",
}


@dataclass(frozen=True)
class ChargeMatch:
    code: str
    label: str
    source: str  # "token" or "phrase"
    evidence: str

    @property
    def placeholder(self) -> bool:
        return self.code == MISC_CHARGE_CODE

    def reason(self) -> str:
        return f"{CHARGE_REASON_PREFIX}{self.source}: {self.evidence}"


def charge_reason(reasons: Sequence[str]) -> Optional[str]:
    """The charge classification recorded among a result's reasons, if any."""
    for reason in reasons:
        if reason.startswith(CHARGE_REASON_PREFIX) and ": " in reason:
            return reason
    return None


def _phrase_pattern(phrase: str) -> "re.Pattern":
    body = r"[\s-]*".join(re.escape(part) for part in phrase.split())
    # Allow "proofs", "charges"; digits may run into units ("48hr")
    tail = r"(?![0-9])" if phrase[-1].isdigit() else r"s?(?![a-z0-9])"
    return re.compile(r"(?<![a-z0-9])" + body + tail)


_PATTERNS: Dict[str, "re.Pattern"] = {
    phrase: _phrase_pattern(phrase)
    for phrases, _, _ in DESCRIPTION_PHRASES
    for phrase in phrases
}


def _reads_as_charge(text: str) -> bool:
    words = set(tokens(text))
    return bool(words & CHARGE_WORDS) or words <= CHARGE_FILLER


def analyze_description(description: Optional[str]) -> Optional[Tuple[str, str]]:
    """Return (code, matched phrase) for a charge-like description."""
    text = normalize_text(description)
    if not text:
        return None
    for phrases, code, needs_context in DESCRIPTION_PHRASES:
        if not all(_PATTERNS[p].search(text) for p in phrases):
            continue
        if needs_context and not _reads_as_charge(text):
            continue
        return code, " + ".join(phrases)
    return None


def color_code(color: Optional[str]) -> Optional[str]:
    """Catalog colour code for a colour name, or a code given directly."""
    text = normalize_text(color)
    if not text:
        return None
    if text in COLOR_CODES:
        return COLOR_CODES[text]
    upper = text.upper()
    if upper in COLOR_CODES.values():
        return upper
    return None


class ChargeCodebook:
    """Charge token and phrase tables."""

    def __init__(self, codebook: Optional[Dict[str, str]] = None):
        self.codebook = dict(CHARGE_CODEBOOK if codebook is None else codebook)

    def canonical_sku(self, sku: Optional[str]) -> Optional[str]:
        token = normalize_sku(sku)
        if token is None:
            return None
        return SKU_ALIASES.get(token, token)

    def classify(self, sku: Optional[str], description: Optional[str]) -> Optional[ChargeMatch]:
        """
        Classify one line.

        An explicit codebook token wins. A blank SKU or the OE-MISC-CHARGE
        placeholder falls back to the description phrases.
        """
        token = self.canonical_sku(sku)
        if token == MISC_ITEM_CODE:
            return None

        if token is not None and token in self.codebook and token != MISC_CHARGE_CODE:
            return ChargeMatch(token, self.codebook[token], "token", token)

        if token is None or token == MISC_CHARGE_CODE:
            analyzed = analyze_description(description)
            if analyzed is not None:
                code, evidence = analyzed
                return ChargeMatch(code, self.codebook.get(code, "Charge"), "phrase", evidence)
            if token == MISC_CHARGE_CODE:
                return ChargeMatch(token, self.codebook[token], "token", token)

        return None
