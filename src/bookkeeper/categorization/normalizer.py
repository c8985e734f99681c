"""
Merchant string normalization.

Bank feeds decorate merchant names with processor markers, store
numbers, dates and locations ("SQ *BLUE BOTTLE #0123 OAKLAND CA").
`normalize_merchant` reduces them to a canonical uppercase token string
("BLUE BOTTLE OAKLAND") used as the matching and grouping key.

The function is deterministic and idempotent: normalizing an already
normalized string returns it unchanged.
"""
import re
from typing import List, Optional

UNKNOWN_MERCHANT = "UNKNOWN"

# Point-of-sale / mobile payment / card processor markers, matched at the start.
_PROCESSOR_PREFIX = re.compile(
    r"^(?:"
    r"SQ\s*\*|TST\s*\*|SP\s*\*|PP\s*\*|IC\s*\*|PAYPAL\s*\*|DD\s*\*|"
    r"POS\s+(?:DEBIT|PURCHASE|WITHDRAWAL)\b|POS\b|"
    r"DEBIT\s+CARD\s+PURCHASE\b|CHECKCARD\b|CHECK\s+CARD\b|"
    r"PURCHASE\s+AUTHORIZED\s+ON\s+\d{1,2}/\d{1,2}\b|"
    r"RECURRING\s+PAYMENT\b|ACH\s+(?:DEBIT|PAYMENT)\b|"
    r"APPLE\s*PAY\b|GOOGLE\s*PAY\b|VENMO\s*\*"
    r")\s*"
)

# Removed without leaving a gap so "PG&E" and "MCDONALD'S" stay one token.
_JOINING_PUNCTUATION = re.compile(r"['’.&]")
_SEPARATORS = re.compile(r"[^A-Z0-9\s]")
_WHITESPACE = re.compile(r"\s+")

LEGAL_SUFFIXES = frozenset({
    "INC", "LLC", "CORP", "CORPORATION", "CO", "LTD", "COMPANY",
    "LP", "LLP", "PLC", "INCORPORATED",
})

US_STATE_CODES = frozenset({
    "AL", "AK", "AZ", "AR", "CA", "CO", "CT", "DE", "DC", "FL", "GA", "HI",
    "ID", "IL", "IN", "IA", "KS", "KY", "LA", "ME", "MD", "MA", "MI", "MN",
    "MS", "MO", "MT", "NE", "NV", "NH", "NJ", "NM", "NY", "NC", "ND", "OH",
    "OK", "OR", "PA", "RI", "SC", "SD", "TN", "TX", "UT", "VT", "VA", "WA",
    "WV", "WI", "WY",
})

_MIN_LENGTH = 2


def _is_reference_token(token: str) -> bool:
    """Store numbers, reference ids and the like: four or more digits."""
    return sum(ch.isdigit() for ch in token) >= 4


def _is_trailing_noise(token: str) -> bool:
    return token.isdigit() or token in US_STATE_CODES or token in LEGAL_SUFFIXES


def _strip_once(value: str) -> str:
    previous = None
    while previous != value:
        previous = value
        value = _PROCESSOR_PREFIX.sub("", value, count=1)

    value = _JOINING_PUNCTUATION.sub("", value)
    value = _SEPARATORS.sub(" ", value)

    tokens: List[str] = [t for t in value.split() if not _is_reference_token(t)]

    # Dates, store numbers, state codes and legal suffixes trail the name.
    while len(tokens) > 1 and _is_trailing_noise(tokens[-1]):
        tokens.pop()

    return " ".join(tokens)


def normalize_merchant(raw: Optional[str]) -> str:
    """
    Canonicalize a raw merchant or description string.

    Args:
        raw: Raw merchant/description text, may be None

    Returns:
        Uppercase token string, or "UNKNOWN" for empty input.

    Example:
        >>> normalize_merchant("SQ *Blue Bottle Coffee #0123 Oakland CA")
        'BLUE BOTTLE COFFEE OAKLAND'
    """
    if raw is None or not raw.strip():
        return UNKNOWN_MERCHANT

    original = _WHITESPACE.sub(" ", raw.upper()).strip()

    # Stripping can expose a new prefix or suffix; iterate to a fixed point.
    value = original
    while True:
        stripped = _strip_once(value)
        if stripped == value:
            break
        value = stripped

    if len(value) < _MIN_LENGTH:
        return original

    return value
