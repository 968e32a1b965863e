# ABOUTME: Labeled-field primitives for "Label: value" and "Label = value" message lines
# ABOUTME: Lenient lookups that return None instead of raising on missing or malformed input

import re
from decimal import Decimal, InvalidOperation
from functools import lru_cache

_LEADING_INT = re.compile(r"[+-]?\d[\d,]*")
_AMOUNT = re.compile(r"\$?\s*([0-9][0-9,]*(?:\.[0-9]+)?)")


@lru_cache(maxsize=256)
def label_pattern(label: str) -> re.Pattern[str]:
    """Compile the pattern for one label.

    The label is matched literally and case-insensitively at a word boundary,
    followed by ':' or '='. The value runs to the end of the line.
    """
    prefix = r"\b" if label[:1].isalnum() else ""
    return re.compile(prefix + re.escape(label) + r"\s*[:=][ \t]*([^\r\n]*)", re.IGNORECASE)


def find_field(text: str, *labels: str, start: int = 0) -> str | None:
    """Return the value of whichever label occurs first in the text.

    Duplicate lines resolve to the earliest occurrence. Labels matching at the
    same position resolve in argument order.
    """
    matches = [m for m in (label_pattern(label).search(text, start) for label in labels) if m]
    if not matches:
        return None
    return min(matches, key=lambda m: m.start()).group(1).strip()


def find_field_after(text: str, header: str, label: str) -> str | None:
    """Return the nearest value for label following a section header line."""
    header_match = re.search(re.escape(header), text, re.IGNORECASE)
    if not header_match:
        return None
    return find_field(text, label, start=header_match.end())


def parse_int(value: str | None) -> int:
    """Leading integer of a value, thousands separators allowed. Anything else is 0."""
    if not value:
        return 0
    match = _LEADING_INT.match(value.strip())
    if not match:
        return 0
    try:
        return int(match.group(0).replace(",", ""))
    except ValueError:
        return 0


def parse_amount(value: str | None) -> Decimal | None:
    """Monetary value with currency sign and thousands separators stripped."""
    if not value:
        return None
    match = _AMOUNT.search(value)
    if not match:
        return None
    try:
        return Decimal(match.group(1).replace(",", ""))
    except InvalidOperation:
        return None


_MONEY = re.compile(
    r"(?:\$|\b(?:cost|amount|price|budget|total|estimate)\b[ \t]*[:=]?[ \t]*\$?)[ \t]*([0-9][0-9,]*(?:\.[0-9]+)?)",
    re.IGNORECASE,
)


def find_amounts(text: str) -> list[Decimal]:
    """Every currency-marked or cost-labeled amount in the text, in order of appearance."""
    amounts = []
    for match in _MONEY.finditer(text):
        amount = parse_amount(match.group(1))
        if amount is not None:
            amounts.append(amount)
    return amounts


def first_token(value: str | None) -> str | None:
    """First whitespace-delimited token of a value, or None when blank."""
    if not value:
        return None
    parts = value.split()
    return parts[0] if parts else None
