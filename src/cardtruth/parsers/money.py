"""Money parsing helpers.

Statements mix US grouping (``1,074.43``), European grouping
(``1.074,43``) and bare amounts (``45``). ``parse_amount`` decides which
separator is the decimal point from the digit grouping and never raises on
bad input.
"""

import re
from decimal import Decimal, InvalidOperation

# Currency prefix, optional sign, grouped or bare digits, optional 1-2 decimals.
MONEY_PATTERN = (
    r"(?:(?:USD|MXN|EUR|GBP|US\$|MX\$|[$€£¥])\s?)?-?\s?"
    r"(?:\d{1,3}(?:[.,]\d{3})+|\d+)(?:[.,]\d{1,2})?"
)

MONEY_RE = re.compile(MONEY_PATTERN)

_CURRENCY_TOKENS = re.compile(
    r"(?i)US\$|MX\$|\b(?:USD|MXN|EUR|GBP|M\.?N\.?|pesos|dollars|euros)\b|[$€£¥₹]"
)
_DEBIT_CREDIT_MARKERS = re.compile(r"(?i)\b(?:cr|dr)\b")
_DIGITS_AND_SEPARATORS = re.compile(r"^\d[\d.,]*$")

# Ordered: more specific currencies are checked before the generic "$".
_CURRENCY_HINTS: list[tuple[str, re.Pattern]] = [
    ("MXN", re.compile(r"(?i)\bMXN\b|MX\$|\bpesos\b|\bM\.N\.")),
    ("EUR", re.compile(r"(?i)€|\bEUR\b|\beuros?\b")),
    ("GBP", re.compile(r"(?i)£|\bGBP\b|\bpounds?\b")),
    ("USD", re.compile(r"(?i)\$|\bUSD\b|\bdollars?\b")),
]


def parse_amount(text: str | None) -> Decimal | None:
    """Parse an amount string into a Decimal.

    Handles:
        - $1,074.43 (US grouping)
        - 1.074,43 (European grouping)
        - 45 (bare integer)
        - (1,234.56) and -1,234.56 (negatives)
        - trailing CR/DR markers (stripped)

    Args:
        text: Amount string

    Returns:
        Amount as Decimal, or None if the text holds no parseable amount
    """
    if text is None:
        return None

    raw = _DEBIT_CREDIT_MARKERS.sub("", str(text)).strip()
    if not raw:
        return None

    negative = False
    if raw.startswith("(") and raw.endswith(")"):
        negative = True
        raw = raw[1:-1].strip()

    raw = _CURRENCY_TOKENS.sub("", raw).strip()
    if raw.endswith("-"):
        negative = True
        raw = raw[:-1].strip()
    if raw.startswith("-"):
        negative = True
        raw = raw[1:].strip()
    elif raw.startswith("+"):
        raw = raw[1:].strip()

    raw = re.sub(r"\s+", "", raw).rstrip(".")
    if not _DIGITS_AND_SEPARATORS.match(raw):
        return None

    normalized = _normalize_separators(raw)
    if normalized is None:
        return None

    try:
        value = Decimal(normalized)
    except InvalidOperation:
        return None

    return -value if negative else value


def _normalize_separators(raw: str) -> str | None:
    """Rewrite a digits-and-separators token to a plain ``1234.56`` form."""
    has_dot = "." in raw
    has_comma = "," in raw

    if has_dot and has_comma:
        # The rightmost separator is the decimal point.
        decimal_sep = "." if raw.rfind(".") > raw.rfind(",") else ","
        thousands_sep = "," if decimal_sep == "." else "."
        whole, _, fraction = raw.rpartition(decimal_sep)
        if decimal_sep in whole or not fraction:
            return None
        groups = whole.split(thousands_sep)
        if any(len(group) != 3 for group in groups[1:]):
            return None
        return "".join(groups) + "." + fraction

    sep = "," if has_comma else "." if has_dot else None
    if sep is None:
        return raw

    parts = raw.split(sep)
    if len(parts) > 2:
        # 1,234,567 or 1.234.567: repeated separators can only be grouping.
        if all(len(part) == 3 for part in parts[1:]):
            return "".join(parts)
        return None

    whole, fraction = parts
    if not whole or not fraction:
        return None
    if sep == "," and len(fraction) == 3:
        return whole + fraction
    return whole + "." + fraction


def find_amount(text: str) -> Decimal | None:
    """Return the first parseable amount found anywhere in ``text``."""
    for match in MONEY_RE.finditer(text or ""):
        value = parse_amount(match.group(0))
        if value is not None:
            return value
    return None


def find_currency(text: str) -> str | None:
    """Return the ISO code of the first currency hint found, or None."""
    if not text:
        return None
    for code, pattern in _CURRENCY_HINTS:
        if pattern.search(text):
            return code
    return None


def detect_currency(text: str) -> str:
    """Map currency symbols and names in ``text`` to an ISO code (default USD)."""
    return find_currency(text) or "USD"
