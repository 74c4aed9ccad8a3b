"""Date parsing helpers with a bilingual month table.

Supported formats:
    - MM/DD/YYYY, MM-DD-YY, MM.DD.YYYY (month first unless the first part > 12)
    - YYYY-MM-DD
    - October 31, 2024 / Oct 31 2024
    - 31 October 2024 / 31-Oct-24 / 31 de octubre de 2024
"""

import re
from calendar import monthrange
from datetime import date

MONTHS: dict[str, int] = {
    # English
    "january": 1, "jan": 1,
    "february": 2, "feb": 2,
    "march": 3, "mar": 3,
    "april": 4, "apr": 4,
    "may": 5,
    "june": 6, "jun": 6,
    "july": 7, "jul": 7,
    "august": 8, "aug": 8,
    "september": 9, "sept": 9, "sep": 9,
    "october": 10, "oct": 10,
    "november": 11, "nov": 11,
    "december": 12, "dec": 12,
    # Spanish
    "enero": 1, "ene": 1,
    "febrero": 2,
    "marzo": 3,
    "abril": 4, "abr": 4,
    "mayo": 5,
    "junio": 6,
    "julio": 7,
    "agosto": 8, "ago": 8,
    "septiembre": 9, "setiembre": 9, "set": 9,
    "octubre": 10,
    "noviembre": 11,
    "diciembre": 12, "dic": 12,
}

_MONTH_ALTERNATION = "|".join(sorted(MONTHS, key=len, reverse=True))

DATE_PATTERN = (
    r"\d{4}-\d{1,2}-\d{1,2}"
    r"|\d{1,2}[/.-]\d{1,2}[/.-]\d{2,4}"
    rf"|(?:{_MONTH_ALTERNATION})\b\.?\s+\d{{1,2}},?\s*\d{{4}}"
    rf"|\d{{1,2}}(?:\s+de)?[\s-]+(?:{_MONTH_ALTERNATION})\b\.?(?:,?\s+de|,)?[\s-]+\d{{2,4}}"
)

DATE_RE = re.compile(DATE_PATTERN, re.IGNORECASE)

_ISO = re.compile(r"^(\d{4})-(\d{1,2})-(\d{1,2})$")
_NUMERIC = re.compile(r"^(\d{1,2})[/.-](\d{1,2})[/.-](\d{2,4})$")
_MONTH_FIRST = re.compile(r"^([A-Za-z]+)\.?\s+(\d{1,2}),?\s*(\d{4})$")
_DAY_FIRST = re.compile(r"^(\d{1,2})(?:\s+de)?[\s-]+([A-Za-z]+)\.?(?:,?\s+de|,)?[\s-]+(\d{2,4})$", re.IGNORECASE)


def expand_year(year: int) -> int:
    """Expand a 2-digit year (< 50 -> 2000s, otherwise 1900s)."""
    if year < 100:
        return year + (2000 if year < 50 else 1900)
    return year


def parse_date(text: str | None, day_first: bool = False) -> date | None:
    """Parse the first date found in ``text``.

    Args:
        text: Text containing a date
        day_first: Read numeric dates as DD/MM instead of MM/DD

    Returns:
        Parsed date, or None when no valid date is present
    """
    if not text:
        return None

    match = DATE_RE.search(str(text))
    if not match:
        return None
    return _parse_token(match.group(0).strip(), day_first)


def _parse_token(token: str, day_first: bool) -> date | None:
    match = _ISO.match(token)
    if match:
        return _safe_date(int(match.group(1)), int(match.group(2)), int(match.group(3)))

    match = _NUMERIC.match(token)
    if match:
        first, second, year = (int(part) for part in match.groups())
        if len(match.group(3)) == 3:
            return None
        month, day = (second, first) if day_first else (first, second)
        if month > 12 and day <= 12:
            month, day = day, month
        return _safe_date(expand_year(year), month, day)

    match = _MONTH_FIRST.match(token)
    if match:
        month = MONTHS.get(match.group(1).lower())
        if month is None:
            return None
        return _safe_date(int(match.group(3)), month, int(match.group(2)))

    match = _DAY_FIRST.match(token)
    if match:
        month = MONTHS.get(match.group(2).lower())
        if month is None or len(match.group(3)) == 3:
            return None
        return _safe_date(expand_year(int(match.group(3))), month, int(match.group(1)))

    return None


def _safe_date(year: int, month: int, day: int) -> date | None:
    try:
        return date(year, month, day)
    except ValueError:
        return None


def add_months(day: date, months: int) -> date:
    """Shift ``day`` by whole months, clamping the day to the target month's length."""
    index = day.year * 12 + (day.month - 1) + months
    year, month = divmod(index, 12)
    month += 1
    return date(year, month, min(day.day, monthrange(year, month)[1]))
