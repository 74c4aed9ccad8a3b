"""Quick-summary parser for pasted statement text (English and Spanish).

Users paste the few lines of their statement summary ("Minimum payment due
$35.00, due by Nov 2, 2025 ..."). The parser reads the three critical fields
plus the closing date and scores the result by critical-field coverage.
"""

import logging
import re
from datetime import date
from decimal import Decimal

from cardtruth.parsers.dates import parse_date
from cardtruth.parsers.money import parse_amount
from cardtruth.parsers.rules import AMOUNT_CAPTURE, DATE_CAPTURE, PERIOD_RANGE_RE
from cardtruth.schemas.ingestion import ParseResult
from cardtruth.schemas.layers import SummaryData

logger = logging.getLogger(__name__)

MAX_SUMMARY_AMOUNT = Decimal("1000000")
MIN_YEAR, MAX_YEAR = 2000, 2099
LOW_CONFIDENCE_WARNING = "Low confidence: Only partial data extracted"


def _patterns(*templates: str) -> list[re.Pattern]:
    return [
        re.compile(t.format(amount=AMOUNT_CAPTURE, date=DATE_CAPTURE), re.IGNORECASE) for t in templates
    ]


# Ordered per field: English first, then Spanish; specific labels before loose ones.
SUMMARY_PATTERNS: dict[str, list[re.Pattern]] = {
    "minimum_due": _patterns(
        r"(?:minimum\s*(?:payment\s*)?due|min\.?\s*(?:payment\s*)?due|minimum\s*payment)\s*[:\s]*{amount}",
        r"\bdue\s*[:\s]*{amount}",
        r"(?:pago\s*m[íi]nimo|m[íi]nimo\s*(?:a\s*)?pago)\s*[:\s]*{amount}",
        r"m[íi]nimo\s*[:\s]*{amount}",
    ),
    "due_date": _patterns(
        r"(?:payment\s*due\s*date|due\s*date|due\s*by|pay\s*by)\s*[:\s]*{date}",
        r"\bdue\s*(?:on\s*)?[:\s]*{date}",
        r"\bby\s*{date}",
        r"(?:fecha\s*l[íi]mite\s*de\s*pago|fecha\s*de\s*vencimiento|vencimiento)\s*[:\s]*{date}",
        r"para\s*el\s*{date}",
    ),
    "statement_balance": _patterns(
        r"(?:new|statement|current)\s*balance\s*[:\s]*{amount}",
        r"(?<!previous )\bbalance\s*[:\s]*{amount}",
        r"\b(?:new|current)\s*[:\s]*{amount}",
        r"(?:saldo\s*(?:al\s*corte|total|nuevo)|nuevo\s*saldo)\s*[:\s]*{amount}",
        r"\bsaldo\s*[:\s]*{amount}",
    ),
    "closing_date": _patterns(
        r"(?:statement\s*(?:closing\s*)?date|period\s*end(?:ing)?|closing\s*date)\s*[:\s]*{date}",
        r"(?:fecha\s*de\s*(?:corte|cierre)|periodo\s*de\s*corte)\s*[:\s]*{date}",
        r"\bcorte\s*[:\s]*{date}",
    ),
}

CRITICAL_SUMMARY_FIELDS = ("minimum_due", "due_date", "statement_balance")


class QuickSummaryParser:
    """Parses pasted summary text into a ParseResult.

    Example:
        >>> result = QuickSummaryParser().parse("New balance $2,074.43 Minimum due $35.00 due by 11/02/2025")
        >>> result.statement_balance, result.minimum_due, result.due_date
        (Decimal('2074.43'), Decimal('35.00'), datetime.date(2025, 11, 2))
    """

    def parse(self, text: str) -> ParseResult:
        """Parse pasted summary text.

        Args:
            text: Free-form pasted text

        Returns:
            ParseResult; ``confidence`` is matched critical fields / 3
        """
        clean = re.sub(r"\s+", " ", (text or "").strip())
        values: dict[str, object] = {}
        matched: list[str] = []

        closing_from_range = self._closing_from_period(clean)
        for field_name, patterns in SUMMARY_PATTERNS.items():
            if field_name == "closing_date" and closing_from_range is not None:
                values[field_name] = closing_from_range
                matched.append(field_name)
                continue
            for pattern in patterns:
                value = self._first_value(field_name, pattern, clean)
                if value is not None:
                    values[field_name] = value
                    matched.append(field_name)
                    break

        critical = sum(1 for field_name in CRITICAL_SUMMARY_FIELDS if field_name in matched)
        confidence = round(critical / len(CRITICAL_SUMMARY_FIELDS), 4)
        warnings = [LOW_CONFIDENCE_WARNING] if confidence < 0.5 else []

        logger.info(
            "Quick summary parsed",
            extra={"matched_fields": matched, "confidence": confidence, "text_length": len(clean)},
        )
        return ParseResult(**values, confidence=confidence, matched_fields=matched, warnings=warnings)

    @staticmethod
    def _first_value(field_name: str, pattern: re.Pattern, text: str):
        for match in pattern.finditer(text):
            token = match.group("value")
            if field_name in ("minimum_due", "statement_balance"):
                amount = parse_amount(token)
                if amount is not None and Decimal("0") <= amount <= MAX_SUMMARY_AMOUNT:
                    return amount
            else:
                parsed = parse_date(token)
                if parsed is not None and MIN_YEAR <= parsed.year <= MAX_YEAR:
                    return parsed
        return None

    @staticmethod
    def _closing_from_period(text: str) -> date | None:
        match = PERIOD_RANGE_RE.search(text)
        if not match:
            return None
        end = parse_date(match.group("end"))
        if end is None or not MIN_YEAR <= end.year <= MAX_YEAR:
            return None
        return end


def to_summary_data(result: ParseResult, source: str = "paste") -> SummaryData:
    """Convert a ParseResult into the ``L1_summary`` layer."""
    return SummaryData(
        minimum_due=result.minimum_due,
        due_date=result.due_date,
        statement_balance=result.statement_balance,
        closing_date=result.closing_date,
        confidence=result.confidence,
        source=source,
    )
