"""Canonical field extraction from normalized statement text."""

import logging
import re
from datetime import date
from decimal import Decimal, InvalidOperation

from cardtruth.analysis.confidence import calculate_confidence
from cardtruth.parsers.dates import parse_date
from cardtruth.parsers.money import find_currency, parse_amount
from cardtruth.parsers.rules import (
    EXTRACTION_RULES,
    PERIOD_RANGE_RE,
    ExtractionRule,
    rule_fields,
    rules_for,
)
from cardtruth.schemas.fields import FieldName, Language, ValueKind
from cardtruth.schemas.statement import CanonicalStatement, IssuerDetection

logger = logging.getLogger(__name__)

CARD_LAST4_PATTERNS: list[re.Pattern] = [
    re.compile(r"(?:account|card)\s*(?:number|no\.?|#)\s*[:\s]*(?:[\dxX*•]{4}[\s-]?){3}(\d{4})\b", re.IGNORECASE),
    re.compile(r"(?:ending|ends)\s+in\s*[:\s]*(?:[xX*•]+\s?)?(\d{4})\b", re.IGNORECASE),
    re.compile(r"terminad[ao]\s+en\s*[:\s]*(?:[xX*•]+\s?)?(\d{4})\b", re.IGNORECASE),
    re.compile(r"terminaci[óo]n\s*[:\s]*(?:[xX*•]+\s?)?(\d{4})\b", re.IGNORECASE),
    re.compile(r"(?:[xX*•]{2,}[\s-]?)+(\d{4})\b"),
]

CARD_LAST4_CONFIDENCE = 0.90
CURRENCY_SEEN_CONFIDENCE = 0.90
CURRENCY_DEFAULT_CONFIDENCE = 0.60
PERIOD_RANGE_CONFIDENCE = 0.90
DERIVED_AVAILABLE_CREDIT_CAP = 0.60

MAX_AMOUNT = Decimal("10000000")
MIN_YEAR, MAX_YEAR = 2000, 2100

# Balances may legitimately be negative (credit balance); other amounts are magnitudes.
SIGNED_FIELDS = {FieldName.STATEMENT_BALANCE, FieldName.PREVIOUS_BALANCE}


def extract_card_last4(text: str) -> str | None:
    """Return the last four digits of the card number, when printed."""
    for pattern in CARD_LAST4_PATTERNS:
        match = pattern.search(text or "")
        if match:
            return match.group(1)
    return None


class FieldExtractor:
    """Applies the ranked rule table to normalized text.

    For each field the rules are tried in rank order and the first one that
    yields a parseable value wins. Its confidence starts from the rule's
    base, gains a bonus when the rule language matches the detected language
    and loses a penalty when the pattern found conflicting values.
    """

    def __init__(self, rules: list[ExtractionRule] | None = None):
        self._rules = rules if rules is not None else EXTRACTION_RULES

    def extract(self, text: str, detection: IssuerDetection | None = None) -> CanonicalStatement:
        """Extract canonical fields.

        Args:
            text: Normalized statement text
            detection: Issuer/language detection for the same text

        Returns:
            CanonicalStatement with a confidence entry for every present field
        """
        detection = detection or IssuerDetection()
        statement = CanonicalStatement()
        day_first = detection.language == Language.ES

        for field in rule_fields(self._rules):
            self._extract_field(text, field, detection.language, day_first, statement)

        self._extract_period_range(text, day_first, statement)
        self._extract_card_info(text, detection, statement)
        self._derive_fields(statement)

        logger.debug(
            "Fields extracted",
            extra={"fields": len(statement.field_confidence), "language": detection.language.value},
        )
        return statement

    def _extract_field(
        self,
        text: str,
        field: FieldName,
        language: Language,
        day_first: bool,
        statement: CanonicalStatement,
    ) -> None:
        for rule in rules_for(field, language, self._rules):
            values = []
            for match in rule.regex.finditer(text):
                value = self._convert(rule, field, match.group("value"), day_first)
                if value is not None:
                    values.append(value)
            if not values:
                continue

            confidence = calculate_confidence(
                rule.base_confidence,
                context_match=language != Language.AUTO and rule.language == language,
                multiple_matches=len(set(values)) > 1,
            )
            statement.set_field(field, values[0], confidence)
            return

    @staticmethod
    def _convert(rule: ExtractionRule, field: FieldName, token: str, day_first: bool):
        if rule.kind == ValueKind.MONEY:
            amount = parse_amount(token)
            if amount is None or abs(amount) > MAX_AMOUNT:
                return None
            return amount if field in SIGNED_FIELDS else abs(amount)

        if rule.kind == ValueKind.DATE:
            parsed = parse_date(token, day_first=day_first)
            if parsed is None or not MIN_YEAR <= parsed.year <= MAX_YEAR:
                return None
            return parsed

        try:
            rate = Decimal(token.replace(",", "."))
        except InvalidOperation:
            return None
        return rate if Decimal("0") < rate <= Decimal("100") else None

    @staticmethod
    def _extract_period_range(text: str, day_first: bool, statement: CanonicalStatement) -> None:
        for match in PERIOD_RANGE_RE.finditer(text):
            start = parse_date(match.group("start"), day_first=day_first)
            end = parse_date(match.group("end"), day_first=day_first)
            if start is None or end is None or start >= end:
                continue
            statement.set_field(FieldName.STATEMENT_PERIOD_START, start, PERIOD_RANGE_CONFIDENCE)
            if not statement.has(FieldName.STATEMENT_PERIOD_END):
                statement.set_field(FieldName.STATEMENT_PERIOD_END, end, PERIOD_RANGE_CONFIDENCE)
            return

    @staticmethod
    def _extract_card_info(text: str, detection: IssuerDetection, statement: CanonicalStatement) -> None:
        last4 = extract_card_last4(text)
        if last4:
            statement.set_field(FieldName.CARD_LAST4, last4, CARD_LAST4_CONFIDENCE)

        currency = find_currency(text)
        if currency:
            statement.set_field(FieldName.CURRENCY, currency, CURRENCY_SEEN_CONFIDENCE)
        else:
            statement.set_field(FieldName.CURRENCY, "USD", CURRENCY_DEFAULT_CONFIDENCE)

        if detection.issuer:
            statement.set_field(FieldName.ISSUER, detection.issuer, detection.confidence)

    @staticmethod
    def _derive_fields(statement: CanonicalStatement) -> None:
        period_end: date | None = statement.statement_period_end
        if period_end is not None:
            statement.set_field(
                FieldName.CLOSING_DAY,
                min(period_end.day, 28),
                statement.confidence_of(FieldName.STATEMENT_PERIOD_END) or 0.0,
            )

        limit = statement.credit_limit
        balance = statement.statement_balance
        if limit is not None and balance is not None and statement.available_credit is None:
            confidence = min(
                DERIVED_AVAILABLE_CREDIT_CAP,
                statement.confidence_of(FieldName.CREDIT_LIMIT) or 0.0,
                statement.confidence_of(FieldName.STATEMENT_BALANCE) or 0.0,
            )
            statement.set_field(FieldName.AVAILABLE_CREDIT, limit - balance, confidence)
            statement.warnings.append("Available credit derived from credit limit and statement balance")
