"""Closed vocabularies shared by extraction, scoring and merging."""

from enum import Enum


class FieldName(str, Enum):
    """Extractable canonical statement fields."""

    STATEMENT_BALANCE = "statement_balance"
    MINIMUM_DUE = "minimum_due"
    PAYMENT_DUE_DATE = "payment_due_date"
    PREVIOUS_BALANCE = "previous_balance"
    PAYMENTS_AND_CREDITS = "payments_and_credits"
    PURCHASES = "purchases"
    FEES = "fees"
    INTEREST = "interest"
    CASH_ADVANCES = "cash_advances"
    CREDIT_LIMIT = "credit_limit"
    AVAILABLE_CREDIT = "available_credit"
    STATEMENT_PERIOD_START = "statement_period_start"
    STATEMENT_PERIOD_END = "statement_period_end"
    CLOSING_DAY = "closing_day"
    APR_PURCHASE = "apr_purchase"
    APR_CASH = "apr_cash"
    APR_INSTALLMENT = "apr_installment"
    CARD_LAST4 = "card_last4"
    ISSUER = "issuer"
    CURRENCY = "currency"


class MatchType(str, Enum):
    """How a value was located in the text."""

    EXACT = "exact"
    FUZZY = "fuzzy"
    INFERRED = "inferred"


class Language(str, Enum):
    """Statement language tag."""

    EN = "en"
    ES = "es"
    AUTO = "auto"


class ValueKind(str, Enum):
    """Parser used to convert a matched token."""

    MONEY = "money"
    DATE = "date"
    PERCENT = "percent"


CRITICAL_FIELDS: tuple[FieldName, ...] = (
    FieldName.STATEMENT_BALANCE,
    FieldName.MINIMUM_DUE,
    FieldName.PAYMENT_DUE_DATE,
)

IMPORTANT_FIELDS: tuple[FieldName, ...] = (
    FieldName.PREVIOUS_BALANCE,
    FieldName.PURCHASES,
    FieldName.FEES,
    FieldName.INTEREST,
)


def field_weight(field: FieldName) -> int:
    """Weight of a field in the aggregate confidence (critical 3, important 2, other 1)."""
    if field in CRITICAL_FIELDS:
        return 3
    if field in IMPORTANT_FIELDS:
        return 2
    return 1
