"""Ranked extraction rules for canonical statement fields.

Rules are evaluated in list order per field; the first rule that yields a
parseable value wins. Each pattern captures the value in a ``value`` group.
A rule scores from its own confidence, capped at the default base of its
match type, so fuzzy and inferred rules never outrank exact labels.
"""

import re
from dataclasses import dataclass, field

from cardtruth.analysis.confidence import BASE_CONFIDENCE
from cardtruth.parsers.dates import DATE_PATTERN
from cardtruth.parsers.money import MONEY_PATTERN
from cardtruth.schemas.fields import FieldName, Language, MatchType, ValueKind

# Label/value separator: colon, spaces, dot leaders, at most one line break.
LABEL_GAP = r"[ \t:.]*\n?[ \t:]*"

# Not a percentage and not the start of a numeric date.
AMOUNT_CAPTURE = rf"(?P<value>-?\s?{MONEY_PATTERN})(?![\d.,]*\s?%)(?![\d.,]*/)"
DATE_CAPTURE = rf"(?P<value>{DATE_PATTERN})"
PERCENT_CAPTURE = r"(?P<value>\d{1,2}(?:[.,]\d{1,3})?)\s?%"

_CAPTURES = {
    ValueKind.MONEY: AMOUNT_CAPTURE,
    ValueKind.DATE: DATE_CAPTURE,
}


@dataclass(frozen=True)
class ExtractionRule:
    """One labelled pattern for one field."""

    field: FieldName
    pattern: str
    confidence: float
    match_type: MatchType = MatchType.EXACT
    language: Language = Language.AUTO  # AUTO: applies to both languages
    kind: ValueKind = ValueKind.MONEY
    description: str = ""
    regex: re.Pattern = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        object.__setattr__(self, "regex", re.compile(self.pattern, re.IGNORECASE))

    @property
    def base_confidence(self) -> float:
        """Rule confidence, capped at the default base of its match type."""
        return min(self.confidence, BASE_CONFIDENCE[self.match_type])


def labelled(
    field_name: FieldName,
    label: str,
    confidence: float,
    language: Language,
    kind: ValueKind = ValueKind.MONEY,
    match_type: MatchType = MatchType.EXACT,
    description: str = "",
) -> ExtractionRule:
    """Build a ``label <gap> value`` rule."""
    pattern = rf"\b(?:{label}){LABEL_GAP}{_CAPTURES[kind]}"
    return ExtractionRule(field_name, pattern, confidence, match_type, language, kind, description)


def apr_rule(field_name: FieldName, subject: str, language: Language, description: str) -> ExtractionRule:
    """Build an APR rule: a subject word, a rate label, then a percentage."""
    if language == Language.ES:
        label = rf"(?:tasa|TAE|CAT)[^\n%]{{0,30}}?(?:{subject})[^\d\n]{{0,15}}"
    else:
        label = rf"\b(?:{subject})[^\n%\d]{{0,20}}?(?:APR|annual\s+percentage\s+rate|rate)[^\d\n]{{0,10}}"
    return ExtractionRule(
        field_name, label + PERCENT_CAPTURE, 0.80, MatchType.EXACT, language, ValueKind.PERCENT, description
    )


EN, ES, BOTH = Language.EN, Language.ES, Language.AUTO

EXTRACTION_RULES: list[ExtractionRule] = [
    # Statement balance
    labelled(FieldName.STATEMENT_BALANCE, r"(?:new|current|statement|total)\s+balance", 0.95, EN,
             description="New/Current/Statement Balance"),
    labelled(FieldName.STATEMENT_BALANCE,
             r"nuevo\s+saldo|saldo\s+nuevo|saldo\s+actual|saldo\s+del\s+estado|saldo\s+total|saldo\s+al\s+corte",
             0.95, ES, description="Nuevo Saldo"),
    labelled(FieldName.STATEMENT_BALANCE, r"balance", 0.80, BOTH, match_type=MatchType.FUZZY,
             description="Generic balance"),
    # Minimum due
    labelled(FieldName.MINIMUM_DUE,
             r"minimum\s+payment\s+due|minimum\s+due|minimum\s+amount\s+due|min(?:imum)?\.?\s+payment|"
             r"minimum\s+amount|required\s+payment",
             0.95, EN, description="Minimum Payment Due"),
    labelled(FieldName.MINIMUM_DUE,
             r"pago\s+m[íi]nimo|m[íi]nimo\s+a\s+pagar|monto\s+m[íi]nimo|pago\s+requerido|pago\s+obligatorio",
             0.95, ES, description="Pago Mínimo"),
    # Payment due date
    labelled(FieldName.PAYMENT_DUE_DATE, r"payment\s+due\s+date|due\s+date|payment\s+due|pay\s+by",
             0.95, EN, ValueKind.DATE, description="Payment Due Date"),
    labelled(FieldName.PAYMENT_DUE_DATE,
             r"fecha\s+de\s+vencim\.\s*del\s+pago|fecha\s+l[íi]mite\s+de\s+pago|fecha\s+de\s+vencimiento|"
             r"fecha\s+de\s+vencim|vencimiento\s+del\s+pago|fecha\s+de\s+pago",
             0.95, ES, ValueKind.DATE, description="Fecha de Vencimiento"),
    # Previous balance
    labelled(FieldName.PREVIOUS_BALANCE, r"previous\s+balance|prior\s+balance|beginning\s+balance",
             0.90, EN, description="Previous Balance"),
    labelled(FieldName.PREVIOUS_BALANCE, r"saldo\s+anterior|saldo\s+previo|saldo\s+inicial",
             0.90, ES, description="Saldo Anterior"),
    # Payments and credits
    labelled(FieldName.PAYMENTS_AND_CREDITS,
             r"payments?,?\s*(?:and|&)?\s*(?:other\s+)?credits?|credits?\s*(?:and|&)?\s*payments?|payments?\s+received",
             0.90, EN, description="Payments and Credits"),
    labelled(FieldName.PAYMENTS_AND_CREDITS, r"pagos?\s*y\s*abonos?|abonos?\s*y\s*pagos?|pagos?\s+recibidos?",
             0.90, ES, description="Pagos y Abonos"),
    # Purchases
    labelled(FieldName.PURCHASES,
             r"purchases?(?:\s+and\s+(?:other\s+)?(?:adjustments|charges))?|new\s+charges?|debits?",
             0.85, EN, description="Purchases"),
    labelled(FieldName.PURCHASES, r"compras?(?:\s+y\s+cargos)?|cargos?\s+nuevos?|d[ée]bitos?",
             0.85, ES, description="Compras"),
    # Fees
    labelled(FieldName.FEES,
             r"(?:total\s+)?fees?\s+charged|late\s+fees?|annual\s+fees?|service\s+fees?|overlimit\s+fees?|fees?",
             0.85, EN, description="Fees"),
    labelled(FieldName.FEES,
             r"comisiones?|cargo\s+por\s+servicio|cargo\s+anual|cargo\s+por\s+atraso",
             0.85, ES, description="Comisiones"),
    # Interest
    labelled(FieldName.INTEREST,
             r"(?:total\s+)?interest\s+charged?|interest\s+charges?|finance\s+charges?|interest",
             0.85, EN, description="Interest"),
    labelled(FieldName.INTEREST, r"cargos\s+por\s+intereses?|cargos\s+financieros?|intereses?",
             0.85, ES, description="Intereses"),
    # Cash advances
    labelled(FieldName.CASH_ADVANCES, r"cash\s+advances?|cash\s+withdrawals?", 0.80, EN,
             description="Cash Advances"),
    labelled(FieldName.CASH_ADVANCES, r"disposiciones?\s+en\s+efectivo|avances?\s+en\s+efectivo|retiros?\s+en\s+efectivo",
             0.80, ES, description="Avances en Efectivo"),
    # Credit limit
    labelled(FieldName.CREDIT_LIMIT, r"(?:total\s+)?credit\s+(?:limit|line)", 0.90, EN, description="Credit Limit"),
    labelled(FieldName.CREDIT_LIMIT, r"l[íi]mite\s+de\s+cr[ée]dito", 0.90, ES, description="Límite de Crédito"),
    # Available credit
    labelled(FieldName.AVAILABLE_CREDIT, r"available\s+credit(?:\s+line)?|credit\s+available", 0.90, EN,
             description="Available Credit"),
    labelled(FieldName.AVAILABLE_CREDIT, r"cr[ée]dito\s+disponible", 0.90, ES, description="Crédito Disponible"),
    # Statement closing date
    labelled(FieldName.STATEMENT_PERIOD_END,
             r"statement\s+closing\s+date|closing\s+date|statement\s+date|period\s+ending|period\s+end(?:\s+date)?",
             0.95, EN, ValueKind.DATE, description="Statement Date"),
    labelled(FieldName.STATEMENT_PERIOD_END,
             r"fecha\s+de\s+corte|fecha\s+de\s+cierre|fecha\s+de\s+estado|periodo\s+terminando",
             0.95, ES, ValueKind.DATE, description="Fecha de Corte"),
    # APRs
    apr_rule(FieldName.APR_PURCHASE, r"purchases?", EN, "Purchase APR"),
    apr_rule(FieldName.APR_PURCHASE, r"compras?", ES, "Tasa de compras"),
    apr_rule(FieldName.APR_CASH, r"cash(?:\s+advances?)?", EN, "Cash APR"),
    apr_rule(FieldName.APR_CASH, r"disposiciones?|efectivo", ES, "Tasa de efectivo"),
    apr_rule(FieldName.APR_INSTALLMENT, r"installments?|plan\s+it|flex\s+pay", EN, "Installment APR"),
    apr_rule(FieldName.APR_INSTALLMENT, r"meses|plazos", ES, "Tasa de meses"),
]

# Statement period ranges: "Statement Period 10/01/2024 - 10/31/2024", "del 01/10/2024 al 31/10/2024"
PERIOD_RANGE_RE = re.compile(
    rf"\b(?:statement\s+period|billing\s+period|billing\s+cycle|opening/closing\s+date|"
    rf"periodo(?:\s+de\s+facturaci[óo]n)?|per[íi]odo(?:\s+de\s+facturaci[óo]n)?)"
    rf"{LABEL_GAP}(?:del\s+|from\s+)?(?P<start>{DATE_PATTERN})\s*(?:-|–|to|through|thru|al|a)\s*(?P<end>{DATE_PATTERN})",
    re.IGNORECASE,
)


def rules_for(
    field_name: FieldName,
    language: Language = Language.AUTO,
    rules: list[ExtractionRule] | None = None,
) -> list[ExtractionRule]:
    """Return the ranked rules for ``field_name`` applicable to ``language``.

    ``Language.AUTO`` keeps every rule; a concrete language keeps rules for
    that language plus the language-neutral ones.
    """
    return [
        rule
        for rule in (rules if rules is not None else EXTRACTION_RULES)
        if rule.field == field_name
        and (language == Language.AUTO or rule.language in (language, Language.AUTO))
    ]


def rule_fields(rules: list[ExtractionRule] | None = None) -> list[FieldName]:
    """Fields covered by ``rules`` in first-seen order."""
    seen: list[FieldName] = []
    for rule in rules if rules is not None else EXTRACTION_RULES:
        if rule.field not in seen:
            seen.append(rule.field)
    return seen
