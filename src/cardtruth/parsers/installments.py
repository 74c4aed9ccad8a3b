"""Installment plan extraction.

Two tiers, applied in order; the first non-empty result wins:

1. Explicit installment sections ("Plan It", "Flex Pay", "Meses sin
   intereses", ...), parsed block by block.
2. Inference from recurring transaction lines with a stable amount and a
   monthly cadence.
"""

import hashlib
import logging
import re
from dataclasses import dataclass
from datetime import date, timedelta
from decimal import ROUND_HALF_UP, Decimal

from cardtruth.parsers.dates import parse_date
from cardtruth.parsers.money import MONEY_PATTERN, parse_amount
from cardtruth.schemas.statement import CanonicalStatement, InstallmentPlan
from cardtruth.schemas.transaction import LedgerTransaction, TransactionType

logger = logging.getLogger(__name__)

SECTION_HEADER_RE = re.compile(
    r"installment\s*(?:summary|plans?)|\bplan\s*it\b|flex\s*pay|equal\s*payment\s*plans?|\bmsi\b|"
    r"meses\s*sin\s*intereses|\bfinancing\b|payment\s*plans?|plan\s*de\s*pagos|pagos?\s*a\s*plazos|"
    r"compras\s*a\s*meses",
    re.IGNORECASE,
)
SECTION_END_RE = re.compile(
    r"^(?:account|transactions?\b|summary|total|resumen|movimientos|payments\b|"
    r"payment\s+(?:information|history|due|and))",
    re.IGNORECASE,
)
ALL_CAPS_HEADING_RE = re.compile(r"^[A-Z][A-Z\s]+$")
GENERIC_HEADING_RE = re.compile(
    r"(?:(?:installment|plan\s*it|flex\s*pay|equal\s*payment)\s*(?:summary|plans?|details?)|"
    r"payment\s*plans?|plan\s*de\s*pagos|pagos?\s*a\s*plazos|compras\s*a\s*meses|"
    r"meses\s*sin\s*intereses|msi|financing)",
    re.IGNORECASE,
)

AMOUNT = rf"(?P<amount>{MONEY_PATTERN})"
_IN_LINE_AMOUNT = re.compile(r"\d[\d,]*\.\d{2}\b")

ATTRIBUTE_LINE_RE = re.compile(
    r"^(?:monthly|remaining|plan\s+apr|apr\b|term\b|plazo|pago|mensualidad|cuota|meses|saldo|balance|"
    r"installment\s+amount|payment\s+\d|tasa)",
    re.IGNORECASE,
)

MONTHLY_CHARGE_PATTERNS = [
    re.compile(
        rf"(?:monthly\s+(?:charge|payment|installment)|installment\s+amount|pago\s+mensual|mensualidad|cuota)"
        rf"\s*[:\s]*{AMOUNT}",
        re.IGNORECASE,
    ),
    re.compile(rf"(?:payment|pago)\s*[:\s]*{AMOUNT}(?!\s*(?:of|de)\b)", re.IGNORECASE),
]
REMAINING_PAYMENTS_PATTERNS = [
    re.compile(
        r"(?:remaining\s+payments?|payments?\s+remaining|meses\s+restantes?|pagos\s+restantes?)\s*[:\s]*(\d{1,3})\b",
        re.IGNORECASE,
    ),
    re.compile(r"\b(\d{1,3})\s*(?:payments?|meses|pagos)\s*(?:remaining|left|restantes?)", re.IGNORECASE),
]
PAYMENT_N_OF_M_RE = re.compile(r"(?:payment|pago|cuota)\s+(\d{1,3})\s+(?:of|de)\s+(\d{1,3})", re.IGNORECASE)
TERM_PATTERNS = [
    re.compile(r"(?:term|plazo)\s*[:\s]*(\d{1,3})\b", re.IGNORECASE),
    re.compile(r"\b(\d{1,3})\s*(?:msi|meses\s+sin\s+intereses)", re.IGNORECASE),
    re.compile(r"\b(\d{1,3})[\s-]*months?\s+(?:plan|term)", re.IGNORECASE),
]
REMAINING_PRINCIPAL_PATTERNS = [
    re.compile(
        rf"(?:remaining\s+(?:balance|principal)|saldo\s+(?:remanente|pendiente|restante)|"
        rf"unpaid\s+balance)\s*[:\s]*{AMOUNT}",
        re.IGNORECASE,
    ),
    re.compile(rf"(?:balance|saldo)\s*[:\s]*{AMOUNT}", re.IGNORECASE),
]
PLAN_APR_PATTERNS = [
    re.compile(r"(?:plan\s+apr|apr|tasa(?:\s+del\s+plan)?)\s*[:\s]*(\d{1,2}(?:[.,]\d{1,2})?)\s?%", re.IGNORECASE),
    re.compile(r"(\d{1,2}(?:[.,]\d{1,2})?)\s?%\s*(?:APR|tasa)", re.IGNORECASE),
]

TRANSACTION_LINE_RE = re.compile(
    r"^(?P<date>\d{1,2}[/.-]\d{1,2}(?:[/.-]\d{2,4})?)"
    r"(?:\s+\d{1,2}[/.-]\d{1,2}(?:[/.-]\d{2,4})?)?"
    r"\s+(?P<description>.+?)\s+"
    r"(?P<amount>-?\s?(?:(?:USD|MXN|EUR|GBP)\s?)?-?[\d,]+\.\d{2})$"
)

EXPLICIT_CONFIDENCE = 0.90
INFERRED_BASE_CONFIDENCE = 0.6
INFERRED_BONUS = 0.1
INFERRED_CAP = 0.8
AMOUNT_TOLERANCE = Decimal("0.10")
MONTHLY_GAP_DAYS = (25, 35)
CENT = Decimal("0.01")


def generate_plan_id(issuer: str | None, card_last4: str | None, descriptor: str, monthly_charge: Decimal) -> str:
    """Stable plan id: ``plan_`` + first 16 hex chars of SHA-256 of the plan identity."""
    identity = f"{issuer or 'Unknown'}|{card_last4 or '0000'}|{descriptor}|{Decimal(monthly_charge).quantize(CENT)}"
    return "plan_" + hashlib.sha256(identity.encode("utf-8")).hexdigest()[:16]


def normalize_description(description: str) -> str:
    """Lowercase, drop punctuation and digits, collapse whitespace."""
    text = re.sub(r"[^\w\s]|\d|_", "", description.lower())
    return re.sub(r"\s+", " ", text).strip()


@dataclass
class _Occurrence:
    description: str
    amount: Decimal
    posted: date | None


class InstallmentExtractor:
    """Finds installment plans in statement text or in a ledger.

    Example:
        >>> plans = InstallmentExtractor().extract(normalized_text, statement)
        >>> [(p.descriptor, p.monthly_charge, p.source) for p in plans]
        [('Plan It - MacBook Pro', Decimal('150.00'), 'statement')]
    """

    def extract(
        self,
        text: str,
        statement: CanonicalStatement | None = None,
        infer: bool = True,
    ) -> list[InstallmentPlan]:
        """Extract plans: explicit sections first, inference as the fallback.

        Args:
            text: Normalized statement text
            statement: Statement being built (issuer, card and period feed plan ids and dates)
            infer: Allow the inference tier

        Returns:
            List of InstallmentPlan (possibly empty)
        """
        statement = statement or CanonicalStatement()
        plans = self.extract_explicit(text, statement)
        if not plans and infer:
            plans = self.infer_from_text(text, statement)
        logger.debug(
            "Installment plans extracted",
            extra={"plans": len(plans), "source": plans[0].source if plans else None},
        )
        return plans

    # ----------------------------------------------------------------- explicit

    def extract_explicit(self, text: str, statement: CanonicalStatement) -> list[InstallmentPlan]:
        lines = text.split("\n")
        plans: list[InstallmentPlan] = []
        i = 0
        while i < len(lines):
            line = lines[i].strip()
            if SECTION_HEADER_RE.search(line) and not _IN_LINE_AMOUNT.search(line):
                content, end = self._section_content(lines, i)
                for block in self._split_blocks(line, content):
                    plan = self._parse_block(block, statement)
                    if plan is not None:
                        plans.append(plan)
                i = end + 1
                continue
            i += 1
        return plans

    @staticmethod
    def _section_content(lines: list[str], start: int) -> tuple[list[str], int]:
        content: list[str] = []
        end = start
        for i in range(start + 1, len(lines)):
            line = lines[i].strip()
            if not line:
                following = lines[i + 1].strip() if i + 1 < len(lines) else ""
                if ALL_CAPS_HEADING_RE.match(following):
                    break
                continue
            if SECTION_END_RE.match(line):
                break
            content.append(line)
            end = i
        return content, end

    @staticmethod
    def _split_blocks(header: str, content: list[str]) -> list[list[str]]:
        """Split a section into plan blocks; each title line starts a new block."""
        blocks: list[list[str]] = []
        current: list[str] = []
        for line in content:
            is_title = not ATTRIBUTE_LINE_RE.match(line) and not re.search(r"\d", line)
            if is_title and current:
                blocks.append(current)
                current = []
            current.append(line)
        if current:
            blocks.append(current)

        # A section header that names the plan ("Plan It - MacBook Pro") titles a headless single block.
        header_title = _descriptor_from_line(header)
        if len(blocks) == 1 and header_title and _descriptor_from_line(blocks[0][0]) is None:
            blocks[0] = [header] + blocks[0]
        return blocks

    def _parse_block(self, block: list[str], statement: CanonicalStatement) -> InstallmentPlan | None:
        content = " ".join(block)
        descriptor = _descriptor_from_line(block[0]) or "Installment Plan"

        monthly = _first_amount(MONTHLY_CHARGE_PATTERNS, content)
        principal = _first_amount(REMAINING_PRINCIPAL_PATTERNS, content)
        remaining = _first_int(REMAINING_PAYMENTS_PATTERNS, content)
        term = _first_int(TERM_PATTERNS, content)
        elapsed = None

        n_of_m = PAYMENT_N_OF_M_RE.search(content)
        if n_of_m:
            elapsed, term = int(n_of_m.group(1)), term or int(n_of_m.group(2))
        if term and remaining is None and elapsed is not None:
            remaining = max(term - elapsed, 0)
        if term and elapsed is None and remaining is not None and remaining <= term:
            elapsed = term - remaining

        if monthly is None and remaining is None and principal is None:
            return None
        if monthly is None:
            monthly = (principal / remaining).quantize(CENT, ROUND_HALF_UP) if principal and remaining else Decimal("0")

        apr = None
        for pattern in PLAN_APR_PATTERNS:
            match = pattern.search(content)
            if match:
                apr = Decimal(match.group(1).replace(",", "."))
                break

        return InstallmentPlan(
            id=generate_plan_id(statement.issuer, statement.card_last4, descriptor, monthly),
            descriptor=descriptor,
            term_months=term if term and term >= 1 else None,
            months_elapsed=elapsed,
            remaining_payments=remaining,
            monthly_charge=monthly,
            remaining_principal=principal,
            apr=apr,
            source="statement",
            confidence=EXPLICIT_CONFIDENCE,
        )

    # ---------------------------------------------------------------- inference

    def infer_from_text(self, text: str, statement: CanonicalStatement) -> list[InstallmentPlan]:
        """Infer plans from ``date description amount`` transaction lines."""
        reference = statement.statement_period_end or date.today()
        occurrences = []
        for line in text.split("\n"):
            match = TRANSACTION_LINE_RE.match(line.strip())
            if not match:
                continue
            amount = parse_amount(match.group("amount"))
            description = match.group("description").strip()
            if amount is None or amount <= 0 or not 3 < len(description) < 100:
                continue
            occurrences.append(_Occurrence(description, amount, _line_date(match.group("date"), reference)))
        return self._infer(occurrences, statement.issuer, statement.card_last4)

    def infer_from_transactions(
        self,
        transactions: list[LedgerTransaction],
        issuer: str | None = None,
        card_last4: str | None = None,
    ) -> list[InstallmentPlan]:
        """Infer plans from ledger transactions (payments are ignored)."""
        occurrences = [
            _Occurrence(tx.description, tx.amount, tx.transaction_date)
            for tx in transactions
            if tx.type != TransactionType.PAYMENT and tx.amount > 0 and tx.description and not tx.is_synthetic
        ]
        return self._infer(occurrences, issuer, card_last4)

    def _infer(
        self, occurrences: list[_Occurrence], issuer: str | None, card_last4: str | None
    ) -> list[InstallmentPlan]:
        groups: dict[str, list[_Occurrence]] = {}
        for occurrence in occurrences:
            key = normalize_description(occurrence.description)
            if key:
                groups.setdefault(key, []).append(occurrence)

        plans = []
        for group in groups.values():
            plan = self._analyze_group(group, issuer, card_last4)
            if plan is not None:
                plans.append(plan)
        return plans

    @staticmethod
    def _analyze_group(
        group: list[_Occurrence], issuer: str | None, card_last4: str | None
    ) -> InstallmentPlan | None:
        if len(group) < 2:
            return None

        amounts = [occurrence.amount for occurrence in group]
        mean = sum(amounts) / len(amounts)
        if mean <= 0 or any(abs(amount - mean) / mean >= AMOUNT_TOLERANCE for amount in amounts):
            return None

        dates = sorted(occurrence.posted for occurrence in group if occurrence.posted is not None)
        monthly = False
        if len(dates) >= 2:
            low, high = MONTHLY_GAP_DAYS
            gaps = [(later - earlier).days for earlier, later in zip(dates, dates[1:])]
            if any(gap < low or gap > high for gap in gaps):
                return None
            monthly = True

        confidence = INFERRED_BASE_CONFIDENCE + INFERRED_BONUS
        if monthly:
            confidence += INFERRED_BONUS
        if len(group) >= 3:
            confidence += INFERRED_BONUS
        confidence = round(min(confidence, INFERRED_CAP), 4)

        descriptor = group[0].description
        charge = mean.quantize(CENT, ROUND_HALF_UP)
        return InstallmentPlan(
            id=generate_plan_id(issuer, card_last4, descriptor, charge),
            descriptor=descriptor,
            monthly_charge=charge,
            source="inferred",
            confidence=confidence,
        )


def _descriptor_from_line(line: str) -> str | None:
    """Text before the first figure of a title-like line, or None for attribute lines."""
    if ATTRIBUTE_LINE_RE.match(line):
        return None
    head = re.split(r"\d|\b(?:USD|MXN|EUR|GBP)\b", line, maxsplit=1)[0].strip(" \t-–:|")
    if len(head) < 3 or GENERIC_HEADING_RE.fullmatch(head):
        return None
    return head


def _first_amount(patterns: list[re.Pattern], content: str) -> Decimal | None:
    for pattern in patterns:
        for match in pattern.finditer(content):
            amount = parse_amount(match.group("amount"))
            if amount is not None and amount > 0:
                return amount
    return None


def _first_int(patterns: list[re.Pattern], content: str) -> int | None:
    for pattern in patterns:
        match = pattern.search(content)
        if match:
            return int(match.group(1))
    return None


def _line_date(token: str, reference: date) -> date | None:
    """Parse a transaction date; year-less ``MM/DD`` dates take the reference year."""
    if re.fullmatch(r"\d{1,2}[/.-]\d{1,2}", token):
        sep = re.search(r"[/.-]", token).group(0)
        parsed = parse_date(f"{token}{sep}{reference.year}")
        if parsed and parsed > reference + timedelta(days=31):
            parsed = parse_date(f"{token}{sep}{reference.year - 1}")
        return parsed
    return parse_date(token)
