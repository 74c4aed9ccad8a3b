"""Confidence scoring for extracted statements.

Scores individual field matches, checks the statement balance equation and
date/amount plausibility, and decides whether the user must confirm the
extracted values before they are trusted.
"""

import logging
from decimal import Decimal

from cardtruth.schemas.confidence import BalanceCheck, ConfidenceAnalysis
from cardtruth.schemas.fields import CRITICAL_FIELDS, FieldName, MatchType, field_weight
from cardtruth.schemas.statement import CanonicalStatement

logger = logging.getLogger(__name__)

BASE_CONFIDENCE: dict[MatchType, float] = {
    MatchType.EXACT: 0.95,
    MatchType.FUZZY: 0.80,
    MatchType.INFERRED: 0.60,
}

CONTEXT_BONUS = 0.05
MULTIPLE_MATCH_PENALTY = 0.10

BALANCE_MISMATCH_FACTOR = 0.8
MISSING_CRITICAL_FACTOR = 0.7
MISSING_ISSUER_FACTOR = 0.9
DATE_INCONSISTENCY_FACTOR = 0.85
AMOUNT_INCONSISTENCY_FACTOR = 0.9

MISMATCHED_BALANCE_CAP = 0.6
CONFIRM_OVERALL_THRESHOLD = 0.7
CONFIRM_CRITICAL_THRESHOLD = 0.8
SERIOUS_WARNING_MARKERS = ("mismatch", "inconsistent", "invalid")

DATE_WARNING = "Date consistency issues detected"
AMOUNT_WARNING = "Amount inconsistencies detected"


def calculate_confidence(
    base: float | MatchType,
    context_match: bool = False,
    multiple_matches: bool = False,
) -> float:
    """Score one field match.

    Args:
        base: Rule confidence, or a match type whose default base is used
        context_match: The rule language matched the statement language (+0.05)
        multiple_matches: The pattern matched more than one distinct value (-0.10)

    Returns:
        Confidence clamped to [0, 1]
    """
    confidence = BASE_CONFIDENCE[base] if isinstance(base, MatchType) else float(base)
    if context_match:
        confidence += CONTEXT_BONUS
    if multiple_matches:
        confidence -= MULTIPLE_MATCH_PENALTY
    return round(max(0.0, min(1.0, confidence)), 4)


def validate_balance_equation(statement: CanonicalStatement) -> BalanceCheck:
    """Check previous - payments + purchases + fees + interest + cash advances.

    The equation is only checkable when both the previous and the new
    balance were extracted; otherwise the check passes vacuously.
    """
    actual = statement.statement_balance
    previous = statement.previous_balance
    if actual is None or previous is None:
        return BalanceCheck(valid=True, actual=actual)

    zero = Decimal("0")
    computed = (
        previous
        - (statement.payments_and_credits or zero)
        + (statement.purchases or zero)
        + (statement.fees or zero)
        + (statement.interest or zero)
        + (statement.cash_advances or zero)
    )
    difference = abs(computed - actual)
    threshold = max(Decimal("0.5"), Decimal("0.005") * abs(actual))

    if difference > threshold:
        return BalanceCheck(
            valid=False,
            computed=computed,
            actual=actual,
            difference=difference,
            threshold=threshold,
            warning=f"Balance equation mismatch: computed {computed:.2f}, actual {actual:.2f}",
        )
    return BalanceCheck(valid=True, computed=computed, actual=actual, difference=difference, threshold=threshold)


def check_date_consistency(statement: CanonicalStatement) -> bool:
    """Due date 10-45 days after the statement end; closing day within 1-28."""
    due = statement.payment_due_date
    end = statement.statement_period_end
    if due and end:
        gap = (due - end).days
        if gap < 10 or gap > 45:
            return False
    if statement.closing_day is not None and not 1 <= statement.closing_day <= 28:
        return False
    return True


def check_amount_consistency(statement: CanonicalStatement) -> bool:
    """Plausibility of balance, minimum, limit and available credit."""
    balance = statement.statement_balance
    minimum = statement.minimum_due
    limit = statement.credit_limit
    available = statement.available_credit

    if balance is not None and balance < 0:
        return False
    if balance and minimum is not None and balance > 0:
        ratio = minimum / balance
        if ratio < Decimal("0.005") or ratio > Decimal("0.5"):
            return False
    if limit and balance is not None and balance > limit * Decimal("1.1"):
        return False
    if limit and available is not None and balance is not None:
        if abs((limit - balance) - available) > 10:
            return False
    return True


class ConfidenceAnalyzer:
    """Aggregates field confidences into a statement-level assessment.

    Field weights: critical x3, important x2, everything else x1. The
    weighted mean is then multiplied by one penalty factor per failed
    quality check.
    """

    def analyze(self, statement: CanonicalStatement) -> tuple[CanonicalStatement, ConfidenceAnalysis]:
        """Analyze a statement.

        Args:
            statement: Statement produced by field extraction

        Returns:
            A copy of the statement with adjusted confidences, warnings and
            ``needs_user_confirm``, plus the ConfidenceAnalysis
        """
        result = statement.model_copy(deep=True)
        warnings = list(result.warnings)

        balance = validate_balance_equation(result)
        if not balance.valid:
            warnings.append(balance.warning)
            current = result.confidence_of(FieldName.STATEMENT_BALANCE)
            if current is not None:
                result.field_confidence[FieldName.STATEMENT_BALANCE] = min(current, MISMATCHED_BALANCE_CAP)

        field_confidence = dict(result.field_confidence)
        critical_present = all(field_confidence.get(field, 0.0) > 0.5 for field in CRITICAL_FIELDS)
        issuer_detected = bool(result.issuer) and result.issuer != "Unknown"

        date_ok = check_date_consistency(result)
        if not date_ok:
            warnings.append(DATE_WARNING)
        amount_ok = check_amount_consistency(result)
        if not amount_ok:
            warnings.append(AMOUNT_WARNING)

        overall = self._overall_confidence(field_confidence)
        if not balance.valid:
            overall *= BALANCE_MISMATCH_FACTOR
        if not critical_present:
            overall *= MISSING_CRITICAL_FACTOR
        if not issuer_detected:
            overall *= MISSING_ISSUER_FACTOR
        if not date_ok:
            overall *= DATE_INCONSISTENCY_FACTOR
        if not amount_ok:
            overall *= AMOUNT_INCONSISTENCY_FACTOR
        overall = round(max(0.0, min(1.0, overall)), 4)

        needs_confirm = self._needs_user_confirm(field_confidence, overall, warnings)

        result.warnings = list(dict.fromkeys(warnings))
        result.needs_user_confirm = needs_confirm

        analysis = ConfidenceAnalysis(
            overall_confidence=overall,
            field_confidence=field_confidence,
            critical_fields_present=critical_present,
            balance_equation_valid=balance.valid,
            date_consistency=date_ok,
            amount_consistency=amount_ok,
            warnings=result.warnings,
            needs_user_confirm=needs_confirm,
        )
        logger.info(
            "Statement confidence analyzed",
            extra={
                "overall_confidence": overall,
                "fields": len(field_confidence),
                "needs_user_confirm": needs_confirm,
            },
        )
        return result, analysis

    @staticmethod
    def _overall_confidence(field_confidence: dict[FieldName, float]) -> float:
        total_weight = 0
        weighted = 0.0
        for field, confidence in field_confidence.items():
            weight = field_weight(field)
            weighted += confidence * weight
            total_weight += weight
        return weighted / total_weight if total_weight else 0.0

    @staticmethod
    def _needs_user_confirm(
        field_confidence: dict[FieldName, float], overall: float, warnings: list[str]
    ) -> bool:
        if overall < CONFIRM_OVERALL_THRESHOLD:
            return True
        critical_mean = sum(field_confidence.get(field, 0.0) for field in CRITICAL_FIELDS) / len(CRITICAL_FIELDS)
        if critical_mean < CONFIRM_CRITICAL_THRESHOLD:
            return True
        return any(marker in warning.lower() for warning in warnings for marker in SERIOUS_WARNING_MARKERS)


def generate_confidence_report(analysis: ConfidenceAnalysis) -> str:
    """Render a human-readable confidence report."""

    def flag(ok: bool) -> str:
        return "yes" if ok else "NO"

    lines = [
        "=== Statement Confidence Analysis ===",
        f"Overall Confidence: {analysis.overall_confidence * 100:.1f}%",
        "",
        "Quality Factors:",
        f"  Balance Equation Valid: {flag(analysis.balance_equation_valid)}",
        f"  Critical Fields Present: {flag(analysis.critical_fields_present)}",
        f"  Date Consistency: {flag(analysis.date_consistency)}",
        f"  Amount Consistency: {flag(analysis.amount_consistency)}",
        "",
        "Field Confidences:",
    ]
    for field, confidence in analysis.field_confidence.items():
        status = "ok" if confidence >= 0.8 else "review" if confidence >= 0.6 else "low"
        lines.append(f"  {field.value}: {confidence * 100:.1f}% ({status})")
    lines.append("")

    if analysis.warnings:
        lines.append("Warnings:")
        lines.extend(f"  - {warning}" for warning in analysis.warnings)
        lines.append("")

    lines.append(f"User Confirmation Required: {'Yes' if analysis.needs_user_confirm else 'No'}")
    return "\n".join(lines)
