"""Sanity checks on extracted statements and installment plans.

Validation produces human-readable messages; only a statement with no
critical field at all is rejected outright.
"""

import logging
from decimal import Decimal

from cardtruth.core.exceptions import ValidationError
from cardtruth.schemas.statement import CanonicalStatement, InstallmentPlan

logger = logging.getLogger(__name__)

GENERIC_DESCRIPTOR = "Installment Plan"
MIN_PLAN_CONFIDENCE = 0.3
MAX_PLAN_TERM = 60


def validate_statement(statement: CanonicalStatement) -> list[str]:
    """Validate an extracted statement.

    Args:
        statement: Canonical statement after confidence analysis

    Returns:
        List of validation messages (empty when everything checks out)

    Raises:
        ValidationError: When balance, minimum and due date are all absent
    """
    if len(statement.missing_critical_fields) == 3:
        logger.warning("Statement has no critical fields", extra={"issuer": statement.issuer})
        raise ValidationError(details={"missing": [field.value for field in statement.missing_critical_fields]})

    messages: list[str] = []
    balance = statement.statement_balance
    minimum = statement.minimum_due

    if balance is None or balance <= 0:
        messages.append("Statement balance is missing or invalid")
    if minimum is None or minimum <= 0:
        messages.append("Minimum payment is missing or invalid")
    if statement.payment_due_date is None:
        messages.append("Payment due date is missing")

    if balance is not None and minimum is not None and balance > 0 and minimum > balance:
        messages.append("Minimum payment exceeds statement balance")
    if balance is not None and statement.credit_limit and balance > statement.credit_limit:
        messages.append("Statement balance exceeds credit limit")

    for number, plan in enumerate(statement.installment_plans, start=1):
        if plan.descriptor == GENERIC_DESCRIPTOR:
            messages.append(f"Installment plan {number} has no descriptor")
        if plan.monthly_charge <= 0:
            messages.append(f"Installment plan {number} has invalid monthly charge")

    return messages


def validate_inferred_plans(plans: list[InstallmentPlan]) -> list[InstallmentPlan]:
    """Drop inferred plans with implausible values."""
    valid = []
    for plan in plans:
        if plan.monthly_charge <= 0:
            continue
        if plan.remaining_payments is not None and not 1 <= plan.remaining_payments <= MAX_PLAN_TERM:
            continue
        if plan.term_months is not None and not 1 <= plan.term_months <= MAX_PLAN_TERM:
            continue
        if plan.confidence < MIN_PLAN_CONFIDENCE:
            continue
        valid.append(plan)

    if len(valid) < len(plans):
        logger.info("Discarded implausible inferred plans", extra={"discarded": len(plans) - len(valid)})
    return valid


def check_plan_guards(plans: list[InstallmentPlan], statement: CanonicalStatement | None = None) -> list[str]:
    """Warnings for plans that contradict each other or the statement."""
    warnings = []
    for plan in plans:
        if plan.remaining_principal is not None and plan.remaining_principal < 0:
            warnings.append(
                f'Installment plan "{plan.descriptor}" has negative remaining principal: '
                f"${plan.remaining_principal:.2f}"
            )

    if statement is not None and statement.minimum_due is not None and plans:
        total = sum((plan.monthly_charge for plan in plans), Decimal("0"))
        if total > statement.minimum_due:
            warnings.append(
                f"Installment charges (${total:.2f}) exceed the minimum due (${statement.minimum_due:.2f})"
            )
    return warnings
