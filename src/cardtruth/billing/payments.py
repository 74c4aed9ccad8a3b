"""Installment and payment helpers.

Amounts owed on a card are split into three buckets: fees and interest,
installment charges billed this cycle, and the revolving balance. Payments
are applied to the buckets in that order.
"""

import logging
from datetime import date
from decimal import ROUND_HALF_UP, Decimal
from typing import Iterable

from cardtruth.config import Settings, get_settings
from cardtruth.parsers.dates import add_months
from cardtruth.schemas.billing import AmountsDue, InstallmentForecast, InstallmentSplit, PaymentAllocation
from cardtruth.schemas.statement import InstallmentPlan
from cardtruth.schemas.transaction import LedgerTransaction, TransactionType

logger = logging.getLogger(__name__)

CENT = Decimal("0.01")
REVOLVING_MIN_RATE = Decimal("0.01")
REVOLVING_MIN_FLOOR = Decimal("25")


def _cents(value: Decimal) -> Decimal:
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def active_plans(plans: Iterable[InstallmentPlan]) -> list[InstallmentPlan]:
    """Plans that still bill (unknown remaining payments count as active)."""
    return [plan for plan in plans if plan.remaining_payments is None or plan.remaining_payments > 0]


def compute_amounts_due(
    revolving_balance: Decimal,
    plans: Iterable[InstallmentPlan] = (),
    fees_interest: Decimal = Decimal("0"),
    statement_minimum: Decimal | None = None,
) -> AmountsDue:
    """Break down the amounts due for the current cycle.

    Args:
        revolving_balance: Balance outside installment plans
        plans: Installment plans on the card
        fees_interest: Fees and interest billed this cycle
        statement_minimum: Minimum printed on the statement, preferred when known

    Returns:
        AmountsDue; the revolving minimum is max(1% of the revolving balance,
        $25), never more than the revolving balance itself
    """
    installment_due = sum((plan.monthly_charge for plan in active_plans(plans)), Decimal("0"))
    revolving_balance = max(Decimal("0"), revolving_balance)
    revolving_min = min(max(revolving_balance * REVOLVING_MIN_RATE, REVOLVING_MIN_FLOOR), revolving_balance)

    minimum_due = statement_minimum
    if minimum_due is None:
        minimum_due = fees_interest + installment_due + revolving_min

    return AmountsDue(
        installment_due=_cents(installment_due),
        fees_interest=_cents(fees_interest),
        revolving_balance=_cents(revolving_balance),
        revolving_min=_cents(revolving_min),
        minimum_due=_cents(minimum_due),
        total_due=_cents(installment_due + revolving_balance),
    )


def allocate_payment(
    amount: Decimal,
    fees_interest: Decimal,
    installments_due: Decimal,
    revolving: Decimal,
) -> PaymentAllocation:
    """Apply a payment to fees/interest, then installments, then revolving.

    Whatever exceeds all three buckets is returned as ``unapplied`` (a credit
    balance on the card).
    """
    remaining = max(Decimal("0"), amount)
    applied = {}
    for bucket, owed in (("fees_interest", fees_interest), ("installments", installments_due), ("revolving", revolving)):
        portion = min(remaining, max(Decimal("0"), owed))
        applied[bucket] = portion
        remaining -= portion

    if remaining > 0:
        logger.info("Payment exceeds amounts owed", extra={"unapplied": str(remaining)})
    return PaymentAllocation(amount=amount, unapplied=remaining, **applied)


def split_installment_payment(
    total_payment: Decimal,
    minimum_due: Decimal,
    plans: Iterable[InstallmentPlan],
) -> InstallmentSplit:
    """Attribute a payment to installment plans first, in plan order.

    Each plan receives at most its monthly charge; the rest goes to the
    revolving balance.
    """
    remaining = max(Decimal("0"), total_payment)
    per_plan: dict[str, Decimal] = {}
    for plan in active_plans(plans):
        portion = min(remaining, plan.monthly_charge)
        per_plan[plan.id] = portion
        remaining -= portion

    installment_portion = sum(per_plan.values(), Decimal("0"))
    return InstallmentSplit(
        installment_portion=installment_portion,
        revolving_portion=remaining,
        per_plan=per_plan,
        covers_minimum=total_payment >= minimum_due,
    )


def synthetic_installment_transactions(
    plans: Iterable[InstallmentPlan],
    cycle_end: date,
    card_name: str | None = None,
    settings: Settings | None = None,
) -> list[LedgerTransaction]:
    """Ledger entries for installment charges billed at ``cycle_end``.

    Returns an empty list unless ``feature_synthetic_transactions`` is on.
    Entry ids are ``synthetic:{plan_id}:{cycle_end}`` so regenerating a cycle
    yields the same ids.
    """
    settings = settings or get_settings()
    if not settings.feature_synthetic_transactions:
        return []

    return [
        LedgerTransaction(
            id=f"synthetic:{plan.id}:{cycle_end.isoformat()}",
            transaction_date=cycle_end,
            amount=plan.monthly_charge,
            description=f"[Installment] {plan.descriptor}",
            type=TransactionType.INSTALLMENT,
            account=card_name,
        )
        for plan in active_plans(plans)
    ]


def forecast_installments(
    plans: Iterable[InstallmentPlan],
    months: int = 6,
    start: date | None = None,
) -> list[InstallmentForecast]:
    """Project installment charges over the next ``months`` cycles.

    Plans with a known number of remaining payments stop once those run out.
    """
    start = start or date.today()
    forecasts: list[InstallmentForecast] = []
    for plan in active_plans(plans):
        for offset in range(months):
            if plan.remaining_payments is not None and offset >= plan.remaining_payments:
                break
            payment_number = None
            if plan.months_elapsed is not None:
                payment_number = plan.months_elapsed + offset + 1
            forecasts.append(
                InstallmentForecast(
                    charge_date=add_months(start, offset),
                    amount=plan.monthly_charge,
                    plan_id=plan.id,
                    descriptor=plan.descriptor,
                    payment_number=payment_number,
                )
            )
    return sorted(forecasts, key=lambda forecast: (forecast.charge_date, forecast.plan_id))
