"""Billing-cycle calculations.

Credit cards close and fall due on the same day of every month. When the due
day is earlier in the month than the closing day, the due date belongs to the
month after closing (close Oct 28, due Nov 22). Days that do not exist in a
month (31 in April, 30 in February) are clamped to the month's last day.
"""

import logging
from calendar import monthrange
from datetime import date, timedelta
from decimal import Decimal
from typing import Iterable

from cardtruth.parsers.dates import add_months
from cardtruth.schemas.billing import CycleInfo, GracePeriod, PeriodDue
from cardtruth.schemas.statement import InstallmentPlan
from cardtruth.schemas.transaction import LedgerTransaction, TransactionType

logger = logging.getLogger(__name__)

MIN_USUAL_GRACE_DAYS = 15
MAX_USUAL_GRACE_DAYS = 35
# Tolerance (days) between the due date and closing + grace before falling back to due - grace.
CLOSING_DRIFT_DAYS = 2

_CHARGE_TYPES = {TransactionType.PURCHASE, TransactionType.FEE, TransactionType.INTEREST, TransactionType.INSTALLMENT}


def clamped_date(year: int, month: int, day: int) -> date:
    """``date(year, month, day)`` with the day clamped to the month's length."""
    year += (month - 1) // 12
    month = (month - 1) % 12 + 1
    return date(year, month, min(day, monthrange(year, month)[1]))


def _check_day(name: str, day: int) -> None:
    if not 1 <= day <= 31:
        raise ValueError(f"{name} must be between 1 and 31, got {day}")


def calculate_grace_period(closing_day: int, due_day: int, reference: date | None = None) -> GracePeriod:
    """Grace period between a statement closing and its payment due date.

    Args:
        closing_day: Day of month the statement closes (1-31, clamped per month)
        due_day: Day of month payment is due (1-31, clamped per month)
        reference: Any date in the closing month (defaults to today)

    Returns:
        GracePeriod; ``warning`` is set when the grace is outside 15-35 days

    Example:
        >>> calculate_grace_period(5, 2, date(2025, 11, 1)).due_date
        datetime.date(2025, 12, 2)
    """
    _check_day("closing_day", closing_day)
    _check_day("due_day", due_day)
    reference = reference or date.today()

    closing = clamped_date(reference.year, reference.month, closing_day)
    if due_day < closing_day:
        due = clamped_date(reference.year, reference.month + 1, due_day)
    else:
        due = clamped_date(reference.year, reference.month, due_day)

    grace_days = (due - (closing + timedelta(days=1))).days
    warning = None
    if not MIN_USUAL_GRACE_DAYS <= grace_days <= MAX_USUAL_GRACE_DAYS:
        warning = f"Grace period is {grace_days} days, which seems unusual. Most cards have 20-30 days."
    return GracePeriod(closing_date=closing, due_date=due, grace_days=grace_days, warning=warning)


def next_due_dates(due_day: int, n: int = 2, today: date | None = None) -> list[date]:
    """The next ``n`` due dates strictly after ``today``."""
    _check_day("due_day", due_day)
    today = today or date.today()

    dates: list[date] = []
    offset = 0
    while len(dates) < n:
        candidate = clamped_date(today.year, today.month + offset, due_day)
        if candidate > today and candidate not in dates:
            dates.append(candidate)
        offset += 1
    return dates


def _is_payment_to(tx: LedgerTransaction, card_name: str | None) -> bool:
    """A payment credited to the card; entries without a target account count for any card."""
    if tx.type != TransactionType.PAYMENT:
        return False
    return card_name is None or tx.account is None or tx.account == card_name


def is_due_paid(
    card_name: str | None,
    due_date: date,
    transactions: Iterable[LedgerTransaction],
    previous_due_date: date | None = None,
) -> bool:
    """Whether a payment to the card landed in ``(previous due, due]``.

    Args:
        card_name: Card the payment must target
        due_date: Due date being checked
        transactions: Ledger entries
        previous_due_date: Prior due date (one month before ``due_date`` by default)
    """
    previous_due_date = previous_due_date or add_months(due_date, -1)
    return any(
        _is_payment_to(tx, card_name) and previous_due_date < tx.transaction_date <= due_date
        for tx in transactions
    )


def compute_current_cycle(closing_day: int, today: date | None = None, grace_days: int = 25) -> CycleInfo:
    """The billing cycle containing ``today``.

    The cycle closes on ``closing_day`` this month, or next month once this
    month's closing date has passed; it starts the day after the previous
    closing date.
    """
    _check_day("closing_day", closing_day)
    today = today or date.today()

    closing = clamped_date(today.year, today.month, closing_day)
    if closing < today:
        closing = clamped_date(today.year, today.month + 1, closing_day)
    previous_closing = clamped_date(closing.year, closing.month - 1, closing_day)

    return CycleInfo(
        period_start=previous_closing + timedelta(days=1),
        period_end=closing,
        due_date=closing + timedelta(days=grace_days),
    )


def billing_window_for_due(due_date: date, closing_day: int, due_day: int) -> tuple[date, date]:
    """Billing window (start, close) whose statement is paid on ``due_date``."""
    grace = calculate_grace_period(closing_day, due_day, reference=add_months(due_date, -1))

    if due_day < closing_day:
        close = clamped_date(due_date.year, due_date.month - 1, closing_day)
    else:
        close = clamped_date(due_date.year, due_date.month, closing_day)

    expected_due = close + timedelta(days=grace.grace_days + 1)
    if abs((due_date - expected_due).days) > CLOSING_DRIFT_DAYS:
        close = due_date - timedelta(days=grace.grace_days + 1)

    previous_close = clamped_date(close.year, close.month - 1, closing_day)
    return previous_close + timedelta(days=1), close


def payment_due_for_period(
    card_name: str | None,
    due_date: date,
    closing_day: int,
    due_day: int,
    transactions: Iterable[LedgerTransaction],
    plans: Iterable[InstallmentPlan] | None = None,
) -> PeriodDue:
    """Amount owed on ``due_date`` according to the ledger.

    Charges inside the billing window plus installment charges, minus
    payments made after closing and up to the due date; never negative.
    When ``plans`` are given their monthly charges are added and synthetic
    installment entries in the ledger are skipped.

    Returns:
        PeriodDue with the window and the charge/payment breakdown
    """
    start, close = billing_window_for_due(due_date, closing_day, due_day)
    plan_list = [plan for plan in plans or () if plan.remaining_payments is None or plan.remaining_payments > 0]

    charges = Decimal("0")
    payments = Decimal("0")
    for tx in transactions:
        if tx.type in _CHARGE_TYPES and start <= tx.transaction_date <= close:
            if plan_list and tx.is_synthetic:
                continue
            charges += tx.amount
        elif _is_payment_to(tx, card_name) and close < tx.transaction_date <= due_date:
            payments += tx.amount

    installment_charges = sum((plan.monthly_charge for plan in plan_list), Decimal("0"))
    amount_due = max(Decimal("0"), charges + installment_charges - payments)

    logger.debug(
        "Payment due computed",
        extra={
            "period_start": start.isoformat(),
            "period_end": close.isoformat(),
            "plans": len(plan_list),
            "amount_due": str(amount_due),
        },
    )
    return PeriodDue(
        period_start=start,
        period_end=close,
        due_date=due_date,
        charges=charges,
        installment_charges=installment_charges,
        payments=payments,
        amount_due=amount_due,
    )
