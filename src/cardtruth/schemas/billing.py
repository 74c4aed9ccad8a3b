"""Billing-cycle and payment schemas."""

from datetime import date
from decimal import Decimal

from pydantic import BaseModel, Field


class GracePeriod(BaseModel):
    """Closing date, due date and the grace period between them."""

    closing_date: date
    due_date: date
    grace_days: int = Field(..., description="Days from the day after closing to the due date")
    warning: str | None = None


class CycleInfo(BaseModel):
    """The billing cycle containing a reference date."""

    period_start: date
    period_end: date
    due_date: date


class PeriodDue(BaseModel):
    """Amount due for one billing window, computed from the ledger."""

    period_start: date
    period_end: date
    due_date: date
    charges: Decimal = Decimal("0")
    installment_charges: Decimal = Decimal("0")
    payments: Decimal = Decimal("0")
    amount_due: Decimal = Decimal("0")


class AmountsDue(BaseModel):
    """Breakdown of what a card owes this cycle."""

    installment_due: Decimal
    fees_interest: Decimal
    revolving_balance: Decimal
    revolving_min: Decimal
    minimum_due: Decimal
    total_due: Decimal


class PaymentAllocation(BaseModel):
    """How a payment is applied: fees/interest, then installments, then revolving."""

    amount: Decimal
    fees_interest: Decimal = Decimal("0")
    installments: Decimal = Decimal("0")
    revolving: Decimal = Decimal("0")
    unapplied: Decimal = Decimal("0")


class InstallmentSplit(BaseModel):
    """Share of a payment attributed to each installment plan."""

    installment_portion: Decimal
    revolving_portion: Decimal
    per_plan: dict[str, Decimal] = Field(default_factory=dict)
    covers_minimum: bool


class InstallmentForecast(BaseModel):
    """A projected installment charge."""

    charge_date: date
    amount: Decimal
    plan_id: str
    descriptor: str
    payment_number: int | None = None
