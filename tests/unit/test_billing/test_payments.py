"""Tests for amounts due, payment allocation and installment helpers."""

from datetime import date
from decimal import Decimal

import pytest

from cardtruth.billing.payments import (
    active_plans,
    allocate_payment,
    compute_amounts_due,
    forecast_installments,
    split_installment_payment,
    synthetic_installment_transactions,
)
from cardtruth.config import Settings
from cardtruth.schemas.statement import InstallmentPlan
from cardtruth.schemas.transaction import TransactionType


def plan(plan_id: str, charge: str, **values) -> InstallmentPlan:
    return InstallmentPlan(
        id=plan_id, descriptor=plan_id.title(), monthly_charge=Decimal(charge), confidence=0.9, **values
    )


class TestAmountsDue:
    """Test the cycle breakdown."""

    def test_with_installments(self):
        amounts = compute_amounts_due(Decimal("1000"), [plan("laptop", "150")])

        assert amounts.installment_due == Decimal("150.00")
        assert amounts.revolving_min == Decimal("25.00")
        assert amounts.minimum_due == Decimal("175.00")
        assert amounts.total_due == Decimal("1150.00")

    def test_percentage_minimum(self):
        amounts = compute_amounts_due(Decimal("5000"), fees_interest=Decimal("12.50"))
        assert amounts.revolving_min == Decimal("50.00")
        assert amounts.minimum_due == Decimal("62.50")

    def test_minimum_capped_by_balance(self):
        assert compute_amounts_due(Decimal("10")).revolving_min == Decimal("10.00")

    def test_statement_minimum_preferred(self):
        amounts = compute_amounts_due(Decimal("1000"), [plan("laptop", "150")], statement_minimum=Decimal("35"))
        assert amounts.minimum_due == Decimal("35.00")

    def test_negative_balance_and_finished_plans(self):
        amounts = compute_amounts_due(Decimal("-40"), [plan("done", "80", remaining_payments=0)])

        assert amounts.revolving_balance == Decimal("0.00")
        assert amounts.installment_due == Decimal("0.00")
        assert amounts.total_due == Decimal("0.00")


class TestAllocatePayment:
    """Test payment application order."""

    def test_buckets_in_order(self):
        allocation = allocate_payment(Decimal("100"), Decimal("20"), Decimal("50"), Decimal("500"))

        assert allocation.fees_interest == Decimal("20")
        assert allocation.installments == Decimal("50")
        assert allocation.revolving == Decimal("30")
        assert allocation.unapplied == Decimal("0")

    def test_overpayment_unapplied(self):
        allocation = allocate_payment(Decimal("600"), Decimal("20"), Decimal("50"), Decimal("500"))
        assert allocation.revolving == Decimal("500")
        assert allocation.unapplied == Decimal("30")

    def test_partial_payment(self):
        allocation = allocate_payment(Decimal("10"), Decimal("20"), Decimal("50"), Decimal("500"))
        assert allocation.fees_interest == Decimal("10")
        assert allocation.installments == Decimal("0")

    def test_negative_amount(self):
        allocation = allocate_payment(Decimal("-5"), Decimal("20"), Decimal("50"), Decimal("500"))
        assert allocation.fees_interest == Decimal("0")
        assert allocation.unapplied == Decimal("0")


class TestSplitInstallmentPayment:
    """Test per-plan attribution."""

    def test_plans_filled_in_order(self):
        split = split_installment_payment(
            Decimal("120"), Decimal("100"), [plan("phone", "50"), plan("sofa", "100")]
        )

        assert split.per_plan == {"phone": Decimal("50"), "sofa": Decimal("70")}
        assert split.installment_portion == Decimal("120")
        assert split.revolving_portion == Decimal("0")
        assert split.covers_minimum is True

    def test_remainder_goes_to_revolving(self):
        split = split_installment_payment(Decimal("300"), Decimal("400"), [plan("phone", "50"), plan("sofa", "100")])
        assert split.revolving_portion == Decimal("150")
        assert split.covers_minimum is False


class TestSyntheticTransactions:
    """Test generated installment ledger entries."""

    def test_disabled_by_default(self, settings):
        assert synthetic_installment_transactions([plan("phone", "50")], date(2024, 10, 28), settings=settings) == []

    def test_entries_when_enabled(self):
        settings = Settings(_env_file=None, feature_synthetic_transactions=True)
        plans = [plan("phone", "50"), plan("done", "20", remaining_payments=0)]

        entries = synthetic_installment_transactions(plans, date(2024, 10, 28), card_name="Visa", settings=settings)

        assert len(entries) == 1
        entry = entries[0]
        assert entry.id == "synthetic:phone:2024-10-28"
        assert entry.is_synthetic is True
        assert entry.type == TransactionType.INSTALLMENT
        assert entry.description == "[Installment] Phone"
        assert entry.account == "Visa"

    def test_ids_are_stable(self):
        settings = Settings(_env_file=None, feature_synthetic_transactions=True)
        first = synthetic_installment_transactions([plan("phone", "50")], date(2024, 10, 28), settings=settings)
        second = synthetic_installment_transactions([plan("phone", "50")], date(2024, 10, 28), settings=settings)
        assert [tx.id for tx in first] == [tx.id for tx in second]


class TestForecast:
    """Test installment projections."""

    def test_forecast(self):
        plans = [
            plan("laptop", "50", months_elapsed=3, remaining_payments=2),
            plan("gym", "20"),
        ]
        forecast = forecast_installments(plans, months=3, start=date(2024, 11, 1))

        assert [(f.charge_date, f.plan_id) for f in forecast] == [
            (date(2024, 11, 1), "gym"),
            (date(2024, 11, 1), "laptop"),
            (date(2024, 12, 1), "gym"),
            (date(2024, 12, 1), "laptop"),
            (date(2025, 1, 1), "gym"),
        ]
        laptop = [f for f in forecast if f.plan_id == "laptop"]
        assert [f.payment_number for f in laptop] == [4, 5]

    def test_active_plans(self):
        plans = [plan("a", "1"), plan("b", "1", remaining_payments=0), plan("c", "1", remaining_payments=2)]
        assert [p.id for p in active_plans(plans)] == ["a", "c"]

    def test_empty_horizon(self):
        assert forecast_installments([plan("a", "1")], months=0, start=date(2024, 11, 1)) == []
