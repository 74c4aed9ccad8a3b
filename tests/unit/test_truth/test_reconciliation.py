"""Tests for ledger reconciliation."""

from datetime import date, datetime, timezone
from decimal import Decimal

import pytest

from cardtruth.schemas.card import CardSnapshot
from cardtruth.schemas.layers import TransactionData
from cardtruth.schemas.transaction import LedgerTransaction, TransactionType
from cardtruth.truth.reconciliation import compute_ledger_balance, reconcile


def tx(day: int, amount: str, tx_type: TransactionType = TransactionType.PURCHASE) -> LedgerTransaction:
    return LedgerTransaction(transaction_date=date(2024, 10, day), amount=Decimal(amount), type=tx_type)


LEDGER = [
    tx(2, "1000.00"),
    tx(5, "50.00", TransactionType.INSTALLMENT),
    tx(10, "25.00", TransactionType.FEE),
    tx(12, "9.43", TransactionType.INTEREST),
    tx(15, "200.00", TransactionType.PAYMENT),
]


@pytest.fixture
def snapshot():
    return CardSnapshot(
        card_id="card-1",
        due_date=date(2024, 11, 25),
        minimum_due=Decimal("35.00"),
        total_due=Decimal("884.43"),
        confidence=0.95,
        last_updated=datetime(2024, 11, 1, tzinfo=timezone.utc),
    )


class TestComputeLedgerBalance:
    """Test the ledger-derived balance."""

    def test_charges_minus_payments(self):
        assert compute_ledger_balance(LEDGER) == Decimal("884.43")

    def test_window_bounds(self):
        """Test both bounds are inclusive and either may be open."""
        assert compute_ledger_balance(LEDGER, date(2024, 10, 5), date(2024, 10, 12)) == Decimal("84.43")
        assert compute_ledger_balance(LEDGER, period_start=date(2024, 10, 15)) == Decimal("-200.00")
        assert compute_ledger_balance(LEDGER, period_end=date(2024, 10, 1)) == Decimal("0")


class TestReconcile:
    """Test drift detection against the merged total."""

    def test_no_ledger(self, snapshot):
        result = reconcile(snapshot, None)
        assert result.balance_match is True
        assert result.drift_amount == Decimal("0")
        assert result.computed_balance is None

    def test_empty_ledger(self, snapshot):
        assert reconcile(snapshot, TransactionData()).balance_match is True

    def test_match(self, snapshot):
        result = reconcile(snapshot, TransactionData(transactions=LEDGER))

        assert result.balance_match is True
        assert result.drift_amount == Decimal("0")
        assert result.computed_balance == Decimal("884.43")
        assert result.warnings == []

    def test_drift_within_threshold(self, snapshot):
        """Test drift up to 0.5% of the total is tolerated."""
        ledger = LEDGER + [tx(20, "4.00")]
        assert reconcile(snapshot, TransactionData(transactions=ledger)).balance_match is True

    def test_mismatch(self, snapshot):
        ledger = LEDGER + [tx(20, "100.00")]
        result = reconcile(snapshot, TransactionData(transactions=ledger))

        assert result.balance_match is False
        assert result.drift_amount == Decimal("100.00")
        assert result.warnings == ["Balance mismatch: computed $984.43 vs statement $884.43"]

    def test_window_applied(self, snapshot):
        layer = TransactionData(
            period_start=date(2024, 10, 3),
            period_end=date(2024, 10, 31),
            transactions=LEDGER,
        )
        result = reconcile(snapshot, layer)
        assert result.computed_balance == Decimal("-115.57")
        assert result.balance_match is False

    def test_snapshot_untouched(self, snapshot):
        before = snapshot.model_copy(deep=True)
        reconcile(snapshot, TransactionData(transactions=LEDGER + [tx(20, "100.00")]))
        assert snapshot == before
