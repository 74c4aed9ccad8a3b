"""Ledger reconciliation of the merged total due.

Reconciliation annotates a snapshot; it never changes merged values.
"""

import logging
from datetime import date
from decimal import Decimal

from cardtruth.schemas.card import CardSnapshot, Reconciliation
from cardtruth.schemas.layers import TransactionData
from cardtruth.schemas.transaction import LedgerTransaction, TransactionType

logger = logging.getLogger(__name__)

MIN_DRIFT_THRESHOLD = Decimal("0.5")
RELATIVE_DRIFT_THRESHOLD = Decimal("0.005")

_CHARGE_TYPES = {TransactionType.PURCHASE, TransactionType.INSTALLMENT, TransactionType.FEE, TransactionType.INTEREST}


def compute_ledger_balance(
    transactions: list[LedgerTransaction],
    period_start: date | None = None,
    period_end: date | None = None,
) -> Decimal:
    """Purchases + installments + fees + interest - payments inside the window.

    Missing bounds leave the window open on that side.
    """
    balance = Decimal("0")
    for tx in transactions:
        if period_start is not None and tx.transaction_date < period_start:
            continue
        if period_end is not None and tx.transaction_date > period_end:
            continue
        if tx.type == TransactionType.PAYMENT:
            balance -= tx.amount
        elif tx.type in _CHARGE_TYPES:
            balance += tx.amount
    return balance


def reconcile(snapshot: CardSnapshot, tx_layer: TransactionData | None) -> Reconciliation:
    """Compare the ledger-derived balance with the snapshot's total due.

    Args:
        snapshot: Merged snapshot (left untouched)
        tx_layer: ``L0_tx`` layer, if any

    Returns:
        Reconciliation; without a ledger the result is a match with zero drift
    """
    if tx_layer is None or not tx_layer.transactions:
        return Reconciliation(balance_match=True, drift_amount=Decimal("0"))

    computed = compute_ledger_balance(tx_layer.transactions, tx_layer.period_start, tx_layer.period_end)
    drift = abs(computed - snapshot.total_due)
    threshold = max(MIN_DRIFT_THRESHOLD, RELATIVE_DRIFT_THRESHOLD * abs(snapshot.total_due))

    warnings = []
    if drift > threshold:
        warnings.append(f"Balance mismatch: computed ${computed:.2f} vs statement ${snapshot.total_due:.2f}")
        logger.warning(
            "Ledger drift detected",
            extra={"card_id": snapshot.card_id, "drift": str(drift), "threshold": str(threshold)},
        )

    return Reconciliation(
        balance_match=drift <= threshold,
        drift_amount=drift,
        computed_balance=computed,
        warnings=warnings,
    )
