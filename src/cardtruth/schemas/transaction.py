"""Ledger transaction schemas.

Ledger transactions come from the user's own bookkeeping (the ``L0_tx``
layer) or from statement line items. Amounts are positive; the direction is
carried by ``type``.
"""

from datetime import date
from decimal import Decimal
from enum import Enum

from pydantic import BaseModel, Field, field_validator


class TransactionType(str, Enum):
    """Classification used by reconciliation."""

    PAYMENT = "payment"
    PURCHASE = "purchase"
    FEE = "fee"
    INTEREST = "interest"
    INSTALLMENT = "installment"


class LedgerTransaction(BaseModel):
    """A single ledger entry for a card."""

    transaction_date: date = Field(..., description="Posting date")
    amount: Decimal = Field(..., description="Absolute amount")
    description: str = Field(default="", description="Merchant or memo text")
    type: TransactionType = Field(default=TransactionType.PURCHASE)
    id: str | None = Field(None, description="Ledger id (synthetic entries are prefixed 'synthetic:')")
    category: str | None = None
    account: str | None = Field(None, description="Target account/card name for transfers")

    @field_validator("amount")
    @classmethod
    def amount_is_absolute(cls, v: Decimal) -> Decimal:
        """Store magnitudes only; direction lives in ``type``."""
        return abs(v)

    @property
    def is_synthetic(self) -> bool:
        return bool(self.id and self.id.startswith("synthetic:"))
