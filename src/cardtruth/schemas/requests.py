"""Request bodies for the card endpoints."""

from datetime import date

from pydantic import BaseModel, Field

from cardtruth.schemas.transaction import LedgerTransaction


class SummaryRequest(BaseModel):
    """Pasted statement summary text."""

    text: str = Field(..., min_length=1, max_length=20000)


class LedgerRequest(BaseModel):
    """The card's ledger for the current billing window."""

    period_start: date | None = None
    period_end: date | None = None
    transactions: list[LedgerTransaction] = Field(default_factory=list)
