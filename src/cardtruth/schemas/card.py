"""Merged card view schemas."""

from datetime import date, datetime
from decimal import Decimal
from typing import Literal

from pydantic import BaseModel, Field

from cardtruth.schemas.layers import LayerName, TruthLayers
from cardtruth.schemas.statement import InstallmentPlan

BasedOn = Literal["structured", "summary", "pdf-confirmed", "inferred", "defaults"]

LAYER_TAGS: dict[LayerName, BasedOn] = {
    LayerName.L2_STRUCTURED: "structured",
    LayerName.L1_SUMMARY: "summary",
    LayerName.L3_PDF: "pdf-confirmed",
    LayerName.LX_INFERRED: "inferred",
}


class CardSnapshot(BaseModel):
    """Merged view of a card's current billing cycle.

    ``provenance`` records which layer supplied each merged field;
    ``based_on`` is the provenance of ``total_due``, the numerically
    dominant field.
    """

    card_id: str
    due_date: date
    minimum_due: Decimal
    total_due: Decimal
    includes_installments: bool = False
    plans_count: int = 0
    installment_plans: list[InstallmentPlan] = Field(default_factory=list)
    based_on: BasedOn = "defaults"
    provenance: dict[str, BasedOn] = Field(default_factory=dict)
    warnings: list[str] = Field(default_factory=list)
    confidence: float = Field(..., ge=0.0, le=1.0)
    last_updated: datetime


class Reconciliation(BaseModel):
    """Ledger cross-check of the merged total due (annotation only)."""

    balance_match: bool = True
    drift_amount: Decimal = Decimal("0")
    computed_balance: Decimal | None = None
    warnings: list[str] = Field(default_factory=list)


class ConvergentTruth(BaseModel):
    """All layers, the merged snapshot and its reconciliation for one card."""

    card_id: str
    layers: TruthLayers
    merged: CardSnapshot
    reconciliation: Reconciliation
    last_merge: datetime


class AccuracyRecord(BaseModel):
    """Months in which a card's stored truth earned the monthly confidence bump."""

    months: list[str] = Field(default_factory=list, description="Months credited, as YYYY-MM")
    monthly_updates: int = 0
    last_update: datetime | None = None


class CardStatus(BaseModel):
    """Compact status for a card."""

    card_id: str
    layers_present: list[LayerName] = Field(default_factory=list)
    pdf_confirmed: bool = False
    has_truth: bool = False
    based_on: BasedOn | None = None
    confidence: float | None = None
    needs_attention: bool = False
    last_merge: datetime | None = None
