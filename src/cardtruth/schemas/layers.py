"""Truth layer schemas.

A card can hold up to five independently sourced truth layers. Each layer
is stored as its own JSON record and validated back into these models when
loaded.
"""

from datetime import date, datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Generic, Literal, TypeVar

from pydantic import BaseModel, Field

from cardtruth.schemas.statement import InstallmentPlan
from cardtruth.schemas.transaction import LedgerTransaction

T = TypeVar("T")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class LayerName(str, Enum):
    """Storage names of the truth layers."""

    L0_TX = "L0_tx"
    L1_SUMMARY = "L1_summary"
    L2_STRUCTURED = "L2_structured"
    L3_PDF = "L3_pdf"
    LX_INFERRED = "Lx_inferred"


class TransactionData(BaseModel):
    """``L0_tx``: the card's ledger for the current billing window."""

    period_start: date | None = None
    period_end: date | None = None
    transactions: list[LedgerTransaction] = Field(default_factory=list)
    timestamp: datetime = Field(default_factory=_utcnow)


class SummaryData(BaseModel):
    """``L1_summary``: values read from pasted summary text."""

    minimum_due: Decimal | None = None
    due_date: date | None = None
    statement_balance: Decimal | None = None
    closing_date: date | None = None
    confidence: float = Field(..., ge=0.0, le=1.0)
    source: Literal["paste", "ocr"] = "paste"
    timestamp: datetime = Field(default_factory=_utcnow)


class StructuredData(BaseModel):
    """``L2_structured``: values read from a CSV or OFX/QFX export."""

    period_start: date
    period_end: date
    statement_balance: Decimal = Decimal("0")
    minimum_due: Decimal = Decimal("0")
    payments: Decimal = Decimal("0")
    purchases: Decimal = Decimal("0")
    fees: Decimal = Decimal("0")
    interest: Decimal = Decimal("0")
    aggregate_installment_due: Decimal | None = None
    payment_due_date: date | None = None
    transactions: list[LedgerTransaction] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)
    confidence: float = Field(default=0.95, ge=0.0, le=1.0)
    source: Literal["csv", "ofx", "qfx"]
    timestamp: datetime = Field(default_factory=_utcnow)


class PdfField(BaseModel, Generic[T]):
    """One user-confirmed PDF value with its extraction confidence."""

    value: T
    confidence: float = Field(..., ge=0.0, le=1.0)
    source: Literal["pdf", "image", "user"] = "pdf"


class PdfData(BaseModel):
    """``L3_pdf``: values confirmed by the user after PDF/image extraction."""

    due_date: PdfField[date] | None = None
    statement_balance: PdfField[Decimal] | None = None
    minimum_due: PdfField[Decimal] | None = None
    closing_date: PdfField[date] | None = None
    installment_plans: list[InstallmentPlan] = Field(default_factory=list)
    timestamp: datetime = Field(default_factory=_utcnow)


class EstimatedCycle(BaseModel):
    """Heuristic estimate of the current billing cycle."""

    closing_date: date | None = None
    due_date: date | None = None
    minimum_due: Decimal | None = None


class InferredData(BaseModel):
    """``Lx_inferred``: heuristic estimates."""

    installment_plans: list[InstallmentPlan] = Field(default_factory=list)
    estimated_cycle: EstimatedCycle = Field(default_factory=EstimatedCycle)
    confidence: float = Field(..., ge=0.0, le=1.0)
    timestamp: datetime = Field(default_factory=_utcnow)


LAYER_MODELS: dict[LayerName, type[BaseModel]] = {
    LayerName.L0_TX: TransactionData,
    LayerName.L1_SUMMARY: SummaryData,
    LayerName.L2_STRUCTURED: StructuredData,
    LayerName.L3_PDF: PdfData,
    LayerName.LX_INFERRED: InferredData,
}


class TruthLayers(BaseModel):
    """The full set of layers currently stored for a card."""

    L0_tx: TransactionData | None = None
    L1_summary: SummaryData | None = None
    L2_structured: StructuredData | None = None
    L3_pdf: PdfData | None = None
    Lx_inferred: InferredData | None = None

    def get(self, layer: LayerName) -> BaseModel | None:
        return getattr(self, layer.value)

    def present(self) -> list[LayerName]:
        return [layer for layer in LayerName if self.get(layer) is not None]
