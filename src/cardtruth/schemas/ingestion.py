"""Contracts produced by the ingestion paths.

- ``ParseResult``: quick-summary paste path
- ``ConfirmationData``: PDF/image path, shown to the user before trusting it
- ``IngestionResult``: full pipeline output for a statement file
"""

from datetime import date
from decimal import Decimal
from typing import Literal

from pydantic import BaseModel, Field

from cardtruth.schemas.confidence import ConfidenceAnalysis
from cardtruth.schemas.fields import FieldName
from cardtruth.schemas.statement import CanonicalStatement, InstallmentPlan


class ParseResult(BaseModel):
    """Result of parsing pasted summary text."""

    minimum_due: Decimal | None = None
    due_date: date | None = None
    statement_balance: Decimal | None = None
    closing_date: date | None = None
    confidence: float = Field(default=0.0, ge=0.0, le=1.0)
    matched_fields: list[str] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)


class ConfirmationData(BaseModel):
    """Values extracted from a PDF or image awaiting user confirmation."""

    due_date: date | None = None
    minimum_due: Decimal | None = None
    statement_balance: Decimal | None = None
    closing_date: date | None = None
    installments: list[InstallmentPlan] = Field(default_factory=list)
    field_confidence: dict[FieldName, float] = Field(default_factory=dict)
    source: Literal["pdf", "image"] = "pdf"
    needs_user_confirm: bool = True
    warnings: list[str] = Field(default_factory=list)


class IngestionResult(BaseModel):
    """Full output of the statement pipeline."""

    statement: CanonicalStatement
    analysis: ConfidenceAnalysis
    validation_messages: list[str] = Field(default_factory=list)
    extraction_method: str
    extraction_confidence: float = Field(..., ge=0.0, le=1.0)
    metadata: dict = Field(default_factory=dict)
    normalization_changes: list[str] = Field(default_factory=list)
