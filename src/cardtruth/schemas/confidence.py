"""Confidence analysis result schema."""

from decimal import Decimal

from pydantic import BaseModel, Field

from cardtruth.schemas.fields import FieldName


class BalanceCheck(BaseModel):
    """Outcome of the balance equation check."""

    valid: bool
    computed: Decimal | None = None
    actual: Decimal | None = None
    difference: Decimal | None = None
    threshold: Decimal | None = None
    warning: str | None = None


class ConfidenceAnalysis(BaseModel):
    """Statement-level trust assessment."""

    overall_confidence: float = Field(..., ge=0.0, le=1.0)
    field_confidence: dict[FieldName, float] = Field(default_factory=dict)
    critical_fields_present: bool
    balance_equation_valid: bool
    date_consistency: bool
    amount_consistency: bool
    warnings: list[str] = Field(default_factory=list)
    needs_user_confirm: bool
