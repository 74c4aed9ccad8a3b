"""Canonical statement schemas.

These models carry the output of the extraction pipeline: the raw text
extraction result, the normalization audit trail, the issuer detection and
the ``CanonicalStatement`` itself with its per-field confidence map.
"""

from datetime import date
from decimal import Decimal
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from cardtruth.schemas.fields import CRITICAL_FIELDS, FieldName, Language

PlanSource = Literal["statement", "structured", "pdf", "inferred"]
ExtractionMethod = Literal["pdf-text", "pdf-ocr", "csv", "ofx", "image-ocr", "text"]


class ExtractedText(BaseModel):
    """Raw text produced by a text extractor."""

    text: str
    method: ExtractionMethod
    confidence: float = Field(..., ge=0.0, le=1.0)
    metadata: dict[str, Any] = Field(default_factory=dict)


class NormalizationResult(BaseModel):
    """Normalized text plus an audit trail of the transformations applied."""

    normalized_text: str
    original_length: int
    normalized_length: int
    changes: list[str] = Field(default_factory=list)


class IssuerDetection(BaseModel):
    """Best issuer match and statement language."""

    issuer: str | None = None
    language: Language = Language.AUTO
    confidence: float = Field(default=0.0, ge=0.0, le=1.0)
    hints: list[str] = Field(default_factory=list)


class InstallmentPlan(BaseModel):
    """A recurring fixed-charge sub-balance.

    Plans are immutable; re-running extraction produces new plans that
    supersede the old ones.
    """

    model_config = ConfigDict(frozen=True)

    id: str = Field(..., description="Stable hash of issuer|card|descriptor|monthly charge")
    descriptor: str = Field(default="Installment Plan")
    term_months: int | None = Field(None, ge=1)
    months_elapsed: int | None = Field(None, ge=0)
    remaining_payments: int | None = Field(None, ge=0)
    monthly_charge: Decimal = Field(..., description="Charge billed each cycle")
    remaining_principal: Decimal | None = None
    apr: Decimal | None = Field(None, description="Annual percentage rate, e.g. 24.99")
    source: PlanSource = "statement"
    confidence: float = Field(..., ge=0.0, le=1.0)

    @field_validator("descriptor")
    @classmethod
    def descriptor_not_blank(cls, v: str) -> str:
        return v.strip() or "Installment Plan"


class CanonicalStatement(BaseModel):
    """Canonical billing facts extracted from one statement.

    Every value field is optional. A field that was not found is ``None`` and
    has no entry in ``field_confidence``; a field that was found always has
    one, even when its confidence is zero.
    """

    issuer: str | None = None
    card_last4: str | None = Field(None, pattern=r"^\d{4}$")
    currency: str | None = None

    statement_period_start: date | None = None
    statement_period_end: date | None = None
    closing_day: int | None = Field(None, ge=1, le=28)
    payment_due_date: date | None = None

    previous_balance: Decimal | None = None
    statement_balance: Decimal | None = None
    minimum_due: Decimal | None = None
    payments_and_credits: Decimal | None = None
    purchases: Decimal | None = None
    cash_advances: Decimal | None = None
    fees: Decimal | None = None
    interest: Decimal | None = None
    credit_limit: Decimal | None = None
    available_credit: Decimal | None = None

    apr_purchase: Decimal | None = None
    apr_cash: Decimal | None = None
    apr_installment: Decimal | None = None

    installment_plans: list[InstallmentPlan] = Field(default_factory=list)
    field_confidence: dict[FieldName, float] = Field(default_factory=dict)
    warnings: list[str] = Field(default_factory=list)
    needs_user_confirm: bool = False

    @model_validator(mode="after")
    def confidence_tracks_presence(self) -> "CanonicalStatement":
        """Every confidence entry must belong to a present field and lie in [0, 1]."""
        for field, confidence in self.field_confidence.items():
            if getattr(self, field.value) is None:
                raise ValueError(f"Confidence recorded for absent field {field.value}")
            if not 0.0 <= confidence <= 1.0:
                raise ValueError(f"Confidence for {field.value} outside [0, 1]: {confidence}")
        return self

    def get(self, field: FieldName) -> Any:
        """Return the value of a canonical field."""
        return getattr(self, field.value)

    def set_field(self, field: FieldName, value: Any, confidence: float) -> None:
        """Set a field value together with its confidence (clamped to [0, 1])."""
        setattr(self, field.value, value)
        if value is None:
            self.field_confidence.pop(field, None)
        else:
            self.field_confidence[field] = max(0.0, min(1.0, confidence))

    def confidence_of(self, field: FieldName) -> float | None:
        """Confidence of a present field, ``None`` when the field is absent."""
        return self.field_confidence.get(field)

    def has(self, field: FieldName) -> bool:
        return self.get(field) is not None

    @property
    def missing_critical_fields(self) -> list[FieldName]:
        return [field for field in CRITICAL_FIELDS if not self.has(field)]
