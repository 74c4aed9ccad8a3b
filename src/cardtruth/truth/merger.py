"""Truth-layer merge.

Combines the independently sourced layers of a card into one
``CardSnapshot``. Each merged field walks the same precedence chain:

    L2_structured (>= 0.9) -> L1_summary (>= 0.8) -> L3_pdf (confirmed, >= 0.7)
    -> Lx_inferred -> defaults

A layer that fails its confidence threshold (or lacks the field) is skipped
and the next one is consulted. The merge is a pure function of its inputs.
"""

import logging
from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal

from cardtruth.config import Settings, get_settings
from cardtruth.schemas.card import BasedOn, CardSnapshot
from cardtruth.schemas.layers import TruthLayers
from cardtruth.schemas.statement import InstallmentPlan

logger = logging.getLogger(__name__)

DEFAULTS_CONFIDENCE = 0.5
AGGREGATE_PLAN_ID = "aggregate_structured"
AGGREGATE_PLAN_DESCRIPTOR = "Installments due this cycle"
AGGREGATE_PLAN_CONFIDENCE = 0.9


@dataclass
class _Pick:
    """A merged value with the layer tag and confidence backing it."""

    value: object
    based_on: BasedOn
    confidence: float


def merge_layers(
    card_id: str,
    layers: TruthLayers,
    pdf_confirmed: bool = False,
    settings: Settings | None = None,
    today: date | None = None,
) -> CardSnapshot:
    """Merge truth layers into a snapshot.

    Args:
        card_id: Card identifier
        layers: Layers currently stored for the card
        pdf_confirmed: Whether the user confirmed the ``L3_pdf`` values
        settings: Thresholds and defaults (``get_settings()`` when omitted)
        today: Reference date for default due dates

    Returns:
        CardSnapshot with per-field provenance
    """
    settings = settings or get_settings()
    today = today or date.today()

    due = _pick_due_date(layers, pdf_confirmed, settings, today)
    minimum = _pick_amount("minimum_due", layers, pdf_confirmed, settings)
    total = _pick_amount("statement_balance", layers, pdf_confirmed, settings)

    warnings: list[str] = []
    plans, plans_based_on = merge_installments(layers, pdf_confirmed, settings)
    total_due = total.value
    if plans:
        installment_due = sum((plan.monthly_charge for plan in plans), Decimal("0"))
        if total.based_on == "structured":
            warnings.append(
                "Statement balance from structured data already includes billed installments; "
                "installment charges were not added again"
            )
        elif settings.add_installments_to_total_due:
            total_due = total_due + installment_due
        else:
            warnings.append("Installment charges are not added to the total due; it may exclude them")
        warnings.append(f"{len(plans)} installment plan(s) totaling ${installment_due:.2f}")

    provenance: dict[str, BasedOn] = {
        "due_date": due.based_on,
        "minimum_due": minimum.based_on,
        "total_due": total.based_on,
    }
    if plans_based_on is not None:
        provenance["installments"] = plans_based_on

    snapshot = CardSnapshot(
        card_id=card_id,
        due_date=due.value,
        minimum_due=minimum.value,
        total_due=total_due,
        includes_installments=bool(plans),
        plans_count=len(plans),
        installment_plans=plans,
        based_on=total.based_on,
        provenance=provenance,
        warnings=warnings,
        confidence=round((due.confidence + total.confidence) / 2, 4),
        last_updated=datetime.now(timezone.utc),
    )
    logger.info(
        "Truth layers merged",
        extra={
            "card_id": card_id,
            "layers": [layer.value for layer in layers.present()],
            "based_on": snapshot.based_on,
            "plans": snapshot.plans_count,
            "confidence": snapshot.confidence,
        },
    )
    return snapshot


def _pick_due_date(layers: TruthLayers, pdf_confirmed: bool, settings: Settings, today: date) -> _Pick:
    grace = timedelta(days=settings.default_grace_days)

    structured = layers.L2_structured
    if structured is not None and structured.confidence >= settings.structured_min_confidence:
        due = structured.payment_due_date or structured.period_end + grace
        return _Pick(due, "structured", structured.confidence)

    summary = layers.L1_summary
    if summary is not None and summary.confidence >= settings.summary_min_confidence and summary.due_date:
        return _Pick(summary.due_date, "summary", summary.confidence)

    pdf = layers.L3_pdf
    if pdf is not None and pdf_confirmed and pdf.due_date and pdf.due_date.confidence >= settings.pdf_min_confidence:
        return _Pick(pdf.due_date.value, "pdf-confirmed", pdf.due_date.confidence)

    inferred = layers.Lx_inferred
    if inferred is not None and inferred.estimated_cycle.due_date:
        return _Pick(inferred.estimated_cycle.due_date, "inferred", inferred.confidence)

    return _Pick(today + grace, "defaults", DEFAULTS_CONFIDENCE)


def _pick_amount(field_name: str, layers: TruthLayers, pdf_confirmed: bool, settings: Settings) -> _Pick:
    """Pick ``minimum_due`` or ``statement_balance`` along the precedence chain."""
    structured = layers.L2_structured
    if structured is not None and structured.confidence >= settings.structured_min_confidence:
        return _Pick(getattr(structured, field_name), "structured", structured.confidence)

    summary = layers.L1_summary
    if summary is not None and summary.confidence >= settings.summary_min_confidence:
        value = getattr(summary, field_name)
        if value is not None:
            return _Pick(value, "summary", summary.confidence)

    pdf = layers.L3_pdf
    if pdf is not None and pdf_confirmed:
        pdf_field = getattr(pdf, field_name)
        if pdf_field is not None and pdf_field.confidence >= settings.pdf_min_confidence:
            return _Pick(pdf_field.value, "pdf-confirmed", pdf_field.confidence)

    inferred = layers.Lx_inferred
    if inferred is not None and inferred.estimated_cycle.minimum_due is not None:
        # The inferred layer only estimates the minimum; it stands in for the balance too.
        return _Pick(inferred.estimated_cycle.minimum_due, "inferred", inferred.confidence)

    return _Pick(settings.default_minimum_due, "defaults", DEFAULTS_CONFIDENCE)


def merge_installments(
    layers: TruthLayers,
    pdf_confirmed: bool = False,
    settings: Settings | None = None,
) -> tuple[list[InstallmentPlan], BasedOn | None]:
    """Confirmed PDF plans beat the structured aggregate, which beats inferred plans.

    Returns:
        (plans, provenance tag or None when there are no plans)
    """
    settings = settings or get_settings()

    pdf = layers.L3_pdf
    if pdf is not None and pdf_confirmed and pdf.installment_plans:
        return list(pdf.installment_plans), "pdf-confirmed"

    structured = layers.L2_structured
    if (
        structured is not None
        and structured.confidence >= settings.structured_min_confidence
        and structured.aggregate_installment_due
    ):
        aggregate = InstallmentPlan(
            id=AGGREGATE_PLAN_ID,
            descriptor=AGGREGATE_PLAN_DESCRIPTOR,
            monthly_charge=structured.aggregate_installment_due,
            source="structured",
            confidence=AGGREGATE_PLAN_CONFIDENCE,
        )
        return [aggregate], "structured"

    inferred = layers.Lx_inferred
    if inferred is not None and inferred.installment_plans:
        return list(inferred.installment_plans), "inferred"
    return [], None
