"""Card truth service.

Coordinates the ingestion paths with the truth layer store:

- quick summary paste -> ``L1_summary``
- CSV/OFX export -> ``L2_structured``
- PDF/image statement -> ``ConfirmationData`` -> (user confirms) -> ``L3_pdf``
- ledger -> ``L0_tx``; heuristics -> ``Lx_inferred``

Every write is followed by ``refresh``, which reloads all layers, merges
them and stores the resulting ``ConvergentTruth``. Layers are only written
after their input parsed successfully.
"""

import logging
from datetime import date, datetime, timezone

from cardtruth.analysis.validation import validate_inferred_plans
from cardtruth.config import Settings, get_settings
from cardtruth.core.exceptions import CardNotFoundError, FeatureDisabledError
from cardtruth.parsers.structured import StructuredParser
from cardtruth.parsers.summary import QuickSummaryParser, to_summary_data
from cardtruth.repositories.layers import TruthLayerRepository
from cardtruth.schemas.card import CardStatus, ConvergentTruth, Reconciliation
from cardtruth.schemas.fields import FieldName
from cardtruth.schemas.ingestion import ConfirmationData, ParseResult
from cardtruth.schemas.layers import InferredData, LayerName, PdfData, PdfField, StructuredData, TransactionData
from cardtruth.schemas.transaction import LedgerTransaction
from cardtruth.services.statement import StatementPipeline, to_confirmation_data
from cardtruth.truth.merger import merge_layers
from cardtruth.truth.reconciliation import reconcile

logger = logging.getLogger(__name__)

ACCURACY_BUMP = 0.05
ACCURACY_MIN_CONFIDENCE = 0.8

_PDF_FIELDS = {
    "due_date": FieldName.PAYMENT_DUE_DATE,
    "statement_balance": FieldName.STATEMENT_BALANCE,
    "minimum_due": FieldName.MINIMUM_DUE,
    "closing_date": FieldName.STATEMENT_PERIOD_END,
}


class CardTruthService:
    """Service layer for truth-layer ingestion and convergence."""

    def __init__(
        self,
        repository: TruthLayerRepository,
        settings: Settings | None = None,
        pipeline: StatementPipeline | None = None,
        summary_parser: QuickSummaryParser | None = None,
        structured_parser: StructuredParser | None = None,
    ):
        """Initialize the service.

        Args:
            repository: Truth layer repository
            settings: Feature flags and merge thresholds
            pipeline: Statement pipeline for PDF/image uploads
            summary_parser: Parser for pasted summaries
            structured_parser: Parser for CSV/OFX exports
        """
        self.repository = repository
        self.settings = settings or get_settings()
        self.pipeline = pipeline or StatementPipeline(self.settings)
        self.summary_parser = summary_parser or QuickSummaryParser()
        self.structured_parser = structured_parser or StructuredParser()

    def _require_ingestion(self, path: str) -> None:
        if not self.settings.feature_ingestion_enabled:
            raise FeatureDisabledError(details={"feature": "ingestion", "path": path})

    async def ingest_summary(self, card_id: str, text: str) -> ParseResult:
        """Parse pasted summary text into ``L1_summary`` and re-merge.

        Nothing is stored when no field was recognized.
        """
        self._require_ingestion("summary")
        result = self.summary_parser.parse(text)
        if result.matched_fields:
            await self.repository.put(card_id, LayerName.L1_SUMMARY, to_summary_data(result))
            await self.refresh(card_id)
        else:
            logger.info("Summary text matched no fields", extra={"card_id": card_id})
        return result

    async def ingest_structured(self, card_id: str, data: bytes, filename: str | None) -> StructuredData:
        """Parse a CSV/OFX export into ``L2_structured`` and re-merge."""
        self._require_ingestion("structured")
        structured = self.structured_parser.parse_file(data, filename)
        await self.repository.put(card_id, LayerName.L2_STRUCTURED, structured)
        await self.refresh(card_id)
        return structured

    async def ingest_statement(
        self,
        card_id: str,
        data: bytes,
        filename: str | None = None,
        mime_type: str | None = None,
        password: str | None = None,
    ) -> ConfirmationData:
        """Extract a PDF/image statement for confirmation; writes nothing."""
        self._require_ingestion("statement")
        result = self.pipeline.ingest(data, filename, mime_type, password)
        logger.info(
            "Statement awaiting confirmation",
            extra={"card_id": card_id, "method": result.extraction_method},
        )
        return to_confirmation_data(result)

    async def apply_confirmed(self, card_id: str, confirmation: ConfirmationData) -> ConvergentTruth:
        """Store user-confirmed values as ``L3_pdf``, flag the card and re-merge.

        Values without an extraction confidence were entered by the user and
        are trusted fully.
        """
        self._require_ingestion("confirm")
        fields = {}
        for name, field in _PDF_FIELDS.items():
            value = getattr(confirmation, name)
            if value is None:
                continue
            confidence = confirmation.field_confidence.get(field)
            if confidence is None:
                fields[name] = PdfField(value=value, confidence=1.0, source="user")
            else:
                fields[name] = PdfField(value=value, confidence=confidence, source=confirmation.source)

        await self.repository.put(
            card_id,
            LayerName.L3_PDF,
            PdfData(**fields, installment_plans=confirmation.installments),
        )
        await self.repository.set_pdf_confirmed(card_id, True)
        return await self.refresh(card_id)

    async def record_ledger(
        self,
        card_id: str,
        period_start: date | None,
        period_end: date | None,
        transactions: list[LedgerTransaction],
    ) -> ConvergentTruth:
        """Store the card's ledger as ``L0_tx`` and re-merge."""
        layer = TransactionData(period_start=period_start, period_end=period_end, transactions=transactions)
        await self.repository.put(card_id, LayerName.L0_TX, layer)
        return await self.refresh(card_id)

    async def record_inferred(self, card_id: str, inferred: InferredData) -> ConvergentTruth:
        """Store heuristic estimates as ``Lx_inferred`` and re-merge."""
        plans = validate_inferred_plans(inferred.installment_plans)
        await self.repository.put(
            card_id,
            LayerName.LX_INFERRED,
            inferred.model_copy(update={"installment_plans": plans}),
        )
        return await self.refresh(card_id)

    async def refresh(self, card_id: str, today: date | None = None) -> ConvergentTruth:
        """Reload every layer, merge, reconcile and persist the result."""
        layers = await self.repository.load_layers(card_id)
        pdf_confirmed = await self.repository.is_pdf_confirmed(card_id)
        merged = merge_layers(card_id, layers, pdf_confirmed=pdf_confirmed, settings=self.settings, today=today)

        accuracy = await self.repository.get_accuracy(card_id)
        if accuracy.months and merged.confidence >= ACCURACY_MIN_CONFIDENCE:
            bumped = min(1.0, merged.confidence + ACCURACY_BUMP * len(accuracy.months))
            merged = merged.model_copy(update={"confidence": round(bumped, 4)})

        if self.settings.feature_reconciliation:
            reconciliation = reconcile(merged, layers.L0_tx)
        else:
            reconciliation = Reconciliation()

        truth = ConvergentTruth(
            card_id=card_id,
            layers=layers,
            merged=merged,
            reconciliation=reconciliation,
            last_merge=datetime.now(timezone.utc),
        )
        await self.repository.put_truth(truth)
        logger.info(
            "Card truth refreshed",
            extra={
                "card_id": card_id,
                "based_on": merged.based_on,
                "confidence": merged.confidence,
                "balance_match": reconciliation.balance_match,
            },
        )
        return truth

    async def get_truth(self, card_id: str) -> ConvergentTruth:
        """Get the stored truth.

        Raises:
            CardNotFoundError: If nothing has been merged for the card yet
        """
        truth = await self.repository.get_truth(card_id)
        if truth is None:
            raise CardNotFoundError(details={"card_id": card_id})
        return truth

    async def get_status(self, card_id: str) -> CardStatus:
        layers = await self.repository.load_layers(card_id)
        truth = await self.repository.get_truth(card_id)
        status = CardStatus(
            card_id=card_id,
            layers_present=layers.present(),
            pdf_confirmed=await self.repository.is_pdf_confirmed(card_id),
            has_truth=truth is not None,
        )
        if truth is None:
            status.needs_attention = True
            return status

        status.based_on = truth.merged.based_on
        status.confidence = truth.merged.confidence
        status.last_merge = truth.last_merge
        status.needs_attention = truth.merged.based_on == "defaults" or not truth.reconciliation.balance_match
        return status

    async def update_monthly_accuracy(self, card_id: str, month: date | None = None) -> ConvergentTruth:
        """Credit a stable month with a confidence bump.

        The stored truth gains +0.05 confidence (capped at 1.0) once per
        calendar month, and only while its confidence is at least 0.8.
        Credited months are kept so later refreshes keep the bump.
        """
        truth = await self.get_truth(card_id)
        month_key = (month or date.today()).strftime("%Y-%m")
        accuracy = await self.repository.get_accuracy(card_id)

        if month_key in accuracy.months or truth.merged.confidence < ACCURACY_MIN_CONFIDENCE:
            return truth

        accuracy.months.append(month_key)
        accuracy.monthly_updates += 1
        accuracy.last_update = datetime.now(timezone.utc)
        await self.repository.put_accuracy(card_id, accuracy)

        bumped = round(min(1.0, truth.merged.confidence + ACCURACY_BUMP), 4)
        truth = truth.model_copy(update={"merged": truth.merged.model_copy(update={"confidence": bumped})})
        await self.repository.put_truth(truth)
        logger.info("Monthly accuracy updated", extra={"card_id": card_id, "month": month_key, "confidence": bumped})
        return truth
