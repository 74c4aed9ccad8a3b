"""Statement ingestion pipeline.

This module orchestrates the complete statement ingestion workflow:
1. Extract text (PDF text layer, OCR, CSV/OFX, plain text)
2. Normalize text
3. Detect issuer and language
4. Extract canonical fields
5. Extract or infer installment plans
6. Score confidence
7. Validate

The pipeline is synchronous and writes nothing; persisting layers is the
caller's job once the user confirms the result.
"""

import logging
import time

from cardtruth.analysis.confidence import ConfidenceAnalyzer
from cardtruth.analysis.validation import check_plan_guards, validate_inferred_plans, validate_statement
from cardtruth.config import Settings, get_settings
from cardtruth.core.exceptions import ExtractionError, FeatureDisabledError
from cardtruth.parsers import (
    FieldExtractor,
    InstallmentExtractor,
    IssuerDetector,
    TextExtractorRouter,
    TextNormalizer,
)
from cardtruth.schemas.fields import FieldName
from cardtruth.schemas.ingestion import ConfirmationData, IngestionResult

logger = logging.getLogger(__name__)

OCR_METHODS = ("pdf-ocr", "image-ocr")
OCR_WARNING = "Text was read with OCR; please verify the extracted values"

CONFIRMATION_FIELDS = (
    FieldName.PAYMENT_DUE_DATE,
    FieldName.MINIMUM_DUE,
    FieldName.STATEMENT_BALANCE,
    FieldName.STATEMENT_PERIOD_END,
)


class StatementPipeline:
    """Runs a statement file through extraction, parsing and scoring.

    Every stage is injectable so tests can replace the OCR-dependent parts.
    """

    def __init__(
        self,
        settings: Settings | None = None,
        router: TextExtractorRouter | None = None,
        normalizer: TextNormalizer | None = None,
        detector: IssuerDetector | None = None,
        field_extractor: FieldExtractor | None = None,
        installment_extractor: InstallmentExtractor | None = None,
        analyzer: ConfidenceAnalyzer | None = None,
    ):
        self.settings = settings or get_settings()
        self.router = router or TextExtractorRouter(self.settings)
        self.normalizer = normalizer or TextNormalizer()
        self.detector = detector or IssuerDetector()
        self.field_extractor = field_extractor or FieldExtractor()
        self.installment_extractor = installment_extractor or InstallmentExtractor()
        self.analyzer = analyzer or ConfidenceAnalyzer()

    def ingest(
        self,
        data: bytes,
        filename: str | None = None,
        mime_type: str | None = None,
        password: str | None = None,
    ) -> IngestionResult:
        """Ingest a statement file.

        Args:
            data: File content as bytes
            filename: Original file name (used for format detection)
            mime_type: Declared MIME type
            password: Optional password for encrypted PDFs

        Returns:
            IngestionResult with the scored statement and validation messages

        Raises:
            FeatureDisabledError: If statement ingestion is turned off
            UnsupportedFormatError: If the file type is not supported
            ExtractionError: If no usable text could be extracted
            ValidationError: If no critical field was found
        """
        if not (self.settings.feature_ingestion_enabled and self.settings.feature_statement_ingestion):
            raise FeatureDisabledError(details={"feature": "statement_ingestion"})

        start_time = time.time()

        # Step 1: Extract
        extracted = self.router.extract(data, filename, mime_type, password)
        text_length = len(extracted.text.strip())
        if text_length < self.settings.min_ingest_text_chars:
            raise ExtractionError(
                "EXT_003",
                {"chars": text_length, "minimum": self.settings.min_ingest_text_chars, "method": extracted.method},
            )

        # Step 2-3: Normalize and detect
        normalized = self.normalizer.normalize(extracted.text)
        text = normalized.normalized_text
        detection = self.detector.detect(text)

        # Step 4-5: Fields and installment plans
        statement = self.field_extractor.extract(text, detection)
        plans = self.installment_extractor.extract(text, statement, infer=self.settings.feature_plan_inference)
        explicit = [plan for plan in plans if plan.source != "inferred"]
        inferred = validate_inferred_plans([plan for plan in plans if plan.source == "inferred"])
        statement.installment_plans = explicit + inferred

        warnings = list(statement.warnings)
        if extracted.method in OCR_METHODS:
            warnings.append(OCR_WARNING)
        warnings.extend(detection.hints)
        warnings.extend(normalized.changes)
        warnings.extend(check_plan_guards(statement.installment_plans, statement))
        statement.warnings = warnings

        # Step 6-7: Score and validate
        statement, analysis = self.analyzer.analyze(statement)
        validation_messages = validate_statement(statement)

        logger.info(
            "Statement ingested",
            extra={
                "method": extracted.method,
                "issuer": statement.issuer,
                "language": detection.language.value,
                "fields": len(statement.field_confidence),
                "plans": len(statement.installment_plans),
                "overall_confidence": analysis.overall_confidence,
                "needs_user_confirm": analysis.needs_user_confirm,
                "processing_time_ms": int((time.time() - start_time) * 1000),
            },
        )
        return IngestionResult(
            statement=statement,
            analysis=analysis,
            validation_messages=validation_messages,
            extraction_method=extracted.method,
            extraction_confidence=extracted.confidence,
            metadata={**extracted.metadata, "issuer_confidence": detection.confidence},
            normalization_changes=normalized.changes,
        )


def to_confirmation_data(result: IngestionResult) -> ConfirmationData:
    """Build the values shown to the user for confirmation."""
    statement = result.statement
    field_confidence = {
        field: statement.field_confidence[field]
        for field in CONFIRMATION_FIELDS
        if field in statement.field_confidence
    }
    return ConfirmationData(
        due_date=statement.payment_due_date,
        minimum_due=statement.minimum_due,
        statement_balance=statement.statement_balance,
        closing_date=statement.statement_period_end,
        installments=list(statement.installment_plans),
        field_confidence=field_confidence,
        source="image" if result.extraction_method == "image-ocr" else "pdf",
        needs_user_confirm=result.analysis.needs_user_confirm,
        warnings=list(dict.fromkeys(statement.warnings + result.validation_messages)),
    )
