"""Unit tests for the statement ingestion pipeline."""

from datetime import date
from decimal import Decimal
from unittest.mock import Mock

import pytest

from cardtruth.config import Settings
from cardtruth.core.exceptions import ExtractionError, FeatureDisabledError, ValidationError
from cardtruth.parsers.extractor import TextExtractorRouter
from cardtruth.schemas.fields import FieldName
from cardtruth.schemas.statement import ExtractedText
from cardtruth.services.statement import OCR_WARNING, StatementPipeline, to_confirmation_data

RECURRING_LINES = "10/05 NETFLIX.COM 15.99\n09/05 NETFLIX.COM 15.99\n08/05 NETFLIX.COM 15.99\n"


@pytest.fixture
def pipeline(settings):
    return StatementPipeline(settings)


def ocr_router(text: str) -> Mock:
    """Router stand-in returning OCR output."""
    router = Mock(spec=TextExtractorRouter)
    router.extract.return_value = ExtractedText(text=text, method="image-ocr", confidence=0.82)
    return router


class TestStatementPipeline:
    """Test the end-to-end pipeline on text input."""

    def test_sample_statement(self, pipeline, sample_statement_text):
        result = pipeline.ingest(sample_statement_text.encode(), "statement.txt")

        statement = result.statement
        assert statement.issuer == "Chase"
        assert statement.card_last4 == "4321"
        assert statement.statement_balance == Decimal("2074.43")
        assert statement.minimum_due == Decimal("35.00")
        assert statement.payment_due_date == date(2024, 11, 25)
        assert statement.installment_plans == []
        assert result.analysis.balance_equation_valid is True
        assert result.analysis.needs_user_confirm is False
        assert result.validation_messages == []
        assert result.extraction_method == "text"
        assert result.metadata["file_type"] == "text"
        assert result.metadata["issuer_confidence"] == 0.95

    def test_normalization_changes_reported(self, pipeline, sample_statement_text):
        result = pipeline.ingest(sample_statement_text.encode(), "statement.txt")
        assert "Normalized currency symbols" in result.normalization_changes
        assert "Normalized currency symbols" in result.statement.warnings

    def test_inferred_plans(self, pipeline, sample_statement_text):
        """Test recurring charges become inferred plans when inference is on."""
        result = pipeline.ingest((sample_statement_text + RECURRING_LINES).encode(), "statement.txt")

        plans = result.statement.installment_plans
        assert [(plan.descriptor, plan.source) for plan in plans] == [("NETFLIX.COM", "inferred")]

    def test_inference_disabled(self, sample_statement_text):
        settings = Settings(_env_file=None, feature_plan_inference=False)
        result = StatementPipeline(settings).ingest((sample_statement_text + RECURRING_LINES).encode(), "statement.txt")
        assert result.statement.installment_plans == []

    def test_text_too_short(self, pipeline):
        with pytest.raises(ExtractionError) as exc_info:
            pipeline.ingest(b"New Balance $10.00", "statement.txt")
        assert exc_info.value.error_code == "EXT_003"
        assert exc_info.value.details["chars"] == 18

    def test_no_critical_fields(self, pipeline):
        with pytest.raises(ValidationError):
            pipeline.ingest(b"hello world " * 20, "notes.txt")

    @pytest.mark.parametrize("flag", ["feature_ingestion_enabled", "feature_statement_ingestion"])
    def test_feature_disabled(self, flag, sample_statement_text):
        settings = Settings(_env_file=None, **{flag: False})
        with pytest.raises(FeatureDisabledError):
            StatementPipeline(settings).ingest(sample_statement_text.encode(), "statement.txt")

    def test_ocr_warning(self, settings, sample_statement_text):
        router = ocr_router(sample_statement_text)
        result = StatementPipeline(settings, router=router).ingest(b"\x89PNG", "scan.png", password=None)

        assert OCR_WARNING in result.statement.warnings
        assert result.extraction_confidence == 0.82
        router.extract.assert_called_once_with(b"\x89PNG", "scan.png", None, None)


class TestConfirmationData:
    """Test the values offered to the user."""

    def test_from_text_statement(self, pipeline, sample_statement_text):
        confirmation = to_confirmation_data(pipeline.ingest(sample_statement_text.encode(), "statement.txt"))

        assert confirmation.due_date == date(2024, 11, 25)
        assert confirmation.minimum_due == Decimal("35.00")
        assert confirmation.statement_balance == Decimal("2074.43")
        assert confirmation.closing_date == date(2024, 10, 31)
        assert set(confirmation.field_confidence) == {
            FieldName.PAYMENT_DUE_DATE,
            FieldName.MINIMUM_DUE,
            FieldName.STATEMENT_BALANCE,
            FieldName.STATEMENT_PERIOD_END,
        }
        assert confirmation.source == "pdf"
        assert confirmation.needs_user_confirm is False

    def test_image_source(self, settings, sample_statement_text):
        result = StatementPipeline(settings, router=ocr_router(sample_statement_text)).ingest(b"\x89PNG", "scan.png")
        assert to_confirmation_data(result).source == "image"
