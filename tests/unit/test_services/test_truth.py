"""Unit tests for CardTruthService."""

from datetime import date
from decimal import Decimal

import pytest

from cardtruth.config import Settings
from cardtruth.core.exceptions import CardNotFoundError, FeatureDisabledError, UnsupportedFormatError
from cardtruth.schemas.fields import FieldName
from cardtruth.schemas.ingestion import ConfirmationData
from cardtruth.schemas.layers import EstimatedCycle, InferredData, LayerName
from cardtruth.schemas.statement import InstallmentPlan
from cardtruth.schemas.transaction import LedgerTransaction, TransactionType
from cardtruth.services.truth import CardTruthService

SUMMARY_TEXT = "New balance $2,074.43 Minimum due $35.00 due by 11/25/2024"

CSV_EXPORT = b"""Statement Balance,1500.00
Minimum Payment,40.00
Payment Due Date,11/20/2024
Billing Period,10/01/2024,10/31/2024
"""


@pytest.fixture
def service(repository, settings):
    return CardTruthService(repository, settings)


def confirmation(confidence: float | None = 0.85) -> ConfirmationData:
    field_confidence = {}
    if confidence is not None:
        field_confidence = {
            FieldName.PAYMENT_DUE_DATE: confidence,
            FieldName.MINIMUM_DUE: confidence,
            FieldName.STATEMENT_BALANCE: confidence,
        }
    return ConfirmationData(
        due_date=date(2024, 11, 25),
        minimum_due=Decimal("35.00"),
        statement_balance=Decimal("2074.43"),
        field_confidence=field_confidence,
    )


class TestIngestionPaths:
    """Test that each path writes its layer and re-merges."""

    async def test_summary(self, service, store):
        result = await service.ingest_summary("42", SUMMARY_TEXT)

        assert result.confidence == 1.0
        assert "card_42_L1_summary" in store.keys()
        truth = await service.get_truth("42")
        assert truth.merged.based_on == "summary"
        assert truth.merged.total_due == Decimal("2074.43")
        assert truth.merged.due_date == date(2024, 11, 25)

    async def test_unrecognized_summary_stores_nothing(self, service, store):
        result = await service.ingest_summary("42", "hello world")

        assert result.matched_fields == []
        assert store.keys() == []
        with pytest.raises(CardNotFoundError):
            await service.get_truth("42")

    async def test_structured(self, service):
        structured = await service.ingest_structured("42", CSV_EXPORT, "export.csv")

        assert structured.statement_balance == Decimal("1500.00")
        truth = await service.get_truth("42")
        assert truth.merged.based_on == "structured"
        assert truth.merged.minimum_due == Decimal("40.00")

    async def test_structured_rejects_pdf(self, service, store):
        with pytest.raises(UnsupportedFormatError):
            await service.ingest_structured("42", b"%PDF-1.4", "statement.pdf")
        assert store.keys() == []

    async def test_statement_writes_nothing(self, service, store, sample_statement_text):
        """Test a statement upload only returns values for confirmation."""
        result = await service.ingest_statement("42", sample_statement_text.encode(), "statement.txt")

        assert result.statement_balance == Decimal("2074.43")
        assert store.keys() == []

    async def test_ingestion_disabled(self, repository):
        service = CardTruthService(repository, Settings(_env_file=None, feature_ingestion_enabled=False))
        with pytest.raises(FeatureDisabledError):
            await service.ingest_summary("42", SUMMARY_TEXT)


class TestConfirmation:
    """Test applying confirmed PDF values."""

    async def test_apply_confirmed(self, service, repository):
        truth = await service.apply_confirmed("42", confirmation())

        assert await repository.is_pdf_confirmed("42") is True
        assert truth.merged.based_on == "pdf-confirmed"
        assert truth.merged.total_due == Decimal("2074.43")
        assert truth.merged.confidence == 0.85

        pdf = await repository.get("42", LayerName.L3_PDF)
        assert pdf.statement_balance.source == "pdf"
        assert pdf.closing_date is None

    async def test_user_entered_values_fully_trusted(self, service, repository):
        truth = await service.apply_confirmed("42", confirmation(confidence=None))

        pdf = await repository.get("42", LayerName.L3_PDF)
        assert pdf.due_date.source == "user"
        assert pdf.due_date.confidence == 1.0
        assert truth.merged.confidence == 1.0

    async def test_confirmed_plans_added(self, service):
        data = confirmation()
        data.installments = [
            InstallmentPlan(id="plan_laptop", descriptor="Laptop", monthly_charge=Decimal("150.00"), confidence=0.9)
        ]
        truth = await service.apply_confirmed("42", data)

        assert truth.merged.total_due == Decimal("2224.43")
        assert truth.merged.provenance["installments"] == "pdf-confirmed"

    async def test_confirm_when_ingestion_disabled(self, repository, store):
        """Test a disabled feature rejects confirmation before anything is stored."""
        service = CardTruthService(repository, Settings(_env_file=None, feature_ingestion_enabled=False))

        with pytest.raises(FeatureDisabledError) as exc_info:
            await service.apply_confirmed("42", confirmation())

        assert exc_info.value.details["path"] == "confirm"
        assert store.keys() == []
        assert await repository.is_pdf_confirmed("42") is False


class TestLedgerAndInference:
    """Test the ledger and inferred layers."""

    async def test_ledger_reconciliation(self, service):
        await service.ingest_summary("42", SUMMARY_TEXT)
        truth = await service.record_ledger(
            "42",
            date(2024, 10, 1),
            date(2024, 10, 31),
            [LedgerTransaction(transaction_date=date(2024, 10, 3), amount=Decimal("2000.00"))],
        )

        assert truth.reconciliation.balance_match is False
        assert truth.reconciliation.drift_amount == Decimal("74.43")
        assert truth.merged.total_due == Decimal("2074.43")

        status = await service.get_status("42")
        assert status.needs_attention is True
        assert status.layers_present == [LayerName.L0_TX, LayerName.L1_SUMMARY]

    async def test_reconciliation_disabled(self, repository):
        service = CardTruthService(repository, Settings(_env_file=None, feature_reconciliation=False))
        truth = await service.record_ledger(
            "42",
            None,
            None,
            [LedgerTransaction(transaction_date=date(2024, 10, 3), amount=Decimal("2000.00"))],
        )
        assert truth.reconciliation.balance_match is True
        assert truth.reconciliation.computed_balance is None

    async def test_record_inferred_drops_implausible_plans(self, service, repository):
        inferred = InferredData(
            installment_plans=[
                InstallmentPlan(id="plan_ok", monthly_charge=Decimal("15.99"), source="inferred", confidence=0.8),
                InstallmentPlan(id="plan_bad", monthly_charge=Decimal("0"), source="inferred", confidence=0.8),
            ],
            estimated_cycle=EstimatedCycle(due_date=date(2024, 11, 25), minimum_due=Decimal("30.00")),
            confidence=0.6,
        )
        truth = await service.record_inferred("42", inferred)

        stored = await repository.get("42", LayerName.LX_INFERRED)
        assert [plan.id for plan in stored.installment_plans] == ["plan_ok"]
        assert truth.merged.based_on == "inferred"
        assert truth.merged.total_due == Decimal("45.99")


class TestStatusAndAccuracy:
    """Test status reporting and the monthly accuracy bump."""

    async def test_status_without_truth(self, service):
        status = await service.get_status("42")

        assert status.has_truth is False
        assert status.needs_attention is True
        assert status.layers_present == []

    async def test_status_with_summary(self, service):
        await service.ingest_summary("42", SUMMARY_TEXT)
        status = await service.get_status("42")

        assert status.has_truth is True
        assert status.based_on == "summary"
        assert status.confidence == 1.0
        assert status.needs_attention is False

    async def test_monthly_bump_once_per_month(self, service, repository):
        await service.apply_confirmed("42", confirmation())

        truth = await service.update_monthly_accuracy("42", date(2024, 11, 1))
        assert truth.merged.confidence == 0.9

        again = await service.update_monthly_accuracy("42", date(2024, 11, 20))
        assert again.merged.confidence == 0.9
        assert (await repository.get_accuracy("42")).months == ["2024-11"]

    async def test_bump_survives_refresh(self, service):
        await service.apply_confirmed("42", confirmation())
        await service.update_monthly_accuracy("42", date(2024, 11, 1))
        await service.update_monthly_accuracy("42", date(2024, 12, 1))

        truth = await service.refresh("42")
        assert truth.merged.confidence == 0.95

    async def test_low_confidence_not_bumped(self, service, repository):
        await service.record_ledger("42", None, None, [])
        truth = await service.update_monthly_accuracy("42", date(2024, 11, 1))

        assert truth.merged.confidence == 0.5
        assert (await repository.get_accuracy("42")).months == []

    async def test_accuracy_requires_truth(self, service):
        with pytest.raises(CardNotFoundError):
            await service.update_monthly_accuracy("42")
