"""Tests for truth layer persistence."""

from datetime import date, datetime, timezone
from decimal import Decimal
from unittest.mock import AsyncMock

import pytest
from sqlalchemy.exc import OperationalError

from cardtruth.core.exceptions import LayerStorageError
from cardtruth.repositories.layers import (
    InMemoryKeyValueStore,
    SqlKeyValueStore,
    TruthLayerRepository,
    layer_key,
)
from cardtruth.schemas.card import AccuracyRecord, CardSnapshot, ConvergentTruth, Reconciliation
from cardtruth.schemas.layers import LayerName, StructuredData, SummaryData, TruthLayers


@pytest.fixture
def summary():
    return SummaryData(
        statement_balance=Decimal("2074.43"),
        minimum_due=Decimal("35.00"),
        due_date=date(2024, 11, 25),
        confidence=1.0,
    )


class TestInMemoryKeyValueStore:
    """Test the process-local store."""

    async def test_values_are_copied(self, store):
        value = {"nested": {"a": 1}}
        await store.set("k", value)
        value["nested"]["a"] = 2

        loaded = await store.get("k")
        assert loaded == {"nested": {"a": 1}}
        loaded["nested"]["a"] = 3
        assert (await store.get("k")) == {"nested": {"a": 1}}

    async def test_missing_key(self, store):
        assert await store.get("missing") is None


class TestTruthLayerRepository:
    """Test typed layer access."""

    async def test_round_trip_layer(self, repository, store, summary):
        await repository.put("42", LayerName.L1_SUMMARY, summary)

        assert store.keys() == ["card_42_L1_summary"]
        loaded = await repository.get("42", LayerName.L1_SUMMARY)
        assert loaded.statement_balance == Decimal("2074.43")
        assert loaded.due_date == date(2024, 11, 25)

    async def test_wrong_model_rejected(self, repository, summary):
        with pytest.raises(TypeError):
            await repository.put("42", LayerName.L2_STRUCTURED, summary)

    async def test_corrupt_blob_treated_as_absent(self, repository, store, caplog):
        await store.set(layer_key("42", LayerName.L1_SUMMARY), {"confidence": "not a number"})

        assert await repository.get("42", LayerName.L1_SUMMARY) is None
        assert "Discarding corrupt stored record" in caplog.text

    async def test_load_layers(self, repository, summary):
        structured = StructuredData(period_start=date(2024, 10, 1), period_end=date(2024, 10, 31), source="csv")
        await repository.put("42", LayerName.L1_SUMMARY, summary)
        await repository.put("42", LayerName.L2_STRUCTURED, structured)

        layers = await repository.load_layers("42")
        assert layers.present() == [LayerName.L1_SUMMARY, LayerName.L2_STRUCTURED]
        assert (await repository.load_layers("other")).present() == []

    async def test_pdf_confirmed_flag(self, repository, store):
        assert await repository.is_pdf_confirmed("42") is False
        await repository.set_pdf_confirmed("42")
        assert await repository.is_pdf_confirmed("42") is True
        assert (await store.get("pdf_confirmed_42"))["confirmed"] is True

        await repository.set_pdf_confirmed("42", False)
        assert await repository.is_pdf_confirmed("42") is False

    async def test_truth_round_trip(self, repository):
        now = datetime(2024, 11, 1, tzinfo=timezone.utc)
        truth = ConvergentTruth(
            card_id="42",
            layers=TruthLayers(),
            merged=CardSnapshot(
                card_id="42",
                due_date=date(2024, 11, 25),
                minimum_due=Decimal("35.00"),
                total_due=Decimal("2074.43"),
                confidence=0.95,
                last_updated=now,
            ),
            reconciliation=Reconciliation(),
            last_merge=now,
        )
        await repository.put_truth(truth)

        loaded = await repository.get_truth("42")
        assert loaded == truth
        assert await repository.get_truth("other") is None

    async def test_accuracy_defaults_to_empty(self, repository):
        assert await repository.get_accuracy("42") == AccuracyRecord()
        await repository.put_accuracy("42", AccuracyRecord(months=["2024-11"], monthly_updates=1))
        assert (await repository.get_accuracy("42")).months == ["2024-11"]


class TestSqlKeyValueStore:
    """Test the database-backed store."""

    async def test_insert_and_update(self, db_session):
        store = SqlKeyValueStore(db_session)

        await store.set("card_1_L1_summary", {"confidence": 0.9})
        await store.set("card_1_L1_summary", {"confidence": 1.0})

        assert await store.get("card_1_L1_summary") == {"confidence": 1.0}
        assert await store.get("missing") is None

    async def test_repository_over_sql(self, db_session, summary):
        repository = TruthLayerRepository(SqlKeyValueStore(db_session))
        await repository.put("7", LayerName.L1_SUMMARY, summary)

        loaded = await repository.get("7", LayerName.L1_SUMMARY)
        assert loaded.minimum_due == Decimal("35.00")

    async def test_database_error_wrapped(self):
        session = AsyncMock()
        session.execute.side_effect = OperationalError("SELECT", {}, Exception("locked"))

        with pytest.raises(LayerStorageError) as exc_info:
            await SqlKeyValueStore(session).set("k", {})

        assert exc_info.value.error_code == "STORE_001"
        session.rollback.assert_awaited_once()
