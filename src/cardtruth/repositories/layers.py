"""Truth layer persistence over a string-keyed JSON store.

Records are stored under:

- ``card_{id}_{layer}``: one truth layer (e.g. ``card_42_L1_summary``)
- ``card_{id}_convergent_truth``: the last merged truth
- ``pdf_confirmed_{id}``: whether the user confirmed PDF values
- ``card_{id}_accuracy``: monthly accuracy bookkeeping

A blob that no longer validates against its model is logged and treated as
absent, so one corrupt record never blocks a merge.
"""

import copy
import logging
from datetime import datetime, timezone
from typing import Any, Protocol, TypeVar

from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from cardtruth.core.exceptions import LayerStorageError
from cardtruth.models.layer_record import LayerRecord
from cardtruth.schemas.card import AccuracyRecord, ConvergentTruth
from cardtruth.schemas.layers import LAYER_MODELS, LayerName, TruthLayers

logger = logging.getLogger(__name__)

M = TypeVar("M", bound=BaseModel)


class KeyValueStore(Protocol):
    """Async get/set of JSON-compatible dicts by string key."""

    async def get(self, key: str) -> dict[str, Any] | None: ...

    async def set(self, key: str, value: dict[str, Any]) -> None: ...


class InMemoryKeyValueStore:
    """Process-local store; values are deep-copied in and out."""

    def __init__(self, initial: dict[str, dict[str, Any]] | None = None):
        self._data: dict[str, dict[str, Any]] = copy.deepcopy(initial or {})

    async def get(self, key: str) -> dict[str, Any] | None:
        value = self._data.get(key)
        return copy.deepcopy(value) if value is not None else None

    async def set(self, key: str, value: dict[str, Any]) -> None:
        self._data[key] = copy.deepcopy(value)

    def keys(self) -> list[str]:
        return list(self._data)


class SqlKeyValueStore:
    """Store backed by the ``layer_records`` table."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get(self, key: str) -> dict[str, Any] | None:
        try:
            result = await self.db.execute(select(LayerRecord).where(LayerRecord.key == key))
        except SQLAlchemyError as e:
            raise LayerStorageError(details={"operation": "get", "key": key, "error": type(e).__name__}) from e
        record = result.scalar_one_or_none()
        return dict(record.value) if record is not None else None

    async def set(self, key: str, value: dict[str, Any]) -> None:
        try:
            result = await self.db.execute(select(LayerRecord).where(LayerRecord.key == key))
            record = result.scalar_one_or_none()
            if record is None:
                self.db.add(LayerRecord(key=key, value=value))
            else:
                record.value = value
            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            raise LayerStorageError(details={"operation": "set", "key": key, "error": type(e).__name__}) from e


def layer_key(card_id: str, layer: LayerName) -> str:
    return f"card_{card_id}_{layer.value}"


def truth_key(card_id: str) -> str:
    return f"card_{card_id}_convergent_truth"


def pdf_confirmed_key(card_id: str) -> str:
    return f"pdf_confirmed_{card_id}"


def accuracy_key(card_id: str) -> str:
    return f"card_{card_id}_accuracy"


class TruthLayerRepository:
    """Typed access to the layers, merged truth and flags of a card."""

    def __init__(self, store: KeyValueStore):
        self.store = store

    async def _load(self, key: str, model: type[M]) -> M | None:
        raw = await self.store.get(key)
        if raw is None:
            return None
        try:
            return model.model_validate(raw)
        except PydanticValidationError as e:
            logger.warning(
                "Discarding corrupt stored record",
                extra={"key": key, "model": model.__name__, "errors": e.error_count()},
            )
            return None

    async def _save(self, key: str, value: BaseModel) -> None:
        await self.store.set(key, value.model_dump(mode="json"))

    async def get(self, card_id: str, layer: LayerName) -> BaseModel | None:
        """Load one layer, or ``None`` when absent or corrupt."""
        return await self._load(layer_key(card_id, layer), LAYER_MODELS[layer])

    async def put(self, card_id: str, layer: LayerName, data: BaseModel) -> None:
        """Replace one layer."""
        expected = LAYER_MODELS[layer]
        if not isinstance(data, expected):
            raise TypeError(f"{layer.value} expects {expected.__name__}, got {type(data).__name__}")
        await self._save(layer_key(card_id, layer), data)
        logger.info("Truth layer stored", extra={"card_id": card_id, "layer": layer.value})

    async def load_layers(self, card_id: str) -> TruthLayers:
        """Load every layer stored for the card."""
        loaded = {layer.value: await self.get(card_id, layer) for layer in LayerName}
        return TruthLayers(**loaded)

    async def get_truth(self, card_id: str) -> ConvergentTruth | None:
        return await self._load(truth_key(card_id), ConvergentTruth)

    async def put_truth(self, truth: ConvergentTruth) -> None:
        await self._save(truth_key(truth.card_id), truth)

    async def is_pdf_confirmed(self, card_id: str) -> bool:
        raw = await self.store.get(pdf_confirmed_key(card_id))
        return bool(raw and raw.get("confirmed") is True)

    async def set_pdf_confirmed(self, card_id: str, confirmed: bool = True) -> None:
        await self.store.set(
            pdf_confirmed_key(card_id),
            {"confirmed": confirmed, "updated_at": datetime.now(timezone.utc).isoformat()},
        )

    async def get_accuracy(self, card_id: str) -> AccuracyRecord:
        """Accuracy bookkeeping for the card (empty record when none stored)."""
        return await self._load(accuracy_key(card_id), AccuracyRecord) or AccuracyRecord()

    async def put_accuracy(self, card_id: str, record: AccuracyRecord) -> None:
        await self._save(accuracy_key(card_id), record)
