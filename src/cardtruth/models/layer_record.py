"""String-keyed JSON records backing the truth layer store."""
from typing import Any

from sqlalchemy import JSON, String
from sqlalchemy.orm import Mapped, mapped_column

from cardtruth.models.base import TimestampedRecord


class LayerRecord(TimestampedRecord):
    """One stored blob: a truth layer, a merged truth, a flag or an accuracy record."""

    __tablename__ = "layer_records"

    key: Mapped[str] = mapped_column(String(255), unique=True, index=True, nullable=False)
    value: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)
