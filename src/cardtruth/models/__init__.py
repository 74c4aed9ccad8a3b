"""Database models."""
from cardtruth.models.base import Base
from cardtruth.models.layer_record import LayerRecord

__all__ = ["Base", "LayerRecord"]
