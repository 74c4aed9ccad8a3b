"""FastAPI dependency injection for settings, storage and services."""

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from cardtruth.config import Settings, get_settings
from cardtruth.db.session import get_db
from cardtruth.repositories.layers import SqlKeyValueStore, TruthLayerRepository
from cardtruth.services.truth import CardTruthService


async def get_layer_repository(
    db: AsyncSession = Depends(get_db),
) -> TruthLayerRepository:
    """
    Get truth layer repository instance.

    Args:
        db: Database session

    Returns:
        TruthLayerRepository over the layer_records table
    """
    return TruthLayerRepository(SqlKeyValueStore(db))


async def get_truth_service(
    repository: TruthLayerRepository = Depends(get_layer_repository),
    settings: Settings = Depends(get_settings),
) -> CardTruthService:
    """
    Get card truth service instance.

    Args:
        repository: Truth layer repository
        settings: Application settings

    Returns:
        CardTruthService instance
    """
    return CardTruthService(repository, settings)
