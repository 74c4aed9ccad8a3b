"""API version 1 routes."""

from fastapi import APIRouter

from cardtruth.api.v1 import cards

router = APIRouter(prefix="/api/v1")

# Include routers
router.include_router(cards.router)
