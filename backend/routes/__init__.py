"""FastAPI API endpoints under /api.

Endpoint groups: health, sessions (start a game, read its state and log,
submit one player action per turn, end it).
"""

from fastapi import APIRouter

from .health import router as health_router
from .sessions import router as sessions_router

router = APIRouter()
router.include_router(health_router)
router.include_router(sessions_router)
