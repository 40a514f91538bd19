"""FastAPI API endpoints under /api.

Endpoint groups: settings (health, config), session (start, action,
use-item, restart, GM contact, item descriptions) and saves (save slots,
load, import/export of save files).
"""

from fastapi import APIRouter

from .saves import router as saves_router
from .session import router as session_router
from .settings import router as settings_router

router = APIRouter()
router.include_router(settings_router)
router.include_router(session_router)
router.include_router(saves_router)
