"""Health check and settings endpoints."""

from fastapi import APIRouter, Request

from rpg_chronicle import storage

router = APIRouter()


@router.get("/health")
async def health():
    """Health check."""
    return {"status": "ok"}


@router.get("/settings")
async def get_settings():
    """Get global app settings (narrator and image connections, defaults)."""
    return storage.get_config()


@router.patch("/settings")
async def update_settings(request: Request, body: dict):
    """Update global app settings (partial merge) and reconnect the backends."""
    config = storage.update_config(body)
    reconnect = getattr(request.app.state, "reconnect", None)
    if reconnect is not None:
        reconnect(config)
    return config
