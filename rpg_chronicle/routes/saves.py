"""Save, load, import and export endpoints."""

from typing import Any

from fastapi import APIRouter, HTTPException, Request

from rpg_chronicle import storage
from rpg_chronicle.engine import SessionNotStartedError, SnapshotError, serializer

from .deps import get_orchestrator, http_error, turn_lock
from .models import SlotBody

router = APIRouter()


@router.get("/saves")
async def list_saves():
    """List save slots, most recent first."""
    return storage.list_saves()


@router.delete("/saves/{slot}")
async def delete_save(slot: str):
    """Delete a save slot."""
    if not storage.delete_save(slot):
        raise HTTPException(404, "Save not found")
    return {"ok": True}


@router.post("/session/save")
async def save_session(request: Request, body: SlotBody):
    """Save the current game to a slot."""
    async with turn_lock(request):
        try:
            state = get_orchestrator(request).snapshot()
        except (SessionNotStartedError, SnapshotError) as e:
            raise http_error(e)
    return {"slot": storage.save_game(state, body.slot)}


@router.post("/session/load")
async def load_session(request: Request, body: SlotBody):
    """Load a game from a save slot, replacing the current one."""
    orchestrator = get_orchestrator(request)
    async with turn_lock(request):
        try:
            session = orchestrator.load(storage.load_game(body.slot))
        except (storage.SaveNotFoundError, SnapshotError) as e:
            raise http_error(e)
    return session.view()


@router.post("/session/import")
async def import_session(request: Request, body: dict[str, Any]):
    """Load a game from the contents of a downloaded save file."""
    orchestrator = get_orchestrator(request)
    async with turn_lock(request):
        try:
            session = orchestrator.load(serializer.validate(body))
        except SnapshotError as e:
            raise http_error(e)
    return session.view()


@router.get("/session/export")
async def export_session(request: Request):
    """Download the current game as a save file document."""
    async with turn_lock(request):
        try:
            state = get_orchestrator(request).snapshot()
        except (SessionNotStartedError, SnapshotError) as e:
            raise http_error(e)
    return state.model_dump(mode="json", by_alias=True)
