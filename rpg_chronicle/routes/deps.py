"""Shared helpers: engine access, re-entry guard, error mapping."""

import asyncio

from fastapi import HTTPException, Request

from rpg_chronicle.engine import SessionNotStartedError, SnapshotError, TurnError, TurnOrchestrator
from rpg_chronicle.i18n import message
from rpg_chronicle.storage import SaveNotFoundError


def get_orchestrator(request: Request) -> TurnOrchestrator:
    return request.app.state.orchestrator


def turn_lock(request: Request) -> asyncio.Lock:
    """Lock held while an action is in flight.

    The orchestrator itself does not guard against re-entry.
    """
    lock: asyncio.Lock = request.app.state.turn_lock
    if lock.locked():
        raise HTTPException(409, message("turn_in_progress", language(request)))
    return lock


def language(request: Request) -> str:
    session = get_orchestrator(request).session
    return session.language if session else "en"


def http_error(e: Exception) -> HTTPException:
    """Map an engine exception to a single human-readable HTTP error."""
    if isinstance(e, SessionNotStartedError):
        return HTTPException(400, str(e))
    if isinstance(e, ValueError) and not isinstance(e, SnapshotError):
        return HTTPException(400, str(e))
    if isinstance(e, SaveNotFoundError):
        return HTTPException(404, str(e))
    if isinstance(e, SnapshotError):
        return HTTPException(422, str(e))
    if isinstance(e, TurnError):
        return HTTPException(502, str(e))
    return HTTPException(500, str(e))
