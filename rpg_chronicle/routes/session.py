"""Game session endpoints: start, act, consult the GM, restart."""

from fastapi import APIRouter, Request

from rpg_chronicle.engine import SessionNotStartedError, TurnError
from rpg_chronicle.models import GameSettings

from .deps import get_orchestrator, http_error, turn_lock
from .models import ActionBody, DescribeItemBody, GameMasterBody, UseItemBody

router = APIRouter()


@router.get("/session")
async def get_session(request: Request):
    """Get the current game state (transcript, status, journal, NPCs, counter)."""
    try:
        session = get_orchestrator(request).require_session()
    except SessionNotStartedError as e:
        raise http_error(e)
    return session.view()


@router.post("/session/start")
async def start_session(request: Request, body: GameSettings):
    """Start a new game and play the opening turn."""
    orchestrator = get_orchestrator(request)
    async with turn_lock(request):
        try:
            session = await orchestrator.start_game(body)
        except TurnError as e:
            raise http_error(e)
    return session.view()


@router.post("/session/action")
async def submit_action(request: Request, body: ActionBody):
    """Send a player action and wait for the narrator's full response."""
    orchestrator = get_orchestrator(request)
    async with turn_lock(request):
        try:
            outcome = await orchestrator.submit_action(body.action)
        except (SessionNotStartedError, ValueError, TurnError) as e:
            raise http_error(e)
    return {"outcome": outcome, "session": orchestrator.session.view()}


@router.post("/session/use-item")
async def use_item(request: Request, body: UseItemBody):
    """Act on an inventory item ("drink" + "Healing Potion")."""
    orchestrator = get_orchestrator(request)
    async with turn_lock(request):
        try:
            outcome = await orchestrator.use_item(body.verb, body.item)
        except (SessionNotStartedError, ValueError, TurnError) as e:
            raise http_error(e)
    return {"outcome": outcome, "session": orchestrator.session.view()}


@router.post("/session/restart")
async def restart_session(request: Request):
    """Drop the current game."""
    async with turn_lock(request):
        get_orchestrator(request).restart()
    return {"ok": True}


@router.post("/session/gm")
async def contact_game_master(request: Request, body: GameMasterBody):
    """Ask the Game Master an out-of-character question."""
    try:
        answer = await get_orchestrator(request).ask_game_master(body.message)
    except (SessionNotStartedError, TurnError) as e:
        raise http_error(e)
    return {"answer": answer}


@router.post("/session/describe-item")
async def describe_item(request: Request, body: DescribeItemBody):
    """Get a description of an inventory item."""
    try:
        description = await get_orchestrator(request).describe_item(body.item)
    except (SessionNotStartedError, TurnError) as e:
        raise http_error(e)
    return {"item": body.item, "description": description}
