"""FastMCP server exposing the game in progress as MCP tools.

Tools:
  - character_status()   — character sheet (attributes, inventory, effects)
  - journal()            — journal entries in order
  - npc_roster()         — known NPCs with their descriptions
  - take_action(action)  — play one action and return the outcome
  - load_save(slot)      — continue a saved game from a save slot

The orchestrator is injected with set_orchestrator(). When run as
__main__, one is built from the stored config.

Usage:
    uv run python -m rpg_chronicle.mcp_server
"""

import asyncio

from mcp.server.fastmcp import FastMCP

from rpg_chronicle import storage
from rpg_chronicle.engine import SessionNotStartedError, SnapshotError, TurnError, TurnOrchestrator
from rpg_chronicle.i18n import message

mcp = FastMCP("rpg-chronicle")

_orchestrator: TurnOrchestrator | None = None
_turn_lock = asyncio.Lock()


def set_orchestrator(orchestrator: TurnOrchestrator | None) -> None:
    """Replace the active orchestrator (used in tests)."""
    global _orchestrator
    _orchestrator = orchestrator


def _session():
    if _orchestrator is None:
        raise SessionNotStartedError("No game engine attached")
    return _orchestrator.require_session()


@mcp.tool()
def character_status() -> dict:
    """Return the character sheet: attributes, inventory and active effects."""
    try:
        return _session().status.model_dump()
    except SessionNotStartedError as e:
        return {"error": str(e)}


@mcp.tool()
def journal() -> dict:
    """Return the journal entries recorded so far, oldest first."""
    try:
        return {"entries": list(_session().journal)}
    except SessionNotStartedError as e:
        return {"error": str(e)}


@mcp.tool()
def npc_roster() -> dict:
    """Return every NPC met so far with name and description."""
    try:
        return {"npcs": [
            {"name": npc.name, "description": npc.description}
            for npc in _session().npcs
        ]}
    except SessionNotStartedError as e:
        return {"error": str(e)}


@mcp.tool()
async def take_action(action: str) -> dict:
    """Play one player action and return the narrator's response."""
    try:
        session = _session()
        if _turn_lock.locked():
            return {"error": message("turn_in_progress", session.language)}
        async with _turn_lock:
            outcome = await _orchestrator.submit_action(action)
    except (SessionNotStartedError, TurnError, ValueError) as e:
        return {"error": str(e)}
    return outcome.model_dump()


@mcp.tool()
async def load_save(slot: str = storage.DEFAULT_SLOT) -> dict:
    """Continue a saved game from a save slot."""
    if _orchestrator is None:
        return {"error": "No game engine attached"}
    try:
        session = _orchestrator.load(storage.load_game(slot))
    except (storage.SaveNotFoundError, SnapshotError) as e:
        return {"error": str(e)}
    return {"turns": len(session.turns), "npcs": len(session.npcs)}


if __name__ == "__main__":
    import os
    from pathlib import Path

    from rpg_chronicle.app import build_image_generator, build_narrator

    storage.init_storage(Path(os.getenv("DATA_DIR", "data")))
    config = storage.get_config()
    set_orchestrator(TurnOrchestrator(build_narrator(config), build_image_generator(config)))
    mcp.run()
