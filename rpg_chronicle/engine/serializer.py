"""Session save/restore.

A SaveState carries the visible transcript, the derived state (character
sheet, counter, journal, NPC roster), the setup parameters and the
narrator's own transcript as exported by the narrator. restore() builds a
complete new Session before anything is handed back, so a failed restore
never touches the session currently in play.
"""

from __future__ import annotations

import logging
from typing import Any

from pydantic import ValidationError

from rpg_chronicle.engine.counter import EventCounter
from rpg_chronicle.engine.session import Session
from rpg_chronicle.llm import Narrator
from rpg_chronicle.models import CharacterStatus, SaveState

logger = logging.getLogger(__name__)


class SnapshotError(ValueError):
    """Raised when a save cannot be produced, parsed or restored."""


def _describe(error: ValidationError) -> str:
    first = error.errors()[0]
    location = ".".join(str(part) for part in first["loc"]) or "document"
    return f"{location}: {first['msg']}"


def snapshot(session: Session, narrator: Narrator) -> SaveState:
    """Capture the whole session as a SaveState."""
    try:
        chat_history = narrator.export_transcript(session.transcript)
    except Exception as e:
        raise SnapshotError(f"Could not export the narrator transcript: {e}") from e

    return SaveState(
        game_history=[turn.model_copy() for turn in session.turns],
        chat_history=chat_history,
        event_counter=session.counter.remaining,
        event_timer_setting=session.counter.reset_value,
        character_status=session.status.model_copy(deep=True),
        journal=list(session.journal),
        npcs=[npc.model_copy(update={"portrait_pending": False}) for npc in session.npcs],
        game_settings=session.settings,
        language=session.language,
        map_image_ref=session.map_image_ref,
    )


def restore(state: SaveState, narrator: Narrator) -> Session:
    """Build a new Session from a SaveState.

    Portrait requests that were in flight when the game was saved are not
    resumed, so every pending flag is cleared.
    """
    try:
        transcript = narrator.rehydrate_session(state.chat_history)
    except Exception as e:
        raise SnapshotError(f"Could not restore the narrator transcript: {e}") from e

    language = state.game_settings.language if state.game_settings else state.language
    return Session(
        counter=EventCounter(
            reset_value=state.event_timer_setting,
            remaining=state.event_counter,
        ),
        settings=state.game_settings,
        language=language,
        turns=[turn.model_copy() for turn in state.game_history],
        status=(state.character_status or CharacterStatus()).model_copy(deep=True),
        journal=list(state.journal),
        npcs=[npc.model_copy(update={"portrait_pending": False}) for npc in state.npcs],
        map_image_ref=state.map_image_ref,
        transcript=transcript,
    )


def dumps(state: SaveState, indent: int | None = 2) -> str:
    return state.model_dump_json(by_alias=True, indent=indent)


def loads(text: str | bytes) -> SaveState:
    """Parse a save file. Bad encoding, malformed JSON or missing fields raise SnapshotError."""
    if isinstance(text, bytes):
        try:
            text = text.decode("utf-8")
        except UnicodeDecodeError as e:
            logger.warning("Rejected save file: not UTF-8 text")
            raise SnapshotError("Invalid save file (not UTF-8 text)") from e
    try:
        return SaveState.model_validate_json(text)
    except ValidationError as e:
        logger.warning("Rejected save file: %s", _describe(e))
        raise SnapshotError(f"Invalid save file ({_describe(e)})") from e


def validate(data: Any) -> SaveState:
    """Validate an already-decoded save document."""
    try:
        return SaveState.model_validate(data)
    except ValidationError as e:
        logger.warning("Rejected save document: %s", _describe(e))
        raise SnapshotError(f"Invalid save file ({_describe(e)})") from e
