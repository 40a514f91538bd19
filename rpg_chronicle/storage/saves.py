"""Save slots — one JSON save file per slot under {data}/saves/."""

import logging
from datetime import datetime, timezone
from typing import Any

from rpg_chronicle.engine.serializer import SnapshotError, dumps, loads
from rpg_chronicle.models import SaveState

from .core import saves_dir, slugify

logger = logging.getLogger(__name__)

DEFAULT_SLOT = "autosave"


class SaveNotFoundError(LookupError):
    """Raised when a save slot does not exist."""


def _slot_path(slot: str):
    return saves_dir() / f"{slugify(slot)}.json"


def save_game(state: SaveState, slot: str = DEFAULT_SLOT) -> str:
    """Write a save to its slot, replacing any previous save. Returns the slot slug."""
    path = _slot_path(slot)
    path.write_text(dumps(state), encoding="utf-8")
    logger.info("game saved slot=%s turns=%d", path.stem, len(state.game_history))
    return path.stem


def load_game(slot: str = DEFAULT_SLOT) -> SaveState:
    """Read a save slot.

    A slot that cannot be parsed is deleted before SnapshotError is raised,
    so it is not offered again.
    """
    path = _slot_path(slot)
    if not path.is_file():
        raise SaveNotFoundError(f"No save in slot {path.stem!r}")
    try:
        return loads(path.read_bytes())
    except SnapshotError:
        logger.warning("Removing unreadable save slot %s", path.stem)
        path.unlink(missing_ok=True)
        raise


def has_save(slot: str = DEFAULT_SLOT) -> bool:
    return _slot_path(slot).is_file()


def delete_save(slot: str) -> bool:
    path = _slot_path(slot)
    if not path.is_file():
        return False
    path.unlink()
    return True


def list_saves() -> list[dict[str, Any]]:
    """List save slots, most recently written first."""
    results = []
    for path in saves_dir().glob("*.json"):
        mtime = datetime.fromtimestamp(path.stat().st_mtime, tz=timezone.utc)
        results.append({"slot": path.stem, "saved_at": mtime.isoformat()})
    results.sort(key=lambda entry: entry["saved_at"], reverse=True)
    return results
