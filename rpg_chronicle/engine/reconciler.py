"""Merge extracted blocks into persistent game state."""

from __future__ import annotations

import logging

from rpg_chronicle.models import CharacterStatus, Npc, NpcIntro, StatusUpdate

logger = logging.getLogger(__name__)


def apply_status(status: CharacterStatus, update: StatusUpdate) -> CharacterStatus:
    """Merge a partial status into the character sheet in place.

    Attributes are merged key by key; keys absent from the update keep
    their old values. Inventory and effects, when present, replace the
    previous lists wholesale since the narrator always re-emits the full
    list.
    """
    status.attributes.update(update.attributes)
    if update.inventory is not None:
        status.inventory = [item.model_copy() for item in update.inventory]
    if update.effects is not None:
        status.effects = list(update.effects)
    logger.debug(
        "status merged: %d attributes, inventory=%s, effects=%s",
        len(update.attributes),
        "replaced" if update.inventory is not None else "kept",
        "replaced" if update.effects is not None else "kept",
    )
    return status


def add_npcs_if_new(roster: list[Npc], intros: list[NpcIntro]) -> list[Npc]:
    """Append NPCs whose names are not yet in the roster.

    Names are compared case-sensitively. Returns the NPCs actually added.
    """
    known = {npc.name for npc in roster}
    added: list[Npc] = []
    for intro in intros:
        if intro.name in known:
            logger.debug("NPC %r already known, skipped", intro.name)
            continue
        npc = Npc(name=intro.name, description=intro.description)
        roster.append(npc)
        added.append(npc)
        known.add(intro.name)
    return added


def add_journal_entry(journal: list[str], note: str | None) -> bool:
    """Append a journal note. Empty notes are ignored."""
    if not note or not note.strip():
        return False
    journal.append(note.strip())
    return True
