"""The Session aggregate — everything one game consists of.

Only the TurnOrchestrator mutates a Session. Routes and tools read
snapshots produced by view().
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from rpg_chronicle.engine.counter import EventCounter
from rpg_chronicle.models import (
    CharacterStatus,
    GameSettings,
    Language,
    Npc,
    SceneImage,
    Turn,
)


class Session(BaseModel):
    model_config = ConfigDict(arbitrary_types_allowed=True)

    counter: EventCounter
    settings: GameSettings | None = None
    language: Language = "en"
    turns: list[Turn] = Field(default_factory=list)
    status: CharacterStatus = Field(default_factory=CharacterStatus)
    journal: list[str] = Field(default_factory=list)
    npcs: list[Npc] = Field(default_factory=list)
    scene_image: SceneImage | None = None
    map_image_ref: str | None = None
    # Narrator-side conversation state; opaque to the engine
    transcript: Any = Field(default=None, exclude=True)

    def find_npc(self, name: str) -> Npc | None:
        for npc in self.npcs:
            if npc.name == name:
                return npc
        return None

    def view(self) -> dict[str, Any]:
        """JSON-ready snapshot for display."""
        return self.model_dump(mode="json")
