"""Core domain models.

All engine stages, storage functions and routes operate on these types.
Pydantic is used for validation and serialisation at every data boundary.
"""

from __future__ import annotations

from typing import Any, Literal

from pydantic import AliasChoices, BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

Language = Literal["en", "ru"]
Difficulty = Literal["normal", "hardcore"]
TurnRole = Literal["narrator", "player"]


class Turn(BaseModel):
    """A single entry in the visible transcript."""

    role: TurnRole
    text: str


class InventoryItem(BaseModel):
    name: str
    quantity: int = Field(default=1, ge=1)


class CharacterStatus(BaseModel):
    """Character sheet as last reported by the narrator.

    Attribute keys are chosen by the narrator at runtime, so they are kept
    as an open string mapping rather than typed fields.
    """

    attributes: dict[str, str] = Field(default_factory=dict)
    inventory: list[InventoryItem] = Field(default_factory=list)
    effects: list[str] = Field(default_factory=list)

    def is_empty(self) -> bool:
        return not (self.attributes or self.inventory or self.effects)


class StatusUpdate(BaseModel):
    """Partial status extracted from one response.

    `inventory` and `effects` are None when the response did not mention
    them at all; an empty list means "the character now has nothing".
    """

    attributes: dict[str, str] = Field(default_factory=dict)
    inventory: list[InventoryItem] | None = None
    effects: list[str] | None = None

    def is_empty(self) -> bool:
        return not self.attributes and self.inventory is None and self.effects is None


class NpcIntro(BaseModel):
    """An NPC introduction as it appears in a response."""

    name: str
    description: str


class Npc(BaseModel):
    """An NPC in the roster. `name` is the unique key."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    name: str
    description: str
    portrait_ref: str | None = None
    portrait_pending: bool = False


class SceneImage(BaseModel):
    """Illustration for one narrator turn, filled in after the turn finished."""

    turn_index: int
    ref: str | None = None
    error: str | None = None
    pending: bool = True


class GameSettings(BaseModel):
    """Setup parameters chosen before the first turn."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    setting: str
    description: str
    difficulty: Difficulty = "normal"
    narrative_style: str = ""
    event_timer: int = Field(default=3, ge=1)
    language: Language = "en"


class SaveState(BaseModel):
    """Persisted snapshot of a whole session.

    Dumped with camelCase keys; either camelCase or snake_case is accepted
    when loading.
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    game_history: list[Turn]
    chat_history: list[dict[str, Any]]
    event_counter: int = Field(ge=0)
    event_timer_setting: int = Field(ge=1)
    character_status: CharacterStatus | None = None
    journal: list[str] = Field(default_factory=list)
    npcs: list[Npc] = Field(default_factory=list)
    game_settings: GameSettings | None = None
    language: Language = "en"
    map_image_ref: str | None = Field(
        default=None,
        validation_alias=AliasChoices("mapImageRef", "map_image_ref", "mapImageUrl"),
    )
