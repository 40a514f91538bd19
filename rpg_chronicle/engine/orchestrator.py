"""Turn orchestrator — runs one player action end-to-end.

Turn flow:
  1. Classify the action: a meta query (status/inventory/health) asks for a
     report, anything else advances the world and ticks the event counter.
     When the counter fires, the random-event directive rides along with
     the action.
  2. Append the player turn and an empty narrator turn so readers of the
     session see the narrator responding.
  3. Stream the narrator's response. World-advancing turns show fragments
     live; meta queries are buffered silently.
  4. Parse the full text once the stream has finished.
  5. Meta query: keep only the readable part of the report and merge the
     status data into the character sheet.
  6. World-advancing action: keep only the narrative, record the journal
     note, register new NPCs and request their portraits plus a scene
     illustration in the background.
  7. If the narrator fails during 3-4, both turns from step 2 are removed,
     the counter is put back if this call moved it, and TurnError is raised.

Callers must not submit a second action while one is in flight; nothing
here guards against it.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Coroutine
from typing import Any

from pydantic import BaseModel, Field

from rpg_chronicle import prompts
from rpg_chronicle.engine import serializer
from rpg_chronicle.engine.counter import EventCounter
from rpg_chronicle.engine.parser import parse_response, parse_status_report
from rpg_chronicle.engine.reconciler import add_journal_entry, add_npcs_if_new, apply_status
from rpg_chronicle.engine.session import Session
from rpg_chronicle.engine.stream import FragmentCallback, ingest
from rpg_chronicle.i18n import is_meta_command, message
from rpg_chronicle.llm import ImageGenerator, Narrator
from rpg_chronicle.models import GameSettings, Npc, SaveState, SceneImage, Turn

logger = logging.getLogger(__name__)


class TurnError(RuntimeError):
    """Raised when the narrator fails while serving an action."""


class SessionNotStartedError(RuntimeError):
    """Raised when an operation needs a game in progress."""


class TurnOutcome(BaseModel):
    turn_index: int
    narrative: str
    is_meta: bool
    event_triggered: bool = False
    journal_entry: str | None = None
    new_npcs: list[str] = Field(default_factory=list)
    status_updated: bool = False


class TurnOrchestrator:
    """Owns the active Session and every mutation applied to it."""

    def __init__(self, narrator: Narrator, images: ImageGenerator | None = None) -> None:
        self._narrator = narrator
        self._images = images
        self._session: Session | None = None
        self._tasks: set[asyncio.Task] = set()

    @property
    def session(self) -> Session | None:
        return self._session

    @property
    def narrator(self) -> Narrator:
        return self._narrator

    def reconnect(self, narrator: Narrator, images: ImageGenerator | None = None) -> None:
        """Swap the backends. The game in progress, if any, carries on."""
        self._narrator = narrator
        self._images = images

    def require_session(self) -> Session:
        if self._session is None:
            raise SessionNotStartedError(message("no_session"))
        return self._session

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start_game(self, settings: GameSettings) -> Session:
        """Open a new narrator session and play its opening turn."""
        session = Session(
            counter=EventCounter(reset_value=settings.event_timer),
            settings=settings,
            language=settings.language,
        )
        try:
            transcript, first_text = await self._narrator.start_session(settings)
        except Exception as e:
            raise TurnError(f"{message('start_failed', settings.language)}: {e}") from e

        session.transcript = transcript
        parsed = parse_response(first_text)
        session.turns.append(Turn(role="narrator", text=parsed.narrative))
        add_journal_entry(session.journal, parsed.journal)
        added = add_npcs_if_new(session.npcs, parsed.npcs)

        self._cancel_background()
        self._session = session
        logger.info("game started language=%s event_timer=%d", settings.language, settings.event_timer)

        for npc in added:
            self._request_portrait(session, npc)
        if parsed.narrative:
            self._request_scene(session, 0, parsed.narrative)
        self._request_map(session, settings.setting)
        return session

    def restart(self) -> None:
        """Drop the current game."""
        self._cancel_background()
        self._session = None
        logger.info("game restarted")

    def snapshot(self) -> SaveState:
        return serializer.snapshot(self.require_session(), self._narrator)

    def load(self, state: SaveState) -> Session:
        """Replace the current game with a restored one.

        SnapshotError leaves the current game untouched.
        """
        session = serializer.restore(state, self._narrator)
        self._cancel_background()
        self._session = session
        logger.info("game loaded turns=%d npcs=%d", len(session.turns), len(session.npcs))

        if session.turns:
            last = session.turns[-1]
            if last.role == "narrator" and last.text:
                self._request_scene(session, len(session.turns) - 1, last.text)
        return session

    # ------------------------------------------------------------------
    # Turns
    # ------------------------------------------------------------------

    async def submit_action(
        self, action: str, on_fragment: FragmentCallback | None = None
    ) -> TurnOutcome:
        """Play one player action. See the module docstring for the flow."""
        session = self.require_session()
        if not action or not action.strip():
            raise ValueError("Action must not be empty")

        is_meta = is_meta_command(action)
        counter_before = session.counter.snapshot()
        triggered = False
        outgoing = action
        if not is_meta:
            triggered = session.counter.advance()
            if triggered:
                outgoing = prompts.with_random_event(action, session.language)
                logger.info("random event triggered, counter reset to %d", session.counter.reset_value)

        player_turn = Turn(role="player", text=action)
        narrator_turn = Turn(role="narrator", text="")
        session.turns.extend([player_turn, narrator_turn])

        buffer: list[str] = []
        try:
            full_text = await ingest(
                self._narrator.continue_session(session.transcript, outgoing),
                buffer,
                live_turn=None if is_meta else narrator_turn,
                on_fragment=on_fragment,
            )
        except Exception as e:
            session.turns[:] = [t for t in session.turns if t is not player_turn and t is not narrator_turn]
            if not is_meta:
                session.counter.restore(counter_before)
            logger.warning("turn failed after %d fragments, rolled back: %s", len(buffer), e)
            raise TurnError(f"{message('turn_failed', session.language)}: {e}") from e

        turn_index = len(session.turns) - 1

        if is_meta:
            report, update = parse_status_report(full_text)
            narrator_turn.text = report
            if update is not None:
                apply_status(session.status, update)
            return TurnOutcome(
                turn_index=turn_index,
                narrative=report,
                is_meta=True,
                status_updated=update is not None,
            )

        parsed = parse_response(full_text)
        narrator_turn.text = parsed.narrative
        journal_added = add_journal_entry(session.journal, parsed.journal)
        added = add_npcs_if_new(session.npcs, parsed.npcs)
        for npc in added:
            self._request_portrait(session, npc)
        if parsed.narrative:
            self._request_scene(session, turn_index, parsed.narrative)

        return TurnOutcome(
            turn_index=turn_index,
            narrative=parsed.narrative,
            is_meta=False,
            event_triggered=triggered,
            journal_entry=session.journal[-1] if journal_added else None,
            new_npcs=[npc.name for npc in added],
        )

    async def use_item(self, verb: str, item_name: str) -> TurnOutcome:
        """Act on an inventory item, e.g. use_item("drink", "Healing Potion")."""
        return await self.submit_action(f"{verb.strip()} {item_name.strip()}")

    # ------------------------------------------------------------------
    # Out-of-character consultations (never touch game state)
    # ------------------------------------------------------------------

    async def ask_game_master(self, text: str) -> str:
        session = self.require_session()
        prompt = prompts.gm_contact_prompt(text, session.language)
        return await self._consult(session, prompt, "gm_failed")

    async def describe_item(self, item_name: str) -> str:
        session = self.require_session()
        prompt = prompts.item_description_prompt(item_name, session.status.attributes, session.language)
        return await self._consult(session, prompt, "item_failed")

    async def _consult(self, session: Session, prompt: str, error_key: str) -> str:
        buffer: list[str] = []
        try:
            text = await ingest(self._narrator.consult(session.transcript, prompt), buffer)
        except Exception as e:
            raise TurnError(f"{message(error_key, session.language)}: {e}") from e
        return parse_response(text).narrative

    # ------------------------------------------------------------------
    # Background image requests
    # ------------------------------------------------------------------

    async def drain(self) -> None:
        """Wait for every outstanding image request to finish."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    def _spawn(self, coro: Coroutine[Any, Any, None], name: str) -> None:
        task = asyncio.create_task(coro, name=name)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    def _cancel_background(self) -> None:
        for task in list(self._tasks):
            task.cancel()

    def _request_portrait(self, session: Session, npc: Npc) -> None:
        if self._images is None:
            return
        npc.portrait_pending = True
        prompt = prompts.portrait_prompt(npc.name, npc.description, session.language)
        self._spawn(self._generate_portrait(session, npc.name, prompt), f"portrait:{npc.name}")

    async def _generate_portrait(self, session: Session, name: str, prompt: str) -> None:
        try:
            ref = await self._images.generate(prompt)
        except Exception as e:
            logger.warning("Portrait generation for %r failed: %s", name, e)
            ref = None
        npc = session.find_npc(name)
        if npc is None:
            return
        if ref is not None:
            npc.portrait_ref = ref
        npc.portrait_pending = False

    def _request_scene(self, session: Session, turn_index: int, scene: str) -> None:
        if self._images is None:
            return
        session.scene_image = SceneImage(turn_index=turn_index)
        prompt = prompts.scene_prompt(scene, session.language)
        self._spawn(self._generate_scene(session, turn_index, prompt), f"scene:{turn_index}")

    async def _generate_scene(self, session: Session, turn_index: int, prompt: str) -> None:
        ref: str | None = None
        error: str | None = None
        try:
            ref = await self._images.generate(prompt)
        except Exception as e:
            logger.warning("Scene illustration for turn %d failed: %s", turn_index, e)
            error = str(e)
        # A newer turn has already asked for its own illustration
        current = session.scene_image
        if current is None or current.turn_index != turn_index:
            return
        session.scene_image = SceneImage(turn_index=turn_index, ref=ref, error=error, pending=False)

    def _request_map(self, session: Session, setting: str) -> None:
        if self._images is None:
            return
        prompt = prompts.map_prompt(setting, session.language)
        self._spawn(self._generate_map(session, prompt), "map")

    async def _generate_map(self, session: Session, prompt: str) -> None:
        try:
            session.map_image_ref = await self._images.generate(prompt)
        except Exception as e:
            logger.warning("Map generation failed: %s", e)
