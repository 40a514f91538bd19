"""Shared test doubles: a scripted narrator and an in-memory image generator."""

import asyncio
from collections.abc import AsyncIterator
from dataclasses import dataclass

import pytest

from rpg_chronicle.engine import TurnOrchestrator
from rpg_chronicle.llm import ChatNarrator, LLMError
from rpg_chronicle.models import GameSettings

OPENING = (
    "You wake on a cold stone floor.\n"
    "<gamedata>\n"
    "  <journal>Woke up in a cell.</journal>\n"
    '  <npcs><npc name="Jailer" description="A tired man with keys" /></npcs>\n'
    "</gamedata>"
)


@dataclass
class Broken:
    """A scripted response that dies after streaming `partial`."""

    partial: str = ""
    error: Exception = LLMError("connection reset")


@dataclass
class Paused:
    """A scripted response that stops after `partial` until `gate` is set."""

    partial: str
    rest: str
    gate: asyncio.Event
    reached: asyncio.Event


class ScriptedNarrator(ChatNarrator):
    """Plays back canned responses in order, a few characters per fragment."""

    def __init__(self, responses: list | None = None, chunk: int = 8) -> None:
        self.responses = list(responses or [])
        self.chunk = chunk
        self.calls: list[tuple[str, list[dict[str, str]]]] = []

    def _chunks(self, text: str) -> list[str]:
        return [text[i:i + self.chunk] for i in range(0, len(text), self.chunk)]

    async def _stream(self, stage: str, messages: list[dict[str, str]]) -> AsyncIterator[str]:
        self.calls.append((stage, [dict(m) for m in messages]))
        if not self.responses:
            raise AssertionError(f"No scripted response left for stage {stage!r}")
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        if isinstance(response, Broken):
            for fragment in self._chunks(response.partial):
                yield fragment
            raise response.error
        if isinstance(response, Paused):
            for fragment in self._chunks(response.partial):
                yield fragment
            response.reached.set()
            await response.gate.wait()
            for fragment in self._chunks(response.rest):
                yield fragment
            return
        for fragment in self._chunks(response):
            yield fragment

    def script(self, *responses: str) -> "ScriptedNarrator":
        self.responses.extend(responses)
        return self

    def fail(self, partial: str = "", error: Exception | None = None) -> "ScriptedNarrator":
        self.responses.append(Broken(partial, error or LLMError("connection reset")))
        return self

    def pause(self, partial: str, rest: str = "") -> Paused:
        """Queue a response that stalls mid-stream. Set `.gate` to let it finish."""
        paused = Paused(partial, rest, asyncio.Event(), asyncio.Event())
        self.responses.append(paused)
        return paused

    def last_user_message(self) -> str:
        return self.calls[-1][1][-1]["content"]


class StubImages:
    """Returns a numbered data URL per request. Optionally waits on `gate`."""

    def __init__(self, fail: bool = False, gate: asyncio.Event | None = None) -> None:
        self.fail = fail
        self.gate = gate
        self.prompts: list[str] = []

    async def generate(self, prompt: str) -> str:
        self.prompts.append(prompt)
        if self.gate is not None:
            await self.gate.wait()
        if self.fail:
            raise LLMError("image backend down")
        return f"data:image/png;base64,img{len(self.prompts)}"


@pytest.fixture
def settings() -> GameSettings:
    return GameSettings(
        setting="Dark fantasy",
        description="A disgraced knight looking for redemption",
        event_timer=3,
    )


@pytest.fixture
def narrator() -> ScriptedNarrator:
    return ScriptedNarrator([OPENING])


@pytest.fixture
def images() -> StubImages:
    return StubImages()


@pytest.fixture
async def orchestrator(narrator, settings) -> TurnOrchestrator:
    """An orchestrator with a game already started (no image backend)."""
    orch = TurnOrchestrator(narrator)
    await orch.start_game(settings)
    return orch
