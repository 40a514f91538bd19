"""Countdown to the next random event.

Each world-advancing action ticks the counter down by one. When it reaches
zero the action carries a random-event directive to the narrator and the
counter starts over from `reset_value`. Meta queries never touch it.
"""

from __future__ import annotations

from pydantic import BaseModel, Field, model_validator


class EventCounter(BaseModel):
    reset_value: int = Field(ge=1)
    remaining: int | None = Field(default=None, ge=0)

    @model_validator(mode="after")
    def _start_full(self) -> EventCounter:
        if self.remaining is None:
            self.remaining = self.reset_value
        return self

    def advance(self) -> bool:
        """Count one world-advancing action. Returns True if the event fired."""
        self.remaining = max(self.remaining - 1, 0)
        if self.remaining == 0:
            self.remaining = self.reset_value
            return True
        return False

    def snapshot(self) -> tuple[int, int]:
        return self.remaining, self.reset_value

    def restore(self, snapshot: tuple[int, int]) -> None:
        self.remaining, self.reset_value = snapshot
