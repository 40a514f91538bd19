"""Stream ingestion — consume narrator fragments in arrival order."""

from __future__ import annotations

import logging
from collections.abc import AsyncGenerator, Callable
from contextlib import aclosing

from rpg_chronicle.models import Turn

logger = logging.getLogger(__name__)

FragmentCallback = Callable[[str], None]


async def ingest(
    fragments: AsyncGenerator[str, None],
    buffer: list[str],
    live_turn: Turn | None = None,
    on_fragment: FragmentCallback | None = None,
) -> str:
    """Drain `fragments` into `buffer` and return the full text.

    When `live_turn` is given (world-advancing turns), every fragment is
    also appended to its text so readers of the session see the response
    grow. Meta queries pass None and are buffered silently. Failures from
    the narrator propagate unchanged; whatever arrived before the failure
    stays in `buffer`. The generator is closed before returning or
    raising, including when `on_fragment` raises.
    """
    count = 0
    async with aclosing(fragments) as stream:
        async for fragment in stream:
            if not fragment:
                continue
            buffer.append(fragment)
            count += 1
            if live_turn is not None:
                live_turn.text += fragment
                if on_fragment is not None:
                    on_fragment(fragment)
    full_text = "".join(buffer)
    logger.debug("stream finished fragments=%d len=%d", count, len(full_text))
    return full_text
