"""Turn engine.

Runs one player action end-to-end and keeps the derived game state in
step with the narrator's prose:
  parser       — split a response into narrative and <gamedata> blocks
  counter      — countdown to the next random event
  reconciler   — merge extracted blocks into status, journal and NPC roster
  stream       — consume narrator fragments in arrival order
  orchestrator — public entry point (start, submit_action, load, restart)
  serializer   — SaveState snapshot/restore

Response format (parsed by parse_response):
  Narrative prose.
  <gamedata>
    <journal>...</journal>
    <npcs><npc name="..." description="..." /></npcs>
    <status><Key>value</Key></status>
    <inventory><item name="..." quantity="..." /></inventory>
    <effects><effect name="..." duration="..." /></effects>
  </gamedata>
"""

from .counter import EventCounter  # noqa: F401
from .orchestrator import (  # noqa: F401
    SessionNotStartedError,
    TurnError,
    TurnOrchestrator,
    TurnOutcome,
)
from .parser import (  # noqa: F401
    ParsedResponse,
    parse_response,
    parse_status_lines,
    parse_status_report,
)
from .reconciler import (  # noqa: F401
    add_journal_entry,
    add_npcs_if_new,
    apply_status,
)
from .serializer import SnapshotError  # noqa: F401
from .session import Session  # noqa: F401
from .stream import ingest  # noqa: F401
