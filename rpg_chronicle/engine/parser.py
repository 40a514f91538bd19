"""Extraction of structured blocks from narrator responses.

A response is free prose optionally followed by a machine-readable block:

    The old man squints at you.
    <gamedata>
      <journal>Met the hermit at the well.</journal>
      <npcs>
        <npc name="Old Man" description="Gray beard, patched robe" />
      </npcs>
      <status>
        <Health>95/100</Health>
        <Gold>12</Gold>
      </status>
      <inventory>
        <item name="Rope" quantity="2" />
      </inventory>
      <effects>
        <effect name="Blessed" duration="3 turns" />
      </effects>
    </gamedata>

Everything before the opening <gamedata> marker is narrative. Every
sub-section is optional and parsed independently: a missing or broken
sub-section yields no data for that section and never raises, so the
narrative can always be shown.
"""

from __future__ import annotations

import html
import logging
import re
from collections.abc import Iterator

from pydantic import BaseModel, Field

from rpg_chronicle.models import InventoryItem, NpcIntro, StatusUpdate

logger = logging.getLogger(__name__)

GAMEDATA_TAG = "gamedata"

# Section names that are structure, never character attributes
RESERVED_TAGS = frozenset({
    GAMEDATA_TAG, "journal", "npcs", "npc", "status",
    "inventory", "item", "effects", "effect",
})

_ATTR_RE = re.compile(r"""([\w:-]+)\s*=\s*(?:"([^"]*)"|'([^']*)')""")
_ATTRS = r"""((?:\s+[\w:-]+\s*=\s*(?:"[^"]*"|'[^']*'))*)"""
_KEY_OPEN_RE = re.compile(r"<([^\W\d]\w*)\s*>")
_GAMEDATA_OPEN_RE = re.compile(rf"<{GAMEDATA_TAG}\b[^>]*>", re.IGNORECASE)

_INVENTORY_KEYWORDS = ("inventory", "инвентарь")
_BULLET_ITEM_RE = re.compile(r"^\s*[-*•]\s*(.+?)(?:\s*\((?:x|х)\s*(\d+)\))?\s*$")


class ParsedResponse(BaseModel):
    """Result of splitting one response into narrative and structured blocks."""

    narrative: str
    has_gamedata: bool = False
    journal: str | None = None
    npcs: list[NpcIntro] = Field(default_factory=list)
    status: StatusUpdate | None = None


# ---------------------------------------------------------------------------
# Tag scanning
# ---------------------------------------------------------------------------

def _open_tag(tag: str) -> re.Pattern:
    return re.compile(rf"<{tag}(?:\s[^>]*)?>", re.IGNORECASE)


def find_section(text: str, tag: str) -> str | None:
    """Return the inner text of the first <tag>...</tag>, or None.

    None covers both "not there" and "opened but never closed".
    """
    opening = _open_tag(tag).search(text)
    if opening is None:
        return None
    closing = re.compile(rf"</{tag}\s*>", re.IGNORECASE).search(text, opening.end())
    if closing is None:
        logger.debug("Unterminated <%s> section ignored", tag)
        return None
    return text[opening.end():closing.start()]


def iter_elements(text: str, tag: str) -> Iterator[dict[str, str]]:
    """Yield the attributes of each self-closing <tag ... /> element."""
    pattern = re.compile(rf"<{tag}{_ATTRS}\s*/>", re.IGNORECASE)
    for match in pattern.finditer(text):
        attrs: dict[str, str] = {}
        for attr in _ATTR_RE.finditer(match.group(1)):
            raw = attr.group(2) if attr.group(2) is not None else attr.group(3)
            attrs[attr.group(1).lower()] = html.unescape(raw).strip()
        yield attrs


def scan_key_values(text: str) -> dict[str, str]:
    """Collect <Key>value</Key> pairs.

    The closing tag must repeat the opening key exactly. A value that is
    itself made of key/value tags is descended into and flattened. Keys
    whose closing tag never appears are skipped.
    """
    pairs: dict[str, str] = {}
    pos = 0
    while True:
        opening = _KEY_OPEN_RE.search(text, pos)
        if opening is None:
            break
        key = opening.group(1)
        closing = re.compile(rf"</{re.escape(key)}\s*>").search(text, opening.end())
        if closing is None:
            pos = opening.end()
            continue
        pos = closing.end()
        if key.lower() in RESERVED_TAGS:
            continue

        inner = text[opening.end():closing.start()]
        nested = scan_key_values(inner)
        if nested:
            pairs.update(nested)
            continue
        value = html.unescape(inner).strip()
        if value:
            pairs[key] = value
    return pairs


# ---------------------------------------------------------------------------
# Sub-section parsers
# ---------------------------------------------------------------------------

def _parse_journal(body: str) -> str | None:
    section = find_section(body, "journal")
    if section is None:
        return None
    note = section.strip()
    return note or None


def _parse_npcs(body: str) -> list[NpcIntro]:
    section = find_section(body, "npcs")
    if section is None and _open_tag("npcs").search(body):
        return []
    # Tolerate <npc/> elements written without the <npcs> wrapper
    source = section if section is not None else body
    intros: list[NpcIntro] = []
    for attrs in iter_elements(source, "npc"):
        name = attrs.get("name", "")
        description = attrs.get("description", "")
        if not name or not description:
            logger.debug("Skipping NPC entry with missing attributes: %r", attrs)
            continue
        intros.append(NpcIntro(name=name, description=description))
    return intros


def _parse_quantity(raw: str | None) -> int:
    if raw is None:
        return 1
    try:
        quantity = int(raw.strip())
    except ValueError:
        return 1
    return quantity if quantity >= 1 else 1


def _parse_inventory(body: str) -> list[InventoryItem] | None:
    section = find_section(body, "inventory")
    if section is None:
        return None
    items: list[InventoryItem] = []
    for attrs in iter_elements(section, "item"):
        name = attrs.get("name", "")
        if not name:
            continue
        items.append(InventoryItem(name=name, quantity=_parse_quantity(attrs.get("quantity"))))
    return items


def _parse_effects(body: str) -> list[str] | None:
    section = find_section(body, "effects")
    if section is None:
        return None
    effects: list[str] = []
    for attrs in iter_elements(section, "effect"):
        name = attrs.get("name", "")
        if not name:
            continue
        duration = attrs.get("duration", "")
        effects.append(f"{name} ({duration})" if duration else name)
    return effects


def _parse_status(body: str) -> StatusUpdate | None:
    status_section = find_section(body, "status")
    update = StatusUpdate(
        attributes=scan_key_values(status_section) if status_section is not None else {},
        inventory=_parse_inventory(body),
        effects=_parse_effects(body),
    )
    return None if update.is_empty() else update


# ---------------------------------------------------------------------------
# Public entry points
# ---------------------------------------------------------------------------

def parse_response(text: str) -> ParsedResponse:
    """Split a completed response into narrative text and structured blocks."""
    opening = _GAMEDATA_OPEN_RE.search(text)
    if opening is None:
        return ParsedResponse(narrative=text.strip())

    narrative = text[:opening.start()].strip()
    if opening.group(0).endswith("/>"):
        return ParsedResponse(narrative=narrative)
    body = find_section(text, GAMEDATA_TAG)
    if body is None:
        logger.warning("Response has an unterminated <%s> block; structured data dropped", GAMEDATA_TAG)
        return ParsedResponse(narrative=narrative)

    return ParsedResponse(
        narrative=narrative,
        has_gamedata=True,
        journal=_parse_journal(body),
        npcs=_parse_npcs(body),
        status=_parse_status(body),
    )


def parse_status_lines(text: str) -> StatusUpdate | None:
    """Read a plain-text status report.

    Understands `Key: value` lines and an inventory section made of
    bullet lines such as `- Rope (x2)`. Returns None if nothing was found.
    """
    attributes: dict[str, str] = {}
    inventory: list[InventoryItem] = []
    in_inventory = False

    for line in text.split("\n"):
        lowered = line.lower()
        if any(kw in lowered for kw in _INVENTORY_KEYWORDS):
            in_inventory = True
            continue

        if in_inventory:
            item = _BULLET_ITEM_RE.match(line)
            if item:
                name = item.group(1).strip().strip("*").strip()
                if name:
                    inventory.append(InventoryItem(name=name, quantity=_parse_quantity(item.group(2))))
                continue
            if line.strip() == "" or ":" in line:
                in_inventory = False

        if not in_inventory and ":" in line:
            key, _, value = line.partition(":")
            key = re.sub(r"^\s*[-*•]\s*", "", key).strip().strip("*").strip()
            value = value.strip().strip("*").strip()
            if key and value:
                attributes[key] = value

    update = StatusUpdate(attributes=attributes, inventory=inventory or None)
    return None if update.is_empty() else update


def parse_status_report(text: str) -> tuple[str, StatusUpdate | None]:
    """Parse the response to a meta query.

    Returns the human-readable prefix (never the raw block) and the status
    data. Tagged status data wins; plain-text lines are the fallback.
    Journal and NPC blocks in a status report are ignored.
    """
    parsed = parse_response(text)
    if parsed.status is not None:
        return parsed.narrative, parsed.status
    return parsed.narrative, parse_status_lines(parsed.narrative)
