"""
Roster model: the fixed sequence of position slots of a match.
Pure functions over list[Slot]; no persistence.

Stored form is versioned JSON: {"version": 2, "slots": [{"team", "position", "occupant_id"}]}.
Older encodings (untagged flat lists, tagged lists without reserves) are upgraded by
normalize_roster, which is deterministic and idempotent.
"""
from __future__ import annotations

import json
import logging
import re
from typing import Any, Iterable

from matchday.models import Side, Slot, parse_side

logger = logging.getLogger(__name__)

ROSTER_SCHEMA_VERSION = 2

RESERVE_POSITION = "SUB"
DEFAULT_RESERVES_PER_TEAM = 2
DEFAULT_FORMAT = "7v7"

# ---------- Format templates (positions per side) ----------

FORMAT_TEMPLATES: dict[str, list[str]] = {
    "5v5": ["GK", "CB", "CM", "LW", "ST"],
    "6v6": ["GK", "LB", "RB", "DM", "AM", "ST"],
    "7v7": ["GK", "LB", "CB", "RB", "CM", "LW", "ST"],
    "8v8": ["GK", "LB", "CB", "RB", "CM", "AM", "LW", "ST"],
    "9v9": ["GK", "LB", "RB", "CB", "DM", "CM", "AM", "RW", "LW"],
    "10v10": ["GK", "LB", "CB", "RB", "DM", "CM", "AM", "RW", "LW", "ST"],
    "11v11": ["GK", "LB", "CB", "RB", "LWB", "RWB", "DM", "CM", "AM", "LW", "ST"],
}

_FORMAT_RE = re.compile(r"(\d+)\s*v\s*(\d+)", re.IGNORECASE)


def team_size_from_format(fmt: str | None) -> int:
    """'7v7' -> 7. Unparseable formats default to 7; result clamped to 1..11."""
    m = _FORMAT_RE.search(fmt or "")
    if not m:
        return 7
    return max(1, min(int(m.group(1)), 11))


def normalize_position(position: str | None) -> str:
    return str(position or "").strip().upper()


def positions_for_format(fmt: str | None, override_positions: Iterable[str] | None = None) -> list[str]:
    """Base positions for one side: explicit override, else the format template (7v7 fallback)."""
    if override_positions:
        positions = [normalize_position(p) for p in override_positions]
        return [p for p in positions if p]
    size = team_size_from_format(fmt or DEFAULT_FORMAT)
    return list(FORMAT_TEMPLATES.get(f"{size}v{size}", FORMAT_TEMPLATES[DEFAULT_FORMAT]))


def add_reserves(slots: list[Slot], per_team: int = DEFAULT_RESERVES_PER_TEAM) -> list[Slot]:
    if per_team <= 0:
        return list(slots)
    out = list(slots)
    for side in (Side.A, Side.B):
        out.extend(Slot(team=side, position=RESERVE_POSITION) for _ in range(per_team))
    return out


def build_initial_slots(
    fmt: str | None = None,
    override_positions: Iterable[str] | None = None,
    reserves_per_team: int = DEFAULT_RESERVES_PER_TEAM,
) -> list[Slot]:
    """Empty roster: side A positions, side B positions, then reserves per side."""
    base = positions_for_format(fmt, override_positions)
    a = [Slot(team=Side.A, position=p) for p in base]
    b = [Slot(team=Side.B, position=p) for p in base]
    return add_reserves(a + b, reserves_per_team)


# ---------- Normalization ----------


def _occupant_of(item: Any) -> str | None:
    if not isinstance(item, dict):
        return None
    for key in ("occupant_id", "userId", "user_id", "player_id"):
        value = item.get(key)
        if value:
            return str(value)
    return None


def _position_of(item: dict[str, Any]) -> str:
    return normalize_position(item.get("position", item.get("pos")))


def _is_tagged(items: list[Any]) -> bool:
    return bool(items) and all(
        isinstance(it, dict) and parse_side(it.get("team")) is not None and _position_of(it)
        for it in items
    )


def _dedupe_occupants(slots: list[Slot]) -> list[Slot]:
    """A player may hold only one slot; later duplicates are cleared."""
    seen: set[str] = set()
    for slot in slots:
        if slot.occupant_id is None:
            continue
        if slot.occupant_id in seen:
            slot.occupant_id = None
        else:
            seen.add(slot.occupant_id)
    return slots


def _from_tagged(items: list[dict[str, Any]]) -> list[Slot]:
    return [
        Slot(team=parse_side(it.get("team")), position=_position_of(it), occupant_id=_occupant_of(it))
        for it in items
    ]


def _from_legacy(items: list[Any], fmt: str | None, reserves_per_team: int) -> list[Slot]:
    """
    Untagged flat list (position strings or {pos, userId} objects). Positions come from the
    format template; occupants keep their index order, overflowing into reserve slots.
    """
    base = positions_for_format(fmt)
    slots = [Slot(team=Side.A, position=p) for p in base] + [Slot(team=Side.B, position=p) for p in base]
    slots = add_reserves(slots, reserves_per_team)
    occupants = [(i, _occupant_of(item)) for i, item in enumerate(items)]
    overflow: list[str] = []
    for i, occupant in occupants:
        if occupant is None:
            continue
        if i < 2 * len(base) and slots[i].occupant_id is None:
            slots[i].occupant_id = occupant
        else:
            overflow.append(occupant)
    for occupant in overflow:
        free = next((s for s in slots if s.position == RESERVE_POSITION and s.occupant_id is None), None)
        if free is None:
            side = auto_pick_team(slots)
            free = Slot(team=side, position=RESERVE_POSITION)
            slots.append(free)
        free.occupant_id = occupant
    return slots


def normalize_roster(
    raw: Any,
    fmt: str | None = None,
    reserves_per_team: int = DEFAULT_RESERVES_PER_TEAM,
) -> list[Slot]:
    """
    Any stored roster encoding -> canonical slot list. Never drops an assigned occupant
    (except exact duplicates of the same player). normalize(serialize(x)) == x.
    """
    if isinstance(raw, (str, bytes)):
        try:
            raw = json.loads(raw) if raw else None
        except ValueError:
            logger.warning("Unreadable stored roster %r; rebuilding from the %s template", raw[:40], fmt)
            raw = None
    if raw is None:
        return build_initial_slots(fmt, reserves_per_team=reserves_per_team)
    if isinstance(raw, dict):
        items = raw.get("slots") or []
        if raw.get("version") == ROSTER_SCHEMA_VERSION and _is_tagged(items):
            return _dedupe_occupants(_from_tagged(items))
        raw = items
    if not isinstance(raw, list) or not raw:
        return build_initial_slots(fmt, reserves_per_team=reserves_per_team)
    if _is_tagged(raw):
        slots = _from_tagged(raw)
        if not any(s.position == RESERVE_POSITION for s in slots):
            slots = add_reserves(slots, reserves_per_team)
        return _dedupe_occupants(slots)
    return _dedupe_occupants(_from_legacy(raw, fmt, reserves_per_team))


def serialize_roster(slots: list[Slot]) -> str:
    return json.dumps({"version": ROSTER_SCHEMA_VERSION, "slots": [s.to_dict() for s in slots]})


def is_canonical(raw: Any) -> bool:
    """True if raw is already the current versioned encoding."""
    if isinstance(raw, (str, bytes)):
        try:
            raw = json.loads(raw) if raw else None
        except ValueError:
            return False
    return (
        isinstance(raw, dict)
        and raw.get("version") == ROSTER_SCHEMA_VERSION
        and _is_tagged(raw.get("slots") or [])
    )


# ---------- Queries and mutation ----------


def find_player_slot(slots: list[Slot], player_id: str) -> Slot | None:
    return next((s for s in slots if s.occupant_id == player_id), None)


def free_slots(slots: list[Slot], position: str | None = None, team: Side | None = None) -> list[Slot]:
    want = normalize_position(position) if position else None
    return [
        s for s in slots
        if s.is_free
        and (want is None or s.position == want)
        and (team is None or s.team == team)
    ]


def occupant_ids(slots: list[Slot], team: Side | None = None) -> set[str]:
    return {s.occupant_id for s in slots if s.occupant_id and (team is None or s.team == team)}


def has_unique_occupants(slots: list[Slot]) -> bool:
    ids = [s.occupant_id for s in slots if s.occupant_id]
    return len(ids) == len(set(ids))


def auto_pick_team(slots: list[Slot]) -> Side:
    """Side with fewer occupants; A on a tie."""
    a = sum(1 for s in slots if s.team == Side.A and s.occupant_id)
    b = sum(1 for s in slots if s.team == Side.B and s.occupant_id)
    return Side.A if a <= b else Side.B


def choose_slot_index(slots: list[Slot], position: str, team: Side | None = None) -> int | None:
    """
    Index of the free slot a player would take for position. With no team given and the
    position free on both sides, the emptier side wins.
    """
    want = normalize_position(position)
    candidates = [i for i, s in enumerate(slots) if s.is_free and s.position == want]
    if team is not None:
        candidates = [i for i in candidates if slots[i].team == team]
    if not candidates:
        return None
    sides = {slots[i].team for i in candidates}
    if len(sides) > 1:
        preferred = auto_pick_team(slots)
        candidates = [i for i in candidates if slots[i].team == preferred]
    return candidates[0]


def vacate(slots: list[Slot], player_id: str) -> bool:
    """Clear every slot held by player_id. Returns True if anything changed."""
    changed = False
    for slot in slots:
        if slot.occupant_id == player_id:
            slot.occupant_id = None
            changed = True
    return changed


def place(slots: list[Slot], index: int, player_id: str) -> Slot:
    """Move player_id into slots[index]. Caller has checked the slot is free."""
    target = slots[index]
    if target.occupant_id is not None and target.occupant_id != player_id:
        raise ValueError(f"slot {index} is occupied")
    vacate(slots, player_id)
    target.occupant_id = player_id
    return target
