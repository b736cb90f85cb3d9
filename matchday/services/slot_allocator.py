"""
Slot allocator: resolves join/leave requests against a match roster.

Placement re-reads the roster inside a write transaction and re-validates that the
target slot is still free before writing, so two players racing for one slot end
with one placement and one SlotTakenError. Retrying is the caller's decision.
"""
from __future__ import annotations

import logging
import sqlite3
from dataclasses import dataclass

from matchday.models import TERMINAL_STATUSES, Match, Side, parse_side
from matchday.persistence.db import transaction
from matchday.persistence.repositories import MatchRepository, PlayerRepository
from matchday.roster import (
    choose_slot_index,
    find_player_slot,
    free_slots,
    normalize_position,
    place,
    vacate,
)
from matchday.services.errors import (
    ConflictError,
    InvalidError,
    NoPreferredSlotOpenError,
    NotFoundError,
    SlotTakenError,
)

logger = logging.getLogger(__name__)

MAX_PREFERENCES = 3


@dataclass(frozen=True)
class JoinResult:
    position: str
    team: Side
    already_joined: bool = False

    def to_dict(self) -> dict[str, object]:
        return {"position": self.position, "team": self.team.value, "already_joined": self.already_joined}


def _parse_team(desired_team: Side | str | None) -> Side | None:
    if desired_team is None or desired_team == "":
        return None
    if isinstance(desired_team, Side):
        return desired_team
    side = parse_side(desired_team)
    if side is None:
        raise InvalidError(f"Invalid team '{desired_team}'. Must be 'A' or 'B'")
    return side


def _assert_open(match: Match) -> None:
    if match.status in TERMINAL_STATUSES:
        raise ConflictError(f"Match is closed ({match.status.value})", code="match_closed")


class SlotAllocator:
    def __init__(self) -> None:
        self._match_repo = MatchRepository()
        self._player_repo = PlayerRepository()

    def _require_match(self, conn: sqlite3.Connection, match_id: str) -> Match:
        match = self._match_repo.get(conn, match_id)
        if match is None:
            raise NotFoundError(f"Match not found: {match_id}")
        return match

    def preferred_positions(self, conn: sqlite3.Connection, player_id: str) -> list[str]:
        """Ranked preferences, uppercased and de-duplicated, at most three."""
        out: list[str] = []
        for raw in self._player_repo.get_positions(conn, player_id):
            pos = normalize_position(raw)
            if pos and pos not in out:
                out.append(pos)
        return out[:MAX_PREFERENCES]

    def join(
        self,
        conn: sqlite3.Connection,
        match_id: str,
        player_id: str,
        desired_position: str | None = None,
        desired_team: Side | str | None = None,
    ) -> JoinResult:
        """
        Place player_id in the match. Idempotent: a player already on the roster gets their
        current slot back without a write.
        """
        team = _parse_team(desired_team)
        match = self._require_match(conn, match_id)
        _assert_open(match)

        mine = find_player_slot(match.slots, player_id)
        if mine is not None:
            return JoinResult(position=mine.position, team=mine.team, already_joined=True)

        position = normalize_position(desired_position) if desired_position else ""
        if position:
            # a position missing from the roster has no free slot either
            if choose_slot_index(match.slots, position, team) is None:
                raise SlotTakenError()
        else:
            prefs = self.preferred_positions(conn, player_id)
            position = next((p for p in prefs if free_slots(match.slots, p, team)), "")
            if not position:
                raise NoPreferredSlotOpenError()

        return self._place(conn, match_id, player_id, position, team)

    def _place(
        self,
        conn: sqlite3.Connection,
        match_id: str,
        player_id: str,
        position: str,
        team: Side | None,
    ) -> JoinResult:
        with transaction(conn):
            fresh = self._require_match(conn, match_id)
            _assert_open(fresh)
            mine = find_player_slot(fresh.slots, player_id)
            if mine is not None:
                return JoinResult(position=mine.position, team=mine.team, already_joined=True)
            index = choose_slot_index(fresh.slots, position, team)
            if index is None:
                logger.info("Lost slot race: match=%s player=%s position=%s", match_id, player_id, position)
                raise SlotTakenError()
            slot = place(fresh.slots, index, player_id)
            self._match_repo.update_roster(conn, match_id, fresh.slots)
        logger.debug("Player %s joined match %s as %s/%s", player_id, match_id, slot.team.value, slot.position)
        return JoinResult(position=slot.position, team=slot.team)

    def leave(self, conn: sqlite3.Connection, match_id: str, player_id: str) -> bool:
        """
        Vacate every slot held by player_id. Always succeeds; returns whether the roster changed.
        Rosters of closed matches are left as they are.
        """
        self._require_match(conn, match_id)
        with transaction(conn):
            fresh = self._require_match(conn, match_id)
            if fresh.status in TERMINAL_STATUSES:
                logger.info("Leave ignored for closed match %s (player %s)", match_id, player_id)
                return False
            changed = vacate(fresh.slots, player_id)
            if changed:
                self._match_repo.update_roster(conn, match_id, fresh.slots)
        return changed
