"""
Match creation and lookup. Rosters are built once from the format template.
"""
from __future__ import annotations

import logging
import sqlite3
from datetime import datetime

from matchday.models import Match, VerificationStatus
from matchday.persistence.db import transaction, upgrade_stored_rosters
from matchday.persistence.repositories import MatchRepository, TeamRepository
from matchday.roster import DEFAULT_FORMAT, DEFAULT_RESERVES_PER_TEAM, build_initial_slots
from matchday.services.errors import ConflictError, ForbiddenError, InvalidError, NotFoundError

logger = logging.getLogger(__name__)

MAX_RESERVES_PER_TEAM = 5


class MatchService:
    def __init__(self) -> None:
        self._match_repo = MatchRepository()
        self._team_repo = TeamRepository()

    def _check_teams(self, conn: sqlite3.Connection, team_a_id: str | None, team_b_id: str | None) -> None:
        for team_id in (team_a_id, team_b_id):
            if team_id and self._team_repo.get(conn, team_id) is None:
                raise NotFoundError(f"Team not found: {team_id}")
        if team_a_id and team_a_id == team_b_id:
            raise InvalidError("A team cannot play against itself")

    def create_match(
        self,
        conn: sqlite3.Connection,
        owner_id: str,
        fmt: str | None = None,
        positions: list[str] | None = None,
        reserves_per_team: int = DEFAULT_RESERVES_PER_TEAM,
        team_a_id: str | None = None,
        team_b_id: str | None = None,
        scheduled_at: datetime | None = None,
        title: str | None = None,
    ) -> Match:
        if not 0 <= reserves_per_team <= MAX_RESERVES_PER_TEAM:
            raise InvalidError(f"reserves_per_team must be between 0 and {MAX_RESERVES_PER_TEAM}")
        if positions is not None and not [p for p in positions if str(p).strip()]:
            raise InvalidError("positions override must name at least one position")
        fmt = (fmt or DEFAULT_FORMAT).strip()
        slots = build_initial_slots(fmt, positions, reserves_per_team)
        with transaction(conn):
            self._check_teams(conn, team_a_id, team_b_id)
            match = self._match_repo.create(
                conn, owner_id, fmt, slots, title=title, team_a_id=team_a_id, team_b_id=team_b_id,
                scheduled_at=scheduled_at,
            )
        logger.info("Match %s created by %s (%s, %d slots)", match.id, owner_id, fmt, len(slots))
        return match

    def get_match(self, conn: sqlite3.Connection, match_id: str) -> Match:
        match = self._match_repo.get(conn, match_id)
        if match is None:
            raise NotFoundError(f"Match not found: {match_id}")
        return match

    def assign_teams(
        self,
        conn: sqlite3.Connection,
        match_id: str,
        actor_id: str,
        team_a_id: str | None,
        team_b_id: str | None,
    ) -> Match:
        """Set the competing teams of a pickup match. Owner only, before any report."""
        with transaction(conn):
            match = self.get_match(conn, match_id)
            if match.owner_id != actor_id:
                raise ForbiddenError("Only the match owner can assign teams")
            if match.status != VerificationStatus.UNREPORTED:
                raise ConflictError("Teams cannot change once reporting has started")
            self._check_teams(conn, team_a_id, team_b_id)
            self._match_repo.set_teams(conn, match_id, team_a_id, team_b_id)
        return self.get_match(conn, match_id)

    def upgrade_all_rosters(self, conn: sqlite3.Connection) -> int:
        """One-time upgrade of every stored roster to the versioned format; safe to rerun."""
        return upgrade_stored_rosters(conn)
