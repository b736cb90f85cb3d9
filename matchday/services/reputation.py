"""
Reputation gate: a bounded trust score per team, lowered when disputes end INVALID.
Low reputation warns; reputation at the floor blocks match reporting.
"""
from __future__ import annotations

import logging
import sqlite3
from dataclasses import dataclass
from typing import Any

from matchday.config import DEFAULT_CONFIG, ReputationConfig
from matchday.models import Team
from matchday.persistence.db import transaction
from matchday.persistence.repositories import TeamMemberRepository, TeamRepository
from matchday.services.errors import ForbiddenError, NotFoundError

logger = logging.getLogger(__name__)

LOW_REPUTATION_WARNING = "Your team's reputation is low. Please report match results accurately."
BLOCKED_REPUTATION_WARNING = "Your team's reputation is too low to report ranked match results."
NOT_VISIBLE_MESSAGE = "Reputation is only visible to team owners and admins"


@dataclass(frozen=True)
class ReportingStanding:
    """Outcome of the gate check. warning is set when reporting is allowed but flagged."""
    allowed: bool
    warning: str | None = None


class ReputationGate:
    def __init__(self, config: ReputationConfig = DEFAULT_CONFIG.reputation) -> None:
        self.config = config
        self._team_repo = TeamRepository()
        self._member_repo = TeamMemberRepository()

    def clamp(self, score: float) -> float:
        return max(self.config.minimum, min(self.config.initial, score))

    def is_blocked(self, score: float) -> bool:
        return score <= self.config.minimum

    def is_low(self, score: float) -> bool:
        return score <= self.config.warning_threshold

    def standing(self, team: Team) -> ReportingStanding:
        if self.is_blocked(team.reputation_score):
            return ReportingStanding(allowed=False, warning=BLOCKED_REPUTATION_WARNING)
        if self.is_low(team.reputation_score):
            return ReportingStanding(allowed=True, warning=LOW_REPUTATION_WARNING)
        return ReportingStanding(allowed=True)

    def check_can_report(self, team: Team) -> ReportingStanding:
        """Hard stop at the floor; warning (logged, still allowed) at or below the threshold."""
        standing = self.standing(team)
        if not standing.allowed:
            logger.info("Team %s blocked from reporting (reputation %.1f)", team.id, team.reputation_score)
            raise ForbiddenError(BLOCKED_REPUTATION_WARNING, code="reputation_too_low")
        if standing.warning:
            logger.warning("Team %s has low reputation (%.1f)", team.id, team.reputation_score)
        return standing

    def penalize(self, conn: sqlite3.Connection, team_ids: list[str]) -> dict[str, float]:
        """Apply the dispute penalty to each team, clamped at the floor. Joins the caller's transaction."""
        result: dict[str, float] = {}
        with transaction(conn):
            for team_id in team_ids:
                team = self._team_repo.get(conn, team_id)
                if team is None:
                    raise NotFoundError(f"Team not found: {team_id}")
                new_score = max(self.config.minimum, team.reputation_score - self.config.dispute_penalty)
                self._team_repo.set_reputation(conn, team_id, new_score)
                result[team_id] = new_score
                logger.info(
                    "Reputation penalty for team %s: %.1f -> %.1f", team_id, team.reputation_score, new_score
                )
        return result

    def can_view(self, conn: sqlite3.Connection, team: Team, actor_id: str | None) -> bool:
        if not actor_id:
            return False
        if team.owner_id == actor_id:
            return True
        member = self._member_repo.get(conn, team.id, actor_id)
        return member is not None and member.is_elevated

    def view(self, conn: sqlite3.Connection, team_id: str, actor_id: str | None) -> dict[str, Any]:
        """Reputation for team owners/admins; a generic not-visible response for everyone else."""
        team = self._team_repo.get(conn, team_id)
        if team is None:
            raise NotFoundError(f"Team not found: {team_id}")
        if not self.can_view(conn, team, actor_id):
            return {"team_id": team_id, "visible": False, "message": NOT_VISIBLE_MESSAGE}
        return {
            "team_id": team_id,
            "visible": True,
            "reputation_score": team.reputation_score,
            "max_score": self.config.initial,
            "min_score": self.config.minimum,
            "warning": self.standing(team).warning,
        }
