"""
Rating inputs and read models.
Collects team rating (TR) and consistency (TCF) inputs from the store for the pure
calculator in matchday.rating, and serves stats, history, leaderboard and rank.
"""
from __future__ import annotations

import sqlite3
from typing import Any

from matchday.config import DEFAULT_CONFIG, RatingConfig
from matchday.models import Team
from matchday.persistence.repositories import (
    MatchRepository,
    PositionScoreRepository,
    RatingHistoryRepository,
    TeamMemberRepository,
    TeamRepository,
)
from matchday.rating import TeamSnapshot, calculate_tcf, calculate_team_rating, is_provisional
from matchday.roster import occupant_ids
from matchday.services.errors import InvalidError, NotFoundError

MAX_LEADERBOARD_LIMIT = 100
MAX_HISTORY_LIMIT = 100
RECENT_RESULTS = 5


class RatingService:
    def __init__(self, config: RatingConfig = DEFAULT_CONFIG.rating) -> None:
        self.config = config
        self._team_repo = TeamRepository()
        self._member_repo = TeamMemberRepository()
        self._match_repo = MatchRepository()
        self._score_repo = PositionScoreRepository()
        self._history_repo = RatingHistoryRepository()

    # ---------- Calculator inputs ----------

    def team_rating(self, conn: sqlite3.Connection, team_id: str) -> float:
        """TR from the active members' most recent position scores."""
        member_ids = self._member_repo.list_active_player_ids(conn, team_id)
        member_scores = [
            self._score_repo.recent_scores(conn, pid, self.config.recent_scores_per_player)
            for pid in member_ids
        ]
        return calculate_team_rating(member_scores, self.config)

    def recent_lineups(self, conn: sqlite3.Connection, team_id: str) -> list[set[str]]:
        """Players on this team's side in each of its last verified matches, newest first."""
        matches = self._match_repo.list_recent_verified_for_team(conn, team_id, self.config.consistency_window)
        lineups: list[set[str]] = []
        for match in matches:
            side = match.side_of_team(team_id)
            if side is not None:
                lineups.append(occupant_ids(match.slots, side))
        return lineups

    def team_consistency(self, conn: sqlite3.Connection, team_id: str) -> float:
        return calculate_tcf(self.recent_lineups(conn, team_id), self.config)

    def snapshot(self, conn: sqlite3.Connection, team: Team) -> TeamSnapshot:
        return TeamSnapshot(
            team_id=team.id,
            elo=team.elo,
            match_count=team.match_count,
            win_streak=team.win_streak,
            loss_streak=team.loss_streak,
            team_rating=self.team_rating(conn, team.id),
            tcf=self.team_consistency(conn, team.id),
        )

    # ---------- Read models ----------

    def _require_team(self, conn: sqlite3.Connection, team_id: str) -> Team:
        team = self._team_repo.get(conn, team_id)
        if team is None:
            raise NotFoundError(f"Team not found: {team_id}")
        return team

    def get_team_rating_stats(self, conn: sqlite3.Connection, team_id: str) -> dict[str, Any]:
        team = self._require_team(conn, team_id)
        recent = self._history_repo.list_by_team(conn, team_id, RECENT_RESULTS)
        return {
            "team_id": team.id,
            "name": team.name,
            "elo": team.elo,
            "match_count": team.match_count,
            "win_streak": team.win_streak,
            "loss_streak": team.loss_streak,
            "is_provisional": is_provisional(team.match_count, self.config),
            "recent_history": [
                {"result": h.result, "elo_delta": h.delta, "date": h.created_at.isoformat()}
                for h in recent
            ],
            "rank": self._team_repo.count_with_higher_elo(conn, team.elo) + 1,
        }

    def get_team_rating_history(self, conn: sqlite3.Connection, team_id: str, limit: int = 10) -> dict[str, Any]:
        if limit < 1 or limit > MAX_HISTORY_LIMIT:
            raise InvalidError(f"limit must be between 1 and {MAX_HISTORY_LIMIT}")
        self._require_team(conn, team_id)
        entries = self._history_repo.list_by_team(conn, team_id, limit)
        history = []
        for h in entries:
            match = self._match_repo.get(conn, h.match_id)
            score = None
            if match is not None and match.score_a is not None and match.score_b is not None:
                score = f"{match.score_a} - {match.score_b}"
            history.append({
                "match_id": h.match_id,
                "match_title": match.title if match else None,
                "match_time": match.scheduled_at.isoformat() if match and match.scheduled_at else None,
                "opponent_team_id": h.opponent_team_id,
                "opponent": self._team_repo.get_name(conn, h.opponent_team_id),
                "score": score,
                "elo_before": h.elo_before,
                "elo_delta": h.delta,
                "new_elo": h.new_elo,
                "result": h.result,
                "details": h.details(),
                "date": h.created_at.isoformat(),
            })
        return {"team_id": team_id, "history": history}

    def get_leaderboard(self, conn: sqlite3.Connection, limit: int = 50, offset: int = 0) -> dict[str, Any]:
        """Non-provisional teams by elo, highest first."""
        if limit < 1 or limit > MAX_LEADERBOARD_LIMIT:
            raise InvalidError(f"limit must be between 1 and {MAX_LEADERBOARD_LIMIT}")
        if offset < 0:
            raise InvalidError("offset must be >= 0")
        min_matches = self.config.provisional_match_limit
        teams = self._team_repo.list_ranked(conn, min_matches, limit, offset)
        return {
            "teams": [
                {
                    "id": t.id,
                    "name": t.name,
                    "elo": t.elo,
                    "match_count": t.match_count,
                    "rank": offset + i + 1,
                }
                for i, t in enumerate(teams)
            ],
            "total": self._team_repo.count_ranked(conn, min_matches),
        }

    def get_team_rank(self, conn: sqlite3.Connection, team_id: str) -> dict[str, Any]:
        """Rank among non-provisional teams."""
        team = self._require_team(conn, team_id)
        min_matches = self.config.provisional_match_limit
        higher = self._team_repo.count_with_higher_elo(conn, team.elo, min_matches)
        return {
            "team_id": team_id,
            "rank": higher + 1,
            "total": self._team_repo.count_ranked(conn, min_matches),
            "elo": team.elo,
            "is_provisional": is_provisional(team.match_count, self.config),
        }
