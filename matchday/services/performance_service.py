"""
Position-performance source and position preferences.

After a match, participants score each other (1-10) for the position each one held.
The most recent scores per player feed the team rating (TR).
"""
from __future__ import annotations

import logging
import sqlite3
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Iterable

from matchday.config import DEFAULT_CONFIG, EngineConfig
from matchday.persistence.db import transaction
from matchday.persistence.repositories import (
    MatchRepository,
    PlayerRepository,
    PositionScoreRepository,
    utcnow,
)
from matchday.roster import find_player_slot, normalize_position
from matchday.services.errors import ForbiddenError, InvalidError, NotFoundError

logger = logging.getLogger(__name__)

MIN_POSITION_SCORE = 1.0
MAX_POSITION_SCORE = 10.0
MAX_PREFERRED_POSITIONS = 3


@dataclass(frozen=True)
class PositionScoreItem:
    ratee_id: str
    score: float


def _as_aware(dt: datetime) -> datetime:
    return dt if dt.tzinfo is not None else dt.replace(tzinfo=timezone.utc)


def validate_position_score(value: Any) -> float:
    if isinstance(value, bool):
        raise InvalidError("invalid position score")
    try:
        score = float(value)
    except (TypeError, ValueError):
        raise InvalidError("invalid position score") from None
    if not MIN_POSITION_SCORE <= score <= MAX_POSITION_SCORE:
        raise InvalidError(f"position score must be between {MIN_POSITION_SCORE:g} and {MAX_POSITION_SCORE:g}")
    return score


def clean_preferences(positions: Iterable[str]) -> list[str]:
    """Uppercase, no blanks or duplicates, at most three."""
    out: list[str] = []
    for raw in positions:
        pos = normalize_position(raw)
        if not pos:
            raise InvalidError("position codes must not be empty")
        if pos in out:
            raise InvalidError(f"duplicate position '{pos}'")
        out.append(pos)
    if len(out) > MAX_PREFERRED_POSITIONS:
        raise InvalidError(f"at most {MAX_PREFERRED_POSITIONS} preferred positions")
    return out


class PerformanceService:
    def __init__(
        self,
        config: EngineConfig = DEFAULT_CONFIG,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.config = config
        self.clock = clock
        self._match_repo = MatchRepository()
        self._player_repo = PlayerRepository()
        self._score_repo = PositionScoreRepository()

    def set_preferred_positions(self, conn: sqlite3.Connection, player_id: str, positions: list[str]) -> list[str]:
        cleaned = clean_preferences(positions)
        with transaction(conn):
            if self._player_repo.get(conn, player_id) is None:
                raise NotFoundError(f"Player not found: {player_id}")
            self._player_repo.set_positions(conn, player_id, cleaned)
        return cleaned

    def submit_position_scores(
        self,
        conn: sqlite3.Connection,
        match_id: str,
        rater_id: str,
        items: list[PositionScoreItem],
    ) -> dict[str, Any]:
        """
        Record scores from one participant. Self-scores and non-participants are skipped.
        The window closes position_score_window_hours after the scheduled time.
        """
        if not items:
            raise InvalidError("items required")
        scores = [(it.ratee_id, validate_position_score(it.score)) for it in items]

        with transaction(conn):
            match = self._match_repo.get(conn, match_id)
            if match is None:
                raise NotFoundError(f"Match not found: {match_id}")
            if match.scheduled_at is not None:
                window = timedelta(hours=self.config.verification.position_score_window_hours)
                if self.clock() > _as_aware(match.scheduled_at) + window:
                    raise ForbiddenError("The scoring window for this match has closed", code="window_closed")
            if find_player_slot(match.slots, rater_id) is None:
                raise ForbiddenError("Only match participants can submit scores", code="not_participant")

            recorded: list[str] = []
            skipped: list[str] = []
            for ratee_id, score in scores:
                slot = find_player_slot(match.slots, ratee_id)
                if ratee_id == rater_id or slot is None:
                    skipped.append(ratee_id)
                    continue
                self._score_repo.upsert(conn, match_id, rater_id, ratee_id, slot.position, score)
                recorded.append(ratee_id)

        logger.debug("Player %s scored %d participants of match %s", rater_id, len(recorded), match_id)
        return {"match_id": match_id, "recorded": recorded, "skipped": skipped}

    def recent_scores(self, conn: sqlite3.Connection, player_id: str, limit: int | None = None) -> list[float]:
        return self._score_repo.recent_scores(
            conn, player_id, limit or self.config.rating.recent_scores_per_player
        )
