"""
Tests for peer position scores and position preferences.
"""
from __future__ import annotations

from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

import sys
sys.path.insert(0, str(Path(__file__).resolve().parent.parent.parent))

from matchday.persistence.repositories import PlayerRepository
from matchday.services.errors import ForbiddenError, InvalidError, NotFoundError
from matchday.services.match_service import MatchService
from matchday.services.performance_service import PerformanceService, PositionScoreItem
from matchday.services.slot_allocator import SlotAllocator

KICKOFF = datetime(2026, 5, 10, 18, 0, tzinfo=timezone.utc)


@pytest.fixture
def played(db_conn, make_player):
    """A 5v5 match with three players on the roster."""
    owner = make_player("organiser")
    match = MatchService().create_match(db_conn, owner.id, fmt="5v5", scheduled_at=KICKOFF)
    allocator = SlotAllocator()
    keeper, striker, winger = make_player("keeper"), make_player("striker"), make_player("winger")
    allocator.join(db_conn, match.id, keeper.id, "GK", "A")
    allocator.join(db_conn, match.id, striker.id, "ST", "B")
    allocator.join(db_conn, match.id, winger.id, "LW", "A")
    return match, keeper, striker, winger


def _service(hours_after_kickoff: float) -> PerformanceService:
    return PerformanceService(clock=lambda: KICKOFF + timedelta(hours=hours_after_kickoff))


def test_scores_recorded_for_participants_only(db_conn, played, make_player):
    match, keeper, striker, winger = played
    outsider = make_player("outsider")
    out = _service(2).submit_position_scores(db_conn, match.id, keeper.id, [
        PositionScoreItem(striker.id, 8),
        PositionScoreItem(winger.id, 6.5),
        PositionScoreItem(keeper.id, 10),
        PositionScoreItem(outsider.id, 9),
    ])
    assert out["recorded"] == [striker.id, winger.id]
    assert out["skipped"] == [keeper.id, outsider.id]
    service = _service(2)
    assert service.recent_scores(db_conn, striker.id) == [8.0]
    assert service.recent_scores(db_conn, keeper.id) == []


def test_rescoring_replaces_previous_score(db_conn, played):
    match, keeper, striker, _ = played
    service = _service(1)
    service.submit_position_scores(db_conn, match.id, keeper.id, [PositionScoreItem(striker.id, 3)])
    service.submit_position_scores(db_conn, match.id, keeper.id, [PositionScoreItem(striker.id, 9)])
    assert service.recent_scores(db_conn, striker.id) == [9.0]


def test_non_participant_cannot_score(db_conn, played, make_player):
    match, _, striker, _ = played
    outsider = make_player("outsider")
    with pytest.raises(ForbiddenError) as exc_info:
        _service(1).submit_position_scores(db_conn, match.id, outsider.id, [PositionScoreItem(striker.id, 5)])
    assert exc_info.value.code == "not_participant"


def test_scoring_window_closes_after_a_day(db_conn, played):
    match, keeper, striker, _ = played
    _service(23.5).submit_position_scores(db_conn, match.id, keeper.id, [PositionScoreItem(striker.id, 7)])
    with pytest.raises(ForbiddenError) as exc_info:
        _service(25).submit_position_scores(db_conn, match.id, keeper.id, [PositionScoreItem(striker.id, 7)])
    assert exc_info.value.code == "window_closed"


@pytest.mark.parametrize("score", [0, 10.5, -2, "high", True])
def test_score_range(db_conn, played, score):
    match, keeper, striker, _ = played
    with pytest.raises(InvalidError):
        _service(1).submit_position_scores(db_conn, match.id, keeper.id, [PositionScoreItem(striker.id, score)])


def test_empty_or_unknown(db_conn, played):
    match, keeper, striker, _ = played
    with pytest.raises(InvalidError):
        _service(1).submit_position_scores(db_conn, match.id, keeper.id, [])
    with pytest.raises(NotFoundError):
        _service(1).submit_position_scores(db_conn, "missing", keeper.id, [PositionScoreItem(striker.id, 5)])


def test_set_preferred_positions(db_conn, make_player):
    p = make_player("flex")
    service = PerformanceService()
    assert service.set_preferred_positions(db_conn, p.id, ["st", " lw "]) == ["ST", "LW"]
    assert PlayerRepository().get_positions(db_conn, p.id) == ["ST", "LW"]
    assert service.set_preferred_positions(db_conn, p.id, []) == []


@pytest.mark.parametrize("positions", [["GK", "CB", "ST", "LW"], ["GK", "gk"], ["GK", " "]])
def test_set_preferred_positions_rejects_bad_lists(db_conn, make_player, positions):
    p = make_player("flex", positions=["CM"])
    with pytest.raises(InvalidError):
        PerformanceService().set_preferred_positions(db_conn, p.id, positions)
    assert PlayerRepository().get_positions(db_conn, p.id) == ["CM"]


def test_set_preferred_positions_unknown_player(db_conn):
    with pytest.raises(NotFoundError):
        PerformanceService().set_preferred_positions(db_conn, "missing", ["GK"])
