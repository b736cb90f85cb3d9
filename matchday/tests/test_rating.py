"""
Tests for the pure rating calculator.
"""
from __future__ import annotations

from pathlib import Path

import pytest

import sys
sys.path.insert(0, str(Path(__file__).resolve().parent.parent.parent))

from matchday.config import RatingConfig
from matchday.models import MatchOutcome
from matchday.rating import (
    TeamSnapshot,
    calculate_delta,
    calculate_expected_score,
    calculate_loss_shield,
    calculate_match_ratings,
    calculate_rating_change,
    calculate_rif,
    calculate_streak_factor,
    calculate_tcf,
    calculate_team_rating,
    k_factor_for,
    next_streaks,
)

CONFIG = RatingConfig()


def _snap(team_id: str, elo: int = 1000, match_count: int = 10, win_streak: int = 0, loss_streak: int = 0,
          team_rating: float = 5.0, tcf: float = 1.0) -> TeamSnapshot:
    return TeamSnapshot(
        team_id=team_id, elo=elo, match_count=match_count, win_streak=win_streak,
        loss_streak=loss_streak, team_rating=team_rating, tcf=tcf,
    )


def test_equal_teams_win_with_streak_bonus():
    """A (streak 2) beats B 3-1 at equal elo: +22 / -20."""
    a = _snap("A", win_streak=2)
    b = _snap("B")
    calc_a, calc_b = calculate_match_ratings(a, b, 3, 1, CONFIG)
    assert calc_a.rif == 1.0
    assert calc_a.expected_win_prob == 0.5
    assert calc_b.expected_win_prob == 0.5
    assert calc_a.streak_factor == pytest.approx(1.10)
    assert calc_b.streak_factor == 1.0
    assert calc_a.k_factor == 40.0
    assert calc_a.delta == 22
    assert calc_b.delta == -20
    assert calc_a.new_elo == 1022
    assert calc_b.new_elo == 980


def test_provisional_draw_leaves_rating_unchanged():
    a = _snap("A", match_count=2)
    b = _snap("B", match_count=2)
    calc_a, calc_b = calculate_match_ratings(a, b, 1, 1, CONFIG)
    assert calc_a.k_factor == 60.0
    assert calc_a.actual_outcome == 0.5
    assert calc_a.delta == 0
    assert calc_b.delta == 0
    assert calc_a.new_elo == 1000


def test_delta_is_deterministic():
    a = _snap("A", elo=1234, win_streak=3, team_rating=6.2, tcf=0.8)
    b = _snap("B", elo=1180, loss_streak=7, team_rating=4.9)
    first = calculate_match_ratings(a, b, 2, 0, CONFIG)
    for _ in range(20):
        assert calculate_match_ratings(a, b, 2, 0, CONFIG) == first


def test_symmetric_snapshots_make_order_irrelevant():
    a = _snap("A", elo=1100, team_rating=6.0)
    b = _snap("B", elo=900, team_rating=4.0)
    calc_a, calc_b = calculate_match_ratings(a, b, 0, 2, CONFIG)
    calc_b2, calc_a2 = calculate_match_ratings(b, a, 2, 0, CONFIG)
    assert calc_a == calc_a2
    assert calc_b == calc_b2


def test_floor_is_never_crossed():
    calc = calculate_rating_change(_snap("A", elo=105), _snap("B", elo=100), MatchOutcome.LOSS, CONFIG)
    assert calc.delta < 0
    assert calc.new_elo == CONFIG.rating_floor


def test_floor_holds_over_a_losing_run():
    elo, losses = 300, 0
    opponent = _snap("B", elo=300)
    for _ in range(40):
        me = _snap("A", elo=elo, match_count=losses, loss_streak=losses)
        calc = calculate_rating_change(me, opponent, MatchOutcome.LOSS, CONFIG)
        elo = calc.new_elo
        _, losses = next_streaks(0, losses, MatchOutcome.LOSS)
        assert elo >= CONFIG.rating_floor
    assert elo == CONFIG.rating_floor


def test_rif_scales_adjusted_elo():
    assert calculate_rif(6.0, 4.0) == 1.5
    assert calculate_rif(6.0, 0.0) == 1.0
    calc = calculate_rating_change(_snap("A", team_rating=6.0), _snap("B", team_rating=4.0), MatchOutcome.WIN, CONFIG)
    assert calc.adjusted_elo == 1500.0
    assert calc.opponent_adjusted_elo == pytest.approx(1000 * 4.0 / 6.0)
    assert calc.expected_win_prob > 0.5


def test_expected_score_is_logistic():
    assert calculate_expected_score(1000, 1000) == 0.5
    assert calculate_expected_score(1400, 1000) == pytest.approx(10 / 11)
    assert calculate_expected_score(1000, 1400) + calculate_expected_score(1400, 1000) == pytest.approx(1.0)


def test_team_rating_neutral_when_understaffed():
    assert calculate_team_rating([[9.0]] * 4, CONFIG) == CONFIG.neutral_performance_score


def test_team_rating_averages_recent_scores():
    members = [[8.0, 6.0], [7.0], [], [5.0] * 10, [10.0, 1.0, 1.0, 1.0, 1.0, 1.0]]
    # 7.0, 7.0, neutral 5.0, 5.0, mean of first five (2.8)
    assert calculate_team_rating(members, CONFIG) == pytest.approx((7.0 + 7.0 + 5.0 + 5.0 + 2.8) / 5)


def test_tcf_needs_minimum_history():
    assert calculate_tcf([], CONFIG) == 1.0
    assert calculate_tcf([{"a"}, {"a"}], CONFIG) == 1.0


def test_tcf_counts_regular_players():
    core = {"p1", "p2", "p3", "p4"}
    lineups = [core | {"x1"}, core | {"x2"}, core | {"x3"}, {"p1"}, {"p2"}]
    assert calculate_tcf(lineups, CONFIG) == pytest.approx(0.8)
    six = {f"p{i}" for i in range(6)}
    assert calculate_tcf([six, six, six], CONFIG) == 1.0


def test_tcf_only_uses_window():
    recent = [{"a"}] * 5
    old = [{"b", "c", "d", "e", "f"}] * 5
    assert calculate_tcf(recent + old, CONFIG) == pytest.approx(0.2)


def test_loss_shield_and_streak_factor():
    assert calculate_loss_shield(5, CONFIG) == 1.0
    assert calculate_loss_shield(7, CONFIG) == pytest.approx(0.8)
    assert calculate_loss_shield(30, CONFIG) == CONFIG.loss_shield_min
    assert calculate_streak_factor(0, 0, CONFIG) == 1.0
    assert calculate_streak_factor(9, 0, CONFIG) == pytest.approx(1.25)
    assert calculate_streak_factor(0, 3, CONFIG) == pytest.approx(1.15)
    assert calculate_streak_factor(0, 7, CONFIG) == pytest.approx(1.25 * 0.8)


def test_k_factor_boundary():
    assert k_factor_for(4, CONFIG) == CONFIG.provisional_k_factor
    assert k_factor_for(5, CONFIG) == CONFIG.standard_k_factor


def test_delta_rounds_half_up():
    assert calculate_delta(1.0, 1.0, 0.5, 1.0, 1.0) == 1
    assert calculate_delta(1.0, 0.0, 0.5, 1.0, 1.0) == 0


def test_next_streaks():
    assert next_streaks(2, 0, MatchOutcome.WIN) == (3, 0)
    assert next_streaks(2, 0, MatchOutcome.LOSS) == (0, 1)
    assert next_streaks(0, 4, MatchOutcome.DRAW) == (0, 0)


def test_custom_config_is_used():
    config = RatingConfig(standard_k_factor=20.0, streak_bonus=0.0)
    calc_a, _ = calculate_match_ratings(_snap("A", win_streak=2), _snap("B"), 3, 1, config)
    assert calc_a.delta == 10
