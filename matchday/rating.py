"""
Team rating math. Pure functions over plain numbers; no I/O.

    TR  = mean of each active member's recent position scores
    RIF = TR_self / TR_opp
    AE  = elo * RIF
    P   = 1 / (1 + 10^((AE_opp - AE_self) / scale))
    delta = round(K * (S - P) * TCF * StreakFactor)
    new elo = max(floor, elo + delta)
"""
from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Iterable, Sequence

from matchday.config import RatingConfig
from matchday.models import MatchOutcome, outcome_for


@dataclass(frozen=True)
class TeamSnapshot:
    """Rating inputs for one side, read before either team is updated."""
    team_id: str
    elo: int
    match_count: int
    win_streak: int
    loss_streak: int
    team_rating: float
    tcf: float


@dataclass(frozen=True)
class RatingCalculation:
    team_id: str
    opponent_team_id: str
    team_elo: int
    opponent_elo: int
    team_rating: float
    opponent_rating: float
    rif: float
    adjusted_elo: float
    opponent_adjusted_elo: float
    expected_win_prob: float
    actual_outcome: float
    tcf: float
    streak_factor: float
    k_factor: float
    delta: int
    new_elo: int


def calculate_team_rating(member_scores: Sequence[Sequence[float]], config: RatingConfig) -> float:
    """
    member_scores holds one list of recent position scores per active member, newest first.
    Under-staffed teams get the neutral score.
    """
    if len(member_scores) < config.min_players_for_team_rating:
        return config.neutral_performance_score
    total = 0.0
    for scores in member_scores:
        recent = list(scores)[: config.recent_scores_per_player]
        if recent:
            total += sum(recent) / len(recent)
        else:
            total += config.neutral_performance_score
    return total / len(member_scores)


def calculate_rif(team_rating: float, opponent_rating: float) -> float:
    if opponent_rating <= 0:
        return 1.0
    return team_rating / opponent_rating


def calculate_adjusted_elo(elo: float, rif: float) -> float:
    return elo * rif


def calculate_expected_score(adjusted_elo: float, opponent_adjusted_elo: float, scale_factor: float = 400.0) -> float:
    """Logistic win probability for one side."""
    return 1.0 / (1.0 + 10.0 ** ((opponent_adjusted_elo - adjusted_elo) / scale_factor))


def calculate_tcf(recent_lineups: Sequence[Iterable[str]], config: RatingConfig) -> float:
    """
    Roster stability over the last verified matches (newest first): players who appeared
    in at least consistency_min_appearances of them, over consistency_target_players.
    """
    window = list(recent_lineups)[: config.consistency_window]
    if len(window) < config.consistency_min_matches:
        return 1.0
    appearances: dict[str, int] = {}
    for lineup in window:
        for player_id in set(lineup):
            appearances[player_id] = appearances.get(player_id, 0) + 1
    consistent = sum(1 for count in appearances.values() if count >= config.consistency_min_appearances)
    return min(1.0, consistent / config.consistency_target_players)


def calculate_loss_shield(loss_streak: int, config: RatingConfig) -> float:
    if loss_streak <= config.loss_shield_start:
        return 1.0
    return max(
        config.loss_shield_min,
        1.0 - config.loss_shield_step * (loss_streak - config.loss_shield_start),
    )


def calculate_streak_factor(win_streak: int, loss_streak: int, config: RatingConfig) -> float:
    if win_streak > 0:
        return 1.0 + config.streak_bonus * min(win_streak, config.streak_max)
    if loss_streak > 0:
        alpha = 1.0 + config.streak_bonus * min(loss_streak, config.streak_max)
        return alpha * calculate_loss_shield(loss_streak, config)
    return 1.0


def k_factor_for(match_count: int, config: RatingConfig) -> float:
    if match_count < config.provisional_match_limit:
        return config.provisional_k_factor
    return config.standard_k_factor


def is_provisional(match_count: int, config: RatingConfig) -> bool:
    return match_count < config.provisional_match_limit


def outcome_value(outcome: MatchOutcome) -> float:
    if outcome == MatchOutcome.WIN:
        return 1.0
    if outcome == MatchOutcome.DRAW:
        return 0.5
    return 0.0


def calculate_delta(
    k_factor: float,
    actual_outcome: float,
    expected_win_prob: float,
    tcf: float,
    streak_factor: float,
) -> int:
    # Half-up rounding: -0.5 -> 0, 0.5 -> 1
    return math.floor(k_factor * (actual_outcome - expected_win_prob) * tcf * streak_factor + 0.5)


def apply_floor(elo: int, delta: int, config: RatingConfig) -> int:
    return max(config.rating_floor, elo + delta)


def calculate_rating_change(
    team: TeamSnapshot,
    opponent: TeamSnapshot,
    outcome: MatchOutcome,
    config: RatingConfig,
) -> RatingCalculation:
    """One side's full calculation against the opponent's pre-match snapshot."""
    rif = calculate_rif(team.team_rating, opponent.team_rating)
    adjusted = calculate_adjusted_elo(team.elo, rif)
    opponent_adjusted = calculate_adjusted_elo(
        opponent.elo, calculate_rif(opponent.team_rating, team.team_rating)
    )
    expected = calculate_expected_score(adjusted, opponent_adjusted, config.scale_factor)
    streak_factor = calculate_streak_factor(team.win_streak, team.loss_streak, config)
    k_factor = k_factor_for(team.match_count, config)
    actual = outcome_value(outcome)
    delta = calculate_delta(k_factor, actual, expected, team.tcf, streak_factor)
    return RatingCalculation(
        team_id=team.team_id,
        opponent_team_id=opponent.team_id,
        team_elo=team.elo,
        opponent_elo=opponent.elo,
        team_rating=team.team_rating,
        opponent_rating=opponent.team_rating,
        rif=rif,
        adjusted_elo=adjusted,
        opponent_adjusted_elo=opponent_adjusted,
        expected_win_prob=expected,
        actual_outcome=actual,
        tcf=team.tcf,
        streak_factor=streak_factor,
        k_factor=k_factor,
        delta=delta,
        new_elo=apply_floor(team.elo, delta, config),
    )


def calculate_match_ratings(
    team_a: TeamSnapshot,
    team_b: TeamSnapshot,
    score_a: int,
    score_b: int,
    config: RatingConfig,
) -> tuple[RatingCalculation, RatingCalculation]:
    """Both sides from the same pre-match snapshots, so the result is order-independent."""
    calc_a = calculate_rating_change(team_a, team_b, outcome_for(score_a, score_b), config)
    calc_b = calculate_rating_change(team_b, team_a, outcome_for(score_b, score_a), config)
    return calc_a, calc_b


def next_streaks(win_streak: int, loss_streak: int, outcome: MatchOutcome) -> tuple[int, int]:
    """Streak counters after an outcome. A draw resets both."""
    if outcome == MatchOutcome.WIN:
        return win_streak + 1, 0
    if outcome == MatchOutcome.LOSS:
        return 0, loss_streak + 1
    return 0, 0
