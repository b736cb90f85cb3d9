"""
Engine tunables: rating model, reputation gate and verification windows.
Immutable; pass a different EngineConfig to services to change behavior.
Optionally loaded from a TOML file ([rating], [reputation], [verification]).
"""
from __future__ import annotations

import os
import tomllib
from dataclasses import dataclass, field, fields
from enum import Enum
from pathlib import Path
from typing import Any


class DisputeExpiryPolicy(str, Enum):
    """What happens to a DISPUTED match once its deadline has passed."""
    LEAVE_OPEN = "LEAVE_OPEN"  # Deadline is informational only
    INVALIDATE = "INVALIDATE"  # Sweep resolves it as INVALID


@dataclass(frozen=True)
class RatingConfig:
    initial_elo: int = 500
    rating_floor: int = 100
    scale_factor: float = 400.0
    # Provisional teams use a higher K until they have played enough verified matches
    provisional_match_limit: int = 5
    provisional_k_factor: float = 60.0
    standard_k_factor: float = 40.0
    # Team rating (TR) from per-player position scores (1-10 scale)
    min_players_for_team_rating: int = 5
    recent_scores_per_player: int = 5
    neutral_performance_score: float = 5.0
    # Team consistency factor (TCF)
    consistency_window: int = 5
    consistency_min_matches: int = 3
    consistency_min_appearances: int = 3
    consistency_target_players: int = 5
    # Streaks and loss shield
    streak_max: int = 5
    streak_bonus: float = 0.05
    loss_shield_start: int = 5
    loss_shield_step: float = 0.1
    loss_shield_min: float = 0.5


@dataclass(frozen=True)
class ReputationConfig:
    initial: float = 5.0
    minimum: float = 1.0
    warning_threshold: float = 2.0
    dispute_penalty: float = 1.0


@dataclass(frozen=True)
class VerificationConfig:
    dispute_timeout_hours: int = 48
    min_score: int = 0
    max_score: int = 99
    position_score_window_hours: int = 24
    expired_dispute_policy: DisputeExpiryPolicy = DisputeExpiryPolicy.LEAVE_OPEN


@dataclass(frozen=True)
class EngineConfig:
    rating: RatingConfig = field(default_factory=RatingConfig)
    reputation: ReputationConfig = field(default_factory=ReputationConfig)
    verification: VerificationConfig = field(default_factory=VerificationConfig)


DEFAULT_CONFIG = EngineConfig()


def _coerce_section(cls: type, raw: dict[str, Any], section: str, file_path: Path) -> Any:
    """Build one config dataclass from a TOML table, casting to the default's type."""
    known = {f.name: f for f in fields(cls)}
    unknown = set(raw) - set(known)
    if unknown:
        raise ValueError(f"{file_path}: unknown keys in [{section}]: {sorted(unknown)}")
    defaults = cls()
    kwargs: dict[str, Any] = {}
    for key, value in raw.items():
        current = getattr(defaults, key)
        try:
            if isinstance(current, Enum):
                kwargs[key] = type(current)(str(value).upper())
            elif isinstance(current, bool):
                kwargs[key] = bool(value)
            else:
                kwargs[key] = type(current)(value)
        except (TypeError, ValueError) as exc:
            raise ValueError(f"{file_path}: [{section}].{key} has invalid value {value!r}") from exc
    return cls(**kwargs)


def _validate(config: EngineConfig, file_path: Path) -> None:
    r = config.rating
    if r.rating_floor < 0 or r.initial_elo < r.rating_floor:
        raise ValueError(f"{file_path}: [rating].initial_elo must be >= rating_floor >= 0")
    if r.scale_factor <= 0:
        raise ValueError(f"{file_path}: [rating].scale_factor must be > 0")
    if not 0 < r.loss_shield_min <= 1:
        raise ValueError(f"{file_path}: [rating].loss_shield_min must be in (0, 1]")
    if r.consistency_target_players <= 0 or r.consistency_window <= 0:
        raise ValueError(f"{file_path}: [rating] consistency window and target must be > 0")
    rep = config.reputation
    if not rep.minimum <= rep.warning_threshold <= rep.initial:
        raise ValueError(f"{file_path}: [reputation] requires minimum <= warning_threshold <= initial")
    if rep.dispute_penalty < 0:
        raise ValueError(f"{file_path}: [reputation].dispute_penalty must be >= 0")
    v = config.verification
    if v.min_score < 0 or v.max_score < v.min_score:
        raise ValueError(f"{file_path}: [verification] score range is invalid")
    if v.dispute_timeout_hours < 0:
        raise ValueError(f"{file_path}: [verification].dispute_timeout_hours must be >= 0")


def load_engine_config(file_path: str | Path) -> EngineConfig:
    """Load and validate an EngineConfig from a TOML file. Missing keys keep defaults."""
    path = Path(file_path)
    if not path.exists():
        raise FileNotFoundError(f"Config file not found: {path}")
    with path.open("rb") as file:
        raw = tomllib.load(file)
    config = EngineConfig(
        rating=_coerce_section(RatingConfig, raw.get("rating", {}), "rating", path),
        reputation=_coerce_section(ReputationConfig, raw.get("reputation", {}), "reputation", path),
        verification=_coerce_section(VerificationConfig, raw.get("verification", {}), "verification", path),
    )
    _validate(config, path)
    return config


def config_from_env() -> EngineConfig:
    """MATCHDAY_CONFIG points at a TOML file; defaults otherwise."""
    path = os.environ.get("MATCHDAY_CONFIG", "").strip()
    if not path:
        return DEFAULT_CONFIG
    return load_engine_config(path)
