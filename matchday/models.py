"""
Data models for the matchday engine.
Domain objects only, no persistence or API logic.

A match owns a roster of slots split across two sides (A and B). Teams carry a
long-lived elo rating plus streak counters and a reputation score; reports from
both teams drive the verification state machine.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any


# ---------- Roster side ----------
class Side(str, Enum):
    A = "A"
    B = "B"


def parse_side(value: str | None) -> Side | None:
    """Parse 'A' / 'b' etc. Returns None for empty or unknown values."""
    if not value:
        return None
    try:
        return Side(str(value).strip().upper())
    except ValueError:
        return None


# ---------- Verification status (state machine) ----------
class VerificationStatus(str, Enum):
    """Match lifecycle: unreported → pending → verified | disputed → verified | invalid."""
    UNREPORTED = "UNREPORTED"
    PENDING = "PENDING"      # One report received
    VERIFIED = "VERIFIED"    # Terminal
    DISPUTED = "DISPUTED"    # Reports disagree, waiting for admin
    INVALID = "INVALID"      # Terminal


TERMINAL_STATUSES = frozenset({VerificationStatus.VERIFIED, VerificationStatus.INVALID})


class DisputeResolution(str, Enum):
    AGREE_A = "AGREE_A"
    AGREE_B = "AGREE_B"
    INVALID = "INVALID"


class MatchOutcome(str, Enum):
    WIN = "WIN"
    DRAW = "DRAW"
    LOSS = "LOSS"


def outcome_for(own_score: int, other_score: int) -> MatchOutcome:
    if own_score > other_score:
        return MatchOutcome.WIN
    if own_score < other_score:
        return MatchOutcome.LOSS
    return MatchOutcome.DRAW


# ---------- Team membership ----------
class MemberRole(str, Enum):
    OWNER = "OWNER"
    ADMIN = "ADMIN"
    MEMBER = "MEMBER"


ELEVATED_ROLES = frozenset({MemberRole.OWNER, MemberRole.ADMIN})


class MemberStatus(str, Enum):
    ACTIVE = "ACTIVE"
    INACTIVE = "INACTIVE"


# ---------- Slot ----------
@dataclass
class Slot:
    """One position-team assignment unit within a match roster."""
    team: Side
    position: str
    occupant_id: str | None = None

    @property
    def is_free(self) -> bool:
        return self.occupant_id is None

    def to_dict(self) -> dict[str, Any]:
        return {
            "team": self.team.value,
            "position": self.position,
            "occupant_id": self.occupant_id,
        }


# ---------- Player ----------
@dataclass
class Player:
    """
    A registered player. positions: ranked preferred position codes (at most 3).
    """
    id: str
    username: str
    name: str
    created_at: datetime
    positions: list[str] = field(default_factory=list)
    password_hash: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "username": self.username,
            "name": self.name,
            "positions": list(self.positions),
            "created_at": self.created_at.isoformat(),
        }


# ---------- Team ----------
@dataclass
class Team:
    """
    A competitive team. elo and streaks change only through verified matches;
    reputation_score only through dispute resolution.
    """
    id: str
    name: str
    owner_id: str
    elo: int
    match_count: int
    win_streak: int
    loss_streak: int
    reputation_score: float
    created_at: datetime

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "owner_id": self.owner_id,
            "elo": self.elo,
            "match_count": self.match_count,
            "win_streak": self.win_streak,
            "loss_streak": self.loss_streak,
            "created_at": self.created_at.isoformat(),
        }


@dataclass
class TeamMember:
    team_id: str
    player_id: str
    role: MemberRole
    status: MemberStatus
    joined_at: datetime

    @property
    def is_active(self) -> bool:
        return self.status == MemberStatus.ACTIVE

    @property
    def is_elevated(self) -> bool:
        return self.is_active and self.role in ELEVATED_ROLES


# ---------- Match ----------
@dataclass
class Match:
    """
    A scheduled match with its roster. Teams may be unassigned (pickup games).
    roster_revision increments on every roster write.
    """
    id: str
    owner_id: str
    format: str
    slots: list[Slot]
    status: VerificationStatus
    created_at: datetime
    title: str | None = None
    team_a_id: str | None = None
    team_b_id: str | None = None
    scheduled_at: datetime | None = None
    roster_revision: int = 0
    dispute_deadline: datetime | None = None
    score_a: int | None = None
    score_b: int | None = None
    verified_at: datetime | None = None

    def side_of_team(self, team_id: str) -> Side | None:
        if team_id and team_id == self.team_a_id:
            return Side.A
        if team_id and team_id == self.team_b_id:
            return Side.B
        return None

    def team_for_side(self, side: Side) -> str | None:
        return self.team_a_id if side == Side.A else self.team_b_id

    def participant_ids(self) -> set[str]:
        return {s.occupant_id for s in self.slots if s.occupant_id}

    def to_dict(self) -> dict[str, Any]:
        d: dict[str, Any] = {
            "id": self.id,
            "title": self.title,
            "owner_id": self.owner_id,
            "format": self.format,
            "team_a_id": self.team_a_id,
            "team_b_id": self.team_b_id,
            "scheduled_at": self.scheduled_at.isoformat() if self.scheduled_at else None,
            "verification_status": self.status.value,
            "slots": [s.to_dict() for s in self.slots],
            "roster_revision": self.roster_revision,
            "created_at": self.created_at.isoformat(),
        }
        if self.dispute_deadline is not None:
            d["dispute_deadline"] = self.dispute_deadline.isoformat()
        if self.score_a is not None and self.score_b is not None:
            d["score_a"] = self.score_a
            d["score_b"] = self.score_b
        if self.verified_at is not None:
            d["verified_at"] = self.verified_at.isoformat()
        return d


# ---------- MatchReport ----------
@dataclass
class MatchReport:
    """One team's claimed score for a match. Immutable once written."""
    id: str
    match_id: str
    team_id: str
    reporter_id: str
    reporter_role: MemberRole
    score_a: int
    score_b: int
    created_at: datetime
    notes: str | None = None

    def same_score_as(self, other: MatchReport) -> bool:
        return self.score_a == other.score_a and self.score_b == other.score_b

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "match_id": self.match_id,
            "team_id": self.team_id,
            "reporter_id": self.reporter_id,
            "reporter_role": self.reporter_role.value,
            "score_a": self.score_a,
            "score_b": self.score_b,
            "notes": self.notes,
            "created_at": self.created_at.isoformat(),
        }


# ---------- RatingHistoryEntry ----------
@dataclass(frozen=True)
class RatingHistoryEntry:
    """Append-only audit record, one per team per verified match."""
    id: str
    team_id: str
    match_id: str
    opponent_team_id: str
    elo_before: int
    delta: int
    new_elo: int
    opponent_elo: int
    team_rating: float
    opponent_rating: float
    rif: float
    adjusted_elo: float
    expected_win_prob: float
    actual_outcome: float
    tcf: float
    streak_factor: float
    k_factor: float
    created_at: datetime

    @property
    def result(self) -> str:
        if self.actual_outcome >= 1.0:
            return "W"
        if self.actual_outcome <= 0.0:
            return "L"
        return "D"

    def details(self) -> dict[str, Any]:
        return {
            "team_rating": self.team_rating,
            "opponent_rating": self.opponent_rating,
            "rif": self.rif,
            "adjusted_elo": self.adjusted_elo,
            "expected_win_prob": self.expected_win_prob,
            "actual_outcome": self.actual_outcome,
            "tcf": self.tcf,
            "streak_factor": self.streak_factor,
            "k_factor": self.k_factor,
        }
