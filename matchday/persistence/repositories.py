"""
Repository interfaces for matchday data.
No business logic; only read/write operations. Repositories never commit; callers
group writes with persistence.db.transaction().
"""
from __future__ import annotations

import json
import sqlite3
import uuid
from datetime import datetime, timezone
from typing import Any

from matchday.models import (
    Match,
    MatchReport,
    MemberRole,
    MemberStatus,
    Player,
    RatingHistoryEntry,
    Slot,
    Team,
    TeamMember,
    VerificationStatus,
)
from matchday.rating import RatingCalculation
from matchday.roster import normalize_roster, serialize_roster


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _parse_datetime(s: str | None) -> datetime:
    if s is None:
        raise ValueError("expected datetime string")
    return datetime.fromisoformat(s.replace("Z", "+00:00"))


def _parse_optional_datetime(s: str | None) -> datetime | None:
    return _parse_datetime(s) if s else None


def _iso(dt: datetime | None) -> str | None:
    return dt.isoformat() if dt is not None else None


# ---------- PlayerRepository ----------


class PlayerRepository:
    """Players and their ranked position preferences."""

    _COLS = "id, username, password_hash, name, positions, created_at"

    def _row_to_player(self, r: sqlite3.Row) -> Player:
        return Player(
            id=r["id"],
            username=r["username"],
            name=r["name"],
            positions=list(json.loads(r["positions"] or "[]")),
            password_hash=r["password_hash"],
            created_at=_parse_datetime(r["created_at"]),
        )

    def create(
        self,
        conn: sqlite3.Connection,
        username: str,
        password_hash: str = "",
        name: str | None = None,
        positions: list[str] | None = None,
        id: str | None = None,
    ) -> Player:
        pid = id or str(uuid.uuid4())
        now = utcnow()
        conn.execute(
            f"INSERT INTO players ({self._COLS}) VALUES (?, ?, ?, ?, ?, ?)",
            (pid, username, password_hash, name or username, json.dumps(positions or []), now.isoformat()),
        )
        return Player(
            id=pid, username=username, name=name or username, positions=list(positions or []),
            password_hash=password_hash, created_at=now,
        )

    def get(self, conn: sqlite3.Connection, player_id: str) -> Player | None:
        row = conn.execute(f"SELECT {self._COLS} FROM players WHERE id = ?", (player_id,)).fetchone()
        return self._row_to_player(row) if row else None

    def get_by_username(self, conn: sqlite3.Connection, username: str) -> Player | None:
        row = conn.execute(f"SELECT {self._COLS} FROM players WHERE username = ?", (username,)).fetchone()
        return self._row_to_player(row) if row else None

    def get_positions(self, conn: sqlite3.Connection, player_id: str) -> list[str]:
        row = conn.execute("SELECT positions FROM players WHERE id = ?", (player_id,)).fetchone()
        if row is None:
            return []
        return [str(p) for p in json.loads(row["positions"] or "[]")]

    def set_positions(self, conn: sqlite3.Connection, player_id: str, positions: list[str]) -> None:
        conn.execute("UPDATE players SET positions = ? WHERE id = ?", (json.dumps(positions), player_id))


# ---------- TeamRepository ----------


class TeamRepository:
    """Teams, their rating counters and reputation."""

    _COLS = "id, name, owner_id, elo, match_count, win_streak, loss_streak, reputation_score, created_at"

    def _row_to_team(self, r: sqlite3.Row) -> Team:
        return Team(
            id=r["id"],
            name=r["name"],
            owner_id=r["owner_id"],
            elo=r["elo"],
            match_count=r["match_count"],
            win_streak=r["win_streak"],
            loss_streak=r["loss_streak"],
            reputation_score=r["reputation_score"],
            created_at=_parse_datetime(r["created_at"]),
        )

    def create(
        self,
        conn: sqlite3.Connection,
        name: str,
        owner_id: str,
        elo: int,
        reputation_score: float,
        id: str | None = None,
    ) -> Team:
        tid = id or str(uuid.uuid4())
        now = utcnow()
        conn.execute(
            f"INSERT INTO teams ({self._COLS}) VALUES (?, ?, ?, ?, 0, 0, 0, ?, ?)",
            (tid, name, owner_id, elo, reputation_score, now.isoformat()),
        )
        return Team(
            id=tid, name=name, owner_id=owner_id, elo=elo, match_count=0, win_streak=0,
            loss_streak=0, reputation_score=reputation_score, created_at=now,
        )

    def get(self, conn: sqlite3.Connection, team_id: str) -> Team | None:
        row = conn.execute(f"SELECT {self._COLS} FROM teams WHERE id = ?", (team_id,)).fetchone()
        return self._row_to_team(row) if row else None

    def get_name(self, conn: sqlite3.Connection, team_id: str | None) -> str | None:
        if not team_id:
            return None
        row = conn.execute("SELECT name FROM teams WHERE id = ?", (team_id,)).fetchone()
        return row["name"] if row else None

    def update_rating(
        self,
        conn: sqlite3.Connection,
        team_id: str,
        elo: int,
        win_streak: int,
        loss_streak: int,
    ) -> None:
        """New elo and streaks; match_count += 1."""
        conn.execute(
            "UPDATE teams SET elo = ?, match_count = match_count + 1, win_streak = ?, loss_streak = ? WHERE id = ?",
            (elo, win_streak, loss_streak, team_id),
        )

    def set_rating_state(
        self,
        conn: sqlite3.Connection,
        team_id: str,
        *,
        elo: int | None = None,
        match_count: int | None = None,
        win_streak: int | None = None,
        loss_streak: int | None = None,
    ) -> None:
        """Direct overwrite of rating counters (seeding and imports)."""
        updates: list[str] = []
        args: list[Any] = []
        for col, value in (
            ("elo", elo), ("match_count", match_count), ("win_streak", win_streak), ("loss_streak", loss_streak),
        ):
            if value is not None:
                updates.append(f"{col} = ?")
                args.append(value)
        if not updates:
            return
        args.append(team_id)
        conn.execute(f"UPDATE teams SET {', '.join(updates)} WHERE id = ?", tuple(args))

    def set_reputation(self, conn: sqlite3.Connection, team_id: str, reputation_score: float) -> None:
        conn.execute("UPDATE teams SET reputation_score = ? WHERE id = ?", (reputation_score, team_id))

    def count_ranked(self, conn: sqlite3.Connection, min_match_count: int) -> int:
        row = conn.execute("SELECT COUNT(*) AS n FROM teams WHERE match_count >= ?", (min_match_count,)).fetchone()
        return row["n"]

    def count_with_higher_elo(
        self, conn: sqlite3.Connection, elo: int, min_match_count: int = 0
    ) -> int:
        row = conn.execute(
            "SELECT COUNT(*) AS n FROM teams WHERE elo > ? AND match_count >= ?",
            (elo, min_match_count),
        ).fetchone()
        return row["n"]

    def list_ranked(
        self, conn: sqlite3.Connection, min_match_count: int, limit: int, offset: int
    ) -> list[Team]:
        rows = conn.execute(
            f"SELECT {self._COLS} FROM teams WHERE match_count >= ? ORDER BY elo DESC, name ASC LIMIT ? OFFSET ?",
            (min_match_count, limit, offset),
        ).fetchall()
        return [self._row_to_team(r) for r in rows]


# ---------- TeamMemberRepository ----------


class TeamMemberRepository:
    """Team membership rows: role and status per (team, player)."""

    def _row_to_member(self, r: sqlite3.Row) -> TeamMember:
        return TeamMember(
            team_id=r["team_id"],
            player_id=r["player_id"],
            role=MemberRole(r["role"]),
            status=MemberStatus(r["status"]),
            joined_at=_parse_datetime(r["joined_at"]),
        )

    def add(
        self,
        conn: sqlite3.Connection,
        team_id: str,
        player_id: str,
        role: MemberRole = MemberRole.MEMBER,
        status: MemberStatus = MemberStatus.ACTIVE,
    ) -> TeamMember:
        now = utcnow()
        conn.execute(
            """
            INSERT INTO team_members (team_id, player_id, role, status, joined_at) VALUES (?, ?, ?, ?, ?)
            ON CONFLICT(team_id, player_id) DO UPDATE SET role = excluded.role, status = excluded.status
            """,
            (team_id, player_id, role.value, status.value, now.isoformat()),
        )
        return TeamMember(team_id=team_id, player_id=player_id, role=role, status=status, joined_at=now)

    def get(self, conn: sqlite3.Connection, team_id: str, player_id: str) -> TeamMember | None:
        row = conn.execute(
            "SELECT team_id, player_id, role, status, joined_at FROM team_members WHERE team_id = ? AND player_id = ?",
            (team_id, player_id),
        ).fetchone()
        return self._row_to_member(row) if row else None

    def set_status(self, conn: sqlite3.Connection, team_id: str, player_id: str, status: MemberStatus) -> None:
        conn.execute(
            "UPDATE team_members SET status = ? WHERE team_id = ? AND player_id = ?",
            (status.value, team_id, player_id),
        )

    def list_active_player_ids(self, conn: sqlite3.Connection, team_id: str) -> list[str]:
        rows = conn.execute(
            "SELECT player_id FROM team_members WHERE team_id = ? AND status = ? ORDER BY joined_at, player_id",
            (team_id, MemberStatus.ACTIVE.value),
        ).fetchall()
        return [r["player_id"] for r in rows]


# ---------- MatchRepository ----------


class MatchRepository:
    """Matches with their roster JSON and verification state."""

    _COLS = (
        "id, title, owner_id, format, team_a_id, team_b_id, scheduled_at, roster, roster_revision, "
        "verification_status, dispute_deadline, score_a, score_b, verified_at, created_at"
    )

    def _row_to_match(self, r: sqlite3.Row) -> Match:
        return Match(
            id=r["id"],
            title=r["title"],
            owner_id=r["owner_id"],
            format=r["format"],
            team_a_id=r["team_a_id"],
            team_b_id=r["team_b_id"],
            scheduled_at=_parse_optional_datetime(r["scheduled_at"]),
            slots=normalize_roster(r["roster"], r["format"]),
            roster_revision=r["roster_revision"],
            status=VerificationStatus(r["verification_status"]),
            dispute_deadline=_parse_optional_datetime(r["dispute_deadline"]),
            score_a=r["score_a"],
            score_b=r["score_b"],
            verified_at=_parse_optional_datetime(r["verified_at"]),
            created_at=_parse_datetime(r["created_at"]),
        )

    def create(
        self,
        conn: sqlite3.Connection,
        owner_id: str,
        fmt: str,
        slots: list[Slot],
        title: str | None = None,
        team_a_id: str | None = None,
        team_b_id: str | None = None,
        scheduled_at: datetime | None = None,
        id: str | None = None,
    ) -> Match:
        mid = id or str(uuid.uuid4())
        now = utcnow()
        conn.execute(
            """
            INSERT INTO matches (id, title, owner_id, format, team_a_id, team_b_id, scheduled_at, roster,
                                 roster_revision, verification_status, created_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, 0, ?, ?)
            """,
            (
                mid, title, owner_id, fmt, team_a_id, team_b_id, _iso(scheduled_at),
                serialize_roster(slots), VerificationStatus.UNREPORTED.value, now.isoformat(),
            ),
        )
        return Match(
            id=mid, title=title, owner_id=owner_id, format=fmt, team_a_id=team_a_id, team_b_id=team_b_id,
            scheduled_at=scheduled_at, slots=slots, status=VerificationStatus.UNREPORTED, created_at=now,
        )

    def get(self, conn: sqlite3.Connection, match_id: str) -> Match | None:
        row = conn.execute(f"SELECT {self._COLS} FROM matches WHERE id = ?", (match_id,)).fetchone()
        return self._row_to_match(row) if row else None

    def update_roster(self, conn: sqlite3.Connection, match_id: str, slots: list[Slot]) -> None:
        conn.execute(
            "UPDATE matches SET roster = ?, roster_revision = roster_revision + 1 WHERE id = ?",
            (serialize_roster(slots), match_id),
        )

    def set_teams(
        self, conn: sqlite3.Connection, match_id: str, team_a_id: str | None, team_b_id: str | None
    ) -> None:
        conn.execute(
            "UPDATE matches SET team_a_id = ?, team_b_id = ? WHERE id = ?",
            (team_a_id, team_b_id, match_id),
        )

    def set_status(
        self,
        conn: sqlite3.Connection,
        match_id: str,
        status: VerificationStatus,
        dispute_deadline: datetime | None = None,
    ) -> None:
        if dispute_deadline is not None:
            conn.execute(
                "UPDATE matches SET verification_status = ?, dispute_deadline = ? WHERE id = ?",
                (status.value, dispute_deadline.isoformat(), match_id),
            )
        else:
            conn.execute("UPDATE matches SET verification_status = ? WHERE id = ?", (status.value, match_id))

    def mark_verified(
        self, conn: sqlite3.Connection, match_id: str, score_a: int, score_b: int, verified_at: datetime
    ) -> None:
        conn.execute(
            "UPDATE matches SET verification_status = ?, score_a = ?, score_b = ?, verified_at = ? WHERE id = ?",
            (VerificationStatus.VERIFIED.value, score_a, score_b, verified_at.isoformat(), match_id),
        )

    def list_recent_verified_for_team(self, conn: sqlite3.Connection, team_id: str, limit: int) -> list[Match]:
        """Most recent verified matches of a team, newest first (scheduled time, then verification)."""
        rows = conn.execute(
            f"""
            SELECT {self._COLS} FROM matches
            WHERE (team_a_id = ? OR team_b_id = ?) AND verification_status = ?
            ORDER BY COALESCE(scheduled_at, verified_at) DESC, verified_at DESC
            LIMIT ?
            """,
            (team_id, team_id, VerificationStatus.VERIFIED.value, limit),
        ).fetchall()
        return [self._row_to_match(r) for r in rows]

    def list_disputed_before(self, conn: sqlite3.Connection, deadline: datetime) -> list[Match]:
        rows = conn.execute(
            f"""
            SELECT {self._COLS} FROM matches
            WHERE verification_status = ? AND dispute_deadline IS NOT NULL AND dispute_deadline <= ?
            ORDER BY dispute_deadline
            """,
            (VerificationStatus.DISPUTED.value, deadline.isoformat()),
        ).fetchall()
        return [self._row_to_match(r) for r in rows]


# ---------- MatchReportRepository ----------


class MatchReportRepository:
    """Match reports. Created once, never updated."""

    _COLS = "id, match_id, team_id, reporter_id, reporter_role, score_a, score_b, notes, created_at"

    def _row_to_report(self, r: sqlite3.Row) -> MatchReport:
        return MatchReport(
            id=r["id"],
            match_id=r["match_id"],
            team_id=r["team_id"],
            reporter_id=r["reporter_id"],
            reporter_role=MemberRole(r["reporter_role"]),
            score_a=r["score_a"],
            score_b=r["score_b"],
            notes=r["notes"],
            created_at=_parse_datetime(r["created_at"]),
        )

    def create(
        self,
        conn: sqlite3.Connection,
        match_id: str,
        team_id: str,
        reporter_id: str,
        reporter_role: MemberRole,
        score_a: int,
        score_b: int,
        notes: str | None = None,
    ) -> MatchReport:
        """Raises sqlite3.IntegrityError if the team already reported this match."""
        rid = str(uuid.uuid4())
        now = utcnow()
        conn.execute(
            f"INSERT INTO match_reports ({self._COLS}) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)",
            (rid, match_id, team_id, reporter_id, reporter_role.value, score_a, score_b, notes, now.isoformat()),
        )
        return MatchReport(
            id=rid, match_id=match_id, team_id=team_id, reporter_id=reporter_id, reporter_role=reporter_role,
            score_a=score_a, score_b=score_b, notes=notes, created_at=now,
        )

    def get_for_team(self, conn: sqlite3.Connection, match_id: str, team_id: str) -> MatchReport | None:
        row = conn.execute(
            f"SELECT {self._COLS} FROM match_reports WHERE match_id = ? AND team_id = ?",
            (match_id, team_id),
        ).fetchone()
        return self._row_to_report(row) if row else None

    def list_by_match(self, conn: sqlite3.Connection, match_id: str) -> list[MatchReport]:
        rows = conn.execute(
            f"SELECT {self._COLS} FROM match_reports WHERE match_id = ? ORDER BY created_at, id",
            (match_id,),
        ).fetchall()
        return [self._row_to_report(r) for r in rows]


# ---------- RatingHistoryRepository ----------


class RatingHistoryRepository:
    """Append-only rating audit trail."""

    _COLS = (
        "id, team_id, match_id, opponent_team_id, elo_before, delta, new_elo, opponent_elo, team_rating, "
        "opponent_rating, rif, adjusted_elo, expected_win_prob, actual_outcome, tcf, streak_factor, k_factor, "
        "created_at"
    )

    def _row_to_entry(self, r: sqlite3.Row) -> RatingHistoryEntry:
        d = dict(r)
        d["created_at"] = _parse_datetime(d["created_at"])
        return RatingHistoryEntry(**d)

    def append(
        self, conn: sqlite3.Connection, match_id: str, calc: RatingCalculation, created_at: datetime
    ) -> RatingHistoryEntry:
        entry = RatingHistoryEntry(
            id=str(uuid.uuid4()),
            team_id=calc.team_id,
            match_id=match_id,
            opponent_team_id=calc.opponent_team_id,
            elo_before=calc.team_elo,
            delta=calc.delta,
            new_elo=calc.new_elo,
            opponent_elo=calc.opponent_elo,
            team_rating=calc.team_rating,
            opponent_rating=calc.opponent_rating,
            rif=calc.rif,
            adjusted_elo=calc.adjusted_elo,
            expected_win_prob=calc.expected_win_prob,
            actual_outcome=calc.actual_outcome,
            tcf=calc.tcf,
            streak_factor=calc.streak_factor,
            k_factor=calc.k_factor,
            created_at=created_at,
        )
        conn.execute(
            f"INSERT INTO rating_history ({self._COLS}) VALUES ({', '.join('?' * 18)})",
            (
                entry.id, entry.team_id, entry.match_id, entry.opponent_team_id, entry.elo_before, entry.delta,
                entry.new_elo, entry.opponent_elo, entry.team_rating, entry.opponent_rating, entry.rif,
                entry.adjusted_elo, entry.expected_win_prob, entry.actual_outcome, entry.tcf,
                entry.streak_factor, entry.k_factor, entry.created_at.isoformat(),
            ),
        )
        return entry

    def list_by_team(self, conn: sqlite3.Connection, team_id: str, limit: int) -> list[RatingHistoryEntry]:
        rows = conn.execute(
            f"SELECT {self._COLS} FROM rating_history WHERE team_id = ? ORDER BY created_at DESC, id LIMIT ?",
            (team_id, limit),
        ).fetchall()
        return [self._row_to_entry(r) for r in rows]

    def list_by_match(self, conn: sqlite3.Connection, match_id: str) -> list[RatingHistoryEntry]:
        rows = conn.execute(
            f"SELECT {self._COLS} FROM rating_history WHERE match_id = ? ORDER BY team_id",
            (match_id,),
        ).fetchall()
        return [self._row_to_entry(r) for r in rows]


# ---------- PositionScoreRepository ----------


class PositionScoreRepository:
    """Peer position scores; the read side is the team-rating performance source."""

    def upsert(
        self,
        conn: sqlite3.Connection,
        match_id: str,
        rater_id: str,
        ratee_id: str,
        position: str,
        score: float,
    ) -> None:
        now = utcnow().isoformat()
        conn.execute(
            """
            INSERT INTO position_scores (id, match_id, rater_id, ratee_id, position, score, created_at, updated_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            ON CONFLICT(match_id, rater_id, ratee_id, position)
            DO UPDATE SET score = excluded.score, updated_at = excluded.updated_at
            """,
            (str(uuid.uuid4()), match_id, rater_id, ratee_id, position, score, now, now),
        )

    def recent_scores(self, conn: sqlite3.Connection, player_id: str, limit: int) -> list[float]:
        """Newest first."""
        rows = conn.execute(
            "SELECT score FROM position_scores WHERE ratee_id = ? ORDER BY created_at DESC, id LIMIT ?",
            (player_id, limit),
        ).fetchall()
        return [float(r["score"]) for r in rows]
