"""
Match verification state machine.

    UNREPORTED -> PENDING            first report received
    PENDING    -> VERIFIED           second report agrees; ratings applied once
    PENDING    -> DISPUTED           second report disagrees; deadline recorded
    DISPUTED   -> VERIFIED | INVALID admin resolution

Rating application, streaks, match counts, both history rows and the match status are
written in one transaction. INVALID lowers both teams' reputation.
"""
from __future__ import annotations

import logging
import sqlite3
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Callable

from matchday.config import DEFAULT_CONFIG, DisputeExpiryPolicy, EngineConfig
from matchday.models import (
    TERMINAL_STATUSES,
    DisputeResolution,
    Match,
    MatchReport,
    Team,
    VerificationStatus,
    outcome_for,
)
from matchday.persistence.db import transaction
from matchday.persistence.repositories import (
    MatchReportRepository,
    MatchRepository,
    PlayerRepository,
    RatingHistoryRepository,
    TeamMemberRepository,
    TeamRepository,
    utcnow,
)
from matchday.rating import RatingCalculation, calculate_match_ratings, next_streaks
from matchday.services.errors import (
    AlreadyReportedError,
    ConflictError,
    DisputeStateError,
    ForbiddenError,
    InvalidError,
    NotFoundError,
)
from matchday.services.rating_service import RatingService
from matchday.services.reputation import ReputationGate

logger = logging.getLogger(__name__)

MAX_NOTES_LENGTH = 1000


@dataclass(frozen=True)
class ReportResult:
    status: VerificationStatus
    message: str
    warning: str | None = None
    dispute_deadline: datetime | None = None

    def to_dict(self) -> dict[str, Any]:
        d: dict[str, Any] = {"status": self.status.value, "message": self.message}
        if self.warning:
            d["warning"] = self.warning
        if self.dispute_deadline is not None:
            d["dispute_deadline"] = self.dispute_deadline.isoformat()
        return d


def parse_resolution(value: DisputeResolution | str) -> DisputeResolution:
    if isinstance(value, DisputeResolution):
        return value
    try:
        return DisputeResolution(str(value).strip().upper())
    except ValueError:
        raise InvalidError(
            f"Invalid resolution '{value}'. Must be one of: AGREE_A, AGREE_B, INVALID"
        ) from None


class VerificationService:
    def __init__(
        self,
        config: EngineConfig = DEFAULT_CONFIG,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.config = config
        self.clock = clock
        self.ratings = RatingService(config.rating)
        self.reputation = ReputationGate(config.reputation)
        self._match_repo = MatchRepository()
        self._team_repo = TeamRepository()
        self._member_repo = TeamMemberRepository()
        self._report_repo = MatchReportRepository()
        self._history_repo = RatingHistoryRepository()
        self._player_repo = PlayerRepository()

    # ---------- Guards ----------

    def validate_score(self, value: Any, label: str) -> int:
        v = self.config.verification
        if isinstance(value, bool) or not isinstance(value, int):
            raise InvalidError(f"{label} must be an integer")
        if not v.min_score <= value <= v.max_score:
            raise InvalidError(f"{label} must be between {v.min_score} and {v.max_score}")
        return value

    def _require_match(self, conn: sqlite3.Connection, match_id: str) -> Match:
        match = self._match_repo.get(conn, match_id)
        if match is None:
            raise NotFoundError(f"Match not found: {match_id}")
        return match

    def _require_team(self, conn: sqlite3.Connection, team_id: str | None) -> Team:
        team = self._team_repo.get(conn, team_id) if team_id else None
        if team is None:
            raise NotFoundError(f"Team not found: {team_id}")
        return team

    def can_resolve(self, conn: sqlite3.Connection, actor_id: str | None, match: Match) -> bool:
        """Match owner, or an active OWNER/ADMIN of either participating team."""
        if not actor_id:
            return False
        if actor_id == match.owner_id:
            return True
        for team_id in (match.team_a_id, match.team_b_id):
            if not team_id:
                continue
            team = self._team_repo.get(conn, team_id)
            if team is not None and team.owner_id == actor_id:
                return True
            member = self._member_repo.get(conn, team_id, actor_id)
            if member is not None and member.is_elevated:
                return True
        return False

    # ---------- Reports ----------

    def submit_report(
        self,
        conn: sqlite3.Connection,
        match_id: str,
        team_id: str,
        reporter_id: str,
        score_a: Any,
        score_b: Any,
        notes: str | None = None,
    ) -> ReportResult:
        """File one team's report; the second report decides VERIFIED or DISPUTED."""
        score_a = self.validate_score(score_a, "score_a")
        score_b = self.validate_score(score_b, "score_b")
        if notes is not None and len(notes) > MAX_NOTES_LENGTH:
            raise InvalidError(f"notes must be at most {MAX_NOTES_LENGTH} characters")

        with transaction(conn):
            match = self._require_match(conn, match_id)
            team = self._require_team(conn, team_id)
            member = self._member_repo.get(conn, team_id, reporter_id)
            if member is None or not member.is_active:
                raise ForbiddenError("You are not an active member of this team", code="not_team_member")
            if match.side_of_team(team_id) is None:
                raise ForbiddenError("This team did not play in this match", code="not_participant")
            standing = self.reputation.check_can_report(team)
            if self._report_repo.get_for_team(conn, match_id, team_id) is not None:
                raise AlreadyReportedError()
            if match.status in TERMINAL_STATUSES or match.status == VerificationStatus.DISPUTED:
                raise DisputeStateError(f"Match is already {match.status.value}")

            try:
                self._report_repo.create(
                    conn, match_id, team_id, reporter_id, member.role, score_a, score_b, notes
                )
            except sqlite3.IntegrityError:
                raise AlreadyReportedError() from None

            report_a = self._report_repo.get_for_team(conn, match_id, match.team_a_id)
            report_b = self._report_repo.get_for_team(conn, match_id, match.team_b_id)
            if report_a is None or report_b is None:
                self._match_repo.set_status(conn, match_id, VerificationStatus.PENDING)
                return ReportResult(
                    status=VerificationStatus.PENDING,
                    message="Report received. Waiting for the opposing team's report.",
                    warning=standing.warning,
                )

            if report_a.same_score_as(report_b):
                self._apply_verified_result(conn, match_id, report_a.score_a, report_a.score_b)
                return ReportResult(
                    status=VerificationStatus.VERIFIED,
                    message="Reports agree. Match verified and ratings updated.",
                    warning=standing.warning,
                )

            deadline = self.clock() + timedelta(hours=self.config.verification.dispute_timeout_hours)
            self._match_repo.set_status(conn, match_id, VerificationStatus.DISPUTED, dispute_deadline=deadline)
            logger.info(
                "Match %s disputed: A reported %d-%d, B reported %d-%d; deadline %s",
                match_id, report_a.score_a, report_a.score_b, report_b.score_a, report_b.score_b,
                deadline.isoformat(),
            )
            return ReportResult(
                status=VerificationStatus.DISPUTED,
                message=(
                    "Reports disagree. An admin must resolve the dispute within "
                    f"{self.config.verification.dispute_timeout_hours} hours."
                ),
                warning=standing.warning,
                dispute_deadline=deadline,
            )

    def get_match_reports(self, conn: sqlite3.Connection, match_id: str) -> dict[str, Any]:
        match = self._require_match(conn, match_id)
        reports = self._report_repo.list_by_match(conn, match_id)

        def _team_summary(team_id: str | None) -> dict[str, Any] | None:
            team = self._team_repo.get(conn, team_id) if team_id else None
            if team is None:
                return None
            return {"id": team.id, "name": team.name, "elo": team.elo}

        def _report_out(r: MatchReport) -> dict[str, Any]:
            reporter = self._player_repo.get(conn, r.reporter_id)
            out = r.to_dict()
            out["team_name"] = self._team_repo.get_name(conn, r.team_id)
            out["reporter_name"] = reporter.name if reporter else None
            return out

        return {
            "match_id": match.id,
            "verification_status": match.status.value,
            "dispute_deadline": match.dispute_deadline.isoformat() if match.dispute_deadline else None,
            "score_a": match.score_a,
            "score_b": match.score_b,
            "team_a": _team_summary(match.team_a_id),
            "team_b": _team_summary(match.team_b_id),
            "reports": [_report_out(r) for r in reports],
        }

    # ---------- Verification ----------

    def _apply_verified_result(
        self, conn: sqlite3.Connection, match_id: str, score_a: int, score_b: int
    ) -> tuple[RatingCalculation, RatingCalculation]:
        """
        Compute and persist both teams' new ratings from pre-match snapshots, then mark the
        match verified. Must run inside the caller's transaction.
        """
        with transaction(conn):
            match = self._require_match(conn, match_id)
            if match.status in TERMINAL_STATUSES:
                raise DisputeStateError(f"Match is already {match.status.value}")
            if not match.team_a_id or not match.team_b_id:
                raise ConflictError("Both teams must be assigned before a result can be verified")
            team_a = self._require_team(conn, match.team_a_id)
            team_b = self._require_team(conn, match.team_b_id)

            snap_a = self.ratings.snapshot(conn, team_a)
            snap_b = self.ratings.snapshot(conn, team_b)
            calc_a, calc_b = calculate_match_ratings(snap_a, snap_b, score_a, score_b, self.config.rating)

            now = self.clock()
            for team, calc, outcome in (
                (team_a, calc_a, outcome_for(score_a, score_b)),
                (team_b, calc_b, outcome_for(score_b, score_a)),
            ):
                win_streak, loss_streak = next_streaks(team.win_streak, team.loss_streak, outcome)
                self._team_repo.update_rating(conn, team.id, calc.new_elo, win_streak, loss_streak)
                self._history_repo.append(conn, match_id, calc, now)
            self._match_repo.mark_verified(conn, match_id, score_a, score_b, now)

        logger.info(
            "Match %s verified %d-%d: %s %+d (%d), %s %+d (%d)",
            match_id, score_a, score_b,
            team_a.name, calc_a.delta, calc_a.new_elo,
            team_b.name, calc_b.delta, calc_b.new_elo,
        )
        return calc_a, calc_b

    def _invalidate(self, conn: sqlite3.Connection, match: Match) -> dict[str, float]:
        with transaction(conn):
            self._match_repo.set_status(conn, match.id, VerificationStatus.INVALID)
            team_ids = [t for t in (match.team_a_id, match.team_b_id) if t]
            scores = self.reputation.penalize(conn, team_ids)
        logger.info("Match %s marked INVALID; reputation now %s", match.id, scores)
        return scores

    def resolve_dispute(
        self,
        conn: sqlite3.Connection,
        match_id: str,
        actor_id: str,
        resolution: DisputeResolution | str,
    ) -> dict[str, Any]:
        """Admin decision on a DISPUTED match: accept one side's report, or invalidate."""
        decision = parse_resolution(resolution)
        with transaction(conn):
            match = self._require_match(conn, match_id)
            if not self.can_resolve(conn, actor_id, match):
                raise ForbiddenError("Only the match owner or a team owner/admin can resolve disputes")
            if match.status != VerificationStatus.DISPUTED:
                raise DisputeStateError(f"No open dispute for this match (status {match.status.value})")

            if decision == DisputeResolution.INVALID:
                self._invalidate(conn, match)
                return {"match_id": match_id, "status": VerificationStatus.INVALID.value}

            accepted_team = match.team_a_id if decision == DisputeResolution.AGREE_A else match.team_b_id
            report = self._report_repo.get_for_team(conn, match_id, accepted_team) if accepted_team else None
            if report is None:
                raise NotFoundError("Accepted team's report not found")
            calc_a, calc_b = self._apply_verified_result(conn, match_id, report.score_a, report.score_b)

        logger.info("Dispute on match %s resolved %s by %s", match_id, decision.value, actor_id)
        return {
            "match_id": match_id,
            "status": VerificationStatus.VERIFIED.value,
            "score_a": report.score_a,
            "score_b": report.score_b,
            "team_a_delta": calc_a.delta,
            "team_b_delta": calc_b.delta,
        }

    def expire_disputes(self, conn: sqlite3.Connection, now: datetime | None = None) -> list[str]:
        """
        DISPUTED matches whose deadline has passed. Under INVALIDATE each is resolved as
        INVALID; under LEAVE_OPEN they are only returned.
        """
        now = now or self.clock()
        overdue = self._match_repo.list_disputed_before(conn, now)
        policy = self.config.verification.expired_dispute_policy
        if policy == DisputeExpiryPolicy.LEAVE_OPEN:
            if overdue:
                logger.info("%d disputes past deadline left open", len(overdue))
            return [m.id for m in overdue]
        expired: list[str] = []
        for stale in overdue:
            with transaction(conn):
                match = self._require_match(conn, stale.id)
                if match.status != VerificationStatus.DISPUTED:
                    continue
                self._invalidate(conn, match)
                expired.append(match.id)
        return expired
