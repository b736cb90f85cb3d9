"""
Tests for match creation, team assignment, team membership and the roster upgrade sweep.
"""
from __future__ import annotations

import json
from pathlib import Path

import pytest

import sys
sys.path.insert(0, str(Path(__file__).resolve().parent.parent.parent))

from matchday.models import MemberRole, MemberStatus, Side, VerificationStatus
from matchday.persistence.db import init_db
from matchday.persistence.repositories import MatchRepository, TeamMemberRepository
from matchday.roster import build_initial_slots, is_canonical
from matchday.services.errors import ConflictError, ForbiddenError, InvalidError, NotFoundError
from matchday.services.match_service import MatchService
from matchday.services.team_service import TeamService
from matchday.services.verification_service import VerificationService


@pytest.fixture
def matches():
    return MatchService()


def test_create_match_defaults(db_conn, matches, make_player):
    owner = make_player("organiser")
    match = matches.create_match(db_conn, owner.id)
    assert match.format == "7v7"
    assert len(match.slots) == 18
    assert match.status == VerificationStatus.UNREPORTED
    stored = matches.get_match(db_conn, match.id)
    assert stored.slots == match.slots
    assert stored.roster_revision == 0


def test_create_match_with_positions_and_reserves(db_conn, matches, make_player):
    owner = make_player("organiser")
    match = matches.create_match(db_conn, owner.id, positions=["gk", "st"], reserves_per_team=1)
    assert [(s.team, s.position) for s in match.slots] == [
        (Side.A, "GK"), (Side.A, "ST"), (Side.B, "GK"), (Side.B, "ST"), (Side.A, "SUB"), (Side.B, "SUB"),
    ]


def test_create_match_validation(db_conn, matches, make_team, make_player):
    owner = make_player("organiser")
    team = make_team("Lions")
    with pytest.raises(InvalidError):
        matches.create_match(db_conn, owner.id, reserves_per_team=6)
    with pytest.raises(InvalidError):
        matches.create_match(db_conn, owner.id, positions=[" ", ""])
    with pytest.raises(InvalidError):
        matches.create_match(db_conn, owner.id, team_a_id=team.id, team_b_id=team.id)
    with pytest.raises(NotFoundError):
        matches.create_match(db_conn, owner.id, team_a_id="missing")
    with pytest.raises(NotFoundError):
        matches.get_match(db_conn, "missing")


def test_assign_teams(db_conn, matches, make_team, make_player):
    owner = make_player("organiser")
    lions, tigers = make_team("Lions"), make_team("Tigers")
    match = matches.create_match(db_conn, owner.id)
    with pytest.raises(ForbiddenError):
        matches.assign_teams(db_conn, match.id, lions.owner_id, lions.id, tigers.id)
    updated = matches.assign_teams(db_conn, match.id, owner.id, lions.id, tigers.id)
    assert (updated.team_a_id, updated.team_b_id) == (lions.id, tigers.id)
    MatchRepository().set_status(db_conn, match.id, VerificationStatus.PENDING)
    with pytest.raises(ConflictError):
        matches.assign_teams(db_conn, match.id, owner.id, tigers.id, lions.id)


def test_upgrade_all_rosters(db_conn, db_path, matches, make_player):
    owner = make_player("organiser")
    match = matches.create_match(db_conn, owner.id, fmt="5v5")
    legacy = [{"pos": "GK", "userId": "old-keeper"}] + ["CB", "CM", "LW", "ST"] * 2
    db_conn.execute("UPDATE matches SET roster = ? WHERE id = ?", (json.dumps(legacy), match.id))

    assert matches.upgrade_all_rosters(db_conn) == 1
    assert matches.upgrade_all_rosters(db_conn) == 0
    raw = db_conn.execute("SELECT roster FROM matches WHERE id = ?", (match.id,)).fetchone()["roster"]
    assert is_canonical(raw)
    stored = matches.get_match(db_conn, match.id)
    assert stored.slots[0].occupant_id == "old-keeper"
    assert stored.roster_revision == 1

    db_conn.execute("UPDATE matches SET roster = ? WHERE id = ?", (json.dumps(legacy), match.id))
    init_db(db_path=db_path)
    assert is_canonical(db_conn.execute("SELECT roster FROM matches").fetchone()["roster"])


def test_unreadable_roster_is_rebuilt_on_startup(db_conn, db_path, matches, make_player):
    owner = make_player("organiser")
    broken = matches.create_match(db_conn, owner.id, fmt="5v5")
    intact = matches.create_match(db_conn, owner.id, fmt="6v6")
    db_conn.execute("UPDATE matches SET roster = ? WHERE id = ?", ("GK,CB,ST", broken.id))

    assert matches.get_match(db_conn, broken.id).slots == build_initial_slots("5v5")
    init_db(db_path=db_path)
    raw = db_conn.execute("SELECT roster FROM matches WHERE id = ?", (broken.id,)).fetchone()["roster"]
    assert is_canonical(raw)
    rebuilt = matches.get_match(db_conn, broken.id)
    assert rebuilt.slots == build_initial_slots("5v5")
    assert rebuilt.roster_revision == 1
    assert matches.get_match(db_conn, intact.id).roster_revision == 0


def test_create_team_makes_creator_owner(db_conn, make_player):
    owner = make_player("captain")
    team = TeamService().create_team(db_conn, owner.id, "  Eagles ")
    assert team.name == "Eagles"
    assert (team.elo, team.match_count, team.reputation_score) == (500, 0, 5.0)
    member = TeamMemberRepository().get(db_conn, team.id, owner.id)
    assert member.role == MemberRole.OWNER
    assert member.status == MemberStatus.ACTIVE
    with pytest.raises(InvalidError):
        TeamService().create_team(db_conn, owner.id, "   ")


def test_add_member_permissions(db_conn, make_team, make_player):
    service = TeamService()
    team = make_team("Eagles")
    admin, member, newcomer = make_player("admin"), make_player("member"), make_player("newcomer")
    service.add_member(db_conn, team.id, team.owner_id, admin.id, "admin")
    service.add_member(db_conn, team.id, team.owner_id, member.id)

    with pytest.raises(ForbiddenError):
        service.add_member(db_conn, team.id, member.id, newcomer.id)
    with pytest.raises(ForbiddenError):
        service.add_member(db_conn, team.id, admin.id, newcomer.id, MemberRole.ADMIN)
    added = service.add_member(db_conn, team.id, admin.id, newcomer.id)
    assert added.role == MemberRole.MEMBER
    with pytest.raises(InvalidError):
        service.add_member(db_conn, team.id, team.owner_id, newcomer.id, "captain")
    with pytest.raises(NotFoundError):
        service.add_member(db_conn, team.id, team.owner_id, "missing")


def test_deactivated_member_cannot_report(db_conn, fixture, make_player):
    service = TeamService()
    player = make_player("leaver")
    service.add_member(db_conn, fixture.team_a.id, fixture.team_a.owner_id, player.id)
    service.deactivate_member(db_conn, fixture.team_a.id, player.id, player.id)
    assert player.id not in TeamMemberRepository().list_active_player_ids(db_conn, fixture.team_a.id)
    with pytest.raises(ForbiddenError):
        VerificationService().submit_report(db_conn, fixture.match.id, fixture.team_a.id, player.id, 1, 0)
