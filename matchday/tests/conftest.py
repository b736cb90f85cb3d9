"""
Shared fixtures: a temporary database per test and small factories for players, teams
and a match between two teams.
"""
from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

import pytest

# Ensure project root on path
import sys
sys.path.insert(0, str(Path(__file__).resolve().parent.parent.parent))

from matchday.models import Match, MemberRole, Player, Team
from matchday.persistence.db import get_connection, init_db, set_db_path
from matchday.persistence.repositories import PlayerRepository
from matchday.services.match_service import MatchService
from matchday.services.team_service import TeamService


@pytest.fixture
def db_path(tmp_path):
    """Use a temporary DB for each test."""
    path = tmp_path / "matchday_test.db"
    set_db_path(path)
    init_db(db_path=path)
    return path


@pytest.fixture
def db_conn(db_path):
    conn = get_connection()
    try:
        yield conn
    finally:
        conn.close()


@pytest.fixture
def make_player(db_conn):
    repo = PlayerRepository()

    def _make(username: str, positions: list[str] | None = None) -> Player:
        return repo.create(db_conn, username, positions=positions)

    return _make


@pytest.fixture
def make_team(db_conn, make_player):
    """Team owned by a new player, plus `members` extra active MEMBERs."""
    service = TeamService()

    def _make(name: str, members: int = 0) -> Team:
        owner = make_player(f"{name.lower()}-owner")
        team = service.create_team(db_conn, owner.id, name)
        for i in range(members):
            player = make_player(f"{name.lower()}-p{i}")
            service.add_member(db_conn, team.id, owner.id, player.id, MemberRole.MEMBER)
        return team

    return _make


@dataclass
class Fixture:
    team_a: Team
    team_b: Team
    match: Match


@pytest.fixture
def fixture(db_conn, make_team) -> Fixture:
    """Two fresh teams and an unreported match between them, owned by team A's owner."""
    team_a = make_team("Falcons")
    team_b = make_team("Wolves")
    match = MatchService().create_match(
        db_conn, team_a.owner_id, fmt="5v5", team_a_id=team_a.id, team_b_id=team_b.id, title="Falcons v Wolves"
    )
    return Fixture(team_a=team_a, team_b=team_b, match=match)
