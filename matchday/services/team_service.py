"""
Team creation and membership. New teams start at the initial elo and full reputation.
"""
from __future__ import annotations

import sqlite3

from matchday.config import DEFAULT_CONFIG, EngineConfig
from matchday.models import MemberRole, MemberStatus, Team, TeamMember
from matchday.persistence.db import transaction
from matchday.persistence.repositories import PlayerRepository, TeamMemberRepository, TeamRepository
from matchday.services.errors import ForbiddenError, InvalidError, NotFoundError


def parse_member_role(value: MemberRole | str | None) -> MemberRole:
    if value is None:
        return MemberRole.MEMBER
    if isinstance(value, MemberRole):
        return value
    try:
        return MemberRole(str(value).strip().upper())
    except ValueError:
        raise InvalidError(f"Invalid role '{value}'. Must be one of: OWNER, ADMIN, MEMBER") from None


class TeamService:
    def __init__(self, config: EngineConfig = DEFAULT_CONFIG) -> None:
        self.config = config
        self._team_repo = TeamRepository()
        self._member_repo = TeamMemberRepository()
        self._player_repo = PlayerRepository()

    def create_team(self, conn: sqlite3.Connection, owner_id: str, name: str) -> Team:
        name = (name or "").strip()
        if not name:
            raise InvalidError("Team name is required")
        with transaction(conn):
            team = self._team_repo.create(
                conn, name, owner_id, self.config.rating.initial_elo, self.config.reputation.initial
            )
            self._member_repo.add(conn, team.id, owner_id, MemberRole.OWNER)
        return team

    def get_team(self, conn: sqlite3.Connection, team_id: str) -> Team:
        team = self._team_repo.get(conn, team_id)
        if team is None:
            raise NotFoundError(f"Team not found: {team_id}")
        return team

    def add_member(
        self,
        conn: sqlite3.Connection,
        team_id: str,
        actor_id: str,
        player_id: str,
        role: MemberRole | str | None = None,
    ) -> TeamMember:
        """Owner/admin adds (or re-activates) a player. Only the owner may grant OWNER or ADMIN."""
        member_role = parse_member_role(role)
        with transaction(conn):
            team = self.get_team(conn, team_id)
            actor = self._member_repo.get(conn, team_id, actor_id)
            if team.owner_id != actor_id and (actor is None or not actor.is_elevated):
                raise ForbiddenError("Only team owners and admins can add members")
            if member_role != MemberRole.MEMBER and team.owner_id != actor_id:
                raise ForbiddenError("Only the team owner can grant elevated roles")
            if self._player_repo.get(conn, player_id) is None:
                raise NotFoundError(f"Player not found: {player_id}")
            return self._member_repo.add(conn, team_id, player_id, member_role, MemberStatus.ACTIVE)

    def deactivate_member(self, conn: sqlite3.Connection, team_id: str, actor_id: str, player_id: str) -> None:
        with transaction(conn):
            team = self.get_team(conn, team_id)
            actor = self._member_repo.get(conn, team_id, actor_id)
            if actor_id != player_id and team.owner_id != actor_id and (actor is None or not actor.is_elevated):
                raise ForbiddenError("Only team owners and admins can remove members")
            if self._member_repo.get(conn, team_id, player_id) is None:
                raise NotFoundError("Player is not a member of this team")
            self._member_repo.set_status(conn, team_id, player_id, MemberStatus.INACTIVE)
