"""
SQLite schema for matchday entities.
Migration-friendly: each table created with IF NOT EXISTS.
"""
from __future__ import annotations


def players_schema() -> str:
    """positions: JSON list of up to 3 preferred position codes, best first."""
    return """
    CREATE TABLE IF NOT EXISTS players (
        id TEXT PRIMARY KEY,
        username TEXT NOT NULL,
        password_hash TEXT NOT NULL DEFAULT '',
        name TEXT NOT NULL,
        positions TEXT NOT NULL DEFAULT '[]',
        created_at TEXT NOT NULL
    );
    CREATE UNIQUE INDEX IF NOT EXISTS ix_players_username ON players(username);
    """


def teams_schema() -> str:
    """elo/match_count/streaks change only on verification; reputation_score only on dispute resolution."""
    return """
    CREATE TABLE IF NOT EXISTS teams (
        id TEXT PRIMARY KEY,
        name TEXT NOT NULL,
        owner_id TEXT NOT NULL,
        elo INTEGER NOT NULL,
        match_count INTEGER NOT NULL DEFAULT 0,
        win_streak INTEGER NOT NULL DEFAULT 0,
        loss_streak INTEGER NOT NULL DEFAULT 0,
        reputation_score REAL NOT NULL,
        created_at TEXT NOT NULL,
        FOREIGN KEY (owner_id) REFERENCES players(id)
    );
    CREATE INDEX IF NOT EXISTS ix_teams_elo ON teams(elo);
    """


def team_members_schema() -> str:
    """role: OWNER | ADMIN | MEMBER. status: ACTIVE | INACTIVE."""
    return """
    CREATE TABLE IF NOT EXISTS team_members (
        team_id TEXT NOT NULL,
        player_id TEXT NOT NULL,
        role TEXT NOT NULL DEFAULT 'MEMBER',
        status TEXT NOT NULL DEFAULT 'ACTIVE',
        joined_at TEXT NOT NULL,
        PRIMARY KEY (team_id, player_id),
        FOREIGN KEY (team_id) REFERENCES teams(id),
        FOREIGN KEY (player_id) REFERENCES players(id)
    );
    CREATE INDEX IF NOT EXISTS ix_team_members_player ON team_members(player_id);
    """


def matches_schema() -> str:
    """
    roster: versioned slot JSON, rewritten only inside a transaction.
    team_a_id / team_b_id NULL until assigned (pickup games).
    """
    return """
    CREATE TABLE IF NOT EXISTS matches (
        id TEXT PRIMARY KEY,
        title TEXT,
        owner_id TEXT NOT NULL,
        format TEXT NOT NULL DEFAULT '7v7',
        team_a_id TEXT,
        team_b_id TEXT,
        scheduled_at TEXT,
        roster TEXT NOT NULL,
        roster_revision INTEGER NOT NULL DEFAULT 0,
        verification_status TEXT NOT NULL DEFAULT 'UNREPORTED',
        dispute_deadline TEXT,
        score_a INTEGER,
        score_b INTEGER,
        verified_at TEXT,
        created_at TEXT NOT NULL,
        FOREIGN KEY (owner_id) REFERENCES players(id),
        FOREIGN KEY (team_a_id) REFERENCES teams(id),
        FOREIGN KEY (team_b_id) REFERENCES teams(id)
    );
    CREATE INDEX IF NOT EXISTS ix_matches_team_a ON matches(team_a_id);
    CREATE INDEX IF NOT EXISTS ix_matches_team_b ON matches(team_b_id);
    CREATE INDEX IF NOT EXISTS ix_matches_status ON matches(verification_status);
    """


def match_reports_schema() -> str:
    """One report per (match, team); the unique index backs duplicate rejection."""
    return """
    CREATE TABLE IF NOT EXISTS match_reports (
        id TEXT PRIMARY KEY,
        match_id TEXT NOT NULL,
        team_id TEXT NOT NULL,
        reporter_id TEXT NOT NULL,
        reporter_role TEXT NOT NULL,
        score_a INTEGER NOT NULL,
        score_b INTEGER NOT NULL,
        notes TEXT,
        created_at TEXT NOT NULL,
        FOREIGN KEY (match_id) REFERENCES matches(id),
        FOREIGN KEY (team_id) REFERENCES teams(id)
    );
    CREATE UNIQUE INDEX IF NOT EXISTS ix_match_reports_match_team ON match_reports(match_id, team_id);
    """


def rating_history_schema() -> str:
    """Append-only; one row per team per verified match."""
    return """
    CREATE TABLE IF NOT EXISTS rating_history (
        id TEXT PRIMARY KEY,
        team_id TEXT NOT NULL,
        match_id TEXT NOT NULL,
        opponent_team_id TEXT NOT NULL,
        elo_before INTEGER NOT NULL,
        delta INTEGER NOT NULL,
        new_elo INTEGER NOT NULL,
        opponent_elo INTEGER NOT NULL,
        team_rating REAL NOT NULL,
        opponent_rating REAL NOT NULL,
        rif REAL NOT NULL,
        adjusted_elo REAL NOT NULL,
        expected_win_prob REAL NOT NULL,
        actual_outcome REAL NOT NULL,
        tcf REAL NOT NULL,
        streak_factor REAL NOT NULL,
        k_factor REAL NOT NULL,
        created_at TEXT NOT NULL,
        FOREIGN KEY (team_id) REFERENCES teams(id),
        FOREIGN KEY (match_id) REFERENCES matches(id)
    );
    CREATE UNIQUE INDEX IF NOT EXISTS ix_rating_history_team_match ON rating_history(team_id, match_id);
    CREATE INDEX IF NOT EXISTS ix_rating_history_team_created ON rating_history(team_id, created_at);
    """


def position_scores_schema() -> str:
    """Peer scores (1-10) for the position a player held in a match. Feeds team rating."""
    return """
    CREATE TABLE IF NOT EXISTS position_scores (
        id TEXT PRIMARY KEY,
        match_id TEXT NOT NULL,
        rater_id TEXT NOT NULL,
        ratee_id TEXT NOT NULL,
        position TEXT NOT NULL,
        score REAL NOT NULL,
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL,
        FOREIGN KEY (match_id) REFERENCES matches(id)
    );
    CREATE UNIQUE INDEX IF NOT EXISTS ix_position_scores_unique
        ON position_scores(match_id, rater_id, ratee_id, position);
    CREATE INDEX IF NOT EXISTS ix_position_scores_ratee ON position_scores(ratee_id, created_at);
    """


def all_schema_sql() -> str:
    return "\n".join([
        players_schema(),
        teams_schema(),
        team_members_schema(),
        matches_schema(),
        match_reports_schema(),
        rating_history_schema(),
        position_scores_schema(),
    ])
