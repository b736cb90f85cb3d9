#!/usr/bin/env python3
"""
Vertical slice: Create teams → Create match → Join → Report both sides → Verified ratings.
Run from project root: python3 scripts/vertical_slice.py
"""
from __future__ import annotations

import sys
from pathlib import Path

# Ensure project root on path
PROJECT_ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from matchday.logging_config import setup_logging
from matchday.persistence import PlayerRepository, get_connection, init_db
from matchday.persistence.db import set_db_path
from matchday.services import (
    MatchService,
    RatingService,
    SlotAllocator,
    TeamService,
    VerificationService,
)


def main() -> None:
    setup_logging()
    # Use data/vertical_slice.db for demo (distinct from matchday.db)
    db_path = PROJECT_ROOT / "data" / "vertical_slice.db"
    db_path.unlink(missing_ok=True)
    set_db_path(db_path)
    init_db(db_path=db_path)

    conn = get_connection()
    try:
        players = PlayerRepository()
        teams = TeamService()
        matches = MatchService()
        allocator = SlotAllocator()
        verifier = VerificationService()
        ratings = RatingService()

        # 1. Two teams with their owners
        alice = players.create(conn, "alice", positions=["GK"])
        bob = players.create(conn, "bob", positions=["ST", "LW"])
        falcons = teams.create_team(conn, alice.id, "Falcons")
        wolves = teams.create_team(conn, bob.id, "Wolves")
        print(f"Created team A: {falcons.name} (id={falcons.id}, elo={falcons.elo})")
        print(f"Created team B: {wolves.name} (id={wolves.id}, elo={wolves.elo})")

        # 2. Match and roster
        match = matches.create_match(
            conn, alice.id, fmt="5v5", team_a_id=falcons.id, team_b_id=wolves.id, title="Falcons v Wolves"
        )
        joined_a = allocator.join(conn, match.id, alice.id, desired_team="A")
        joined_b = allocator.join(conn, match.id, bob.id, desired_team="B")
        print(f"alice -> {joined_a.team.value}/{joined_a.position}, bob -> {joined_b.team.value}/{joined_b.position}")

        # 3. Both teams report 3-1
        first = verifier.submit_report(conn, match.id, falcons.id, alice.id, 3, 1)
        second = verifier.submit_report(conn, match.id, wolves.id, bob.id, 3, 1)
        print(f"Reports: {first.status.value} -> {second.status.value}")

        # 4. Ratings after verification
        for team in (falcons, wolves):
            stats = ratings.get_team_rating_stats(conn, team.id)
            last = stats["recent_history"][0]
            print(f"  {stats['name']}: elo {stats['elo']} ({last['result']} {last['elo_delta']:+d})")

        print("\nVertical slice complete.")
    finally:
        conn.close()


if __name__ == "__main__":
    main()
