#!/usr/bin/env python3
"""
Maintenance sweep: upgrade stored rosters, then apply the configured expiry policy to
disputes past their deadline. Nothing schedules this; run it from cron or by hand.

  MATCHDAY_CONFIG=engine.toml python3 scripts/sweep_disputes.py
"""
from __future__ import annotations

import logging
import sys
from pathlib import Path

# Ensure project root on path
PROJECT_ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from matchday.config import config_from_env
from matchday.logging_config import setup_logging
from matchday.persistence import get_connection, init_db
from matchday.persistence.db import get_db_path
from matchday.services import MatchService, VerificationService

logger = logging.getLogger("matchday.sweep")


def main() -> None:
    setup_logging()
    config = config_from_env()
    init_db(db_path=get_db_path())

    conn = get_connection()
    try:
        upgraded = MatchService().upgrade_all_rosters(conn)
        overdue = VerificationService(config).expire_disputes(conn)
        logger.info(
            "Sweep done: %d rosters upgraded, %d overdue disputes (policy %s)",
            upgraded, len(overdue), config.verification.expired_dispute_policy.value,
        )
        for match_id in overdue:
            print(match_id)
    finally:
        conn.close()


if __name__ == "__main__":
    main()
