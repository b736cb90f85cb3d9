"""
Persistence layer for matchday data.
No business logic; only connections, transactions and read/write interfaces.
"""
from .db import get_connection, init_db, transaction
from .repositories import (
    PlayerRepository,
    TeamRepository,
    TeamMemberRepository,
    MatchRepository,
    MatchReportRepository,
    RatingHistoryRepository,
    PositionScoreRepository,
)

__all__ = [
    "get_connection",
    "init_db",
    "transaction",
    "PlayerRepository",
    "TeamRepository",
    "TeamMemberRepository",
    "MatchRepository",
    "MatchReportRepository",
    "RatingHistoryRepository",
    "PositionScoreRepository",
]
