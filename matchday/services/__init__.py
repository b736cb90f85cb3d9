"""
Service layer: slot allocation, rating, verification and reputation.
Services own transactions; repositories only read and write.
"""
from .errors import (
    MatchdayError,
    NotFoundError,
    ForbiddenError,
    ConflictError,
    InvalidError,
    SlotTakenError,
    NoPreferredSlotOpenError,
    AlreadyReportedError,
    DisputeStateError,
)
from .match_service import MatchService
from .performance_service import PerformanceService, PositionScoreItem
from .rating_service import RatingService
from .reputation import ReputationGate
from .slot_allocator import JoinResult, SlotAllocator
from .team_service import TeamService
from .verification_service import ReportResult, VerificationService

__all__ = [
    "MatchdayError",
    "NotFoundError",
    "ForbiddenError",
    "ConflictError",
    "InvalidError",
    "SlotTakenError",
    "NoPreferredSlotOpenError",
    "AlreadyReportedError",
    "DisputeStateError",
    "MatchService",
    "PerformanceService",
    "PositionScoreItem",
    "RatingService",
    "ReputationGate",
    "JoinResult",
    "SlotAllocator",
    "TeamService",
    "ReportResult",
    "VerificationService",
]
