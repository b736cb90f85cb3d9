"""
Error taxonomy shared by all services. The API maps each kind to an HTTP status.
"""
from __future__ import annotations


class MatchdayError(Exception):
    """Base for every classified engine error. code is a short machine-readable tag."""

    code = "error"

    def __init__(self, message: str, code: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code


class NotFoundError(MatchdayError):
    """Match, team, player or report absent."""
    code = "not_found"


class ForbiddenError(MatchdayError):
    """Caller lacks the role, participation or reputation standing required."""
    code = "forbidden"


class ConflictError(MatchdayError):
    """Operation collides with current state (taken slot, duplicate report, terminal match)."""
    code = "conflict"


class InvalidError(MatchdayError):
    """Malformed score, position, team or action value."""
    code = "invalid"


class SlotTakenError(ConflictError):
    code = "slot_taken"

    def __init__(self, message: str = "Slot already taken") -> None:
        super().__init__(message)


class NoPreferredSlotOpenError(ConflictError):
    code = "no_preferred_slot_open"

    def __init__(self, message: str = "None of the preferred positions has a free slot") -> None:
        super().__init__(message)


class AlreadyReportedError(ConflictError):
    code = "already_reported"

    def __init__(self, message: str = "This team has already reported this match") -> None:
        super().__init__(message)


class DisputeStateError(ConflictError):
    """Match is not in a state that allows the requested verification step."""
    code = "invalid_state"
