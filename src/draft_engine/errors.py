"""Exception taxonomy for the draft engine."""

from typing import Optional

from .models.enums import RejectionReason


class DraftEngineError(Exception):
    """Base class for all draft engine errors."""


class SessionNotFoundError(DraftEngineError):
    def __init__(self, session_id: int):
        super().__init__(f"Draft session {session_id} not found")
        self.session_id = session_id


class TeamNotFoundError(DraftEngineError):
    def __init__(self, team_id: int):
        super().__init__(f"Team {team_id} not found")
        self.team_id = team_id


class DraftCompleteError(DraftEngineError):
    """Raised when a turn is requested for a draft whose rosters are all full."""

    def __init__(self, session_id: int):
        super().__init__(f"Draft for session {session_id} is complete")
        self.session_id = session_id


class NotYourTurnError(DraftEngineError):
    def __init__(self, team_id: int, acting_team_id: int):
        super().__init__(f"Team {team_id} is not on the clock (team {acting_team_id} is)")
        self.team_id = team_id
        self.acting_team_id = acting_team_id


class PickRejectedError(DraftEngineError):
    """A pick failed eligibility, either advisory or at write time."""

    def __init__(self, reason: RejectionReason, message: Optional[str] = None):
        super().__init__(message or f"Pick rejected: {reason.value}")
        self.reason = reason


class NoEligibleAssetError(DraftEngineError):
    """The eligible pool has nothing that fits the team's open slots."""

    def __init__(self, team_id: int):
        super().__init__(f"No eligible asset available for team {team_id}")
        self.team_id = team_id


class PersistenceError(DraftEngineError):
    """Transient storage failure; safe to retry."""
