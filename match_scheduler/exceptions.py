"""Exceptions raised by the scheduling, pairing and bracket services."""

from typing import Optional


# ========== Base Exception ==========


class SchedulingError(Exception):
    """Base exception for all match-scheduler errors.

    Every error raised by the services layer inherits from this class, so callers
    can catch all scheduler failures with a single except clause.
    """

    pass


# ========== Configuration Errors ==========


class ScheduleConfigurationError(SchedulingError, ValueError):
    """Raised when a generation request is invalid as configured.

    Covers unsupported alliance sizes, missing playing fields and bad round counts.
    Never retried automatically.
    """

    pass


class InsufficientTeamsError(ScheduleConfigurationError):
    """Raised when fewer teams are available than a match or bracket needs."""

    def __init__(self, message: str, required: int, available: int):
        super().__init__(message)
        self.required = required
        self.available = available


# ========== State Errors ==========


class StateError(SchedulingError):
    """Base for operations attempted against a match or stage in the wrong state."""

    def __init__(self, message: str, match_id: Optional[int] = None, stage_id: Optional[int] = None):
        super().__init__(message)
        self.match_id = match_id
        self.stage_id = stage_id


class BracketStateError(StateError):
    """Raised when a bracket cannot be advanced or finalized in its current state."""

    pass


class MatchStateError(StateError):
    """Raised on an invalid match status transition."""

    pass


class StageStateError(StateError):
    """Raised when a stage cannot accept new matches."""

    pass


# ========== Data Errors ==========


class NotFoundError(SchedulingError, LookupError):
    """Base for records that do not exist."""

    pass


class StageNotFoundError(NotFoundError):
    def __init__(self, stage_id: int):
        super().__init__(f"Stage {stage_id} not found")
        self.stage_id = stage_id


class MatchNotFoundError(NotFoundError):
    def __init__(self, match_id: int):
        super().__init__(f"Match {match_id} not found")
        self.match_id = match_id
