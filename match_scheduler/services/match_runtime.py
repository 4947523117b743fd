"""
Match runtime: pending → in_progress → completed (terminal).

Completing a match records alliance scores and the winning side; equal scores
leave no winner. Completion does not advance brackets or refresh standings;
callers invoke advance_bracket / refresh_standings afterwards.
"""
import logging
from datetime import datetime, timezone
from typing import Optional

from sqlmodel import Session, select

from match_scheduler.exceptions import MatchNotFoundError, MatchStateError
from match_scheduler.models.alliance import SIDE_BLUE, SIDE_RED, Alliance
from match_scheduler.models.match import MATCH_COMPLETED, MATCH_IN_PROGRESS, MATCH_PENDING, Match

logger = logging.getLogger(__name__)

MATCH_STATUSES = (MATCH_PENDING, MATCH_IN_PROGRESS, MATCH_COMPLETED)


def validate_status_transition(current: str, new: str, match_id: Optional[int] = None) -> None:
    if new not in MATCH_STATUSES:
        raise MatchStateError(f"Invalid match status: {new}", match_id=match_id)
    if current == MATCH_COMPLETED:
        raise MatchStateError("completed is terminal; cannot change status", match_id=match_id)
    if new == MATCH_PENDING:
        raise MatchStateError(f"Cannot revert match from {current} to pending", match_id=match_id)
    if current == new:
        raise MatchStateError(f"Match is already {current}", match_id=match_id)


def _get_match(session: Session, match_id: int) -> Match:
    match = session.get(Match, match_id)
    if not match:
        raise MatchNotFoundError(match_id)
    return match


def start_match(session: Session, match_id: int) -> Match:
    match = _get_match(session, match_id)
    validate_status_transition(match.status, MATCH_IN_PROGRESS, match_id)
    match.status = MATCH_IN_PROGRESS
    match.started_at = datetime.now(timezone.utc)
    session.add(match)
    session.commit()
    session.refresh(match)
    return match


def complete_match(session: Session, match_id: int, red_score: int, blue_score: int) -> Match:
    """Record final scores. A pending match may be completed directly."""
    match = _get_match(session, match_id)
    validate_status_transition(match.status, MATCH_COMPLETED, match_id)
    for score in (red_score, blue_score):
        if isinstance(score, bool) or not isinstance(score, int) or score < 0:
            raise MatchStateError(f"Scores must be non-negative integers, got {score!r}", match_id=match_id)

    alliances = {a.side: a for a in session.exec(select(Alliance).where(Alliance.match_id == match_id)).all()}
    for side, score in ((SIDE_RED, red_score), (SIDE_BLUE, blue_score)):
        alliance = alliances.get(side)
        if alliance is None:
            alliance = Alliance(match_id=match_id, side=side)
        alliance.score = score
        session.add(alliance)

    if red_score > blue_score:
        match.winning_side = SIDE_RED
    elif blue_score > red_score:
        match.winning_side = SIDE_BLUE
    else:
        match.winning_side = None
    match.status = MATCH_COMPLETED
    now = datetime.now(timezone.utc)
    if match.started_at is None:
        match.started_at = now
    match.completed_at = now
    session.add(match)
    session.commit()
    session.refresh(match)

    logger.info("Match %d completed %d-%d (winner: %s)", match.match_number, red_score, blue_score, match.winning_side)
    return match
