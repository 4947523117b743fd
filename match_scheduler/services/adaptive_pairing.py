"""
Adaptive (Swiss) pairing: one new round at a time from current standings.

Teams are ordered by the ranking model and taken 2A at a time, so each match
groups teams of similar standing. Within a chunk the red/blue split minimizing
previous meetings is chosen. Leftover teams (fewer than 2A) sit the round out.
"""
import logging
import random
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional

from sqlmodel import Session, select

from match_scheduler.database import FIELD_STAGGER_MINUTES, MATCH_INTERVAL_MINUTES
from match_scheduler.exceptions import InsufficientTeamsError, ScheduleConfigurationError
from match_scheduler.models.alliance import SIDE_BLUE, SIDE_RED
from match_scheduler.models.match import MATCH_PENDING, Match
from match_scheduler.models.team import Team
from match_scheduler.models.team_stats import TeamStats
from match_scheduler.services import notifications
from match_scheduler.services.matchup_history import best_alliance_split, build_matchup_history
from match_scheduler.services.optimized_schedule import (
    add_alliance,
    next_bracket_slot,
    next_match_number,
    tournament_fields,
    validate_teams_per_alliance,
)
from match_scheduler.services.ranking import stats_sort_key
from match_scheduler.services.standings_service import ensure_stage_stats, get_stage_or_raise
from match_scheduler.utils.field_balancer import FieldBalancer
from match_scheduler.utils.stage_locks import stage_lock

logger = logging.getLogger(__name__)


def record_bucket(stats: TeamStats) -> str:
    return f"{stats.wins}-{stats.losses}"


def generate_next_adaptive_round(
    session: Session,
    stage_id: int,
    current_round_number: int,
    teams_per_alliance: Optional[int] = None,
    *,
    rng: Optional[random.Random] = None,
    start_time: Optional[datetime] = None,
) -> List[Match]:
    """Pair and persist round current_round_number + 1 for a swiss stage."""
    stage = get_stage_or_raise(session, stage_id)
    alliance_size = teams_per_alliance if teams_per_alliance is not None else stage.teams_per_alliance
    validate_teams_per_alliance(alliance_size)
    if current_round_number < 0:
        raise ScheduleConfigurationError(f"current_round_number must be >= 0, got {current_round_number}")

    fields = tournament_fields(session, stage.tournament_id)
    size = 2 * alliance_size
    round_number = current_round_number + 1

    with stage_lock(stage_id):
        try:
            ensure_stage_stats(session, stage)
            stats_rows = list(session.exec(select(TeamStats).where(TeamStats.stage_id == stage_id)).all())
            if len(stats_rows) < size:
                raise InsufficientTeamsError(
                    f"Not enough teams ({len(stats_rows)}) to pair a round. Minimum required: {size}",
                    required=size,
                    available=len(stats_rows),
                )

            numbers: Dict[int, int] = {
                t.id: t.team_number
                for t in session.exec(select(Team).where(Team.tournament_id == stage.tournament_id)).all()
            }
            ordered = sorted(stats_rows, key=lambda s: stats_sort_key(s, numbers.get(s.team_id, 0)))
            history = build_matchup_history(session, stage_id)

            balancer = FieldBalancer(fields, rng)
            base_time = start_time or datetime.now(timezone.utc)
            match_number = next_match_number(session, stage_id)
            slot = next_bracket_slot(session, stage_id)
            created: List[Match] = []

            consumed = set()
            pending: List[TeamStats] = []
            for stats in ordered:
                if stats.team_id in consumed:
                    continue
                pending.append(stats)
                if len(pending) < size:
                    continue

                chunk, pending = pending, []
                consumed.update(s.team_id for s in chunk)
                red, blue, repeats = best_alliance_split([s.team_id for s in chunk], alliance_size, history)

                bucket = record_bucket(chunk[0])
                mixed = sorted({record_bucket(s) for s in chunk} - {bucket})
                if mixed:
                    logger.warning(
                        "Stage %d round %d match %d labelled %s but also holds records %s",
                        stage_id,
                        round_number,
                        match_number,
                        bucket,
                        ", ".join(mixed),
                    )

                playing_field = balancer.assign()
                match = Match(
                    stage_id=stage_id,
                    match_number=match_number,
                    round_number=round_number,
                    bracket_slot=slot,
                    record_bucket=bucket,
                    field_id=playing_field.id,
                    scheduled_time=base_time
                    + timedelta(minutes=(round_number - 1) * MATCH_INTERVAL_MINUTES)
                    + timedelta(minutes=(playing_field.number - 1) * FIELD_STAGGER_MINUTES),
                    status=MATCH_PENDING,
                )
                session.add(match)
                session.flush()
                add_alliance(session, match, SIDE_RED, red)
                add_alliance(session, match, SIDE_BLUE, blue)
                logger.debug(
                    "Round %d match %d: red=%s blue=%s repeats=%d", round_number, match_number, red, blue, repeats
                )
                created.append(match)
                match_number += 1
                slot += 1

            session.commit()
        except Exception:
            session.rollback()
            raise

    for match in created:
        session.refresh(match)

    sitting_out = len(ordered) - len(created) * size
    logger.info(
        "Generated round %d for stage %d: %d matches, %d teams sitting out",
        round_number,
        stage_id,
        len(created),
        sitting_out,
    )
    notifications.publish(
        notifications.ROUND_GENERATED,
        stage_id,
        [m.id for m in created],
        round_number=round_number,
    )
    return created
