"""
Optimized schedule generation for qualification stages.

Runs the annealing optimizer fully in memory, then writes every Match, Alliance
and TeamAlliance row in one pass and one commit. A failure before the commit
leaves nothing behind.
"""
import logging
import random
from datetime import datetime, timedelta, timezone
from typing import Callable, List, Optional

from sqlalchemy import func
from sqlmodel import Session, select

from match_scheduler.database import FIELD_STAGGER_MINUTES, MATCH_INTERVAL_MINUTES
from match_scheduler.exceptions import InsufficientTeamsError, ScheduleConfigurationError
from match_scheduler.models.alliance import SIDE_BLUE, SIDE_RED, Alliance, TeamAlliance
from match_scheduler.models.match import MATCH_PENDING, Match
from match_scheduler.models.playing_field import PlayingField
from match_scheduler.models.team import Team
from match_scheduler.services import notifications
from match_scheduler.services.annealing_optimizer import OptimizationResult, optimize_schedule
from match_scheduler.services.schedule_config import ScheduleConfig, merge_config
from match_scheduler.services.standings_service import get_stage_or_raise
from match_scheduler.utils.field_balancer import FieldBalancer
from match_scheduler.utils.sql import scalar_int

logger = logging.getLogger(__name__)

MIN_TEAMS_PER_ALLIANCE = 1
MAX_TEAMS_PER_ALLIANCE = 3


def validate_teams_per_alliance(teams_per_alliance: int) -> None:
    if not MIN_TEAMS_PER_ALLIANCE <= teams_per_alliance <= MAX_TEAMS_PER_ALLIANCE:
        raise ScheduleConfigurationError(
            f"Teams per alliance must be between {MIN_TEAMS_PER_ALLIANCE} and "
            f"{MAX_TEAMS_PER_ALLIANCE}, got {teams_per_alliance}"
        )


def tournament_fields(session: Session, tournament_id: int) -> List[PlayingField]:
    fields = list(
        session.exec(
            select(PlayingField).where(PlayingField.tournament_id == tournament_id).order_by(PlayingField.number)
        ).all()
    )
    if not fields:
        raise ScheduleConfigurationError(f"No playing fields available for tournament {tournament_id}")
    return fields


def next_match_number(session: Session, stage_id: int) -> int:
    current = session.exec(select(func.max(Match.match_number)).where(Match.stage_id == stage_id)).first()
    return scalar_int(current) + 1


def next_bracket_slot(session: Session, stage_id: int) -> int:
    current = session.exec(select(func.max(Match.bracket_slot)).where(Match.stage_id == stage_id)).first()
    return scalar_int(current, default=-1) + 1


def add_alliance(
    session: Session,
    match: Match,
    side: str,
    team_ids: List[int],
    surrogates: Optional[set] = None,
) -> Alliance:
    """Add one alliance and its seats, stations numbered from 1. Does not commit."""
    alliance = Alliance(match_id=match.id, side=side)
    session.add(alliance)
    session.flush()
    for position, team_id in enumerate(team_ids, start=1):
        session.add(
            TeamAlliance(
                alliance_id=alliance.id,
                team_id=team_id,
                station_position=position,
                is_surrogate=bool(surrogates) and team_id in surrogates,
            )
        )
    return alliance


def generate_optimized_schedule(
    session: Session,
    stage_id: int,
    round_count: int,
    teams_per_alliance: int,
    config: Optional[ScheduleConfig] = None,
    *,
    max_iterations: Optional[int] = None,
    quality_tier: Optional[str] = None,
    rng: Optional[random.Random] = None,
    should_cancel: Optional[Callable[[], bool]] = None,
    time_limit_seconds: Optional[float] = None,
    start_time: Optional[datetime] = None,
) -> List[Match]:
    """Generate and persist a full multi-round schedule for a stage.

    round_count and teams_per_alliance override the matching config values.
    Iterations: max_iterations if given, else quality_tier (low/medium/high),
    else the config's quality level.
    """
    stage = get_stage_or_raise(session, stage_id)
    validate_teams_per_alliance(teams_per_alliance)
    if round_count < 1:
        raise ScheduleConfigurationError(f"round_count must be >= 1, got {round_count}")

    config = merge_config(config, {"teams_per_alliance": teams_per_alliance, "rounds": round_count})
    iterations = max_iterations if max_iterations is not None else config.iteration_budget(quality_tier)

    teams = list(
        session.exec(
            select(Team).where(Team.tournament_id == stage.tournament_id).order_by(Team.team_number, Team.id)
        ).all()
    )
    size = 2 * teams_per_alliance
    if len(teams) < size:
        raise InsufficientTeamsError(
            f"Not enough teams ({len(teams)}) to create a schedule. Minimum required: {size}",
            required=size,
            available=len(teams),
        )
    fields = tournament_fields(session, stage.tournament_id)

    rng = rng or random.Random()
    result: OptimizationResult = optimize_schedule(
        len(teams),
        round_count,
        teams_per_alliance,
        config,
        iterations,
        rng=rng,
        should_cancel=should_cancel,
        time_limit_seconds=time_limit_seconds,
    )

    balancer = FieldBalancer(fields, rng)
    base_time = start_time or datetime.now(timezone.utc)
    first_number = next_match_number(session, stage_id)
    created: List[Match] = []

    try:
        for idx, (red, blue) in enumerate(result.matches):
            playing_field = balancer.assign()
            match = Match(
                stage_id=stage_id,
                match_number=first_number + idx,
                round_number=min(round_count, idx * size // len(teams) + 1),
                field_id=playing_field.id,
                scheduled_time=base_time
                + timedelta(minutes=idx * MATCH_INTERVAL_MINUTES)
                + timedelta(minutes=(playing_field.number - 1) * FIELD_STAGGER_MINUTES),
                status=MATCH_PENDING,
            )
            session.add(match)
            session.flush()

            surrogates = {teams[t].id for (m, t) in result.surrogates if m == idx}
            add_alliance(session, match, SIDE_RED, [teams[t].id for t in red], surrogates)
            add_alliance(session, match, SIDE_BLUE, [teams[t].id for t in blue], surrogates)
            created.append(match)
        session.commit()
    except Exception:
        session.rollback()
        raise

    for match in created:
        session.refresh(match)

    logger.info(
        "Generated %d qualification matches for stage %d (%d teams, %d rounds, score %.2f)",
        len(created),
        stage_id,
        len(teams),
        round_count,
        result.score,
    )
    notifications.publish(
        notifications.SCHEDULE_GENERATED,
        stage_id,
        [m.id for m in created],
        **result.to_dict(),
    )
    return created
