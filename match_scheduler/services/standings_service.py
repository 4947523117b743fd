"""
Standings: persist ranking-model results as TeamStats rows.

Every stage owns its rows, keyed by (team, tournament, stage). A refresh rewrites
only the rows of the stage it was asked for; earlier stages keep their numbers.
Refresh runs under the stage lock so it cannot interleave with bracket advances or
adaptive round generation on that stage.
"""
import logging
from datetime import datetime, timezone
from typing import Dict, List, Optional

from sqlmodel import Session, select

from match_scheduler.exceptions import ScheduleConfigurationError, StageNotFoundError
from match_scheduler.models.alliance import SIDE_BLUE, SIDE_RED
from match_scheduler.models.match import MATCH_COMPLETED
from match_scheduler.models.stage import STAGE_COMPLETED, Stage, StageType
from match_scheduler.models.team import Team
from match_scheduler.models.team_stats import TeamStats
from match_scheduler.services import notifications
from match_scheduler.services.ranking import MatchResult, compute_team_records, stats_sort_key
from match_scheduler.services.rosters import load_stage_rosters
from match_scheduler.utils.stage_locks import stage_lock

logger = logging.getLogger(__name__)


def get_stage_or_raise(session: Session, stage_id: int) -> Stage:
    stage = session.get(Stage, stage_id)
    if not stage:
        raise StageNotFoundError(stage_id)
    return stage


def _tournament_teams(session: Session, tournament_id: int) -> List[Team]:
    return list(
        session.exec(
            select(Team).where(Team.tournament_id == tournament_id).order_by(Team.team_number, Team.id)
        ).all()
    )


def _stage_rows(session: Session, stage_id: int) -> List[TeamStats]:
    return list(session.exec(select(TeamStats).where(TeamStats.stage_id == stage_id)).all())


def ensure_stage_stats(session: Session, stage: Stage) -> List[TeamStats]:
    """Give every tournament team a zeroed TeamStats row for this stage if the stage has none.

    Rows belonging to other stages are left alone. Does not commit.
    """
    existing = _stage_rows(session, stage.id)
    if existing:
        return existing

    created = [
        TeamStats(team_id=team.id, tournament_id=stage.tournament_id, stage_id=stage.id)
        for team in _tournament_teams(session, stage.tournament_id)
    ]
    session.add_all(created)
    session.flush()
    logger.info("Initialized %d team stats rows for stage %d", len(created), stage.id)
    return created


def refresh_standings(session: Session, stage_id: int) -> None:
    """Recompute this stage's TeamStats from its completed matches and persist them."""
    stage = get_stage_or_raise(session, stage_id)

    with stage_lock(stage_id):
        teams = _tournament_teams(session, stage.tournament_id)
        rosters = load_stage_rosters(session, stage_id, statuses=[MATCH_COMPLETED])
        results = [
            MatchResult(
                red=roster.red,
                blue=roster.blue,
                red_score=roster.score(SIDE_RED) or 0,
                blue_score=roster.score(SIDE_BLUE) or 0,
                surrogates=frozenset(roster.surrogate_ids()),
            )
            for roster in rosters
        ]
        records = compute_team_records(results, {t.id: t.team_number for t in teams})

        by_team = {row.team_id: row for row in _stage_rows(session, stage_id)}
        now = datetime.now(timezone.utc)
        try:
            for team_id, rec in records.items():
                stats = by_team.get(team_id)
                if stats is None:
                    stats = TeamStats(team_id=team_id, tournament_id=stage.tournament_id, stage_id=stage_id)
                stats.wins = rec.wins
                stats.losses = rec.losses
                stats.ties = rec.ties
                stats.points_scored = rec.points_scored
                stats.points_conceded = rec.points_conceded
                stats.matches_played = rec.matches_played
                stats.ranking_points = rec.ranking_points
                stats.opponent_win_percentage = rec.opponent_win_percentage
                stats.point_differential = rec.point_differential
                stats.tiebreaker1 = rec.opponent_win_percentage
                stats.tiebreaker2 = float(rec.points_scored)
                stats.updated_at = now
                session.add(stats)
            session.commit()
        except Exception:
            session.rollback()
            raise

    logger.info(
        "Refreshed standings for stage %d: %d teams from %d completed matches",
        stage_id,
        len(records),
        len(results),
    )
    notifications.publish(notifications.STANDINGS_REFRESHED, stage_id, teams=len(records))


def _sorted_stats(session: Session, rows: List[TeamStats]) -> List[TeamStats]:
    team_ids = [r.team_id for r in rows]
    numbers: Dict[int, int] = {}
    if team_ids:
        numbers = {t.id: t.team_number for t in session.exec(select(Team).where(Team.id.in_(team_ids))).all()}
    return sorted(rows, key=lambda r: stats_sort_key(r, numbers.get(r.team_id, 0)))


def get_standings(session: Session, stage_id: int) -> List[TeamStats]:
    """This stage's TeamStats, best first."""
    get_stage_or_raise(session, stage_id)
    return _sorted_stats(session, _stage_rows(session, stage_id))


# ============================================================================
# Seeding source
# ============================================================================


def resolve_seeding_stage(
    session: Session, stage: Stage, source_stage_id: Optional[int] = None
) -> Optional[Stage]:
    """Stage whose standings seed `stage`.

    An explicit source must be another stage of the same tournament. Otherwise the
    latest non-playoff stage with standings is used, completed stages first. None
    when no such stage exists.
    """
    if source_stage_id is not None:
        source = get_stage_or_raise(session, source_stage_id)
        if source.id == stage.id or source.tournament_id != stage.tournament_id:
            raise ScheduleConfigurationError(
                f"Stage {source_stage_id} cannot seed stage {stage.id}: pick another stage of the same tournament"
            )
        return source

    ranked_stage_ids = set(
        session.exec(select(TeamStats.stage_id).where(TeamStats.tournament_id == stage.tournament_id)).all()
    )
    candidates = [
        s
        for s in session.exec(select(Stage).where(Stage.tournament_id == stage.tournament_id)).all()
        if s.id != stage.id and s.id in ranked_stage_ids and s.stage_type != StageType.playoff
    ]
    if not candidates:
        return None
    return max(candidates, key=lambda s: (s.status == STAGE_COMPLETED, s.id))


def get_seeding_standings(
    session: Session, stage: Stage, source_stage_id: Optional[int] = None
) -> List[TeamStats]:
    """Standings of the stage that seeds `stage`, best first."""
    source = resolve_seeding_stage(session, stage, source_stage_id)
    if source is None:
        return []
    return _sorted_stats(session, _stage_rows(session, source.id))
