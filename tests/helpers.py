"""Builders for tournaments, stages, teams and matches used across the tests."""
from typing import Iterable, List, Optional, Sequence, Tuple

from sqlmodel import Session, select

from match_scheduler.models.alliance import SIDE_BLUE, SIDE_RED, Alliance, TeamAlliance
from match_scheduler.models.match import MATCH_COMPLETED, MATCH_PENDING, Match
from match_scheduler.models.playing_field import PlayingField
from match_scheduler.models.stage import Stage, StageType
from match_scheduler.models.team import Team
from match_scheduler.models.team_stats import TeamStats
from match_scheduler.models.tournament import Tournament


def make_tournament(
    session: Session,
    team_count: int = 8,
    field_count: int = 2,
    stage_type: StageType = StageType.qualification,
    teams_per_alliance: int = 2,
) -> Tuple[Tournament, Stage, List[Team], List[PlayingField]]:
    tournament = Tournament(name="Test Regional")
    session.add(tournament)
    session.commit()
    session.refresh(tournament)

    teams = [Team(tournament_id=tournament.id, team_number=100 + i, name=f"Team {100 + i}") for i in range(team_count)]
    fields = [PlayingField(tournament_id=tournament.id, number=n, name=f"Field {n}") for n in range(1, field_count + 1)]
    session.add_all(teams + fields)
    session.commit()
    for obj in teams + fields:
        session.refresh(obj)

    stage = add_stage(session, tournament, stage_type, teams_per_alliance)
    return tournament, stage, teams, fields


def add_stage(
    session: Session,
    tournament: Tournament,
    stage_type: StageType,
    teams_per_alliance: int = 2,
) -> Stage:
    stage = Stage(
        tournament_id=tournament.id,
        name=f"{stage_type.value} stage",
        stage_type=stage_type,
        teams_per_alliance=teams_per_alliance,
    )
    session.add(stage)
    session.commit()
    session.refresh(stage)
    return stage


def add_match(
    session: Session,
    stage: Stage,
    match_number: int,
    red: Sequence[int],
    blue: Sequence[int],
    round_number: int = 1,
    red_score: Optional[int] = None,
    blue_score: Optional[int] = None,
    surrogates: Iterable[int] = (),
) -> Match:
    """Add a match; giving both scores marks it completed."""
    completed = red_score is not None and blue_score is not None
    winning_side = None
    if completed and red_score != blue_score:
        winning_side = SIDE_RED if red_score > blue_score else SIDE_BLUE
    match = Match(
        stage_id=stage.id,
        match_number=match_number,
        round_number=round_number,
        status=MATCH_COMPLETED if completed else MATCH_PENDING,
        winning_side=winning_side,
    )
    session.add(match)
    session.flush()
    surrogates = set(surrogates)
    for side, team_ids, score in ((SIDE_RED, red, red_score), (SIDE_BLUE, blue, blue_score)):
        alliance = Alliance(match_id=match.id, side=side, score=score)
        session.add(alliance)
        session.flush()
        for pos, team_id in enumerate(team_ids, start=1):
            session.add(
                TeamAlliance(
                    alliance_id=alliance.id,
                    team_id=team_id,
                    station_position=pos,
                    is_surrogate=team_id in surrogates,
                )
            )
    session.commit()
    session.refresh(match)
    return match


def set_stats(session: Session, tournament: Tournament, team: Team, stage: Stage, **values) -> TeamStats:
    stats = session.exec(
        select(TeamStats).where(TeamStats.team_id == team.id, TeamStats.stage_id == stage.id)
    ).first()
    if stats is None:
        stats = TeamStats(team_id=team.id, tournament_id=tournament.id, stage_id=stage.id)
    for key, value in values.items():
        setattr(stats, key, value)
    session.add(stats)
    session.commit()
    session.refresh(stats)
    return stats


def rank_teams(session: Session, tournament: Tournament, teams: Sequence[Team], points: Sequence[int]) -> Stage:
    """Qualification stage whose standings give each team the matching ranking points."""
    stage = add_stage(session, tournament, StageType.qualification)
    for team, rp in zip(teams, points):
        set_stats(session, tournament, team, stage, ranking_points=rp)
    return stage


def seats(session: Session, match_id: int, side: str) -> List[TeamAlliance]:
    alliance = session.exec(select(Alliance).where(Alliance.match_id == match_id, Alliance.side == side)).first()
    if alliance is None:
        return []
    return list(
        session.exec(
            select(TeamAlliance)
            .where(TeamAlliance.alliance_id == alliance.id)
            .order_by(TeamAlliance.station_position)
        ).all()
    )


def side_team_ids(session: Session, match_id: int, side: str) -> List[int]:
    return [s.team_id for s in seats(session, match_id, side)]
