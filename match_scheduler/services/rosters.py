"""Read helpers: a match together with its two alliances and their seated teams."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Set

from sqlmodel import Session, select

from match_scheduler.models.alliance import SIDE_BLUE, SIDE_RED, Alliance, TeamAlliance
from match_scheduler.models.match import Match


@dataclass
class MatchRoster:
    match: Match
    alliances: Dict[str, Alliance] = field(default_factory=dict)
    seats: Dict[str, List[TeamAlliance]] = field(default_factory=dict)

    def team_ids(self, side: str) -> List[int]:
        """Team ids on one side in station order."""
        return [s.team_id for s in self.seats.get(side, [])]

    @property
    def red(self) -> List[int]:
        return self.team_ids(SIDE_RED)

    @property
    def blue(self) -> List[int]:
        return self.team_ids(SIDE_BLUE)

    def surrogate_ids(self) -> Set[int]:
        return {s.team_id for seats in self.seats.values() for s in seats if s.is_surrogate}

    def score(self, side: str) -> Optional[int]:
        alliance = self.alliances.get(side)
        return alliance.score if alliance else None


def _attach(session: Session, matches: List[Match]) -> List[MatchRoster]:
    rosters = {m.id: MatchRoster(match=m) for m in matches}
    if not rosters:
        return []

    alliances = session.exec(select(Alliance).where(Alliance.match_id.in_(list(rosters)))).all()
    by_alliance: Dict[int, Alliance] = {}
    for alliance in alliances:
        rosters[alliance.match_id].alliances[alliance.side] = alliance
        rosters[alliance.match_id].seats.setdefault(alliance.side, [])
        by_alliance[alliance.id] = alliance

    if by_alliance:
        seats = session.exec(
            select(TeamAlliance)
            .where(TeamAlliance.alliance_id.in_(list(by_alliance)))
            .order_by(TeamAlliance.alliance_id, TeamAlliance.station_position)
        ).all()
        for seat in seats:
            alliance = by_alliance[seat.alliance_id]
            rosters[alliance.match_id].seats[alliance.side].append(seat)

    return [rosters[m.id] for m in matches]


def load_stage_rosters(
    session: Session,
    stage_id: int,
    statuses: Optional[Iterable[str]] = None,
) -> List[MatchRoster]:
    """All matches of a stage with rosters, ordered by match number."""
    query = select(Match).where(Match.stage_id == stage_id)
    if statuses is not None:
        query = query.where(Match.status.in_(list(statuses)))
    matches = session.exec(query.order_by(Match.match_number)).all()
    return _attach(session, list(matches))


def load_match_roster(session: Session, match: Match) -> MatchRoster:
    return _attach(session, [match])[0]
