"""
Ranking Model — pure ordering logic shared by pairing and bracket seeding.

Ranking points: 2 per win, 1 per tie, 0 per loss.
Tiebreak tuple, all descending: opponent win percentage, point differential,
points scored. Fully tied teams fall back to ascending team number (then id) so
an order never depends on insertion order.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, FrozenSet, Iterable, List, Mapping, Optional, Sequence, Set, Tuple

from match_scheduler.models.alliance import SIDE_BLUE, SIDE_RED
from match_scheduler.models.team_stats import TeamStats

POINTS_PER_WIN = 2
POINTS_PER_TIE = 1


@dataclass
class MatchResult:
    """Scores of one completed match, reduced to what ranking needs."""
    red: Sequence[int]
    blue: Sequence[int]
    red_score: int
    blue_score: int
    surrogates: FrozenSet[int] = frozenset()

    @property
    def winning_side(self) -> Optional[str]:
        if self.red_score > self.blue_score:
            return SIDE_RED
        if self.blue_score > self.red_score:
            return SIDE_BLUE
        return None


@dataclass
class TeamRecord:
    team_id: int
    team_number: int = 0
    wins: int = 0
    losses: int = 0
    ties: int = 0
    points_scored: int = 0
    points_conceded: int = 0
    matches_played: int = 0
    opponents: Set[int] = field(default_factory=set)
    opponent_win_percentage: float = 0.0

    @property
    def ranking_points(self) -> int:
        return ranking_points(self.wins, self.ties)

    @property
    def point_differential(self) -> int:
        return self.points_scored - self.points_conceded

    @property
    def win_percentage(self) -> float:
        if self.matches_played == 0:
            return 0.0
        return self.wins / self.matches_played

    def tiebreak_tuple(self) -> Tuple[float, int, int]:
        return (self.opponent_win_percentage, self.point_differential, self.points_scored)

    def sort_key(self) -> Tuple:
        return ranking_sort_key(self.ranking_points, *self.tiebreak_tuple(), self.team_number, self.team_id)


def ranking_points(wins: int, ties: int) -> int:
    return wins * POINTS_PER_WIN + ties * POINTS_PER_TIE


def ranking_sort_key(
    ranking_points_value: float,
    opponent_win_percentage: float,
    point_differential: float,
    points_scored: float,
    team_number: int = 0,
    team_id: int = 0,
) -> Tuple:
    """Ascending sort key that orders best team first."""
    return (
        -ranking_points_value,
        -opponent_win_percentage,
        -point_differential,
        -points_scored,
        team_number,
        team_id,
    )


def stats_sort_key(stats: TeamStats, team_number: int = 0) -> Tuple:
    return ranking_sort_key(
        stats.ranking_points,
        stats.opponent_win_percentage,
        stats.point_differential,
        stats.points_scored,
        team_number,
        stats.team_id,
    )


def compute_team_records(
    results: Iterable[MatchResult],
    team_numbers: Optional[Mapping[int, int]] = None,
) -> Dict[int, TeamRecord]:
    """Aggregate completed match results into one record per team.

    Every team in team_numbers gets a record, including teams with no results yet.
    Surrogate appearances are skipped for the surrogate team only; its opponents
    and partners still count the match.
    """
    team_numbers = team_numbers or {}
    records: Dict[int, TeamRecord] = {
        team_id: TeamRecord(team_id=team_id, team_number=number)
        for team_id, number in team_numbers.items()
    }

    def _record(team_id: int) -> TeamRecord:
        rec = records.get(team_id)
        if rec is None:
            rec = TeamRecord(team_id=team_id, team_number=team_numbers.get(team_id, 0))
            records[team_id] = rec
        return rec

    for result in results:
        winner = result.winning_side
        sides = (
            (SIDE_RED, result.red, result.red_score, result.blue, result.blue_score),
            (SIDE_BLUE, result.blue, result.blue_score, result.red, result.red_score),
        )
        for side, own, own_score, other, other_score in sides:
            for team_id in own:
                if team_id in result.surrogates:
                    continue
                rec = _record(team_id)
                rec.matches_played += 1
                rec.points_scored += own_score
                rec.points_conceded += other_score
                rec.opponents.update(other)
                if winner is None:
                    rec.ties += 1
                elif winner == side:
                    rec.wins += 1
                else:
                    rec.losses += 1

    _apply_opponent_win_percentage(records)
    return records


def _apply_opponent_win_percentage(records: Dict[int, TeamRecord]) -> None:
    for rec in records.values():
        rates = [
            records[opp].win_percentage
            for opp in rec.opponents
            if opp in records and records[opp].matches_played > 0
        ]
        rec.opponent_win_percentage = sum(rates) / len(rates) if rates else 0.0


def rank_records(records: Iterable[TeamRecord]) -> List[TeamRecord]:
    return sorted(records, key=lambda r: r.sort_key())
