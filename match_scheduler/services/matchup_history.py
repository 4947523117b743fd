"""
Matchup History — who has already played with or against whom in a stage.

Rebuilt from scratch before each adaptive round; stage match counts are small
enough that incremental updates are not worth the bookkeeping.
"""

from __future__ import annotations

from collections import defaultdict
from itertools import combinations
from typing import DefaultDict, Iterable, List, Sequence, Set, Tuple

from sqlmodel import Session

from match_scheduler.services.rosters import load_stage_rosters


class MatchupHistory:
    def __init__(self) -> None:
        self.partners: DefaultDict[int, Set[int]] = defaultdict(set)
        self.opponents: DefaultDict[int, Set[int]] = defaultdict(set)

    @classmethod
    def from_matches(cls, matches: Iterable[Tuple[Sequence[int], Sequence[int]]]) -> "MatchupHistory":
        history = cls()
        for red, blue in matches:
            history.record_match(red, blue)
        return history

    def record_match(self, red: Sequence[int], blue: Sequence[int]) -> None:
        for side in (red, blue):
            for a, b in combinations(side, 2):
                self.partners[a].add(b)
                self.partners[b].add(a)
        for a in red:
            for b in blue:
                self.opponents[a].add(b)
                self.opponents[b].add(a)

    def has_partnered(self, a: int, b: int) -> bool:
        return b in self.partners.get(a, ())

    def has_opposed(self, a: int, b: int) -> bool:
        return b in self.opponents.get(a, ())

    def has_met(self, a: int, b: int) -> bool:
        return self.has_partnered(a, b) or self.has_opposed(a, b)

    def met(self, team_id: int) -> Set[int]:
        return set(self.partners.get(team_id, ())) | set(self.opponents.get(team_id, ()))


def build_matchup_history(session: Session, stage_id: int) -> MatchupHistory:
    """History over every match recorded in the stage, whatever its status."""
    return MatchupHistory.from_matches(
        (roster.red, roster.blue) for roster in load_stage_rosters(session, stage_id)
    )


def cross_alliance_repeats(red: Sequence[int], blue: Sequence[int], history: MatchupHistory) -> int:
    """Number of (red, blue) pairs that have met before, as partners or opponents."""
    return sum(1 for a in red for b in blue if history.has_met(a, b))


def best_alliance_split(
    teams: Sequence[int],
    teams_per_alliance: int,
    history: MatchupHistory,
) -> Tuple[List[int], List[int], int]:
    """Split 2A teams into red/blue minimizing cross-alliance repeats.

    The trivial split (first A red) is the baseline. Candidates are visited in
    lexicographic order and only a strictly better one replaces the incumbent, so
    the result is deterministic. The search stops at the first zero-repeat split.
    """
    if len(teams) != 2 * teams_per_alliance:
        raise ValueError(f"Expected {2 * teams_per_alliance} teams, got {len(teams)}")

    best_red = list(teams[:teams_per_alliance])
    best_blue = list(teams[teams_per_alliance:])
    best_penalty = cross_alliance_repeats(best_red, best_blue, history)

    if best_penalty == 0:
        return best_red, best_blue, 0

    for red_idx in combinations(range(len(teams)), teams_per_alliance):
        chosen = set(red_idx)
        red = [teams[i] for i in red_idx]
        blue = [teams[i] for i in range(len(teams)) if i not in chosen]
        penalty = cross_alliance_repeats(red, blue, history)
        if penalty < best_penalty:
            best_red, best_blue, best_penalty = red, blue, penalty
            if penalty == 0:
                break

    return best_red, best_blue, best_penalty
