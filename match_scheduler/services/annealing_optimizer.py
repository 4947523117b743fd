"""
Annealing Optimizer — multi-round alliance schedules by simulated annealing.

Pure and in-memory: teams are the integers 0..N-1 and a schedule is a list of
(red, blue) rosters, one per match, in play order. Persistence lives in
optimized_schedule.py.

Score (lower is better), summed per team:
  partner seen n > 1 times     (n - 1) * partner_repeat
  opponent seen n > 1 times    (n - 1) * opponent_repeat
  met n > 1 times either way   (n - 1) * general_repeat
  consecutive appearances closer than min_match_separation (in match indices)
                               (min_sep - gap) * separation_violation
  |red - blue| * side_imbalance                        (alliance balancing on)
  sum |station count - appearances / stations| * station_imbalance
                                                       (station balancing on)

The working schedule keeps per-team counters and a cached per-team penalty.
A swap only touches the two matches involved, so only the teams in those
matches are re-scored.
"""

from __future__ import annotations

import logging
import math
import random
import time
from bisect import bisect_left, insort
from collections import Counter
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Sequence, Set, Tuple

from match_scheduler.exceptions import InsufficientTeamsError, ScheduleConfigurationError
from match_scheduler.services.schedule_config import ScheduleConfig

logger = logging.getLogger(__name__)

RED = 0
BLUE = 1

Roster = List[int]
ScheduleMatches = List[List[Roster]]  # [match][side][station]

ProgressCallback = Callable[[int, float, float, float], None]


# ============================================================================
# Initial construction
# ============================================================================


def match_count_for(team_count: int, rounds: int, teams_per_alliance: int) -> int:
    """ceil(N * R / 2A): enough matches for every team to play R times."""
    size = 2 * teams_per_alliance
    return -(-team_count * rounds // size)


def build_initial_schedule(team_count: int, rounds: int, teams_per_alliance: int) -> ScheduleMatches:
    """Starting point for the search.

    N divisible by 2A: cyclic rotation, every team plays exactly R times.
    Otherwise: each match takes the 2A teams with the fewest appearances so far,
    longest-resting first, so load never differs by more than one.
    """
    size = 2 * teams_per_alliance
    if team_count < size:
        raise InsufficientTeamsError(
            f"Not enough teams ({team_count}) to create a schedule. Minimum required: {size}",
            required=size,
            available=team_count,
        )
    if rounds < 1:
        raise ScheduleConfigurationError(f"rounds must be >= 1, got {rounds}")

    total = match_count_for(team_count, rounds, teams_per_alliance)
    matches: ScheduleMatches = []

    if team_count % size == 0:
        for k in range(total):
            slots = [(k * size + s) % team_count for s in range(size)]
            matches.append([slots[:teams_per_alliance], slots[teams_per_alliance:]])
        return matches

    appearances = [0] * team_count
    last_played = [-1] * team_count
    for k in range(total):
        order = sorted(range(team_count), key=lambda t: (appearances[t], last_played[t], t))
        chosen = order[:size]
        for t in chosen:
            appearances[t] += 1
            last_played[t] = k
        matches.append([chosen[:teams_per_alliance], chosen[teams_per_alliance:]])
    return matches


# ============================================================================
# Working schedule with incremental scoring
# ============================================================================


class WorkingSchedule:
    """Mutable candidate plus the per-team counters its score is built from."""

    def __init__(self, matches: Sequence[Sequence[Sequence[int]]], teams_per_alliance: int, config: ScheduleConfig):
        self.teams_per_alliance = teams_per_alliance
        self._matches: ScheduleMatches = [[list(red), list(blue)] for red, blue in matches]
        self._weights = config.penalties
        self._min_sep = config.constraints.min_match_separation
        self._balance_sides = config.alliance_balancing.enabled
        self._balance_stations = config.station_balancing.enabled
        self._mirrored = config.station_balancing.strategy == "mirrored"
        self.station_count = teams_per_alliance if self._mirrored else 2 * teams_per_alliance

        teams = sorted({t for red, blue in self._matches for t in red + blue})
        self._appearances: Dict[int, List[int]] = {t: [] for t in teams}
        self._partners: Dict[int, Counter] = {t: Counter() for t in teams}
        self._opponents: Dict[int, Counter] = {t: Counter() for t in teams}
        self._encounters: Dict[int, Counter] = {t: Counter() for t in teams}
        self._sides: Dict[int, List[int]] = {t: [0, 0] for t in teams}
        self._stations: Dict[int, List[int]] = {t: [0] * self.station_count for t in teams}

        for idx in range(len(self._matches)):
            self._apply(idx, 1)
        self._penalty: Dict[int, float] = {t: self._team_penalty(t) for t in teams}
        self.score = sum(self._penalty.values())

    @property
    def matches(self) -> ScheduleMatches:
        return self._matches

    @property
    def teams(self) -> List[int]:
        return list(self._appearances)

    def appearances(self, team: int) -> List[int]:
        return list(self._appearances[team])

    def side_counts(self, team: int) -> Tuple[int, int]:
        red, blue = self._sides[team]
        return red, blue

    def station_counts(self, team: int) -> List[int]:
        return list(self._stations[team])

    def snapshot(self) -> ScheduleMatches:
        return [[list(red), list(blue)] for red, blue in self._matches]

    def _station_index(self, side: int, pos: int) -> int:
        if self._mirrored:
            # Blue station i stands where red station A-1-i stands
            return pos if side == RED else self.teams_per_alliance - 1 - pos
        return side * self.teams_per_alliance + pos

    def _apply(self, match_index: int, sign: int) -> None:
        """Add (sign=1) or remove (sign=-1) one match's contribution to the counters."""
        rosters = self._matches[match_index]
        for side, roster in enumerate(rosters):
            other = rosters[1 - side]
            for pos, team in enumerate(roster):
                seen = self._appearances[team]
                if sign > 0:
                    insort(seen, match_index)
                else:
                    del seen[bisect_left(seen, match_index)]
                self._sides[team][side] += sign
                self._stations[team][self._station_index(side, pos)] += sign
                for mate in roster:
                    if mate != team:
                        self._partners[team][mate] += sign
                        self._encounters[team][mate] += sign
                for opp in other:
                    self._opponents[team][opp] += sign
                    self._encounters[team][opp] += sign

    def _team_penalty(self, team: int) -> float:
        w = self._weights
        penalty = 0.0
        for n in self._partners[team].values():
            if n > 1:
                penalty += (n - 1) * w.partner_repeat
        for n in self._opponents[team].values():
            if n > 1:
                penalty += (n - 1) * w.opponent_repeat
        for n in self._encounters[team].values():
            if n > 1:
                penalty += (n - 1) * w.general_repeat

        seen = self._appearances[team]
        for current, nxt in zip(seen, seen[1:]):
            gap = nxt - current
            if gap < self._min_sep:
                penalty += (self._min_sep - gap) * w.separation_violation

        if self._balance_sides:
            red, blue = self._sides[team]
            penalty += abs(red - blue) * w.side_imbalance

        if self._balance_stations and seen:
            expected = len(seen) / self.station_count
            penalty += sum(abs(c - expected) for c in self._stations[team]) * w.station_imbalance
        return penalty

    def full_score(self) -> float:
        """Score recomputed from the counters, without the running total."""
        return sum(self._team_penalty(t) for t in self._appearances)

    def resync(self) -> None:
        self._penalty = {t: self._team_penalty(t) for t in self._appearances}
        self.score = sum(self._penalty.values())

    def can_swap(self, m1: int, s1: int, p1: int, m2: int, s2: int, p2: int) -> bool:
        """A swap is legal if it moves two different teams between two different
        matches without seating either team twice in one match."""
        if m1 == m2:
            return False
        a = self._matches[m1][s1][p1]
        b = self._matches[m2][s2][p2]
        if a == b:
            return False
        in_m1 = self._matches[m1][0] + self._matches[m1][1]
        in_m2 = self._matches[m2][0] + self._matches[m2][1]
        return b not in in_m1 and a not in in_m2

    def swap(self, m1: int, s1: int, p1: int, m2: int, s2: int, p2: int) -> float:
        """Swap two seats and return the score delta. Calling it again reverts it."""
        before = self.score
        self._apply(m1, -1)
        self._apply(m2, -1)
        first = self._matches[m1][s1]
        second = self._matches[m2][s2]
        first[p1], second[p2] = second[p2], first[p1]
        self._apply(m1, 1)
        self._apply(m2, 1)

        touched = set(self._matches[m1][0] + self._matches[m1][1] + self._matches[m2][0] + self._matches[m2][1])
        for team in touched:
            updated = self._team_penalty(team)
            self.score += updated - self._penalty[team]
            self._penalty[team] = updated
        return self.score - before


# ============================================================================
# Search
# ============================================================================


@dataclass
class OptimizationResult:
    matches: ScheduleMatches
    score: float
    initial_score: float
    iterations: int
    final_temperature: float
    best_score_history: List[float] = field(default_factory=list)
    cancelled: bool = False
    surrogates: Set[Tuple[int, int]] = field(default_factory=set)  # (match index, team)

    def to_dict(self) -> Dict:
        return {
            "match_count": len(self.matches),
            "score": self.score,
            "initial_score": self.initial_score,
            "iterations": self.iterations,
            "final_temperature": self.final_temperature,
            "improvements": len(self.best_score_history),
            "cancelled": self.cancelled,
            "surrogate_appearances": len(self.surrogates),
        }


class AnnealingOptimizer:
    def __init__(self, config: ScheduleConfig, rng: Optional[random.Random] = None):
        self.config = config
        self.rng = rng or random.Random()

    def optimize(
        self,
        matches: Sequence[Sequence[Sequence[int]]],
        teams_per_alliance: int,
        max_iterations: int,
        should_cancel: Optional[Callable[[], bool]] = None,
        time_limit_seconds: Optional[float] = None,
        on_progress: Optional[ProgressCallback] = None,
    ) -> OptimizationResult:
        """Run the annealing loop from the given schedule.

        Stops after max_iterations, once the temperature reaches min_temperature,
        or when cancelled. Cancellation and the time limit are checked at each
        cooling step; the best schedule found so far is returned either way.
        """
        settings = self.config.annealing
        working = WorkingSchedule(matches, teams_per_alliance, self.config)
        initial_score = working.score
        best_matches = working.snapshot()
        best_score = working.score
        history: List[float] = [best_score]

        temperature = settings.initial_temperature
        deadline = time.monotonic() + time_limit_seconds if time_limit_seconds is not None else None
        match_total = len(working.matches)
        iteration = 0
        cancelled = False

        if match_total < 2:
            max_iterations = 0

        while iteration < max_iterations and temperature > settings.min_temperature:
            iteration += 1
            m1, m2 = self.rng.sample(range(match_total), 2)
            s1 = self.rng.randrange(2)
            s2 = self.rng.randrange(2)
            p1 = self.rng.randrange(teams_per_alliance)
            p2 = self.rng.randrange(teams_per_alliance)

            if working.can_swap(m1, s1, p1, m2, s2, p2):
                delta = working.swap(m1, s1, p1, m2, s2, p2)
                if delta <= 0 or self.rng.random() < math.exp(-delta / temperature):
                    if working.score < best_score:
                        best_score = working.score
                        best_matches = working.snapshot()
                        history.append(best_score)
                else:
                    working.swap(m1, s1, p1, m2, s2, p2)

            if iteration % settings.iterations_per_temperature == 0:
                temperature *= settings.cooling_rate
                working.resync()
                if on_progress is not None:
                    on_progress(iteration, temperature, working.score, best_score)
                if iteration % (settings.iterations_per_temperature * 100) == 0:
                    logger.debug(
                        "Annealing iteration %d: temperature=%.4f current=%.2f best=%.2f",
                        iteration,
                        temperature,
                        working.score,
                        best_score,
                    )
                if should_cancel is not None and should_cancel():
                    cancelled = True
                    break
                if deadline is not None and time.monotonic() >= deadline:
                    cancelled = True
                    break

        if cancelled:
            logger.warning("Annealing stopped early after %d iterations; keeping best score %.2f", iteration, best_score)

        final = WorkingSchedule(best_matches, teams_per_alliance, self.config)
        return OptimizationResult(
            matches=best_matches,
            score=final.score,
            initial_score=initial_score,
            iterations=iteration,
            final_temperature=temperature,
            best_score_history=history,
            cancelled=cancelled,
        )


def mark_surrogates(matches: ScheduleMatches, rounds: int, surrogate_round: int) -> Set[Tuple[int, int]]:
    """Flag appearances beyond a team's first `rounds` as surrogate appearances.

    The extra appearances start at the team's surrogate_round-th appearance,
    pulled earlier when there are not enough appearances left after it.
    """
    seen: Dict[int, List[int]] = {}
    for idx, (red, blue) in enumerate(matches):
        for team in red + blue:
            seen.setdefault(team, []).append(idx)

    flagged: Set[Tuple[int, int]] = set()
    for team, indices in seen.items():
        extra = len(indices) - rounds
        if extra <= 0:
            continue
        start = min(surrogate_round - 1, len(indices) - extra)
        for idx in indices[start:start + extra]:
            flagged.add((idx, team))
    return flagged


def optimize_schedule(
    team_count: int,
    rounds: int,
    teams_per_alliance: int,
    config: ScheduleConfig,
    max_iterations: int,
    rng: Optional[random.Random] = None,
    should_cancel: Optional[Callable[[], bool]] = None,
    time_limit_seconds: Optional[float] = None,
    on_progress: Optional[ProgressCallback] = None,
) -> OptimizationResult:
    """Build the initial schedule, anneal it, and mark surrogates when enabled."""
    initial = build_initial_schedule(team_count, rounds, teams_per_alliance)
    optimizer = AnnealingOptimizer(config, rng)
    result = optimizer.optimize(
        initial,
        teams_per_alliance,
        max_iterations,
        should_cancel=should_cancel,
        time_limit_seconds=time_limit_seconds,
        on_progress=on_progress,
    )
    if config.constraints.enable_surrogates and team_count % (2 * teams_per_alliance) != 0:
        result.surrogates = mark_surrogates(result.matches, rounds, config.constraints.surrogate_round)
    logger.info(
        "Optimized %d matches for %d teams: score %.2f -> %.2f in %d iterations",
        len(result.matches),
        team_count,
        result.initial_score,
        result.score,
        result.iterations,
    )
    return result
