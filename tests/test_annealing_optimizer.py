"""
Tests for the annealing optimizer: construction, incremental scoring, search.
"""
import random
from collections import Counter

import pytest

from match_scheduler.exceptions import InsufficientTeamsError
from match_scheduler.services.annealing_optimizer import (
    AnnealingOptimizer,
    WorkingSchedule,
    build_initial_schedule,
    mark_surrogates,
    match_count_for,
    optimize_schedule,
)
from match_scheduler.services.schedule_config import ScheduleConfig, merge_config


def _appearances(matches) -> Counter:
    return Counter(t for red, blue in matches for t in red + blue)


def _assert_no_duplicates(matches):
    for red, blue in matches:
        assert len(set(red + blue)) == len(red) + len(blue)


class TestInitialSchedule:
    def test_even_division_uses_exact_rounds(self):
        matches = build_initial_schedule(12, 6, 3)
        assert len(matches) == 12
        assert set(_appearances(matches).values()) == {6}
        _assert_no_duplicates(matches)

    def test_uneven_division_covers_every_team(self):
        matches = build_initial_schedule(10, 5, 2)
        assert len(matches) == match_count_for(10, 5, 2) == 13
        counts = _appearances(matches)
        assert len(counts) == 10
        assert min(counts.values()) >= 5
        assert max(counts.values()) - min(counts.values()) <= 1
        _assert_no_duplicates(matches)

    def test_too_few_teams(self):
        with pytest.raises(InsufficientTeamsError) as exc:
            build_initial_schedule(5, 3, 3)
        assert exc.value.required == 6
        assert exc.value.available == 5


class TestWorkingSchedule:
    def _random_swaps(self, working, rng, count):
        m = len(working.matches)
        a = working.teams_per_alliance
        for _ in range(count):
            m1, m2 = rng.sample(range(m), 2)
            args = (m1, rng.randrange(2), rng.randrange(a), m2, rng.randrange(2), rng.randrange(a))
            if working.can_swap(*args):
                working.swap(*args)

    def test_incremental_score_matches_full_recompute(self):
        working = WorkingSchedule(build_initial_schedule(10, 6, 2), 2, ScheduleConfig(teams_per_alliance=2))
        self._random_swaps(working, random.Random(3), 200)
        assert working.score == pytest.approx(working.full_score())
        rebuilt = WorkingSchedule(working.snapshot(), 2, ScheduleConfig(teams_per_alliance=2))
        assert working.score == pytest.approx(rebuilt.score)

    def test_swap_is_its_own_inverse(self):
        working = WorkingSchedule(build_initial_schedule(8, 4, 2), 2, ScheduleConfig(teams_per_alliance=2))
        before = working.snapshot()
        score = working.score
        args = None
        for m2 in range(1, len(working.matches)):
            if working.can_swap(0, 0, 0, m2, 1, 1):
                args = (0, 0, 0, m2, 1, 1)
                break
        assert args is not None
        working.swap(*args)
        working.swap(*args)
        assert working.snapshot() == before
        assert working.score == pytest.approx(score)

    def test_swap_creating_duplicate_rejected(self):
        working = WorkingSchedule([[[0, 1], [2, 3]], [[0, 4], [5, 6]]], 2, ScheduleConfig(teams_per_alliance=2))
        # Team 0 sits in both matches
        assert not working.can_swap(0, 0, 0, 1, 0, 0)
        # Teams 1 and 4 can trade places
        assert working.can_swap(0, 0, 1, 1, 0, 1)
        # Team 2 for team 0 would put team 0 in match 0 twice
        assert not working.can_swap(0, 1, 0, 1, 0, 0)
        assert not working.can_swap(0, 0, 0, 0, 1, 0)

    def test_partner_repeat_penalty(self):
        config = merge_config(
            None,
            {
                "teams_per_alliance": 2,
                "penalties": {
                    "partner_repeat": 3.0,
                    "opponent_repeat": 0.0,
                    "general_repeat": 0.0,
                    "separation_violation": 0.0,
                    "side_imbalance": 0.0,
                    "station_imbalance": 0.0,
                },
            },
        )
        working = WorkingSchedule([[[0, 1], [2, 3]], [[0, 1], [4, 5]]], 2, config)
        # Teams 0 and 1 each see the other twice
        assert working.score == pytest.approx(6.0)

    def test_separation_penalty(self):
        config = merge_config(
            None,
            {
                "teams_per_alliance": 1,
                "constraints": {"min_match_separation": 2},
                "penalties": {
                    "partner_repeat": 0.0,
                    "opponent_repeat": 0.0,
                    "general_repeat": 0.0,
                    "separation_violation": 10.0,
                    "side_imbalance": 0.0,
                    "station_imbalance": 0.0,
                },
            },
        )
        working = WorkingSchedule([[[0], [1]], [[0], [2]], [[3], [1]]], 1, config)
        # Team 0 plays back to back (gap 1 < 2); team 1 has gap 2
        assert working.score == pytest.approx(10.0)

    def test_mirrored_stations(self):
        config = merge_config(None, {"station_balancing": {"strategy": "mirrored"}})
        working = WorkingSchedule([[[0, 1, 2], [3, 4, 5]]], 3, config)
        assert working.station_count == 3
        # Blue station 1 stands where red station 3 stands
        assert working.station_counts(3) == [0, 0, 1]
        assert working.station_counts(0) == [1, 0, 0]

    def test_side_balance_disabled(self):
        enabled = WorkingSchedule([[[0], [1]], [[0], [2]]], 1, ScheduleConfig(teams_per_alliance=1))
        disabled = WorkingSchedule(
            [[[0], [1]], [[0], [2]]],
            1,
            merge_config(None, {"teams_per_alliance": 1, "alliance_balancing": {"enabled": False}}),
        )
        assert enabled.side_counts(0) == (2, 0)
        assert disabled.score < enabled.score


class TestAnnealingSearch:
    def test_match_count_and_appearances(self):
        config = ScheduleConfig(teams_per_alliance=3, rounds=6)
        result = optimize_schedule(18, 6, 3, config, 3000, rng=random.Random(11))
        assert len(result.matches) == match_count_for(18, 6, 3) == 18
        assert set(_appearances(result.matches).values()) == {6}
        _assert_no_duplicates(result.matches)

    def test_uneven_teams_still_play_every_round(self):
        config = ScheduleConfig(teams_per_alliance=2, rounds=5)
        result = optimize_schedule(10, 5, 2, config, 3000, rng=random.Random(5))
        counts = _appearances(result.matches)
        assert len(result.matches) == 13
        assert min(counts.values()) >= 5
        _assert_no_duplicates(result.matches)

    def test_best_history_never_increases(self):
        config = ScheduleConfig(teams_per_alliance=2, rounds=6)
        result = optimize_schedule(12, 6, 2, config, 5000, rng=random.Random(2))
        history = result.best_score_history
        assert all(later <= earlier for earlier, later in zip(history, history[1:]))
        assert result.score <= result.initial_score
        assert result.score == pytest.approx(history[-1])

    def test_search_improves_repetitive_schedule(self):
        config = ScheduleConfig(teams_per_alliance=2, rounds=6)
        result = optimize_schedule(8, 6, 2, config, 20000, rng=random.Random(9))
        assert result.score < result.initial_score

    def test_same_seed_same_schedule(self):
        config = ScheduleConfig(teams_per_alliance=2, rounds=4)
        first = optimize_schedule(12, 4, 2, config, 2000, rng=random.Random(42))
        second = optimize_schedule(12, 4, 2, config, 2000, rng=random.Random(42))
        assert first.matches == second.matches

    def test_stops_at_min_temperature(self):
        config = merge_config(
            None,
            {
                "teams_per_alliance": 2,
                "annealing": {
                    "initial_temperature": 1.0,
                    "cooling_rate": 0.5,
                    "min_temperature": 0.2,
                    "iterations_per_temperature": 10,
                },
            },
        )
        result = optimize_schedule(8, 4, 2, config, 1_000_000, rng=random.Random(1))
        # 1.0 -> 0.5 -> 0.25 -> 0.125: three cooling steps
        assert result.iterations == 30

    def test_cancellation_keeps_best_so_far(self):
        config = ScheduleConfig(teams_per_alliance=2)
        optimizer = AnnealingOptimizer(config, random.Random(4))
        result = optimizer.optimize(
            build_initial_schedule(12, 6, 2),
            2,
            max_iterations=100_000,
            should_cancel=lambda: True,
        )
        assert result.cancelled
        assert result.iterations == config.annealing.iterations_per_temperature
        assert len(result.matches) == 18

    def test_progress_callback(self):
        calls = []
        config = ScheduleConfig(teams_per_alliance=2)
        optimize_schedule(
            8,
            2,
            2,
            config,
            500,
            rng=random.Random(0),
            on_progress=lambda it, temp, cur, best: calls.append((it, temp)),
        )
        assert [it for it, _ in calls] == [100, 200, 300, 400, 500]
        temps = [temp for _, temp in calls]
        assert temps == sorted(temps, reverse=True)

    def test_single_match_schedule(self):
        config = ScheduleConfig(teams_per_alliance=2)
        result = optimize_schedule(4, 1, 2, config, 1000, rng=random.Random(0))
        assert len(result.matches) == 1
        assert result.iterations == 0


class TestSurrogates:
    def test_extra_appearance_flagged_at_surrogate_round(self):
        # Team 0 plays four times with rounds=3: its third appearance is the surrogate
        matches = [[[0], [1]], [[0], [2]], [[0], [3]], [[0], [4]]]
        assert mark_surrogates(matches, rounds=3, surrogate_round=3) == {(2, 0)}

    def test_surrogate_round_clamped(self):
        matches = [[[0], [1]], [[0], [2]], [[0], [3]]]
        assert mark_surrogates(matches, rounds=2, surrogate_round=10) == {(2, 0)}

    def test_even_division_has_no_surrogates(self):
        config = ScheduleConfig(teams_per_alliance=2)
        result = optimize_schedule(8, 3, 2, config, 500, rng=random.Random(0))
        assert result.surrogates == set()

    def test_uneven_division_flags_extra_appearances(self):
        config = ScheduleConfig(teams_per_alliance=2)
        result = optimize_schedule(10, 5, 2, config, 1000, rng=random.Random(0))
        counts = _appearances(result.matches)
        extra = sum(c - 5 for c in counts.values())
        assert len(result.surrogates) == extra == 2

    def test_surrogates_can_be_disabled(self):
        config = merge_config(None, {"teams_per_alliance": 2, "constraints": {"enable_surrogates": False}})
        result = optimize_schedule(10, 5, 2, config, 1000, rng=random.Random(0))
        assert result.surrogates == set()
