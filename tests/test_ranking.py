"""
Tests for the ranking model: ranking points, opponent strength, sort order.
"""
import pytest

from match_scheduler.services.ranking import (
    MatchResult,
    TeamRecord,
    compute_team_records,
    rank_records,
    ranking_points,
)


class TestRankingPoints:
    def test_two_per_win_one_per_tie(self):
        assert ranking_points(wins=3, ties=2) == 8

    def test_losses_count_nothing(self):
        assert TeamRecord(team_id=1, wins=0, losses=5, ties=0).ranking_points == 0


class TestComputeTeamRecords:
    def test_win_loss_and_points(self):
        records = compute_team_records([MatchResult(red=[1, 2], blue=[3, 4], red_score=50, blue_score=30)])
        assert records[1].wins == 1 and records[2].wins == 1
        assert records[3].losses == 1 and records[4].losses == 1
        assert records[1].points_scored == 50
        assert records[1].points_conceded == 30
        assert records[3].point_differential == -20
        assert records[1].ranking_points == 2

    def test_tie_gives_one_point_each(self):
        records = compute_team_records([MatchResult(red=[1], blue=[2], red_score=10, blue_score=10)])
        assert records[1].ties == 1
        assert records[2].ranking_points == 1

    def test_teams_without_results_get_zero_records(self):
        records = compute_team_records([], {7: 254, 8: 1114})
        assert set(records) == {7, 8}
        assert records[7].matches_played == 0
        assert records[7].team_number == 254

    def test_surrogate_appearance_not_counted_for_surrogate(self):
        results = [MatchResult(red=[1, 2], blue=[3, 4], red_score=40, blue_score=0, surrogates=frozenset({2}))]
        records = compute_team_records(results, {1: 1, 2: 2, 3: 3, 4: 4})
        assert records[2].matches_played == 0
        assert records[2].wins == 0
        assert records[1].wins == 1
        assert records[3].losses == 1

    def test_opponent_win_percentage_is_mean_of_opponents(self):
        results = [
            MatchResult(red=[1], blue=[2], red_score=10, blue_score=0),  # 1 beats 2
            MatchResult(red=[1], blue=[3], red_score=0, blue_score=10),  # 3 beats 1
            MatchResult(red=[2], blue=[3], red_score=10, blue_score=0),  # 2 beats 3
        ]
        records = compute_team_records(results)
        # Team 1 faced 2 (1/2) and 3 (1/2)
        assert records[1].opponent_win_percentage == pytest.approx(0.5)
        assert records[1].win_percentage == pytest.approx(0.5)


class TestRankOrder:
    def test_ranking_points_first(self):
        a = TeamRecord(team_id=1, team_number=1, wins=1)
        b = TeamRecord(team_id=2, team_number=2, wins=2)
        assert [r.team_id for r in rank_records([a, b])] == [2, 1]

    def test_opponent_strength_breaks_ties(self):
        a = TeamRecord(team_id=1, team_number=1, wins=1, opponent_win_percentage=0.2)
        b = TeamRecord(team_id=2, team_number=2, wins=1, opponent_win_percentage=0.8)
        assert [r.team_id for r in rank_records([a, b])] == [2, 1]

    def test_point_differential_then_points_scored(self):
        a = TeamRecord(team_id=1, team_number=1, wins=1, points_scored=50, points_conceded=40)
        b = TeamRecord(team_id=2, team_number=2, wins=1, points_scored=30, points_conceded=10)
        c = TeamRecord(team_id=3, team_number=3, wins=1, points_scored=60, points_conceded=40)
        assert [r.team_id for r in rank_records([a, b, c])] == [3, 2, 1]

    def test_full_tie_falls_back_to_team_number(self):
        a = TeamRecord(team_id=1, team_number=900)
        b = TeamRecord(team_id=2, team_number=100)
        assert [r.team_id for r in rank_records([a, b])] == [2, 1]
        assert [r.team_id for r in rank_records([b, a])] == [2, 1]

    def test_sort_key_follows_tiebreak_tuple(self):
        rec = TeamRecord(
            team_id=7, team_number=254, wins=2, ties=1, points_scored=80, points_conceded=50,
            opponent_win_percentage=0.5,
        )
        assert rec.tiebreak_tuple() == (0.5, 30, 80)
        assert rec.sort_key() == (-5, -0.5, -30, -80, 254, 7)
