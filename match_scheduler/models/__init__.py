from match_scheduler.models.alliance import Alliance, TeamAlliance
from match_scheduler.models.match import Match
from match_scheduler.models.playing_field import PlayingField
from match_scheduler.models.stage import Stage, StageType
from match_scheduler.models.team import Team
from match_scheduler.models.team_stats import TeamStats
from match_scheduler.models.tournament import Tournament

__all__ = [
    "Tournament",
    "Team",
    "PlayingField",
    "Stage",
    "StageType",
    "Match",
    "Alliance",
    "TeamAlliance",
    "TeamStats",
]
