from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import UniqueConstraint as SAUniqueConstraint
from sqlmodel import Field, SQLModel


class TeamStats(SQLModel, table=True):
    """Aggregated results for one team in one stage.

    Written by the standings refresh and the bracket finalizer only. Each stage keeps
    its own rows, so refreshing or pairing a later stage never alters an earlier one.
    """

    __table_args__ = (
        SAUniqueConstraint("team_id", "tournament_id", "stage_id", name="uq_team_stage_stats"),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    team_id: int = Field(foreign_key="team.id", index=True)
    tournament_id: int = Field(foreign_key="tournament.id", index=True)
    stage_id: int = Field(foreign_key="stage.id", index=True)

    wins: int = Field(default=0)
    losses: int = Field(default=0)
    ties: int = Field(default=0)
    points_scored: int = Field(default=0)
    points_conceded: int = Field(default=0)
    matches_played: int = Field(default=0)

    ranking_points: int = Field(default=0)
    opponent_win_percentage: float = Field(default=0.0)
    point_differential: int = Field(default=0)
    tiebreaker1: float = Field(default=0.0)  # opponent win percentage
    tiebreaker2: float = Field(default=0.0)  # points scored

    rank: Optional[int] = Field(default=None)  # Elimination placement
    updated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
