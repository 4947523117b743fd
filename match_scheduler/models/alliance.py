from typing import TYPE_CHECKING, List, Optional

from sqlalchemy import UniqueConstraint as SAUniqueConstraint
from sqlmodel import Field, Relationship, SQLModel

if TYPE_CHECKING:
    from match_scheduler.models.match import Match
    from match_scheduler.models.team import Team

SIDE_RED = "red"
SIDE_BLUE = "blue"
SIDES = (SIDE_RED, SIDE_BLUE)


class Alliance(SQLModel, table=True):
    __table_args__ = (SAUniqueConstraint("match_id", "side", name="uq_match_side"),)

    id: Optional[int] = Field(default=None, primary_key=True)
    match_id: int = Field(foreign_key="match.id", index=True)
    side: str  # "red" | "blue"
    score: Optional[int] = Field(default=None)

    # Relationships
    match: "Match" = Relationship(back_populates="alliances")
    team_alliances: List["TeamAlliance"] = Relationship(back_populates="alliance")


class TeamAlliance(SQLModel, table=True):
    """One team's seat in an alliance. station_position is 1-based."""

    id: Optional[int] = Field(default=None, primary_key=True)
    alliance_id: int = Field(foreign_key="alliance.id", index=True)
    team_id: int = Field(foreign_key="team.id", index=True)
    station_position: int
    is_surrogate: bool = Field(default=False)  # Extra appearance, excluded from standings

    # Relationships
    alliance: "Alliance" = Relationship(back_populates="team_alliances")
    team: "Team" = Relationship(back_populates="appearances")
