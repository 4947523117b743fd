from datetime import datetime, timezone
from typing import TYPE_CHECKING, List, Optional

from sqlalchemy import UniqueConstraint as SAUniqueConstraint
from sqlmodel import Field, Relationship, SQLModel

if TYPE_CHECKING:
    from match_scheduler.models.alliance import TeamAlliance
    from match_scheduler.models.tournament import Tournament


class Team(SQLModel, table=True):
    __table_args__ = (
        # Display numbers are unique within a tournament
        SAUniqueConstraint("tournament_id", "team_number", name="uq_tournament_team_number"),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    tournament_id: int = Field(foreign_key="tournament.id", index=True)
    team_number: int  # Display number, e.g. 254
    name: str
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    # Relationships
    tournament: "Tournament" = Relationship(back_populates="teams")
    appearances: List["TeamAlliance"] = Relationship(back_populates="team")
