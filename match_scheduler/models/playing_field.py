from typing import TYPE_CHECKING, Optional

from sqlalchemy import UniqueConstraint as SAUniqueConstraint
from sqlmodel import Field, Relationship, SQLModel

if TYPE_CHECKING:
    from match_scheduler.models.tournament import Tournament


class PlayingField(SQLModel, table=True):
    """A physical field a match is played on. Numbered from 1 within a tournament."""

    __table_args__ = (SAUniqueConstraint("tournament_id", "number", name="uq_tournament_field_number"),)

    id: Optional[int] = Field(default=None, primary_key=True)
    tournament_id: int = Field(foreign_key="tournament.id", index=True)
    number: int
    name: Optional[str] = None

    # Relationships
    tournament: "Tournament" = Relationship(back_populates="playing_fields")
