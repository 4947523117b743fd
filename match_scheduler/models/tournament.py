from datetime import datetime, timezone
from typing import TYPE_CHECKING, List, Optional

from sqlmodel import Field, Relationship, SQLModel

if TYPE_CHECKING:
    from match_scheduler.models.playing_field import PlayingField
    from match_scheduler.models.stage import Stage
    from match_scheduler.models.team import Team


class Tournament(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    name: str
    notes: Optional[str] = None
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    # Relationships
    teams: List["Team"] = Relationship(back_populates="tournament")
    playing_fields: List["PlayingField"] = Relationship(back_populates="tournament")
    stages: List["Stage"] = Relationship(back_populates="tournament")
