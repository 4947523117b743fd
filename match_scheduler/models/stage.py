from datetime import datetime, timezone
from enum import Enum
from typing import TYPE_CHECKING, List, Optional

from sqlalchemy import String
from sqlmodel import Column, Field, Relationship, SQLModel

if TYPE_CHECKING:
    from match_scheduler.models.match import Match
    from match_scheduler.models.tournament import Tournament


class StageType(str, Enum):
    qualification = "qualification"  # annealing optimizer
    swiss = "swiss"  # adaptive pairing, one round at a time
    playoff = "playoff"  # single-elimination bracket


STAGE_ACTIVE = "active"
STAGE_COMPLETED = "completed"


class Stage(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    tournament_id: int = Field(foreign_key="tournament.id", index=True)
    name: str
    stage_type: StageType = Field(sa_column=Column(String, nullable=False))
    teams_per_alliance: int = Field(default=2)
    status: str = Field(default=STAGE_ACTIVE)  # "active" | "completed"
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    # Relationships
    tournament: "Tournament" = Relationship(back_populates="stages")
    matches: List["Match"] = Relationship(back_populates="stage")
