from datetime import datetime, timezone
from typing import TYPE_CHECKING, List, Optional

from sqlalchemy import UniqueConstraint as SAUniqueConstraint
from sqlmodel import Field, Relationship, SQLModel

if TYPE_CHECKING:
    from match_scheduler.models.alliance import Alliance
    from match_scheduler.models.playing_field import PlayingField
    from match_scheduler.models.stage import Stage

MATCH_PENDING = "pending"
MATCH_IN_PROGRESS = "in_progress"
MATCH_COMPLETED = "completed"


class Match(SQLModel, table=True):
    __table_args__ = (SAUniqueConstraint("stage_id", "match_number", name="uq_stage_match_number"),)

    id: Optional[int] = Field(default=None, primary_key=True)
    stage_id: int = Field(foreign_key="stage.id", index=True)
    match_number: int  # Monotonic within the stage
    round_number: int = Field(default=1)
    bracket_slot: Optional[int] = Field(default=None)  # Dense index, continues across rounds
    record_bucket: Optional[str] = Field(default=None)  # "W-L" label for swiss rounds
    field_id: Optional[int] = Field(default=None, foreign_key="playingfield.id")
    scheduled_time: Optional[datetime] = Field(default=None)

    status: str = Field(default=MATCH_PENDING)  # "pending" | "in_progress" | "completed"
    winning_side: Optional[str] = Field(default=None)  # "red" | "blue" | None (tie)

    # Bracket graph: forward links by id, never owning references
    feeds_into_match_id: Optional[int] = Field(default=None, foreign_key="match.id")
    loser_feeds_into_match_id: Optional[int] = Field(default=None, foreign_key="match.id")
    advanced_at: Optional[datetime] = Field(default=None)

    started_at: Optional[datetime] = Field(default=None)
    completed_at: Optional[datetime] = Field(default=None)
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    # Relationships
    stage: "Stage" = Relationship(back_populates="matches")
    playing_field: Optional["PlayingField"] = Relationship()
    alliances: List["Alliance"] = Relationship(back_populates="match")
