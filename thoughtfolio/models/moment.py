from datetime import datetime
from enum import Enum
from typing import Optional

from sqlmodel import Field, SQLModel

from .base import new_id, timestamp_field, utcnow


class MomentSource(str, Enum):
    MANUAL = "manual"
    CALENDAR = "calendar"


class MomentStatus(str, Enum):
    ACTIVE = "active"
    COMPLETED = "completed"
    DISMISSED = "dismissed"


class MatchSource(str, Enum):
    AI = "ai"
    LEARNED = "learned"
    BOTH = "both"


class Moment(SQLModel, table=True):
    __tablename__ = "moments"

    id: str = Field(default_factory=new_id, primary_key=True)
    user_id: str = Field(index=True)
    description: str
    source: MomentSource = Field(default=MomentSource.MANUAL)
    status: MomentStatus = Field(default=MomentStatus.ACTIVE)
    calendar_event_id: Optional[str] = Field(default=None, index=True)
    calendar_event_title: Optional[str] = Field(default=None)
    calendar_event_start: Optional[datetime] = timestamp_field(default=None)
    detected_event_type: Optional[str] = Field(default=None)
    user_context: Optional[str] = Field(default=None)
    gems_matched_count: int = Field(default=0)
    ai_processing_time_ms: Optional[int] = Field(default=None)
    completed_at: Optional[datetime] = timestamp_field(default=None)
    created_at: datetime = timestamp_field(default_factory=utcnow)
    updated_at: datetime = timestamp_field(default_factory=utcnow)


class MomentThought(SQLModel, table=True):
    __tablename__ = "moment_gems"

    id: str = Field(default_factory=new_id, primary_key=True)
    moment_id: str = Field(index=True)
    gem_id: str = Field(index=True)
    user_id: str = Field(index=True)
    relevance_score: float
    relevance_reason: Optional[str] = Field(default=None)
    match_source: MatchSource = Field(default=MatchSource.AI)
    was_helpful: Optional[bool] = Field(default=None)
    was_reviewed: bool = Field(default=False)
    created_at: datetime = timestamp_field(default_factory=utcnow)
