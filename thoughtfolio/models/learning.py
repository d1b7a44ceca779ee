from datetime import datetime
from enum import Enum
from typing import Optional

from sqlalchemy import UniqueConstraint
from sqlmodel import Field, SQLModel

from .base import new_id, timestamp_field, utcnow


class PatternType(str, Enum):
    EVENT_TYPE = "event_type"
    KEYWORD = "keyword"
    RECURRING = "recurring"
    ATTENDEE = "attendee"


class MomentLearning(SQLModel, table=True):
    """Helpful / not-helpful counters for one (pattern, thought) pair."""

    __tablename__ = "moment_learnings"
    __table_args__ = (
        UniqueConstraint("user_id", "pattern_type", "pattern_key", "gem_id",
                         name="uq_moment_learnings_pattern"),
    )

    id: str = Field(default_factory=new_id, primary_key=True)
    user_id: str = Field(index=True)
    pattern_type: PatternType
    pattern_key: str = Field(description="e.g. '1:1', 'career', 'event:abc123'")
    gem_id: str = Field(index=True)
    helpful_count: int = Field(default=0)
    not_helpful_count: int = Field(default=0)
    last_helpful_at: Optional[datetime] = timestamp_field(default=None)
    created_at: datetime = timestamp_field(default_factory=utcnow)
    updated_at: datetime = timestamp_field(default_factory=utcnow)
