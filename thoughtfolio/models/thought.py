from datetime import datetime
from enum import Enum
from typing import Optional

from sqlmodel import Field, SQLModel

from .base import new_id, timestamp_field, utcnow


class ThoughtStatus(str, Enum):
    ACTIVE = "active"
    PASSIVE = "passive"
    RETIRED = "retired"
    GRADUATED = "graduated"


# Statuses that count toward context limits and feed moment matching
LIVE_STATUSES = (ThoughtStatus.ACTIVE, ThoughtStatus.PASSIVE)


class Thought(SQLModel, table=True):
    __tablename__ = "gems"

    id: str = Field(default_factory=new_id, primary_key=True)
    user_id: str = Field(index=True)
    content: str = Field(description="The captured insight")
    source: Optional[str] = Field(default=None)
    source_url: Optional[str] = Field(default=None)
    context_id: Optional[str] = Field(default=None, index=True)
    context_tag: str = Field(default="other")
    status: ThoughtStatus = Field(default=ThoughtStatus.PASSIVE, index=True)
    is_on_active_list: bool = Field(default=False)
    application_count: int = Field(default=0)
    skip_count: int = Field(default=0)
    last_surfaced_at: Optional[datetime] = timestamp_field(default=None)
    last_applied_at: Optional[datetime] = timestamp_field(default=None)
    retired_at: Optional[datetime] = timestamp_field(default=None)
    graduated_at: Optional[datetime] = timestamp_field(default=None)
    created_at: datetime = timestamp_field(default_factory=utcnow)
    updated_at: datetime = timestamp_field(default_factory=utcnow)


class CheckinType(str, Enum):
    MORNING_PROMPT = "morning_prompt"
    EVENING_CHECKIN = "evening_checkin"
    DAILY_CHECKIN = "daily_checkin"


class CheckinResponse(str, Enum):
    YES = "yes"
    NO = "no"
    MAYBE = "maybe"


class Checkin(SQLModel, table=True):
    __tablename__ = "gem_checkins"

    id: str = Field(default_factory=new_id, primary_key=True)
    user_id: str = Field(index=True)
    gem_id: str = Field(index=True)
    checkin_type: CheckinType
    response: CheckinResponse
    note: Optional[str] = Field(default=None)
    created_at: datetime = timestamp_field(default_factory=utcnow)
