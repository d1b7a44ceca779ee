from datetime import datetime
from typing import List, Optional

from sqlalchemy import JSON, Column, UniqueConstraint
from sqlmodel import Field, SQLModel

from .base import new_id, timestamp_field, utcnow

LEAD_TIME_OPTIONS = (15, 30, 60, 120)
EVENT_FILTERS = ("all", "meetings", "custom")


class CalendarConnection(SQLModel, table=True):
    __tablename__ = "calendar_connections"

    id: str = Field(default_factory=new_id, primary_key=True)
    user_id: str = Field(index=True)
    provider: str = Field(default="google")
    email: str = Field(default="")
    is_active: bool = Field(default=True)
    auto_moment_enabled: bool = Field(default=True)
    lead_time_minutes: int = Field(default=30)
    event_filter: str = Field(default="all")
    custom_keywords: List[str] = Field(default_factory=list, sa_column=Column(JSON))
    last_sync_at: Optional[datetime] = timestamp_field(default=None)
    sync_error: Optional[str] = Field(default=None)
    created_at: datetime = timestamp_field(default_factory=utcnow)
    updated_at: datetime = timestamp_field(default_factory=utcnow)


class CalendarEvent(SQLModel, table=True):
    __tablename__ = "calendar_events_cache"
    __table_args__ = (
        UniqueConstraint("connection_id", "external_event_id", name="uq_calendar_events_external"),
    )

    id: str = Field(default_factory=new_id, primary_key=True)
    connection_id: str = Field(index=True)
    user_id: str = Field(index=True)
    external_event_id: str
    title: str
    description: Optional[str] = Field(default=None)
    start_time: datetime = timestamp_field()
    end_time: Optional[datetime] = timestamp_field(default=None)
    attendee_count: int = Field(default=0)
    moment_created: bool = Field(default=False)
    moment_id: Optional[str] = Field(default=None)
    created_at: datetime = timestamp_field(default_factory=utcnow)
    updated_at: datetime = timestamp_field(default_factory=utcnow)
