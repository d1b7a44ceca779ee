from datetime import date, datetime
from typing import Optional

from sqlalchemy import UniqueConstraint
from sqlmodel import Field, SQLModel

from .base import new_id, timestamp_field, utcnow


class Note(SQLModel, table=True):
    __tablename__ = "notes"

    id: str = Field(default_factory=new_id, primary_key=True)
    user_id: str = Field(index=True)
    title: Optional[str] = Field(default=None)
    content: str = Field(default="")
    created_at: datetime = timestamp_field(default_factory=utcnow)
    updated_at: datetime = timestamp_field(default_factory=utcnow)


class Source(SQLModel, table=True):
    __tablename__ = "sources"

    id: str = Field(default_factory=new_id, primary_key=True)
    user_id: str = Field(index=True)
    name: str
    author: Optional[str] = Field(default=None)
    url: Optional[str] = Field(default=None)
    source_type: str = Field(default="other")
    created_at: datetime = timestamp_field(default_factory=utcnow)
    updated_at: datetime = timestamp_field(default_factory=utcnow)


class AIUsage(SQLModel, table=True):
    __tablename__ = "ai_usage"
    __table_args__ = (UniqueConstraint("user_id", "usage_date", name="uq_ai_usage_day"),)

    id: str = Field(default_factory=new_id, primary_key=True)
    user_id: str = Field(index=True)
    usage_date: date
    extraction_count: int = Field(default=0)
    tokens_used: int = Field(default=0)
    updated_at: datetime = timestamp_field(default_factory=utcnow)
