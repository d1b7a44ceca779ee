from datetime import date, datetime
from enum import Enum
from typing import Optional

from sqlalchemy import UniqueConstraint
from sqlmodel import Field, SQLModel

from .base import new_id, timestamp_field, utcnow

SOURCE_TYPES = ("article", "video", "research", "blog", "book", "framework", "quote")
CONTENT_TYPES = ("trending", "evergreen")


class DiscoverySessionType(str, Enum):
    CURATED = "curated"
    DIRECTED = "directed"


class DiscoveryStatus(str, Enum):
    PENDING = "pending"
    SAVED = "saved"
    SKIPPED = "skipped"


class Discovery(SQLModel, table=True):
    __tablename__ = "discoveries"

    id: str = Field(default_factory=new_id, primary_key=True)
    user_id: str = Field(index=True)
    session_type: DiscoverySessionType
    query: Optional[str] = Field(default=None)
    context_id: Optional[str] = Field(default=None)
    thought_content: str
    source_title: str
    source_url: str = Field(default="")
    source_type: str = Field(default="article")
    article_summary: str = Field(default="")
    relevance_reason: str = Field(default="")
    content_type: str = Field(default="evergreen")
    suggested_context_id: Optional[str] = Field(default=None)
    status: DiscoveryStatus = Field(default=DiscoveryStatus.PENDING, index=True)
    saved_gem_id: Optional[str] = Field(default=None)
    # Set while the discovery sits on the reading list
    saved_at: Optional[datetime] = timestamp_field(default=None)
    created_at: datetime = timestamp_field(default_factory=utcnow)
    updated_at: datetime = timestamp_field(default_factory=utcnow)


class DiscoverySkip(SQLModel, table=True):
    __tablename__ = "discovery_skips"
    __table_args__ = (UniqueConstraint("user_id", "content_hash", name="uq_discovery_skips_hash"),)

    id: str = Field(default_factory=new_id, primary_key=True)
    user_id: str = Field(index=True)
    content_hash: str
    source_url: str = Field(default="")
    skipped_at: datetime = timestamp_field(default_factory=utcnow)


class DiscoveryUsage(SQLModel, table=True):
    __tablename__ = "discovery_usage"
    __table_args__ = (UniqueConstraint("user_id", "usage_date", name="uq_discovery_usage_day"),)

    id: str = Field(default_factory=new_id, primary_key=True)
    user_id: str = Field(index=True)
    usage_date: date
    curated_count: int = Field(default=0)
    directed_count: int = Field(default=0)
