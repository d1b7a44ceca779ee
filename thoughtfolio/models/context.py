from datetime import datetime
from typing import Optional

from sqlalchemy import UniqueConstraint
from sqlmodel import Field, SQLModel

from .base import new_id, timestamp_field, utcnow

CONTEXT_NAME_MAX_LENGTH = 50
CONTEXT_THOUGHT_LIMIT_MIN = 5
CONTEXT_THOUGHT_LIMIT_MAX = 100
CONTEXT_THOUGHT_LIMIT_DEFAULT = 20

DEFAULT_CONTEXT_COLORS = {
    "meetings": "#3B82F6",
    "feedback": "#8B5CF6",
    "conflict": "#EF4444",
    "focus": "#F97316",
    "health": "#22C55E",
    "relationships": "#EC4899",
    "parenting": "#EAB308",
    "other": "#6B7280",
}


class Context(SQLModel, table=True):
    __tablename__ = "contexts"
    __table_args__ = (UniqueConstraint("user_id", "slug", name="uq_contexts_user_slug"),)

    id: str = Field(default_factory=new_id, primary_key=True)
    user_id: str = Field(index=True)
    name: str
    slug: str
    color: Optional[str] = Field(default=None)
    icon: Optional[str] = Field(default=None)
    is_default: bool = Field(default=False)
    thought_limit: int = Field(default=CONTEXT_THOUGHT_LIMIT_DEFAULT)
    sort_order: int = Field(default=0)
    created_at: datetime = timestamp_field(default_factory=utcnow)
    updated_at: datetime = timestamp_field(default_factory=utcnow)
