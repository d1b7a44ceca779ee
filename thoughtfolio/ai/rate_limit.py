"""
Usage limits for AI features.

The per-user match limiter lives in process memory: it resets on restart
and is not shared between workers, which is fine for a soft usage cap.
The daily extraction quota is stored in the ``ai_usage`` table.
"""

import logging
import threading
import time
from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone
from typing import Callable, Dict, Optional

from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlmodel import Session, select

from ..config import settings
from ..models import AIUsage
from ..models.base import new_id, utcnow

log = logging.getLogger(__name__)

RATE_LIMIT_MESSAGE = "Rate limit exceeded. Try again in an hour."


@dataclass
class _Window:
    count: int
    reset_at: float


class RateLimiter:
    """Fixed-window request counter keyed by user id."""

    def __init__(self, limit: int, window_seconds: float, clock: Callable[[], float] = time.time):
        self.limit = limit
        self.window_seconds = window_seconds
        self.clock = clock
        self._windows: Dict[str, _Window] = {}
        self._lock = threading.Lock()

    def check(self, user_id: str) -> bool:
        """Count one request; False once the user is at the cap for this window."""
        now = self.clock()
        with self._lock:
            window = self._windows.get(user_id)
            if window is None or now > window.reset_at:
                self._windows[user_id] = _Window(count=1, reset_at=now + self.window_seconds)
                return True
            if window.count >= self.limit:
                log.info("Rate limit hit for user %s", user_id)
                return False
            window.count += 1
            return True

    def remaining(self, user_id: str) -> int:
        now = self.clock()
        with self._lock:
            window = self._windows.get(user_id)
            if window is None or now > window.reset_at:
                return self.limit
            return max(0, self.limit - window.count)

    def reset(self) -> None:
        with self._lock:
            self._windows.clear()


match_rate_limiter = RateLimiter(settings.match_rate_limit, settings.match_rate_window_seconds)


@dataclass
class UsageStatus:
    extractions_today: int
    extractions_remaining: int
    tokens_today: int
    can_extract: bool
    reset_time: datetime

    def to_dict(self) -> dict:
        return {
            "extractions_today": self.extractions_today,
            "extractions_remaining": self.extractions_remaining,
            "tokens_today": self.tokens_today,
            "can_extract": self.can_extract,
            "reset_time": self.reset_time.isoformat(),
        }


def _today() -> date:
    return datetime.now(timezone.utc).date()


def check_usage_limit(session: Session, user_id: str, today: Optional[date] = None) -> UsageStatus:
    today = today or _today()
    row = session.exec(
        select(AIUsage).where(AIUsage.user_id == user_id, AIUsage.usage_date == today)
    ).first()
    extractions = row.extraction_count if row else 0
    tokens = row.tokens_used if row else 0
    return UsageStatus(
        extractions_today=extractions,
        extractions_remaining=max(0, settings.daily_extraction_limit - extractions),
        tokens_today=tokens,
        can_extract=extractions < settings.daily_extraction_limit and tokens < settings.daily_token_limit,
        reset_time=datetime.combine(today + timedelta(days=1), datetime.min.time()),
    )


def record_usage(session: Session, user_id: str, tokens_used: int, today: Optional[date] = None) -> None:
    today = today or _today()
    insert = pg_insert if session.get_bind().dialect.name == "postgresql" else sqlite_insert
    now = utcnow()
    stmt = insert(AIUsage).values(
        id=new_id(), user_id=user_id, usage_date=today,
        extraction_count=1, tokens_used=tokens_used, updated_at=now,
    ).on_conflict_do_update(
        index_elements=["user_id", "usage_date"],
        set_={
            "extraction_count": AIUsage.extraction_count + 1,
            "tokens_used": AIUsage.tokens_used + tokens_used,
            "updated_at": now,
        },
    )
    session.exec(stmt)
    session.commit()
