import logging
from dataclasses import dataclass, field
from typing import List, Optional

from sqlmodel import Session, select

from ..models import Moment, MomentThought
from .learning import base_event_id

log = logging.getLogger(__name__)

RECENT_MOMENTS_SCANNED = 50


@dataclass
class RecurringMatch:
    is_recurring: bool
    match_type: Optional[str] = None  # exact_event_id | fuzzy_pattern
    previous_moment_id: Optional[str] = None
    previous_helpful_thoughts: List[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "is_recurring": self.is_recurring,
            "match_type": self.match_type,
            "previous_moment_id": self.previous_moment_id,
            "previous_helpful_thoughts": self.previous_helpful_thoughts,
        }


def titles_match(a: str, b: str) -> bool:
    a, b = a.lower().strip(), b.lower().strip()
    if not a or not b:
        return False
    return a == b or a in b or b in a


def _helpful_thoughts(session: Session, moment_id: str) -> List[str]:
    return list(session.exec(
        select(MomentThought.gem_id).where(
            MomentThought.moment_id == moment_id,
            MomentThought.was_helpful == True,  # noqa: E712
        )
    ).all())


def check_recurring(
    session: Session,
    user_id: str,
    event_id: Optional[str] = None,
    title: Optional[str] = None,
) -> RecurringMatch:
    """Has the user had this moment before?

    First by calendar event id (recurring instances share a base id), then
    by title against the user's recent calendar moments.
    """
    scope = [Moment.user_id == user_id]

    if event_id:
        previous = session.exec(
            select(Moment)
            .where(
                *scope,
                Moment.calendar_event_id.startswith(base_event_id(event_id), autoescape=True),
                Moment.calendar_event_id != event_id,
            )
            .order_by(Moment.created_at.desc())
            .limit(1)
        ).first()
        if previous:
            return RecurringMatch(
                is_recurring=True,
                match_type="exact_event_id",
                previous_moment_id=previous.id,
                previous_helpful_thoughts=_helpful_thoughts(session, previous.id),
            )

    if title and title.strip():
        recent = session.exec(
            select(Moment)
            .where(*scope, Moment.calendar_event_title.is_not(None))
            .order_by(Moment.created_at.desc())
            .limit(RECENT_MOMENTS_SCANNED)
        ).all()
        for candidate in recent:
            if titles_match(candidate.calendar_event_title, title):
                log.debug("Fuzzy recurring match %r ~ %r", title, candidate.calendar_event_title)
                return RecurringMatch(
                    is_recurring=True,
                    match_type="fuzzy_pattern",
                    previous_moment_id=candidate.id,
                    previous_helpful_thoughts=_helpful_thoughts(session, candidate.id),
                )

    return RecurringMatch(is_recurring=False)
