"""
Moment creation and enrichment.

Glues the title analyzer, learning store, recurring matcher and AI matcher
together around the ``moments`` / ``moment_gems`` tables.
"""

import logging
from typing import Any, Dict, List, Optional

from sqlalchemy import delete
from sqlmodel import Session, select

from ..ai.matching import match_thoughts_to_moment
from ..config import settings
from ..errors import NotFoundError, ValidationError
from ..models import (
    CalendarEvent,
    MatchSource,
    Moment,
    MomentSource,
    MomentThought,
    Thought,
)
from ..models.base import utcnow
from ..models.thought import LIVE_STATUSES
from .learning import LearnedThought, extract_patterns, get_learned_thoughts
from .recurring import check_recurring
from .title_analysis import combine_context_for_matching, detect_event_type

log = logging.getLogger(__name__)

CARRIED_FORWARD_SCORE = 0.9
CARRIED_FORWARD_REASON = "Helpful the last time you had this moment"


def _thoughts_for_matching(session: Session, user_id: str) -> List[Dict[str, Any]]:
    rows = session.exec(
        select(Thought).where(Thought.user_id == user_id, Thought.status.in_(LIVE_STATUSES))
    ).all()
    return [
        {"id": t.id, "content": t.content, "context_tag": t.context_tag, "source": t.source}
        for t in rows
    ]


def _learned_for(session: Session, user_id: str, moment: Moment) -> List[LearnedThought]:
    try:
        return get_learned_thoughts(session, user_id, extract_patterns(moment))
    except Exception:
        log.warning("Learned thoughts lookup failed for moment %s", moment.id, exc_info=True)
        return []


def get_moment(session: Session, user_id: str, moment_id: str) -> Moment:
    moment = session.exec(
        select(Moment).where(Moment.id == moment_id, Moment.user_id == user_id)
    ).first()
    if not moment:
        raise NotFoundError("Moment not found")
    return moment


async def _run_matching(session: Session, user_id: str, moment: Moment, text: str) -> None:
    thoughts = _thoughts_for_matching(session, user_id)
    learned = _learned_for(session, user_id, moment) if thoughts else []
    result = await match_thoughts_to_moment(text, thoughts, learned)

    for m in result["matches"]:
        session.add(MomentThought(
            moment_id=moment.id,
            gem_id=m["gem_id"],
            user_id=user_id,
            relevance_score=m["relevance_score"],
            relevance_reason=m["relevance_reason"],
            match_source=MatchSource(m.get("match_source", MatchSource.AI.value)),
        ))
    moment.gems_matched_count = len(result["matches"])
    moment.ai_processing_time_ms = result["processing_time_ms"]
    moment.updated_at = utcnow()
    session.add(moment)
    session.commit()
    log.info("Moment %s matched %d thoughts in %dms",
             moment.id, moment.gems_matched_count, moment.ai_processing_time_ms)


async def create_moment_with_matching(
    session: Session,
    user_id: str,
    description: str,
    source: MomentSource = MomentSource.MANUAL,
    calendar_data: Optional[Dict[str, Any]] = None,
    user_context: Optional[str] = None,
    detected_event_type: Optional[str] = None,
) -> Dict[str, Any]:
    description = (description or "").strip()
    if not description:
        raise ValidationError("Moment description is required")
    limit = settings.max_moment_description_length
    if len(description) > limit:
        raise ValidationError(f"Moment description must be {limit} characters or less")

    calendar_data = calendar_data or {}
    title = calendar_data.get("title")
    if not detected_event_type:
        detected_event_type = detect_event_type(title or description).value
    user_context = (user_context or "").strip() or None

    moment = Moment(
        user_id=user_id,
        description=description,
        source=MomentSource(source),
        calendar_event_id=calendar_data.get("event_id"),
        calendar_event_title=title,
        calendar_event_start=calendar_data.get("start_time"),
        detected_event_type=detected_event_type,
        user_context=user_context,
    )
    session.add(moment)
    session.commit()
    session.refresh(moment)

    await _run_matching(session, user_id, moment, combine_context_for_matching(description, user_context))
    return get_moment_with_thoughts(session, user_id, moment.id)


async def enrich_moment(
    session: Session,
    user_id: str,
    moment_id: str,
    user_context: str,
    detected_event_type: Optional[str] = None,
) -> Dict[str, Any]:
    """Attach the user's own context to a moment and match again."""
    moment = get_moment(session, user_id, moment_id)
    if not isinstance(user_context, str) or not user_context.strip():
        raise ValidationError("User context is required")
    user_context = user_context.strip()

    moment.user_context = user_context
    if detected_event_type:
        moment.detected_event_type = detected_event_type
    session.exec(delete(MomentThought).where(MomentThought.moment_id == moment.id))
    session.add(moment)
    session.commit()

    original = moment.calendar_event_title or moment.description
    await _run_matching(session, user_id, moment, combine_context_for_matching(original, user_context))
    return get_moment_with_thoughts(session, user_id, moment.id)


async def create_moment_from_event(session: Session, user_id: str, event_id: str) -> Dict[str, Any]:
    event = session.exec(
        select(CalendarEvent).where(CalendarEvent.id == event_id, CalendarEvent.user_id == user_id)
    ).first()
    if not event:
        raise NotFoundError("Calendar event not found")

    if event.moment_created and event.moment_id:
        result = get_moment_with_thoughts(session, user_id, event.moment_id)
        result["already_exists"] = True
        return result

    recurring = check_recurring(session, user_id, event_id=event.external_event_id, title=event.title)
    result = await create_moment_with_matching(
        session,
        user_id,
        description=event.title,
        source=MomentSource.CALENDAR,
        calendar_data={
            "event_id": event.external_event_id,
            "title": event.title,
            "start_time": event.start_time,
        },
    )
    moment_id = result["id"]

    if recurring.is_recurring:
        _carry_forward(session, user_id, moment_id, recurring.previous_helpful_thoughts)
        result = get_moment_with_thoughts(session, user_id, moment_id)

    event.moment_created = True
    event.moment_id = moment_id
    event.updated_at = utcnow()
    session.add(event)
    session.commit()

    result["already_exists"] = False
    result["recurring"] = recurring.to_dict()
    return result


def _carry_forward(session: Session, user_id: str, moment_id: str, gem_ids: List[str]) -> int:
    """Re-surface thoughts that helped at the previous occurrence."""
    if not gem_ids:
        return 0
    already = set(session.exec(
        select(MomentThought.gem_id).where(MomentThought.moment_id == moment_id)
    ).all())
    live = set(session.exec(
        select(Thought.id).where(
            Thought.user_id == user_id,
            Thought.id.in_(gem_ids),
            Thought.status.in_(LIVE_STATUSES),
        )
    ).all())

    added = 0
    for gem_id in gem_ids:
        if gem_id in already or gem_id not in live:
            continue
        session.add(MomentThought(
            moment_id=moment_id,
            gem_id=gem_id,
            user_id=user_id,
            relevance_score=CARRIED_FORWARD_SCORE,
            relevance_reason=CARRIED_FORWARD_REASON,
            match_source=MatchSource.LEARNED,
        ))
        already.add(gem_id)
        added += 1

    if added:
        moment = session.get(Moment, moment_id)
        moment.gems_matched_count += added
        session.add(moment)
        session.commit()
    return added


def moment_to_dict(moment: Moment) -> Dict[str, Any]:
    return moment.model_dump(mode="json")


def get_moment_with_thoughts(session: Session, user_id: str, moment_id: str) -> Dict[str, Any]:
    moment = get_moment(session, user_id, moment_id)
    rows = session.exec(
        select(MomentThought, Thought)
        .join(Thought, Thought.id == MomentThought.gem_id)
        .where(MomentThought.moment_id == moment.id)
        .order_by(MomentThought.relevance_score.desc())
    ).all()

    data = moment_to_dict(moment)
    data["matched_thoughts"] = [
        {
            "id": mt.id,
            "gem_id": mt.gem_id,
            "relevance_score": mt.relevance_score,
            "relevance_reason": mt.relevance_reason,
            "match_source": mt.match_source.value,
            "was_helpful": mt.was_helpful,
            "was_reviewed": mt.was_reviewed,
            "gem": {
                "id": t.id,
                "content": t.content,
                "source": t.source,
                "context_tag": t.context_tag,
            },
        }
        for mt, t in rows
    ]
    return data


def list_moments(session: Session, user_id: str, limit: int = 10,
                 source: Optional[str] = None) -> List[Dict[str, Any]]:
    query = select(Moment).where(Moment.user_id == user_id)
    if source:
        try:
            query = query.where(Moment.source == MomentSource(source))
        except ValueError:
            raise ValidationError("source must be manual or calendar") from None
    moments = session.exec(query.order_by(Moment.created_at.desc()).limit(limit)).all()
    return [moment_to_dict(m) for m in moments]
