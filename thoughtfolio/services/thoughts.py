"""
Thought lifecycle.

A thought is live (active or passive) until the user retires or graduates
it. Live thoughts on the Active List are ``active``; everything else live
is ``passive``. Check-ins count applications and skips; enough
applications let a thought graduate, enough skips mark it stale.
"""

import logging
from collections import Counter
from datetime import datetime, time
from typing import Any, Dict, List, Optional

from sqlalchemy import func, update
from sqlmodel import Session, select

from ..config import settings
from ..errors import LimitExceededError, NotFoundError, ValidationError
from ..models import Checkin, CheckinResponse, CheckinType, Context, Thought, ThoughtStatus
from ..models.base import utcnow
from ..models.thought import LIVE_STATUSES
from .contexts import (
    FALLBACK_SLUG,
    count_live_thoughts,
    ensure_default_contexts,
    get_context,
    get_context_by_slug,
)

log = logging.getLogger(__name__)

THOUGHT_MAX_LENGTH = 200
RETIRE_MODES = ("archive", "release")
# Check-ins that count toward applications and skips
COUNTING_CHECKINS = (CheckinType.DAILY_CHECKIN, CheckinType.EVENING_CHECKIN)


def validate_content(content) -> str:
    if not isinstance(content, str) or not content.strip():
        raise ValidationError("Thought content is required")
    content = content.strip()
    if len(content) > THOUGHT_MAX_LENGTH:
        raise ValidationError(f"Thought must be {THOUGHT_MAX_LENGTH} characters or less")
    return content


def thought_to_dict(thought: Thought) -> Dict[str, Any]:
    data = thought.model_dump(mode="json")
    data["is_stale"] = thought.skip_count >= settings.stale_skip_threshold
    data["can_graduate"] = thought.application_count >= settings.graduation_threshold
    return data


def get_thought(session: Session, user_id: str, thought_id: str) -> Thought:
    thought = session.exec(
        select(Thought).where(Thought.id == thought_id, Thought.user_id == user_id)
    ).first()
    if not thought:
        raise NotFoundError("Thought not found")
    return thought


def list_thoughts(session: Session, user_id: str, status: Optional[str] = None,
                  context_id: Optional[str] = None) -> List[Thought]:
    query = select(Thought).where(Thought.user_id == user_id)
    if status:
        try:
            query = query.where(Thought.status == ThoughtStatus(status))
        except ValueError:
            raise ValidationError("status must be one of active, passive, retired, graduated") from None
    else:
        query = query.where(Thought.status.in_(LIVE_STATUSES))
    if context_id:
        query = query.where(Thought.context_id == context_id)
    return session.exec(query.order_by(Thought.created_at.desc())).all()


def active_list_count(session: Session, user_id: str) -> int:
    return session.exec(
        select(func.count()).select_from(Thought).where(
            Thought.user_id == user_id,
            Thought.is_on_active_list == True,  # noqa: E712
            Thought.status.in_(LIVE_STATUSES),
        )
    ).one()


def _resolve_context(session: Session, user_id: str, context_id: Optional[str],
                     context_tag: Optional[str]) -> Optional[Context]:
    if context_id:
        return get_context(session, user_id, context_id)
    ensure_default_contexts(session, user_id)
    return get_context_by_slug(session, user_id, context_tag or FALLBACK_SLUG)


def create_thoughts(session: Session, user_id: str, items: List[Dict[str, Any]]) -> List[Thought]:
    """Create one or many thoughts; nothing is written if any would break a limit."""
    if not items:
        raise ValidationError("At least one thought is required")

    prepared = []
    for item in items:
        content = validate_content(item.get("content"))
        context = _resolve_context(session, user_id, item.get("context_id"), item.get("context_tag"))
        prepared.append((item, content, context))

    want_active = sum(1 for item, _, _ in prepared if item.get("is_on_active_list"))
    if want_active:
        available = settings.max_active_list - active_list_count(session, user_id)
        if want_active > available:
            available = max(0, available)
            raise LimitExceededError(
                f"Active List is limited to {settings.max_active_list} thoughts. "
                f"You have {available} slot{'' if available == 1 else 's'} available."
            )

    per_context = Counter(ctx.id for _, _, ctx in prepared if ctx)
    contexts = {ctx.id: ctx for _, _, ctx in prepared if ctx}
    for ctx_id, adding in per_context.items():
        ctx = contexts[ctx_id]
        if count_live_thoughts(session, user_id, ctx_id) + adding > ctx.thought_limit:
            raise LimitExceededError(f'Context "{ctx.name}" is limited to {ctx.thought_limit} thoughts')

    thoughts = []
    for item, content, ctx in prepared:
        on_list = bool(item.get("is_on_active_list"))
        thought = Thought(
            user_id=user_id,
            content=content,
            source=item.get("source") or None,
            source_url=item.get("source_url") or None,
            context_id=ctx.id if ctx else None,
            context_tag=ctx.slug if ctx else (item.get("context_tag") or FALLBACK_SLUG),
            is_on_active_list=on_list,
            status=ThoughtStatus.ACTIVE if on_list else ThoughtStatus.PASSIVE,
        )
        session.add(thought)
        thoughts.append(thought)
    session.commit()
    for t in thoughts:
        session.refresh(t)
    log.info("Created %d thoughts for user %s", len(thoughts), user_id)
    return thoughts


def update_thought(session: Session, user_id: str, thought_id: str, data: Dict[str, Any]) -> Thought:
    thought = get_thought(session, user_id, thought_id)
    if "content" in data:
        thought.content = validate_content(data["content"])
    for key in ("source", "source_url"):
        if key in data:
            setattr(thought, key, data[key] or None)
    if "context_id" in data and data["context_id"] != thought.context_id:
        ctx = get_context(session, user_id, data["context_id"])
        if thought.status in LIVE_STATUSES and count_live_thoughts(session, user_id, ctx.id) >= ctx.thought_limit:
            raise LimitExceededError(f'Context "{ctx.name}" is limited to {ctx.thought_limit} thoughts')
        thought.context_id = ctx.id
        thought.context_tag = ctx.slug
    thought.updated_at = utcnow()
    session.add(thought)
    session.commit()
    session.refresh(thought)
    return thought


def log_checkin(session: Session, user_id: str, thought_id: str, checkin_type: str,
                response: str, note: Optional[str] = None) -> Thought:
    thought = get_thought(session, user_id, thought_id)
    try:
        checkin_type = CheckinType(checkin_type)
        response = CheckinResponse(response)
    except ValueError:
        raise ValidationError("Invalid check-in type or response") from None

    now = utcnow()
    session.add(Checkin(user_id=user_id, gem_id=thought.id, checkin_type=checkin_type,
                        response=response, note=note or None))

    values: Dict[str, Any] = {"last_surfaced_at": now, "updated_at": now}
    if checkin_type in COUNTING_CHECKINS and response == CheckinResponse.YES:
        values["application_count"] = Thought.application_count + 1
        values["last_applied_at"] = now
    elif checkin_type in COUNTING_CHECKINS and response == CheckinResponse.NO:
        values["skip_count"] = Thought.skip_count + 1

    session.exec(update(Thought).where(Thought.id == thought.id, Thought.user_id == user_id).values(**values))
    session.commit()
    session.refresh(thought)
    return thought


def reset_skips(session: Session, user_id: str, thought_id: str) -> Thought:
    thought = get_thought(session, user_id, thought_id)
    thought.skip_count = 0
    thought.updated_at = utcnow()
    session.add(thought)
    session.commit()
    session.refresh(thought)
    return thought


def graduate_thought(session: Session, user_id: str, thought_id: str) -> Thought:
    thought = get_thought(session, user_id, thought_id)
    if thought.application_count < settings.graduation_threshold:
        raise ValidationError(
            f"Thought must have at least {settings.graduation_threshold} applications to graduate"
        )
    now = utcnow()
    thought.status = ThoughtStatus.GRADUATED
    thought.is_on_active_list = False
    thought.graduated_at = now
    thought.updated_at = now
    session.add(thought)
    session.commit()
    session.refresh(thought)
    log.info("Thought %s graduated after %d applications", thought.id, thought.application_count)
    return thought


def retire_thought(session: Session, user_id: str, thought_id: str, mode: str = "archive") -> Optional[Thought]:
    """Archive keeps the row as retired; release deletes it."""
    if mode not in RETIRE_MODES:
        raise ValidationError("mode must be archive or release")
    thought = get_thought(session, user_id, thought_id)

    if mode == "release":
        session.delete(thought)
        session.commit()
        log.info("Released thought %s", thought_id)
        return None

    now = utcnow()
    thought.status = ThoughtStatus.RETIRED
    thought.is_on_active_list = False
    thought.retired_at = now
    thought.updated_at = now
    session.add(thought)
    session.commit()
    session.refresh(thought)
    return thought


def restore_thought(session: Session, user_id: str, thought_id: str) -> Thought:
    thought = get_thought(session, user_id, thought_id)
    if thought.status != ThoughtStatus.RETIRED:
        raise ValidationError("Only retired thoughts can be restored")
    thought.status = ThoughtStatus.PASSIVE
    thought.is_on_active_list = False
    thought.retired_at = None
    thought.updated_at = utcnow()
    session.add(thought)
    session.commit()
    session.refresh(thought)
    return thought


def toggle_active_list(session: Session, user_id: str, thought_id: str,
                       on_list: Optional[bool] = None) -> Thought:
    thought = get_thought(session, user_id, thought_id)
    target = (not thought.is_on_active_list) if on_list is None else bool(on_list)

    if target and not thought.is_on_active_list:
        if thought.status not in LIVE_STATUSES:
            raise ValidationError("Only live thoughts can be added to the Active List")
        if active_list_count(session, user_id) >= settings.max_active_list:
            raise LimitExceededError(
                f"Active List is limited to {settings.max_active_list} thoughts. "
                "Remove one before adding another."
            )

    thought.is_on_active_list = target
    if thought.status in LIVE_STATUSES:
        thought.status = ThoughtStatus.ACTIVE if target else ThoughtStatus.PASSIVE
    thought.updated_at = utcnow()
    session.add(thought)
    session.commit()
    session.refresh(thought)
    return thought


def get_daily_thought(session: Session, user_id: str, now: Optional[datetime] = None) -> Dict[str, Any]:
    """Today's thought to reflect on, or ``already_checked_in`` if that's done."""
    now = now or utcnow()
    start_of_day = datetime.combine(now.date(), time.min)
    done = session.exec(
        select(Checkin.id).where(
            Checkin.user_id == user_id,
            Checkin.checkin_type.in_(COUNTING_CHECKINS),
            Checkin.created_at >= start_of_day,
        ).limit(1)
    ).first()
    if done:
        return {"thought": None, "already_checked_in": True}

    thought = session.exec(
        select(Thought)
        .where(
            Thought.user_id == user_id,
            Thought.is_on_active_list == True,  # noqa: E712
            Thought.status.in_(LIVE_STATUSES),
        )
        .order_by(Thought.last_surfaced_at.is_not(None), Thought.last_surfaced_at, Thought.created_at)
        .limit(1)
    ).first()
    return {"thought": thought_to_dict(thought) if thought else None, "already_checked_in": False}
