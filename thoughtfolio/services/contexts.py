import logging
import re
from typing import Any, Dict, List, Optional

from sqlalchemy import func, update
from sqlmodel import Session, select

from ..errors import ConflictError, ForbiddenError, NotFoundError, ValidationError
from ..models import Context, Thought
from ..models.base import utcnow
from ..models.context import (
    CONTEXT_NAME_MAX_LENGTH,
    CONTEXT_THOUGHT_LIMIT_DEFAULT,
    CONTEXT_THOUGHT_LIMIT_MAX,
    CONTEXT_THOUGHT_LIMIT_MIN,
    DEFAULT_CONTEXT_COLORS,
)
from ..models.thought import LIVE_STATUSES

log = logging.getLogger(__name__)

FALLBACK_SLUG = "other"


def generate_slug(name: str) -> str:
    slug = re.sub(r"[^a-z0-9]+", "-", name.lower().strip())
    return slug.strip("-")


def ensure_default_contexts(session: Session, user_id: str) -> None:
    """Seed the built-in contexts the first time a user needs them."""
    existing = session.exec(select(Context.id).where(Context.user_id == user_id).limit(1)).first()
    if existing:
        return
    for order, (slug, color) in enumerate(DEFAULT_CONTEXT_COLORS.items()):
        session.add(Context(
            user_id=user_id,
            name=slug.capitalize(),
            slug=slug,
            color=color,
            is_default=True,
            sort_order=order,
        ))
    session.commit()
    log.info("Seeded default contexts for user %s", user_id)


def get_context(session: Session, user_id: str, context_id: str) -> Context:
    context = session.exec(
        select(Context).where(Context.id == context_id, Context.user_id == user_id)
    ).first()
    if not context:
        raise NotFoundError("Context not found")
    return context


def get_context_by_slug(session: Session, user_id: str, slug: str) -> Optional[Context]:
    return session.exec(
        select(Context).where(Context.user_id == user_id, Context.slug == slug)
    ).first()


def count_live_thoughts(session: Session, user_id: str, context_id: str) -> int:
    return session.exec(
        select(func.count()).select_from(Thought).where(
            Thought.user_id == user_id,
            Thought.context_id == context_id,
            Thought.status.in_(LIVE_STATUSES),
        )
    ).one()


def list_contexts(session: Session, user_id: str) -> List[Dict[str, Any]]:
    ensure_default_contexts(session, user_id)
    contexts = session.exec(
        select(Context).where(Context.user_id == user_id).order_by(Context.sort_order, Context.name)
    ).all()

    # Thoughts without a context_id still count toward the context their tag names
    slug_to_id = {c.slug: c.id for c in contexts}
    counts: Dict[str, int] = {}
    rows = session.exec(
        select(Thought.context_id, Thought.context_tag).where(
            Thought.user_id == user_id, Thought.status.in_(LIVE_STATUSES)
        )
    ).all()
    for context_id, context_tag in rows:
        key = context_id or slug_to_id.get(context_tag)
        if key:
            counts[key] = counts.get(key, 0) + 1

    return [{**c.model_dump(mode="json"), "thought_count": counts.get(c.id, 0)} for c in contexts]


def _validate_name(name) -> str:
    if not isinstance(name, str) or not name.strip():
        raise ValidationError("Context name is required")
    name = name.strip()
    if len(name) > CONTEXT_NAME_MAX_LENGTH:
        raise ValidationError(f"Context name must be {CONTEXT_NAME_MAX_LENGTH} characters or less")
    return name


def _validate_limit(limit) -> int:
    if isinstance(limit, bool) or not isinstance(limit, int) or not (
        CONTEXT_THOUGHT_LIMIT_MIN <= limit <= CONTEXT_THOUGHT_LIMIT_MAX
    ):
        raise ValidationError(
            f"Thought limit must be between {CONTEXT_THOUGHT_LIMIT_MIN} and {CONTEXT_THOUGHT_LIMIT_MAX}"
        )
    return limit


def _ensure_unique_name(session: Session, user_id: str, name: str, exclude_id: Optional[str] = None) -> None:
    query = select(Context.id).where(Context.user_id == user_id, func.lower(Context.name) == name.lower())
    if exclude_id:
        query = query.where(Context.id != exclude_id)
    if session.exec(query).first():
        raise ConflictError("A context with this name already exists")


def _unique_slug(session: Session, user_id: str, name: str, exclude_id: Optional[str] = None) -> str:
    base = generate_slug(name) or "context"
    slug, suffix = base, 0
    while True:
        query = select(Context.id).where(Context.user_id == user_id, Context.slug == slug)
        if exclude_id:
            query = query.where(Context.id != exclude_id)
        if not session.exec(query).first():
            return slug
        suffix += 1
        slug = f"{base}-{suffix}"


def create_context(session: Session, user_id: str, data: Dict[str, Any]) -> Context:
    ensure_default_contexts(session, user_id)
    name = _validate_name(data.get("name"))
    limit = data.get("thought_limit", CONTEXT_THOUGHT_LIMIT_DEFAULT)
    limit = _validate_limit(limit)
    _ensure_unique_name(session, user_id, name)

    max_order = session.exec(
        select(func.max(Context.sort_order)).where(Context.user_id == user_id)
    ).one()
    context = Context(
        user_id=user_id,
        name=name,
        slug=_unique_slug(session, user_id, name),
        color=data.get("color"),
        icon=data.get("icon"),
        thought_limit=limit,
        sort_order=(max_order or 0) + 1,
    )
    session.add(context)
    session.commit()
    session.refresh(context)
    return context


def update_context(session: Session, user_id: str, context_id: str, data: Dict[str, Any]) -> Context:
    context = get_context(session, user_id, context_id)

    if "name" in data:
        name = _validate_name(data["name"])
        if name.lower() != context.name.lower():
            _ensure_unique_name(session, user_id, name, exclude_id=context.id)
        if not context.is_default:
            context.slug = _unique_slug(session, user_id, name, exclude_id=context.id)
        context.name = name
    if "thought_limit" in data:
        context.thought_limit = _validate_limit(data["thought_limit"])
    for key in ("color", "icon", "sort_order"):
        if key in data:
            setattr(context, key, data[key])

    context.updated_at = utcnow()
    session.add(context)
    session.commit()
    session.refresh(context)
    return context


def delete_context(session: Session, user_id: str, context_id: str) -> None:
    context = get_context(session, user_id, context_id)
    if context.is_default:
        raise ForbiddenError("Cannot delete default contexts")

    other = get_context_by_slug(session, user_id, FALLBACK_SLUG)
    if not other:
        raise NotFoundError("Could not find 'Other' context for reassignment")

    session.exec(
        update(Thought)
        .where(Thought.user_id == user_id, Thought.context_id == context.id)
        .values(context_id=other.id, context_tag=FALLBACK_SLUG, updated_at=utcnow())
    )
    session.delete(context)
    session.commit()
    log.info("Deleted context %s, thoughts moved to %s", context_id, other.id)
