"""
Discovery: AI-suggested reading tied to the user's contexts.

Each user gets one ``curated`` and one ``directed`` session per UTC day.
Curated sessions lean toward the contexts that hold most of the user's
thoughts; directed sessions answer a query. Generation tries a grounded
web search first and falls back to the plain model. Skipped sources are
remembered by hash and never suggested again.
"""

import hashlib
import json
import logging
from collections import Counter
from datetime import date, datetime, timezone
from typing import Any, Dict, List, Optional

from sqlalchemy import func
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlmodel import Session, select

from ..ai.gemini import gemini_client, text_part
from ..ai.prompts import DISCOVERY_FALLBACK_PROMPT, DISCOVERY_SEARCH_PROMPT
from ..config import settings
from ..errors import AIUnavailableError, ConflictError, NotFoundError, QuotaExceededError, ValidationError
from ..models import (
    Context,
    Discovery,
    DiscoverySessionType,
    DiscoverySkip,
    DiscoveryStatus,
    DiscoveryUsage,
    Note,
    Thought,
)
from ..models.base import new_id, utcnow
from ..models.discovery import CONTENT_TYPES, SOURCE_TYPES
from ..models.thought import LIVE_STATUSES
from .capture import NOTE_TITLE_LENGTH
from .contexts import ensure_default_contexts, get_context
from .thoughts import create_thoughts, thought_to_dict, validate_content

log = logging.getLogger(__name__)

THOUGHT_CONTENT_LENGTH = 300
SAMPLE_THOUGHTS = 15
TOP_WEIGHTED_CONTEXTS = 3

SESSION_USED_MESSAGE = "You've used your {mode} discovery session for today. Try again tomorrow!"
GENERATION_FAILED_MESSAGE = "Failed to generate discoveries. Please try again."


def hash_url(url: str) -> str:
    return hashlib.sha256(url.lower().strip().encode("utf-8")).hexdigest()


def source_hash(source_url: str, source_title: str = "") -> str:
    # Fallback suggestions often carry no URL, so the title stands in
    return hash_url(source_url or source_title)


def _today() -> date:
    return datetime.now(timezone.utc).date()


def get_discovery_usage(session: Session, user_id: str, today: Optional[date] = None) -> Dict[str, Any]:
    today = today or _today()
    row = session.exec(
        select(DiscoveryUsage).where(DiscoveryUsage.user_id == user_id, DiscoveryUsage.usage_date == today)
    ).first()
    curated = row.curated_count if row else 0
    directed = row.directed_count if row else 0
    return {
        "curated_used": curated >= settings.daily_curated_limit,
        "directed_used": directed >= settings.daily_directed_limit,
        "curated_remaining": max(0, settings.daily_curated_limit - curated),
        "directed_remaining": max(0, settings.daily_directed_limit - directed),
    }


def increment_usage(session: Session, user_id: str, mode: DiscoverySessionType,
                    today: Optional[date] = None) -> None:
    today = today or _today()
    insert = pg_insert if session.get_bind().dialect.name == "postgresql" else sqlite_insert
    column = "curated_count" if mode == DiscoverySessionType.CURATED else "directed_count"
    stmt = insert(DiscoveryUsage).values(
        id=new_id(),
        user_id=user_id,
        usage_date=today,
        curated_count=int(mode == DiscoverySessionType.CURATED),
        directed_count=int(mode == DiscoverySessionType.DIRECTED),
    ).on_conflict_do_update(
        index_elements=["user_id", "usage_date"],
        set_={column: getattr(DiscoveryUsage, column) + 1},
    )
    session.exec(stmt)
    session.commit()


def get_context_weights(session: Session, user_id: str) -> List[Dict[str, Any]]:
    """Share of the user's live thoughts held by each non-empty context."""
    contexts = session.exec(select(Context).where(Context.user_id == user_id)).all()
    counts = Counter(session.exec(
        select(Thought.context_id).where(
            Thought.user_id == user_id,
            Thought.status.in_(LIVE_STATUSES),
            Thought.context_id.is_not(None),
        )
    ).all())
    total = sum(counts.values())

    weights = [
        {
            "context_id": c.id,
            "context_name": c.name,
            "thought_count": counts[c.id],
            "weight": counts[c.id] / total,
        }
        for c in contexts if counts[c.id] > 0
    ]
    weights.sort(key=lambda w: w["weight"], reverse=True)
    return weights


def get_sample_thoughts(session: Session, user_id: str, limit: int = SAMPLE_THOUGHTS) -> List[Dict[str, Any]]:
    rows = session.exec(
        select(Thought.content, Context.name)
        .join(Context, Context.id == Thought.context_id, isouter=True)
        .where(Thought.user_id == user_id, Thought.status.in_(LIVE_STATUSES))
        .order_by(Thought.created_at.desc())
        .limit(limit)
    ).all()
    return [{"content": content, "context_name": name} for content, name in rows]


def get_bootstrap_status(session: Session, user_id: str) -> Dict[str, Any]:
    """Does the user have enough material for discovery to be useful?"""
    context_count = session.exec(
        select(func.count()).select_from(Context).where(Context.user_id == user_id)
    ).one()
    thought_count = session.exec(
        select(func.count()).select_from(Thought).where(
            Thought.user_id == user_id, Thought.status.in_(LIVE_STATUSES)
        )
    ).one()
    return {
        "needs_bootstrap": (context_count < settings.bootstrap_min_contexts
                            or thought_count < settings.bootstrap_min_thoughts),
        "context_count": context_count,
        "thought_count": thought_count,
        "min_contexts": settings.bootstrap_min_contexts,
        "min_thoughts": settings.bootstrap_min_thoughts,
    }


def get_usage_summary(session: Session, user_id: str) -> Dict[str, Any]:
    return {**get_discovery_usage(session, user_id), **get_bootstrap_status(session, user_id)}


def is_skipped(session: Session, user_id: str, content_hash: str) -> bool:
    return session.exec(
        select(DiscoverySkip.id).where(
            DiscoverySkip.user_id == user_id, DiscoverySkip.content_hash == content_hash
        )
    ).first() is not None


def _format_contexts(contexts: List[Context]) -> str:
    return "\n".join(f"- {c.slug}: {c.name}" for c in contexts)


def _format_samples(samples: List[Dict[str, Any]]) -> str:
    if not samples:
        return "(none yet)"
    lines = []
    for s in samples:
        context = f" ({s['context_name']})" if s.get("context_name") else ""
        lines.append(f'- "{s["content"]}"{context}')
    return "\n".join(lines)


def _focus(mode: DiscoverySessionType, query: str, focus_context: Optional[Context],
           weights: List[Dict[str, Any]]) -> str:
    if mode == DiscoverySessionType.DIRECTED:
        focus = f"THEY ASKED ABOUT: {query}"
        if focus_context:
            focus += f'\nKeep it relevant to their "{focus_context.name}" context.'
        return focus
    if focus_context:
        return f'FOCUS on their "{focus_context.name}" context.'
    if weights:
        top = ", ".join(
            f"{w['context_name']} ({round(w['weight'] * 100)}%)" for w in weights[:TOP_WEIGHTED_CONTEXTS]
        )
        return f"LEAN TOWARD the contexts holding most of their thoughts: {top}."
    return "Spread the picks across their contexts."


def parse_generated(text: str, grounded: bool) -> List[Dict[str, str]]:
    """Normalise the model's discoveries; drop items without a takeaway or title."""
    parsed = json.loads(text)
    items = parsed.get("discoveries") if isinstance(parsed, dict) else parsed
    if not isinstance(items, list):
        return []

    generated = []
    for item in items:
        if not isinstance(item, dict):
            continue
        content = str(item.get("thought_content") or "").strip()
        title = str(item.get("source_title") or "").strip()
        if not content or not title:
            continue
        source_type = str(item.get("source_type") or "").lower()
        content_type = str(item.get("content_type") or "").lower()
        generated.append({
            "thought_content": content[:THOUGHT_CONTENT_LENGTH],
            "source_title": title,
            "source_url": str(item.get("source_url") or "").strip(),
            "source_type": source_type if source_type in SOURCE_TYPES else "article",
            "article_summary": str(item.get("article_summary") or "").strip(),
            "relevance_reason": str(item.get("relevance_reason") or "").strip(),
            # Without search the model cannot know what is recent
            "content_type": content_type if grounded and content_type in CONTENT_TYPES else "evergreen",
            "suggested_context_slug": str(item.get("suggested_context_slug") or "").strip(),
        })
    return generated


def discovery_to_dict(discovery: Discovery, context_names: Dict[str, str]) -> Dict[str, Any]:
    data = discovery.model_dump(mode="json")
    data["suggested_context_name"] = context_names.get(discovery.suggested_context_id)
    return data


def _context_names(session: Session, user_id: str) -> Dict[str, str]:
    return dict(session.exec(select(Context.id, Context.name).where(Context.user_id == user_id)).all())


async def generate_discoveries(session: Session, user_id: str, mode, query: Optional[str] = None,
                               context_id: Optional[str] = None) -> Dict[str, Any]:
    try:
        mode = DiscoverySessionType(mode)
    except ValueError:
        raise ValidationError("Invalid mode. Must be 'curated' or 'directed'") from None
    query = query.strip() if isinstance(query, str) else ""
    if mode == DiscoverySessionType.DIRECTED and not query:
        raise ValidationError("Query is required for directed mode")

    usage = get_discovery_usage(session, user_id)
    if usage[f"{mode.value}_used"]:
        raise QuotaExceededError(SESSION_USED_MESSAGE.format(mode=mode.value))

    ensure_default_contexts(session, user_id)
    contexts = session.exec(
        select(Context).where(Context.user_id == user_id).order_by(Context.sort_order, Context.name)
    ).all()
    focus_context = get_context(session, user_id, context_id) if context_id else None
    weights = get_context_weights(session, user_id) if mode == DiscoverySessionType.CURATED else []

    fields = {
        "contexts_list": _format_contexts(contexts),
        "thoughts_list": _format_samples(get_sample_thoughts(session, user_id)),
        "focus": _focus(mode, query, focus_context, weights),
        "count": settings.discoveries_per_session * 2,
    }
    try:
        text, _tokens, grounded = await gemini_client.search_with_fallback(
            [text_part(DISCOVERY_SEARCH_PROMPT.format(**fields))],
            [text_part(DISCOVERY_FALLBACK_PROMPT.format(**fields))],
            timeout=settings.discovery_timeout_seconds,
        )
        generated = parse_generated(text, grounded)
    except (AIUnavailableError, json.JSONDecodeError) as e:
        log.error("Discovery generation failed for user %s: %s", user_id, e)
        raise AIUnavailableError(GENERATION_FAILED_MESSAGE) from e

    if not generated:
        raise NotFoundError("No discoveries found. Try a different search or context.")

    by_slug = {c.slug: c for c in contexts}
    seen = set()
    discoveries = []
    for item in generated:
        key = source_hash(item["source_url"], item["source_title"])
        if key in seen or is_skipped(session, user_id, key):
            continue
        seen.add(key)
        suggested = by_slug.get(item.pop("suggested_context_slug"))
        discoveries.append(Discovery(
            user_id=user_id,
            session_type=mode,
            query=query if mode == DiscoverySessionType.DIRECTED else None,
            context_id=focus_context.id if focus_context else None,
            suggested_context_id=suggested.id if suggested else None,
            **item,
        ))
        if len(discoveries) == settings.discoveries_per_session:
            break

    session.add_all(discoveries)
    session.commit()
    for d in discoveries:
        session.refresh(d)
    increment_usage(session, user_id, mode)
    log.info("Stored %d %s discoveries for user %s (grounded=%s)", len(discoveries), mode.value, user_id, grounded)

    usage = get_discovery_usage(session, user_id)
    names = {c.id: c.name for c in contexts}
    return {
        "discoveries": [discovery_to_dict(d, names) for d in discoveries],
        "session_type": mode.value,
        "remaining_curated": usage["curated_remaining"],
        "remaining_directed": usage["directed_remaining"],
        "grounded": grounded,
    }


def get_discovery(session: Session, user_id: str, discovery_id: str) -> Discovery:
    discovery = session.exec(
        select(Discovery).where(Discovery.id == discovery_id, Discovery.user_id == user_id)
    ).first()
    if not discovery:
        raise NotFoundError("Discovery not found")
    return discovery


def save_discovery(session: Session, user_id: str, data: Dict[str, Any]) -> Dict[str, Any]:
    """Turn a discovery into a thought, optionally keeping the article as a note."""
    discovery_id = data.get("discovery_id")
    if not discovery_id:
        raise ValidationError("Discovery ID is required")
    content = validate_content(data.get("thought_content"))
    context_id = data.get("context_id")
    if not context_id:
        raise ValidationError("Context ID is required")

    discovery = get_discovery(session, user_id, discovery_id)
    if discovery.status == DiscoveryStatus.SAVED:
        raise ConflictError("This discovery has already been saved")

    [thought] = create_thoughts(session, user_id, [{
        "content": content,
        "context_id": context_id,
        "source": discovery.source_title,
        "source_url": discovery.source_url,
        "is_on_active_list": bool(data.get("is_on_active_list")),
    }])

    note = None
    if data.get("save_article_as_note"):
        body = "\n\n".join(part for part in (discovery.article_summary, discovery.source_url) if part)
        note = Note(user_id=user_id, title=discovery.source_title[:NOTE_TITLE_LENGTH], content=body)
        session.add(note)

    discovery.status = DiscoveryStatus.SAVED
    discovery.saved_gem_id = thought.id
    discovery.updated_at = utcnow()
    session.add(discovery)
    session.commit()
    session.refresh(thought)
    return {
        "thought": thought_to_dict(thought),
        "note_id": note.id if note else None,
        "message": "Discovery saved as thought successfully",
    }


def _remember_skip(session: Session, user_id: str, discovery: Discovery) -> None:
    insert = pg_insert if session.get_bind().dialect.name == "postgresql" else sqlite_insert
    stmt = insert(DiscoverySkip).values(
        id=new_id(),
        user_id=user_id,
        content_hash=source_hash(discovery.source_url, discovery.source_title),
        source_url=discovery.source_url,
        skipped_at=utcnow(),
    ).on_conflict_do_nothing(index_elements=["user_id", "content_hash"])
    session.exec(stmt)


def skip_discovery(session: Session, user_id: str, discovery_id: Optional[str]) -> Dict[str, Any]:
    if not discovery_id:
        raise ValidationError("Discovery ID is required")
    discovery = get_discovery(session, user_id, discovery_id)
    if discovery.status != DiscoveryStatus.PENDING:
        raise ConflictError("This discovery has already been processed")

    discovery.status = DiscoveryStatus.SKIPPED
    discovery.updated_at = utcnow()
    session.add(discovery)
    _remember_skip(session, user_id, discovery)
    session.commit()
    return {"success": True, "message": "Discovery skipped"}


def set_bookmark(session: Session, user_id: str, discovery_id: Optional[str], saved: bool) -> Dict[str, Any]:
    """Put a discovery on the reading list, or take it off."""
    if not discovery_id:
        raise ValidationError("Discovery ID is required")
    discovery = get_discovery(session, user_id, discovery_id)
    discovery.saved_at = utcnow() if saved else None
    discovery.updated_at = utcnow()
    session.add(discovery)
    session.commit()
    session.refresh(discovery)
    return {
        "discovery": discovery_to_dict(discovery, _context_names(session, user_id)),
        "message": "Discovery saved for later" if saved else "Discovery removed from saved list",
    }


def list_saved_discoveries(session: Session, user_id: str) -> Dict[str, Any]:
    rows = session.exec(
        select(Discovery)
        .where(Discovery.user_id == user_id, Discovery.saved_at.is_not(None))
        .order_by(Discovery.saved_at.desc())
    ).all()
    names = _context_names(session, user_id)
    return {"discoveries": [discovery_to_dict(d, names) for d in rows], "count": len(rows)}
