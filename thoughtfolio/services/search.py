from dataclasses import asdict, dataclass
from typing import Any, Dict, List, Optional

from sqlalchemy import or_
from sqlmodel import Session, select

from ..errors import ValidationError
from ..models import Note, Source, Thought, ThoughtStatus

RESULT_TYPES = ("thought", "note", "source")
DEFAULT_LIMIT = 20
MAX_LIMIT = 100
NOTE_PREVIEW_LENGTH = 100

# Higher is better
RANK_PRIMARY = 1.0
RANK_TITLE = 0.9
RANK_SECONDARY = 0.5


@dataclass
class SearchResult:
    id: str
    type: str
    text: str
    secondary_text: Optional[str]
    context_id: Optional[str]
    created_at: str
    rank: float


def _contains(needle: str, text: Optional[str]) -> bool:
    return bool(text) and needle in text.lower()


def _search_thoughts(session: Session, user_id: str, q: str, context_id: Optional[str]) -> List[SearchResult]:
    query = select(Thought).where(
        Thought.user_id == user_id,
        Thought.status != ThoughtStatus.RETIRED,
        or_(Thought.content.icontains(q, autoescape=True), Thought.source.icontains(q, autoescape=True)),
    )
    if context_id:
        query = query.where(Thought.context_id == context_id)
    needle = q.lower()
    return [
        SearchResult(
            id=t.id,
            type="thought",
            text=t.content,
            secondary_text=t.source,
            context_id=t.context_id,
            created_at=t.created_at.isoformat(),
            rank=RANK_PRIMARY if _contains(needle, t.content) else RANK_SECONDARY,
        )
        for t in session.exec(query).all()
    ]


def _search_notes(session: Session, user_id: str, q: str) -> List[SearchResult]:
    query = select(Note).where(
        Note.user_id == user_id,
        or_(Note.title.icontains(q, autoescape=True), Note.content.icontains(q, autoescape=True)),
    )
    needle = q.lower()
    return [
        SearchResult(
            id=n.id,
            type="note",
            text=n.title or "Untitled Note",
            secondary_text=(n.content or "")[:NOTE_PREVIEW_LENGTH] or None,
            context_id=None,
            created_at=n.created_at.isoformat(),
            rank=RANK_TITLE if _contains(needle, n.title) else RANK_SECONDARY,
        )
        for n in session.exec(query).all()
    ]


def _search_sources(session: Session, user_id: str, q: str) -> List[SearchResult]:
    query = select(Source).where(
        Source.user_id == user_id,
        or_(Source.name.icontains(q, autoescape=True), Source.author.icontains(q, autoescape=True)),
    )
    needle = q.lower()
    return [
        SearchResult(
            id=s.id,
            type="source",
            text=s.name,
            secondary_text=s.author,
            context_id=None,
            created_at=s.created_at.isoformat(),
            rank=RANK_TITLE if _contains(needle, s.name) else RANK_SECONDARY,
        )
        for s in session.exec(query).all()
    ]


def search_knowledge(
    session: Session,
    user_id: str,
    q: Optional[str],
    result_type: Optional[str] = None,
    context_id: Optional[str] = None,
    limit: int = DEFAULT_LIMIT,
    offset: int = 0,
) -> Dict[str, Any]:
    """Substring search across thoughts, notes and sources."""
    q = (q or "").strip()
    if not q:
        return {"results": [], "total": 0, "query": ""}
    if result_type and result_type not in RESULT_TYPES:
        raise ValidationError("type must be one of thought, note, source")
    if not 0 < limit <= MAX_LIMIT:
        limit = DEFAULT_LIMIT
    offset = max(0, offset)

    results: List[SearchResult] = []
    if result_type in (None, "thought"):
        results.extend(_search_thoughts(session, user_id, q, context_id))
    # Notes and sources carry no context
    if not context_id:
        if result_type in (None, "note"):
            results.extend(_search_notes(session, user_id, q))
        if result_type in (None, "source"):
            results.extend(_search_sources(session, user_id, q))

    results.sort(key=lambda r: r.created_at, reverse=True)
    results.sort(key=lambda r: r.rank, reverse=True)
    page = results[offset:offset + limit]
    return {"results": [asdict(r) for r in page], "total": len(results), "query": q}
