"""
Moment learning store.

Remembers which thoughts the user found helpful for which kinds of
moments, keyed by pattern (event type, keyword, recurring calendar event),
and turns those counters back into suggestions for new moments.
"""

import logging
from collections import Counter
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

from sqlalchemy import update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlmodel import Session, select

from ..config import settings
from ..models import Moment, MomentLearning, MomentThought, PatternType, Thought
from ..models.base import new_id, utcnow
from .keywords import extract_keywords
from .title_analysis import EventType

log = logging.getLogger(__name__)

MAX_KEYWORD_PATTERNS = 5

_INSERTS = {"postgresql": pg_insert, "sqlite": sqlite_insert}


@dataclass
class MomentPatterns:
    event_type: Optional[str] = None
    keywords: List[str] = field(default_factory=list)
    external_event_id: Optional[str] = None
    user_context: Optional[str] = None


@dataclass
class LearnedThought:
    gem_id: str
    gem_content: str
    confidence_score: float
    helpful_count: int
    pattern_sources: List[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "gem_id": self.gem_id,
            "gem_content": self.gem_content,
            "confidence_score": self.confidence_score,
            "helpful_count": self.helpful_count,
            "pattern_sources": self.pattern_sources,
        }


def base_event_id(event_id: str) -> str:
    """Recurring instances share everything before the first underscore."""
    return event_id.split("_", 1)[0]


def extract_patterns(moment: Moment) -> MomentPatterns:
    keywords = extract_keywords(f"{moment.description} {moment.user_context or ''}")
    return MomentPatterns(
        event_type=moment.detected_event_type,
        keywords=keywords,
        external_event_id=moment.calendar_event_id or None,
        user_context=moment.user_context or None,
    )


def _has_event_type(patterns: MomentPatterns) -> bool:
    return bool(patterns.event_type) and patterns.event_type != EventType.UNKNOWN.value


def _pattern_keys(patterns: MomentPatterns, keyword_limit: Optional[int] = None) -> List[Tuple[PatternType, str]]:
    keys: List[Tuple[PatternType, str]] = []
    if _has_event_type(patterns):
        keys.append((PatternType.EVENT_TYPE, getattr(patterns.event_type, "value", patterns.event_type)))
    keywords = patterns.keywords if keyword_limit is None else patterns.keywords[:keyword_limit]
    keys.extend((PatternType.KEYWORD, kw) for kw in keywords)
    if patterns.external_event_id:
        keys.append((PatternType.RECURRING, f"event:{base_event_id(patterns.external_event_id)}"))
    return keys


def _insert_for(session: Session):
    dialect = session.get_bind().dialect.name
    try:
        return _INSERTS[dialect]
    except KeyError:
        raise NotImplementedError(f"No atomic upsert for dialect {dialect!r}") from None


def record_helpful(session: Session, user_id: str, moment: Moment, gem_id: str) -> int:
    """Count a helpful mark against every pattern of ``moment``.

    Each pattern is a single INSERT .. ON CONFLICT DO UPDATE so two
    simultaneous marks both land and never create duplicate rows.
    Returns the number of patterns touched.
    """
    insert = _insert_for(session)
    keys = _pattern_keys(extract_patterns(moment), keyword_limit=MAX_KEYWORD_PATTERNS)
    now = utcnow()

    for pattern_type, pattern_key in keys:
        stmt = insert(MomentLearning).values(
            id=new_id(),
            user_id=user_id,
            pattern_type=pattern_type,
            pattern_key=pattern_key,
            gem_id=gem_id,
            helpful_count=1,
            not_helpful_count=0,
            last_helpful_at=now,
            created_at=now,
            updated_at=now,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=["user_id", "pattern_type", "pattern_key", "gem_id"],
            set_={
                "helpful_count": MomentLearning.helpful_count + 1,
                "last_helpful_at": now,
                "updated_at": now,
            },
        )
        session.exec(stmt)

    _mark_reviewed(session, user_id, moment.id, gem_id, helpful=True)
    session.commit()
    log.info("Recorded helpful thought %s for moment %s across %d patterns", gem_id, moment.id, len(keys))
    return len(keys)


def record_not_helpful(session: Session, user_id: str, gem_id: str, moment_id: Optional[str] = None) -> int:
    """Bump not_helpful_count on every learning row for the thought."""
    result = session.exec(
        update(MomentLearning)
        .where(MomentLearning.user_id == user_id, MomentLearning.gem_id == gem_id)
        .values(not_helpful_count=MomentLearning.not_helpful_count + 1, updated_at=utcnow())
    )
    if moment_id:
        _mark_reviewed(session, user_id, moment_id, gem_id, helpful=False)
    session.commit()
    return result.rowcount or 0


def _mark_reviewed(session: Session, user_id: str, moment_id: str, gem_id: str, helpful: bool) -> None:
    session.exec(
        update(MomentThought)
        .where(
            MomentThought.user_id == user_id,
            MomentThought.moment_id == moment_id,
            MomentThought.gem_id == gem_id,
        )
        .values(was_helpful=helpful, was_reviewed=True)
    )


def get_learned_thoughts(
    session: Session,
    user_id: str,
    patterns: MomentPatterns,
    helpful_threshold: Optional[int] = None,
    confidence_threshold: Optional[float] = None,
) -> List[LearnedThought]:
    """Thoughts that established patterns of this moment vouch for, best first."""
    if helpful_threshold is None:
        helpful_threshold = settings.learning_helpful_threshold
    if confidence_threshold is None:
        confidence_threshold = settings.learning_confidence_threshold

    candidates = set(_pattern_keys(patterns))
    if not candidates:
        return []

    rows = session.exec(
        select(MomentLearning).where(
            MomentLearning.user_id == user_id,
            MomentLearning.helpful_count >= helpful_threshold,
        )
    ).all()

    totals: Dict[str, Dict] = {}
    for row in rows:
        if (row.pattern_type, row.pattern_key) not in candidates:
            continue
        agg = totals.setdefault(row.gem_id, {"helpful": 0, "not_helpful": 0, "sources": []})
        agg["helpful"] += row.helpful_count
        agg["not_helpful"] += row.not_helpful_count
        agg["sources"].append(f"{row.pattern_type.value}:{row.pattern_key}")

    confident = {}
    for gem_id, agg in totals.items():
        total = agg["helpful"] + agg["not_helpful"]
        confidence = agg["helpful"] / total
        if confidence >= confidence_threshold:
            confident[gem_id] = confidence
    if not confident:
        return []

    contents = dict(session.exec(
        select(Thought.id, Thought.content).where(Thought.user_id == user_id, Thought.id.in_(list(confident)))
    ).all())

    learned = [
        LearnedThought(
            gem_id=gem_id,
            gem_content=contents[gem_id],
            confidence_score=confidence,
            helpful_count=totals[gem_id]["helpful"],
            pattern_sources=totals[gem_id]["sources"],
        )
        for gem_id, confidence in confident.items()
        if gem_id in contents
    ]
    learned.sort(key=lambda lt: lt.confidence_score, reverse=True)
    return learned


def get_learning_stats(session: Session, user_id: str) -> dict:
    rows = session.exec(select(MomentLearning).where(MomentLearning.user_id == user_id)).all()

    by_type = {pt.value: 0 for pt in PatternType}
    helpful_by_thought: Counter = Counter()
    for row in rows:
        by_type[row.pattern_type.value] += 1
        helpful_by_thought[row.gem_id] += row.helpful_count

    return {
        "total_learnings": len(rows),
        "by_pattern_type": by_type,
        "top_thoughts": [
            {"gem_id": gem_id, "total_helpful": total}
            for gem_id, total in helpful_by_thought.most_common(10)
        ],
    }
