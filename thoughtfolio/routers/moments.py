import logging
from typing import Optional

from fastapi import APIRouter, Body, Depends, HTTPException, Query
from sqlmodel import Session

from ..ai.matching import match_thoughts_to_moment
from ..ai.rate_limit import RATE_LIMIT_MESSAGE, match_rate_limiter
from ..auth import get_current_user_id
from ..db import get_session
from ..models import MomentSource
from ..moments.learning import get_learning_stats, record_helpful, record_not_helpful
from ..moments.recurring import check_recurring
from ..moments.service import (
    create_moment_from_event,
    create_moment_with_matching,
    enrich_moment,
    get_moment,
    get_moment_with_thoughts,
    list_moments,
)
from ..moments.title_analysis import EventType, analyze_event_title
from ..services.calendar import parse_timestamp
from ..services.thoughts import get_thought

log = logging.getLogger(__name__)

router = APIRouter(tags=["moments"], prefix="/moments")


def _is_candidate(gem) -> bool:
    return isinstance(gem, dict) and all(isinstance(gem.get(k), str) for k in ("id", "content", "context_tag"))


def _event_type(value) -> Optional[str]:
    if value in (None, ""):
        return None
    try:
        return EventType(value).value
    except ValueError:
        allowed = ", ".join(t.value for t in EventType)
        raise HTTPException(400, f"detected_event_type must be one of {allowed}")


@router.post("")
async def create_moment(
    payload: dict = Body(...),
    user_id: str = Depends(get_current_user_id),
    session: Session = Depends(get_session),
):
    description = payload.get("description")
    if not isinstance(description, str) or not description.strip():
        raise HTTPException(400, "Moment description is required")
    try:
        source = MomentSource(payload.get("source") or MomentSource.MANUAL.value)
    except ValueError:
        raise HTTPException(400, "source must be manual or calendar")

    calendar_data = None
    if payload.get("calendar_event_id") or payload.get("calendar_event_title"):
        calendar_data = {
            "event_id": payload.get("calendar_event_id"),
            "title": payload.get("calendar_event_title"),
            "start_time": parse_timestamp(payload.get("calendar_event_start"), "calendar_event_start"),
        }

    return await create_moment_with_matching(
        session,
        user_id,
        description,
        source=source,
        calendar_data=calendar_data,
        user_context=payload.get("user_context"),
        detected_event_type=_event_type(payload.get("detected_event_type")),
    )


@router.get("")
def get_moments(
    limit: int = Query(10, ge=1, le=100),
    source: Optional[str] = None,
    user_id: str = Depends(get_current_user_id),
    session: Session = Depends(get_session),
):
    return {"moments": list_moments(session, user_id, limit=limit, source=source)}


@router.post("/match")
async def match_gems(
    payload: Optional[dict] = Body(None),
    user_id: str = Depends(get_current_user_id),
):
    if not match_rate_limiter.check(user_id):
        raise HTTPException(429, RATE_LIMIT_MESSAGE)

    payload = payload or {}
    description = payload.get("moment_description")
    gems = payload.get("gems")
    if not isinstance(description, str) or not description.strip():
        raise HTTPException(400, "Moment description is required")
    if not isinstance(gems, list):
        raise HTTPException(400, "Gems array is required")

    candidates = [g for g in gems if _is_candidate(g)]
    if not candidates:
        return {"matches": [], "processing_time_ms": 0}

    try:
        return await match_thoughts_to_moment(description.strip(), candidates)
    except Exception:
        log.exception("Match endpoint failed")
        raise HTTPException(500, "Failed to match gems")


@router.post("/analyze-title")
def analyze_title(payload: dict = Body(...), user_id: str = Depends(get_current_user_id)):
    title = payload.get("title")
    if not isinstance(title, str) or not title.strip():
        raise HTTPException(400, "Title is required")
    return analyze_event_title(title, payload.get("description")).to_dict()


@router.post("/from-event")
async def moment_from_event(
    payload: dict = Body(...),
    user_id: str = Depends(get_current_user_id),
    session: Session = Depends(get_session),
):
    event_id = payload.get("event_cache_id")
    if not event_id:
        raise HTTPException(400, "event_cache_id is required")
    return await create_moment_from_event(session, user_id, event_id)


def _learn_target(payload: dict, user_id: str, session: Session):
    moment_id, gem_id = payload.get("moment_id"), payload.get("gem_id")
    if not moment_id or not gem_id:
        raise HTTPException(400, "moment_id and gem_id are required")
    moment = get_moment(session, user_id, moment_id)
    get_thought(session, user_id, gem_id)
    return moment, gem_id


@router.post("/learn/helpful")
def learn_helpful(
    payload: dict = Body(...),
    user_id: str = Depends(get_current_user_id),
    session: Session = Depends(get_session),
):
    moment, gem_id = _learn_target(payload, user_id, session)
    patterns = record_helpful(session, user_id, moment, gem_id)
    return {"success": True, "patterns_recorded": patterns}


@router.post("/learn/not-helpful")
def learn_not_helpful(
    payload: dict = Body(...),
    user_id: str = Depends(get_current_user_id),
    session: Session = Depends(get_session),
):
    moment, gem_id = _learn_target(payload, user_id, session)
    updated = record_not_helpful(session, user_id, gem_id, moment_id=moment.id)
    return {"success": True, "learnings_updated": updated}


@router.get("/learn/stats")
def learn_stats(user_id: str = Depends(get_current_user_id), session: Session = Depends(get_session)):
    return get_learning_stats(session, user_id)


@router.get("/recurring")
def recurring(
    event_id: Optional[str] = None,
    title: Optional[str] = None,
    user_id: str = Depends(get_current_user_id),
    session: Session = Depends(get_session),
):
    return check_recurring(session, user_id, event_id=event_id, title=title).to_dict()


@router.get("/{moment_id}")
def get_moment_detail(
    moment_id: str,
    user_id: str = Depends(get_current_user_id),
    session: Session = Depends(get_session),
):
    return get_moment_with_thoughts(session, user_id, moment_id)


@router.post("/{moment_id}/enrich")
async def enrich(
    moment_id: str,
    payload: dict = Body(...),
    user_id: str = Depends(get_current_user_id),
    session: Session = Depends(get_session),
):
    return await enrich_moment(
        session, user_id, moment_id, payload.get("user_context") or "",
        detected_event_type=_event_type(payload.get("detected_event_type")),
    )
