from typing import Optional

from fastapi import APIRouter, Body, Depends, HTTPException
from sqlmodel import Session

from ..auth import get_current_user_id
from ..db import get_session
from ..services import thoughts as svc

router = APIRouter(tags=["thoughts"], prefix="/thoughts")


@router.post("")
def create_thoughts(
    payload: dict = Body(...),
    user_id: str = Depends(get_current_user_id),
    session: Session = Depends(get_session),
):
    """Create a single thought, or several with ``{"thoughts": [...]}``."""
    items = payload.get("thoughts")
    if items is None:
        items = [payload]
    if not isinstance(items, list) or not all(isinstance(i, dict) for i in items):
        raise HTTPException(400, "thoughts must be a list of objects")
    created = svc.create_thoughts(session, user_id, items)
    return {"thoughts": [svc.thought_to_dict(t) for t in created]}


@router.get("")
def list_thoughts(
    status: Optional[str] = None,
    context_id: Optional[str] = None,
    user_id: str = Depends(get_current_user_id),
    session: Session = Depends(get_session),
):
    rows = svc.list_thoughts(session, user_id, status=status, context_id=context_id)
    return {"thoughts": [svc.thought_to_dict(t) for t in rows]}


@router.get("/daily")
def daily_thought(user_id: str = Depends(get_current_user_id), session: Session = Depends(get_session)):
    return svc.get_daily_thought(session, user_id)


@router.get("/{thought_id}")
def get_thought(thought_id: str, user_id: str = Depends(get_current_user_id),
                session: Session = Depends(get_session)):
    return svc.thought_to_dict(svc.get_thought(session, user_id, thought_id))


@router.put("/{thought_id}")
def update_thought(
    thought_id: str,
    payload: dict = Body(...),
    user_id: str = Depends(get_current_user_id),
    session: Session = Depends(get_session),
):
    return svc.thought_to_dict(svc.update_thought(session, user_id, thought_id, payload))


@router.delete("/{thought_id}")
def delete_thought(thought_id: str, user_id: str = Depends(get_current_user_id),
                   session: Session = Depends(get_session)):
    # Soft delete; only "release" removes the row
    return svc.thought_to_dict(svc.retire_thought(session, user_id, thought_id, mode="archive"))


@router.post("/{thought_id}/checkin")
def checkin(
    thought_id: str,
    payload: dict = Body(...),
    user_id: str = Depends(get_current_user_id),
    session: Session = Depends(get_session),
):
    thought = svc.log_checkin(
        session,
        user_id,
        thought_id,
        payload.get("checkin_type") or "daily_checkin",
        payload.get("response"),
        payload.get("note"),
    )
    return svc.thought_to_dict(thought)


@router.post("/{thought_id}/reset-skips")
def reset_skips(thought_id: str, user_id: str = Depends(get_current_user_id),
                session: Session = Depends(get_session)):
    return svc.thought_to_dict(svc.reset_skips(session, user_id, thought_id))


@router.post("/{thought_id}/graduate")
def graduate(thought_id: str, user_id: str = Depends(get_current_user_id),
             session: Session = Depends(get_session)):
    return svc.thought_to_dict(svc.graduate_thought(session, user_id, thought_id))


@router.post("/{thought_id}/retire")
def retire(
    thought_id: str,
    payload: Optional[dict] = Body(None),
    user_id: str = Depends(get_current_user_id),
    session: Session = Depends(get_session),
):
    mode = (payload or {}).get("mode") or "archive"
    thought = svc.retire_thought(session, user_id, thought_id, mode=mode)
    if thought is None:
        return {"success": True, "released": True}
    return svc.thought_to_dict(thought)


@router.post("/{thought_id}/restore")
def restore(thought_id: str, user_id: str = Depends(get_current_user_id),
            session: Session = Depends(get_session)):
    return svc.thought_to_dict(svc.restore_thought(session, user_id, thought_id))


@router.post("/{thought_id}/active-list")
def active_list(
    thought_id: str,
    payload: Optional[dict] = Body(None),
    user_id: str = Depends(get_current_user_id),
    session: Session = Depends(get_session),
):
    on_list = (payload or {}).get("is_on_active_list")
    return svc.thought_to_dict(svc.toggle_active_list(session, user_id, thought_id, on_list))
