from fastapi import APIRouter, Body, Depends
from sqlmodel import Session

from ..auth import get_current_user_id
from ..db import get_session
from ..services import contexts as svc

router = APIRouter(tags=["contexts"], prefix="/contexts")


@router.get("")
def list_contexts(user_id: str = Depends(get_current_user_id), session: Session = Depends(get_session)):
    return {"contexts": svc.list_contexts(session, user_id)}


@router.post("", status_code=201)
def create_context(
    payload: dict = Body(...),
    user_id: str = Depends(get_current_user_id),
    session: Session = Depends(get_session),
):
    return {"context": svc.create_context(session, user_id, payload)}


@router.get("/{context_id}")
def get_context(context_id: str, user_id: str = Depends(get_current_user_id),
                session: Session = Depends(get_session)):
    context = svc.get_context(session, user_id, context_id)
    return {"context": {**context.model_dump(mode="json"),
                        "thought_count": svc.count_live_thoughts(session, user_id, context.id)}}


@router.put("/{context_id}")
def update_context(
    context_id: str,
    payload: dict = Body(...),
    user_id: str = Depends(get_current_user_id),
    session: Session = Depends(get_session),
):
    return {"context": svc.update_context(session, user_id, context_id, payload)}


@router.delete("/{context_id}")
def delete_context(context_id: str, user_id: str = Depends(get_current_user_id),
                   session: Session = Depends(get_session)):
    svc.delete_context(session, user_id, context_id)
    return {"success": True}
