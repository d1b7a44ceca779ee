from typing import Optional

from fastapi import APIRouter, Body, Depends, HTTPException
from sqlmodel import Session

from ..auth import get_current_user_id
from ..db import get_session
from ..services import calendar as svc

router = APIRouter(tags=["calendar"], prefix="/calendar")


@router.get("/connections")
def list_connections(user_id: str = Depends(get_current_user_id), session: Session = Depends(get_session)):
    return {"connections": svc.list_connections(session, user_id)}


@router.post("/connections", status_code=201)
def create_connection(
    payload: dict = Body(...),
    user_id: str = Depends(get_current_user_id),
    session: Session = Depends(get_session),
):
    return {"connection": svc.create_connection(session, user_id, payload)}


@router.put("/connections/{connection_id}")
def update_connection(
    connection_id: str,
    payload: dict = Body(...),
    user_id: str = Depends(get_current_user_id),
    session: Session = Depends(get_session),
):
    return {"connection": svc.update_connection(session, user_id, connection_id, payload)}


@router.get("/events")
def list_events(
    start: Optional[str] = None,
    end: Optional[str] = None,
    user_id: str = Depends(get_current_user_id),
    session: Session = Depends(get_session),
):
    events = svc.list_events(session, user_id, svc.parse_timestamp(start, "start"),
                             svc.parse_timestamp(end, "end"))
    return {"events": events}


@router.post("/events")
def ingest_events(
    payload: dict = Body(...),
    user_id: str = Depends(get_current_user_id),
    session: Session = Depends(get_session),
):
    connection_id = payload.get("connection_id")
    events = payload.get("events")
    if not connection_id:
        raise HTTPException(400, "connection_id is required")
    if not isinstance(events, list):
        raise HTTPException(400, "events must be a list")
    return svc.ingest_events(session, user_id, connection_id, [e for e in events if isinstance(e, dict)])


@router.post("/check-moments")
async def check_moments(
    payload: Optional[dict] = Body(None),
    user_id: str = Depends(get_current_user_id),
    session: Session = Depends(get_session),
):
    catch_up = bool((payload or {}).get("catch_up"))
    return await svc.check_moments(session, user_id, catch_up=catch_up)
