from fastapi import APIRouter, Body, Depends
from sqlmodel import Session

from ..auth import get_current_user_id
from ..db import get_session
from ..services.discovery import (
    generate_discoveries,
    get_usage_summary,
    list_saved_discoveries,
    save_discovery,
    set_bookmark,
    skip_discovery,
)

router = APIRouter(tags=["discover"], prefix="/discover")


@router.post("")
async def discover(
    payload: dict = Body(...),
    user_id: str = Depends(get_current_user_id),
    session: Session = Depends(get_session),
):
    return await generate_discoveries(
        session, user_id, payload.get("mode"), query=payload.get("query"), context_id=payload.get("context_id")
    )


@router.get("/usage")
def usage(user_id: str = Depends(get_current_user_id), session: Session = Depends(get_session)):
    return get_usage_summary(session, user_id)


@router.post("/save")
def save(
    payload: dict = Body(...),
    user_id: str = Depends(get_current_user_id),
    session: Session = Depends(get_session),
):
    return save_discovery(session, user_id, payload)


@router.post("/skip")
def skip(
    payload: dict = Body(...),
    user_id: str = Depends(get_current_user_id),
    session: Session = Depends(get_session),
):
    return skip_discovery(session, user_id, payload.get("discovery_id"))


@router.get("/saved")
def saved(user_id: str = Depends(get_current_user_id), session: Session = Depends(get_session)):
    return list_saved_discoveries(session, user_id)


@router.post("/bookmark")
def bookmark(
    payload: dict = Body(...),
    user_id: str = Depends(get_current_user_id),
    session: Session = Depends(get_session),
):
    return set_bookmark(session, user_id, payload.get("discovery_id"), saved=True)


@router.delete("/bookmark")
def unbookmark(
    payload: dict = Body(...),
    user_id: str = Depends(get_current_user_id),
    session: Session = Depends(get_session),
):
    return set_bookmark(session, user_id, payload.get("discovery_id"), saved=False)
