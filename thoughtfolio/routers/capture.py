from fastapi import APIRouter, Body, Depends
from sqlmodel import Session

from ..auth import get_current_user_id
from ..db import get_session
from ..services.capture import analyze_capture, save_capture

router = APIRouter(tags=["capture"], prefix="/capture")


@router.post("/analyze")
async def analyze(
    payload: dict = Body(...),
    user_id: str = Depends(get_current_user_id),
    session: Session = Depends(get_session),
):
    return await analyze_capture(session, user_id, payload.get("content"), payload.get("images"))


@router.post("/save")
def save(
    payload: dict = Body(...),
    user_id: str = Depends(get_current_user_id),
    session: Session = Depends(get_session),
):
    return save_capture(session, user_id, payload.get("items"))
