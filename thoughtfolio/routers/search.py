from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlmodel import Session

from ..auth import get_current_user_id
from ..db import get_session
from ..services.search import DEFAULT_LIMIT, search_knowledge

router = APIRouter(tags=["search"], prefix="/search")


@router.get("")
def search(
    q: Optional[str] = None,
    result_type: Optional[str] = Query(None, alias="type"),
    context_id: Optional[str] = None,
    limit: int = Query(DEFAULT_LIMIT),
    offset: int = Query(0),
    user_id: str = Depends(get_current_user_id),
    session: Session = Depends(get_session),
):
    return search_knowledge(session, user_id, q, result_type=result_type, context_id=context_id,
                            limit=limit, offset=offset)
