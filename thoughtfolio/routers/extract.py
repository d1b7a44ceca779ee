from fastapi import APIRouter, Body, Depends, HTTPException
from fastapi.responses import JSONResponse

from ..auth import get_current_user_id
from ..errors import ExtractionError
from ..services.url_extract import FALLBACK_MESSAGE, detect_url_type, extract_from_url, is_valid_url

router = APIRouter(tags=["extract"], prefix="/extract")


@router.post("/url")
async def extract_url(payload: dict = Body(...), user_id: str = Depends(get_current_user_id)):
    url = (payload.get("url") or "").strip()
    if not url:
        raise HTTPException(status_code=400, detail="URL is required")
    if not is_valid_url(url):
        raise HTTPException(status_code=400, detail="Invalid URL format")

    try:
        article = await extract_from_url(url)
    except ExtractionError as e:
        return JSONResponse(
            status_code=e.status_code,
            content={
                "error": e.message,
                "type": detect_url_type(url),
                "url": url,
                "fallback_message": FALLBACK_MESSAGE,
            },
        )
    return {"success": True, "content": article.to_dict()}
