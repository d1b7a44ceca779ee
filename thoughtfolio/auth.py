from typing import Optional

from fastapi import Header, HTTPException


def get_current_user_id(x_user_id: Optional[str] = Header(default=None)) -> str:
    """User id forwarded by the auth gateway in front of the API."""
    if not x_user_id or not x_user_id.strip():
        raise HTTPException(401, "Not authenticated")
    return x_user_id.strip()
