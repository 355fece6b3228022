from fastapi import Header, HTTPException
from typing import Optional


async def get_current_user_id(x_user_id: Optional[str] = Header(default=None)) -> str:
    """The identity provider resolves the session upstream and forwards the user id."""
    if not x_user_id or not x_user_id.strip():
        raise HTTPException(status_code=401, detail="Not signed in")
    return x_user_id.strip()
