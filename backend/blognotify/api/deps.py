"""
Request identity. Authentication happens upstream (auth gateway); it forwards the
account id as X-User-Id and the role as X-User-Role.
"""
from fastapi import Depends, Header, HTTPException

from blognotify.core.constants import ROLE_ADMIN


def current_user_id(x_user_id: str | None = Header(None, alias="X-User-Id")) -> int:
    raw = (x_user_id or "").strip()
    if not raw.isdigit() or int(raw) <= 0:
        raise HTTPException(status_code=401, detail="Authentication required")
    return int(raw)


def require_admin(
    user_id: int = Depends(current_user_id),
    x_user_role: str | None = Header(None, alias="X-User-Role"),
) -> int:
    if (x_user_role or "").strip().lower() != ROLE_ADMIN:
        raise HTTPException(status_code=403, detail="Admin access required")
    return user_id
