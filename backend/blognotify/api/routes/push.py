"""Web Push subscription registration for the signed-in user."""
import logging
from typing import Any

from fastapi import APIRouter, Depends, Header, HTTPException
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from blognotify.api.deps import current_user_id
from blognotify.config import settings
from blognotify.core.errors import NotFoundError, error_to_http
from blognotify.db.session import get_db
from blognotify.services import push_subscription_service

router = APIRouter()
logger = logging.getLogger(__name__)


class SubscriptionKeys(BaseModel):
    p256dh: str = Field(..., min_length=1, max_length=256)
    auth: str = Field(..., min_length=1, max_length=256)


class SubscribeBody(BaseModel):
    """Shape of the browser's PushSubscription.toJSON()."""

    endpoint: str = Field(..., min_length=1, max_length=2048)
    keys: SubscriptionKeys


class UnsubscribeBody(BaseModel):
    endpoint: str = Field(..., min_length=1, max_length=2048)


@router.get("/notifications/push/vapid-public-key")
def vapid_public_key() -> dict[str, Any]:
    """Application server key for pushManager.subscribe(); 503 when push is not configured."""
    key = (settings.vapid_public_key or "").strip()
    if not key:
        raise HTTPException(status_code=503, detail="Web Push is not configured")
    return {"public_key": key}


@router.post("/notifications/push/subscribe")
def subscribe(
    body: SubscribeBody,
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
    user_agent: str | None = Header(None, alias="User-Agent"),
) -> dict[str, Any]:
    """Idempotent: the same endpoint is refreshed (and moved to this user if needed)."""
    row = push_subscription_service.subscribe(
        db, user_id, body.endpoint, body.keys.p256dh, body.keys.auth, user_agent=user_agent
    )
    return {"ok": True, "subscription_id": row.id}


@router.post("/notifications/push/unsubscribe")
def unsubscribe(
    body: UnsubscribeBody,
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
) -> dict[str, Any]:
    try:
        push_subscription_service.unsubscribe(db, user_id, body.endpoint)
    except NotFoundError as e:
        raise error_to_http(e) from e
    return {"ok": True}


@router.get("/notifications/push/status")
def status(
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
) -> dict[str, Any]:
    return push_subscription_service.get_status(db, user_id)
