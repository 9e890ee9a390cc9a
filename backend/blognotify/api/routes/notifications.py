"""
Notification center API for the signed-in user, plus the public home page carousel.
"""
import logging
from typing import Any, Literal, NoReturn

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from blognotify.api.deps import current_user_id
from blognotify.core.constants import NOTIFICATIONS_DEFAULT_LIMIT, NOTIFICATIONS_MAX_LIMIT
from blognotify.core.errors import NotifyError, error_to_http
from blognotify.db.session import get_db
from blognotify.services import broadcast_service, notification_service

router = APIRouter()
logger = logging.getLogger(__name__)

NotificationTypeParam = Literal["system", "interaction", "private_message"]


def _raise_http(exc: Exception) -> NoReturn:
    raise error_to_http(exc) from exc


@router.get("/notifications")
def list_notifications(
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
    type: NotificationTypeParam | None = Query(None),
    is_read: bool | None = Query(None),
    page: int = Query(1, ge=1),
    limit: int = Query(NOTIFICATIONS_DEFAULT_LIMIT, ge=1, le=NOTIFICATIONS_MAX_LIMIT),
) -> dict[str, Any]:
    """Newest first, excluding deleted. Filters: type, is_read."""
    return notification_service.list_notifications(db, user_id, type, is_read, page, limit)


@router.get("/notifications/unread-count")
def unread_count(
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
) -> dict[str, Any]:
    return notification_service.get_unread_count(db, user_id)


@router.get("/notifications/carousel")
def carousel(db: Session = Depends(get_db)) -> dict[str, Any]:
    """Public: active system broadcasts for the home page."""
    items = broadcast_service.list_carousel(db)
    logger.debug("Carousel notifications fetched: %s", len(items))
    return {"notifications": items}


@router.put("/notifications/read-all")
def mark_all_read(
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
    type: NotificationTypeParam | None = Query(None),
) -> dict[str, Any]:
    updated = notification_service.mark_all_as_read(db, user_id, type)
    return {"ok": True, "updated": updated}


@router.put("/notifications/{notification_id}/read")
def mark_read(
    notification_id: int,
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
) -> dict[str, Any]:
    try:
        row = notification_service.mark_as_read(db, user_id, notification_id)
    except NotifyError as e:
        _raise_http(e)
    return {"ok": True, "notification": notification_service.notification_to_dict(row)}


@router.delete("/notifications/{notification_id}")
def delete_notification(
    notification_id: int,
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
) -> dict[str, Any]:
    try:
        notification_service.delete_notification(db, user_id, notification_id)
    except NotifyError as e:
        _raise_http(e)
    return {"ok": True}
