"""
Admin API: broadcast, notification overview/purge, system (carousel) notifications,
manual digest runs. Every route requires X-User-Role: admin.
"""
import logging
from typing import Any, Literal, NoReturn

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from blognotify.api.deps import require_admin
from blognotify.config import settings
from blognotify.core.constants import ADMIN_NOTIFICATIONS_MAX_LIMIT, NOTIFICATIONS_DEFAULT_LIMIT
from blognotify.core.errors import NotifyError, error_to_http
from blognotify.db.session import get_db
from blognotify.services import broadcast_service, notification_service
from blognotify.services.digest_service import run_digest

router = APIRouter()
logger = logging.getLogger(__name__)


def _raise_http(exc: Exception) -> NoReturn:
    raise error_to_http(exc) from exc


class BroadcastRequest(BaseModel):
    # Loose types: the service validates and answers 400 with the offending field
    title: str | None = None
    content: str | None = None
    target: str | None = None
    user_ids: list[int] | None = None
    channels: list[str] | None = None
    link: str | None = None


class SystemNotificationRequest(BaseModel):
    title: str = Field(..., min_length=1, max_length=200)
    content: str | None = None
    link: str | None = None
    is_active: bool = True


class UpdateSystemNotificationRequest(BaseModel):
    title: str | None = Field(None, min_length=1, max_length=200)
    content: str | None = None
    link: str | None = None
    is_active: bool | None = None


# --- Broadcast / overview ---


@router.post("/admin/notifications")
def broadcast(
    body: BroadcastRequest,
    db: Session = Depends(get_db),
    admin_id: int = Depends(require_admin),
) -> dict[str, Any]:
    """
    Send a system announcement to all active users or to user_ids.
    Returns sent/failed counts; errors lists at most BROADCAST_MAX_ERRORS entries.
    """
    try:
        result = broadcast_service.send_broadcast(
            db,
            title=body.title,
            content=body.content,
            target=body.target,
            user_ids=body.user_ids,
            channels=body.channels,
            link=body.link,
        )
    except NotifyError as e:
        _raise_http(e)
    logger.info("Admin %s broadcast %r: %s", admin_id, body.title, result)
    return result


@router.get("/admin/notifications")
def admin_list(
    db: Session = Depends(get_db),
    _: int = Depends(require_admin),
    type: Literal["system", "interaction", "private_message"] | None = Query(None),
    user_id: int | None = Query(None),
    page: int = Query(1, ge=1),
    limit: int = Query(NOTIFICATIONS_DEFAULT_LIMIT, ge=1, le=ADMIN_NOTIFICATIONS_MAX_LIMIT),
) -> dict[str, Any]:
    return notification_service.admin_list_notifications(db, type, user_id, page, limit)


@router.delete("/admin/notifications/purge")
def purge(
    db: Session = Depends(get_db),
    admin_id: int = Depends(require_admin),
    older_than_days: int | None = Query(None, ge=1),
    only_deleted: bool = Query(False),
) -> dict[str, Any]:
    """Hard-delete old notifications (default: NOTIFICATIONS_RETENTION_DAYS)."""
    days = older_than_days or settings.notifications_retention_days
    deleted = notification_service.purge_notifications(db, days, only_deleted=only_deleted)
    logger.info("Admin %s purged %s notifications older than %s days", admin_id, deleted, days)
    return {"ok": True, "deleted": deleted, "older_than_days": days}


# --- System notifications (carousel) ---


@router.get("/admin/system-notifications")
def list_system_notifications(
    db: Session = Depends(get_db),
    _: int = Depends(require_admin),
    active_only: bool = Query(False),
    page: int = Query(1, ge=1),
    limit: int = Query(NOTIFICATIONS_DEFAULT_LIMIT, ge=1, le=ADMIN_NOTIFICATIONS_MAX_LIMIT),
) -> dict[str, Any]:
    return broadcast_service.list_system_broadcasts(db, active_only, page, limit)


@router.post("/admin/system-notifications")
def create_system_notification(
    body: SystemNotificationRequest,
    db: Session = Depends(get_db),
    _: int = Depends(require_admin),
) -> dict[str, Any]:
    try:
        row = broadcast_service.create_system_broadcast(db, body.title, body.content, body.link, body.is_active)
    except NotifyError as e:
        _raise_http(e)
    return broadcast_service.broadcast_to_dict(row)


@router.get("/admin/system-notifications/{notification_id}")
def get_system_notification(
    notification_id: int,
    db: Session = Depends(get_db),
    _: int = Depends(require_admin),
) -> dict[str, Any]:
    try:
        row = broadcast_service.get_system_broadcast(db, notification_id)
    except NotifyError as e:
        _raise_http(e)
    return broadcast_service.broadcast_to_dict(row)


@router.put("/admin/system-notifications/{notification_id}")
def update_system_notification(
    notification_id: int,
    body: UpdateSystemNotificationRequest,
    db: Session = Depends(get_db),
    _: int = Depends(require_admin),
) -> dict[str, Any]:
    try:
        row = broadcast_service.update_system_broadcast(db, notification_id, body.model_dump(exclude_unset=True))
    except NotifyError as e:
        _raise_http(e)
    return broadcast_service.broadcast_to_dict(row)


@router.delete("/admin/system-notifications/{notification_id}")
def delete_system_notification(
    notification_id: int,
    db: Session = Depends(get_db),
    _: int = Depends(require_admin),
) -> dict[str, Any]:
    try:
        broadcast_service.delete_system_broadcast(db, notification_id)
    except NotifyError as e:
        _raise_http(e)
    return {"ok": True}


# --- Digests ---


@router.post("/admin/digests/{cadence}/run")
def run_digest_now(
    cadence: Literal["daily", "weekly"],
    db: Session = Depends(get_db),
    admin_id: int = Depends(require_admin),
) -> dict[str, Any]:
    """Run one digest sweep immediately (same as a scheduler tick for that cadence)."""
    result = run_digest(db, cadence)
    logger.info("Admin %s ran %s digest: %s", admin_id, cadence, result)
    return result
