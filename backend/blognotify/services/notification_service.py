"""
Notification writer and the recipient/admin query surface.

create_notification() is the single entry point every event producer calls:
  1. type/subtype gate from the recipient's preferences (frequency off, subtype off or
     every channel off -> None, nothing written)
  2. persist the row (quiet hours do not affect this); it backs email, push and digests
     even when the in-app channel is off
  3./4. plan email/push from settings + caller hints + quiet hours and hand them to the
     deferred dispatcher; a failing channel is logged and never fails the call.
"""
import logging
import math
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any

from sqlalchemy import func
from sqlalchemy.orm import Session

from blognotify.config import settings
from blognotify.core.constants import (
    ADMIN_NOTIFICATIONS_MAX_LIMIT,
    BROADCAST_RECIPIENT_ID,
    NOTIFICATION_TYPES,
    NOTIFICATIONS_DEFAULT_LIMIT,
    NOTIFICATIONS_MAX_LIMIT,
    TYPE_INTERACTION,
    TYPE_PRIVATE_MESSAGE,
    TYPE_SYSTEM,
)
from blognotify.core.errors import NotFoundError
from blognotify.models.notification import Notification
from blognotify.models.user import User
from blognotify.services.deferred import DeferredTasks, get_deferred
from blognotify.services.dispatch import Channel, ChannelHints, dispatch, plan_channels
from blognotify.services.preferences import get_effective_settings
from blognotify.services.quiet_hours import is_quiet_now

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class NotificationEvent:
    """A fully-formed event from a producer (comment created, like toggled, broadcast, ...)."""

    recipient_user_id: int
    type: str
    title: str
    subtype: str | None = None
    body: str | None = None
    related_data: dict[str, Any] = field(default_factory=dict)


def _utc(dt: datetime | None) -> datetime:
    dt = dt or datetime.now(timezone.utc)
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def _iso(dt: datetime | None) -> str | None:
    return _utc(dt).isoformat() if dt else None


def create_notification(
    db: Session,
    event: NotificationEvent,
    hints: ChannelHints | None = None,
    *,
    now: datetime | None = None,
    deferred: DeferredTasks | None = None,
) -> Notification | None:
    """
    Create one notification for event.recipient_user_id. Returns None (and writes nothing)
    when the recipient disabled the type, the interaction subtype or every channel.
    Unknown types and the broadcast recipient raise ValueError.
    Database errors while persisting propagate; channel dispatch errors never do.
    """
    if event.recipient_user_id == BROADCAST_RECIPIENT_ID:
        raise ValueError("recipient 0 is reserved for system broadcasts")
    if event.type not in NOTIFICATION_TYPES:
        raise ValueError(f"unknown notification type: {event.type}")
    now = _utc(now)
    effective = get_effective_settings(db, event.recipient_user_id)
    type_settings = effective.for_type(event.type)
    if not type_settings.enabled:
        logger.debug("User %s disabled %s notifications; skipping", event.recipient_user_id, event.type)
        return None
    if not type_settings.any_channel:
        logger.debug("User %s turned off every channel for %s; skipping", event.recipient_user_id, event.type)
        return None
    if event.type == TYPE_INTERACTION and not type_settings.subtype_enabled(event.subtype):
        logger.debug("User %s disabled %s notifications; skipping", event.recipient_user_id, event.subtype)
        return None

    row = Notification(
        recipient_user_id=event.recipient_user_id,
        type=event.type,
        subtype=event.subtype,
        title=event.title,
        content=event.body,
        related_data=dict(event.related_data or {}),
        is_read=False,
        is_active=True,
        is_deleted=False,
        created_at=now,
    )
    db.add(row)
    db.commit()
    db.refresh(row)

    try:
        quiet = is_quiet_now(effective.do_not_disturb, now, settings.zero_length_quiet)
        channels = plan_channels(type_settings, hints, quiet)
        recipient = None
        if Channel.EMAIL in channels:
            recipient = db.query(User).filter(User.id == event.recipient_user_id).first()
        dispatch(db, row, channels, deferred or get_deferred(), recipient=recipient)
        if quiet:
            logger.debug("Quiet hours for user %s; notification %s kept in-app only", row.recipient_user_id, row.id)
    except Exception as e:
        db.rollback()
        logger.warning("Channel planning for notification %s failed: %s", row.id, e, exc_info=True)
    return row


def create_interaction_notification(
    db: Session,
    user_id: int,
    subtype: str,
    title: str,
    content: str | None = None,
    related_data: dict[str, Any] | None = None,
    **kwargs: Any,
) -> Notification | None:
    return create_notification(
        db,
        NotificationEvent(
            recipient_user_id=user_id,
            type=TYPE_INTERACTION,
            subtype=subtype,
            title=title,
            body=content,
            related_data=related_data or {},
        ),
        **kwargs,
    )


def create_system_notification(
    db: Session,
    user_id: int,
    subtype: str,
    title: str,
    content: str | None = None,
    related_data: dict[str, Any] | None = None,
    **kwargs: Any,
) -> Notification | None:
    return create_notification(
        db,
        NotificationEvent(
            recipient_user_id=user_id,
            type=TYPE_SYSTEM,
            subtype=subtype,
            title=title,
            body=content,
            related_data=related_data or {},
        ),
        **kwargs,
    )


def create_private_message_notification(
    db: Session,
    user_id: int,
    title: str,
    content: str | None = None,
    related_data: dict[str, Any] | None = None,
    **kwargs: Any,
) -> Notification | None:
    return create_notification(
        db,
        NotificationEvent(
            recipient_user_id=user_id,
            type=TYPE_PRIVATE_MESSAGE,
            subtype=TYPE_PRIVATE_MESSAGE,
            title=title,
            body=content,
            related_data=related_data or {},
        ),
        **kwargs,
    )


# --- Serialization ---


def notification_to_dict(row: Notification) -> dict[str, Any]:
    return {
        "id": row.id,
        "user_id": row.recipient_user_id,
        "type": row.type,
        "subtype": row.subtype,
        "title": row.title,
        "content": row.content,
        "related_data": row.related_data or {},
        "is_read": bool(row.is_read),
        "read_at": _iso(row.read_at),
        "created_at": _iso(row.created_at),
    }


def _page_params(page: int | None, limit: int | None, max_limit: int) -> tuple[int, int]:
    page = max(1, page or 1)
    limit = min(max_limit, max(1, limit or NOTIFICATIONS_DEFAULT_LIMIT))
    return page, limit


def _pagination(page: int, limit: int, total: int) -> dict[str, int]:
    return {"page": page, "limit": limit, "total": total, "total_pages": math.ceil(total / limit) if total else 0}


# --- Recipient surface ---


def _owned(db: Session, user_id: int):
    return db.query(Notification).filter(
        Notification.recipient_user_id == user_id,
        Notification.is_deleted.is_(False),
    )


def list_notifications(
    db: Session,
    user_id: int,
    notification_type: str | None = None,
    is_read: bool | None = None,
    page: int | None = None,
    limit: int | None = None,
) -> dict[str, Any]:
    """Newest first; limit is capped at 50."""
    page, limit = _page_params(page, limit, NOTIFICATIONS_MAX_LIMIT)
    q = _owned(db, user_id)
    if notification_type:
        q = q.filter(Notification.type == notification_type)
    if is_read is not None:
        q = q.filter(Notification.is_read.is_(is_read))
    total = q.count()
    rows = (
        q.order_by(Notification.created_at.desc(), Notification.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )
    return {
        "notifications": [notification_to_dict(r) for r in rows],
        "pagination": _pagination(page, limit, total),
    }


def get_unread_count(db: Session, user_id: int) -> dict[str, Any]:
    rows = (
        db.query(Notification.type, func.count(Notification.id))
        .filter(
            Notification.recipient_user_id == user_id,
            Notification.is_read.is_(False),
            Notification.is_deleted.is_(False),
        )
        .group_by(Notification.type)
        .all()
    )
    by_type = {t: 0 for t in NOTIFICATION_TYPES}
    for notification_type, count in rows:
        if notification_type in by_type:
            by_type[notification_type] = count
    return {"total": sum(by_type.values()), "by_type": by_type}


def mark_as_read(db: Session, user_id: int, notification_id: int) -> Notification:
    row = _owned(db, user_id).filter(Notification.id == notification_id).first()
    if not row:
        raise NotFoundError("notification", notification_id)
    if not row.is_read:
        row.is_read = True
        row.read_at = datetime.now(timezone.utc)
        db.commit()
        db.refresh(row)
    return row


def mark_all_as_read(db: Session, user_id: int, notification_type: str | None = None) -> int:
    q = _owned(db, user_id).filter(Notification.is_read.is_(False))
    if notification_type:
        q = q.filter(Notification.type == notification_type)
    updated = q.update(
        {Notification.is_read: True, Notification.read_at: datetime.now(timezone.utc)},
        synchronize_session=False,
    )
    db.commit()
    return updated


def delete_notification(db: Session, user_id: int, notification_id: int) -> None:
    """Soft delete: the row stays until an admin purge."""
    row = _owned(db, user_id).filter(Notification.id == notification_id).first()
    if not row:
        raise NotFoundError("notification", notification_id)
    row.is_deleted = True
    row.deleted_at = datetime.now(timezone.utc)
    db.commit()


# --- Admin surface ---


def admin_list_notifications(
    db: Session,
    notification_type: str | None = None,
    user_id: int | None = None,
    page: int | None = None,
    limit: int | None = None,
) -> dict[str, Any]:
    """Per-user notifications across all recipients with the recipient's account summary."""
    page, limit = _page_params(page, limit, ADMIN_NOTIFICATIONS_MAX_LIMIT)
    q = (
        db.query(Notification, User)
        .outerjoin(User, User.id == Notification.recipient_user_id)
        .filter(
            Notification.is_deleted.is_(False),
            Notification.recipient_user_id != BROADCAST_RECIPIENT_ID,
        )
    )
    if notification_type:
        q = q.filter(Notification.type == notification_type)
    if user_id is not None:
        q = q.filter(Notification.recipient_user_id == user_id)
    total = q.count()
    rows = (
        q.order_by(Notification.created_at.desc(), Notification.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )
    out = []
    for n, u in rows:
        item = notification_to_dict(n)
        item["user"] = (
            {"username": u.username, "display_name": u.display_name, "email": u.email} if u is not None else None
        )
        out.append(item)
    return {"notifications": out, "pagination": _pagination(page, limit, total)}


def purge_notifications(db: Session, older_than_days: int, only_deleted: bool = False) -> int:
    """Hard-delete notifications created more than older_than_days ago. Admin-only operation."""
    cutoff = datetime.now(timezone.utc) - timedelta(days=older_than_days)
    q = db.query(Notification).filter(
        Notification.created_at < cutoff,
        Notification.recipient_user_id != BROADCAST_RECIPIENT_ID,
    )
    if only_deleted:
        q = q.filter(Notification.is_deleted.is_(True))
    deleted = q.delete(synchronize_session="fetch")
    db.commit()
    logger.info("Purged %s notifications older than %s days (only_deleted=%s)", deleted, older_than_days, only_deleted)
    return deleted
