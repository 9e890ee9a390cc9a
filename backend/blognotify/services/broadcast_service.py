"""
Admin broadcast and system (carousel) notifications.

send_broadcast() fans one announcement out to per-user notifications through the normal
writer, so recipient preferences and quiet hours still apply. The admin's channel list
is passed as hints: it can only narrow what a recipient would get, never widen it.

System broadcasts are single rows with recipient 0 shown on the public home page
carousel; they are not delivered to anyone.
"""
import logging
from datetime import datetime, timezone
from typing import Any

from sqlalchemy.orm import Session

from blognotify.config import settings
from blognotify.core.constants import (
    ADMIN_NOTIFICATIONS_MAX_LIMIT,
    BROADCAST_RECIPIENT_ID,
    BROADCAST_TARGETS,
    CAROUSEL_LIMIT,
    NOTIFICATIONS_DEFAULT_LIMIT,
    SUBTYPE_ANNOUNCEMENT,
    TYPE_SYSTEM,
    USER_STATUS_ACTIVE,
)
from blognotify.core.errors import BroadcastValidationError, NotFoundError
from blognotify.models.notification import Notification
from blognotify.models.user import User
from blognotify.services.dispatch import ChannelHints, parse_channels
from blognotify.services.notification_service import NotificationEvent, create_notification

logger = logging.getLogger(__name__)


def _validate_broadcast(title: Any, target: Any, user_ids: Any, channels: Any) -> None:
    if not title or not isinstance(title, str) or not title.strip():
        raise BroadcastValidationError("title", "title is required")
    if target not in BROADCAST_TARGETS:
        raise BroadcastValidationError("target", f"must be one of {', '.join(BROADCAST_TARGETS)}")
    if not channels or not isinstance(channels, (list, tuple)):
        raise BroadcastValidationError("channels", "at least one channel is required")
    try:
        parse_channels(channels)
    except ValueError as e:
        raise BroadcastValidationError("channels", str(e)) from None
    if target == "specific_users":
        if not user_ids or not isinstance(user_ids, (list, tuple)):
            raise BroadcastValidationError("user_ids", "user ids are required for specific_users")
        if any(isinstance(u, bool) or not isinstance(u, int) for u in user_ids):
            raise BroadcastValidationError("user_ids", "user ids must be integers")


def resolve_targets(db: Session, target: str, user_ids: list[int] | None) -> list[int]:
    """'all' = every active user; 'specific_users' = the given ids, deduped in order."""
    if target == "all":
        rows = db.query(User.id).filter(User.status == USER_STATUS_ACTIVE).order_by(User.id.asc()).all()
        return [r[0] for r in rows]
    return list(dict.fromkeys(user_ids or []))


def send_broadcast(
    db: Session,
    title: str,
    content: str | None,
    target: str,
    user_ids: list[int] | None,
    channels: list[str],
    link: str | None = None,
    **kwargs,
) -> dict[str, Any]:
    """
    Create a system/announcement notification for every target.
    Returns {sent_count, failed_count, errors}; errors holds at most BROADCAST_MAX_ERRORS
    messages. A target whose preferences suppressed the notification counts as failed.
    Raises BroadcastValidationError for bad input or more targets than BROADCAST_MAX_TARGETS.
    """
    _validate_broadcast(title, target, user_ids, channels)
    targets = resolve_targets(db, target, user_ids)
    if not targets:
        return {"sent_count": 0, "failed_count": 0, "errors": []}
    if len(targets) > settings.broadcast_max_targets:
        raise BroadcastValidationError(
            "target", f"too many target users ({len(targets)}, max {settings.broadcast_max_targets})"
        )

    hints = ChannelHints.only(parse_channels(channels))
    related: dict[str, Any] = {"link": link} if link else {}
    sent = 0
    failed = 0
    errors: list[str] = []

    def _fail(user_id: int, reason: str) -> None:
        nonlocal failed
        failed += 1
        if len(errors) < settings.broadcast_max_errors:
            errors.append(f"user {user_id}: {reason}")

    for user_id in targets:
        try:
            row = create_notification(
                db,
                NotificationEvent(
                    recipient_user_id=user_id,
                    type=TYPE_SYSTEM,
                    subtype=SUBTYPE_ANNOUNCEMENT,
                    title=title.strip(),
                    body=content,
                    related_data=related,
                ),
                hints,
                **kwargs,
            )
        except Exception as e:
            db.rollback()
            logger.warning("Broadcast to user %s failed: %s", user_id, e)
            _fail(user_id, str(e))
            continue
        if row is None:
            _fail(user_id, "notification suppressed by user preferences")
        else:
            sent += 1

    logger.info(
        "Broadcast %r target=%s channels=%s: %s targets, %s sent, %s failed",
        title, target, channels, len(targets), sent, failed,
    )
    return {"sent_count": sent, "failed_count": failed, "errors": errors}


# --- System broadcasts (home page carousel) ---


def broadcast_to_dict(row: Notification) -> dict[str, Any]:
    related = row.related_data or {}
    created = row.created_at
    if created is not None and created.tzinfo is None:
        created = created.replace(tzinfo=timezone.utc)
    return {
        "id": row.id,
        "title": row.title,
        "content": row.content,
        "link": related.get("link"),
        "is_active": bool(row.is_active),
        "created_at": created.isoformat() if created else None,
    }


def _broadcasts(db: Session):
    return db.query(Notification).filter(
        Notification.recipient_user_id == BROADCAST_RECIPIENT_ID,
        Notification.type == TYPE_SYSTEM,
        Notification.subtype == SUBTYPE_ANNOUNCEMENT,
        Notification.is_deleted.is_(False),
    )


def create_system_broadcast(
    db: Session,
    title: str,
    content: str | None = None,
    link: str | None = None,
    is_active: bool = True,
) -> Notification:
    if not title or not title.strip():
        raise BroadcastValidationError("title", "title is required")
    row = Notification(
        recipient_user_id=BROADCAST_RECIPIENT_ID,
        type=TYPE_SYSTEM,
        subtype=SUBTYPE_ANNOUNCEMENT,
        title=title.strip(),
        content=content,
        related_data={"link": link} if link else {},
        is_read=False,
        is_active=is_active,
        is_deleted=False,
        created_at=datetime.now(timezone.utc),
    )
    db.add(row)
    db.commit()
    db.refresh(row)
    logger.info("Created system broadcast %s: %s", row.id, row.title)
    return row


def list_system_broadcasts(
    db: Session,
    active_only: bool = False,
    page: int | None = None,
    limit: int | None = None,
) -> dict[str, Any]:
    page = max(1, page or 1)
    limit = min(ADMIN_NOTIFICATIONS_MAX_LIMIT, max(1, limit or NOTIFICATIONS_DEFAULT_LIMIT))
    q = _broadcasts(db)
    if active_only:
        q = q.filter(Notification.is_active.is_(True))
    total = q.count()
    rows = (
        q.order_by(Notification.created_at.desc(), Notification.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )
    return {
        "notifications": [broadcast_to_dict(r) for r in rows],
        "pagination": {"page": page, "limit": limit, "total": total},
    }


def get_system_broadcast(db: Session, broadcast_id: int) -> Notification:
    row = _broadcasts(db).filter(Notification.id == broadcast_id).first()
    if not row:
        raise NotFoundError("system notification", broadcast_id)
    return row


def update_system_broadcast(db: Session, broadcast_id: int, updates: dict[str, Any]) -> Notification:
    """Partial update of title, content, link, is_active."""
    row = get_system_broadcast(db, broadcast_id)
    if "title" in updates:
        title = updates["title"]
        if not title or not isinstance(title, str) or not title.strip():
            raise BroadcastValidationError("title", "title is required")
        row.title = title.strip()
    if "content" in updates:
        row.content = updates["content"]
    if "link" in updates:
        related = dict(row.related_data or {})
        if updates["link"]:
            related["link"] = updates["link"]
        else:
            related.pop("link", None)
        row.related_data = related
    if "is_active" in updates:
        if not isinstance(updates["is_active"], bool):
            raise BroadcastValidationError("is_active", "must be a boolean")
        row.is_active = updates["is_active"]
    db.commit()
    db.refresh(row)
    logger.info("Updated system broadcast %s", broadcast_id)
    return row


def delete_system_broadcast(db: Session, broadcast_id: int) -> None:
    row = get_system_broadcast(db, broadcast_id)
    row.is_deleted = True
    row.is_active = False
    row.deleted_at = datetime.now(timezone.utc)
    db.commit()
    logger.info("Deleted system broadcast %s", broadcast_id)


def list_carousel(db: Session) -> list[dict[str, Any]]:
    """Public: the newest active system broadcasts."""
    rows = (
        _broadcasts(db)
        .filter(Notification.is_active.is_(True))
        .order_by(Notification.created_at.desc(), Notification.id.desc())
        .limit(CAROUSEL_LIMIT)
        .all()
    )
    return [broadcast_to_dict(r) for r in rows]
