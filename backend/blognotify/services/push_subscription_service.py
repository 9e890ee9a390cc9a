"""
Web Push subscriptions: upsert by endpoint, soft-deactivate, per-user status.
"""
import logging
from datetime import datetime, timezone

from sqlalchemy.orm import Session

from blognotify.core.constants import ENDPOINT_PREVIEW_CHARS
from blognotify.core.errors import NotFoundError
from blognotify.models.push_subscription import PushSubscription

logger = logging.getLogger(__name__)


def _preview(endpoint: str) -> str:
    return endpoint[:ENDPOINT_PREVIEW_CHARS] + "..." if len(endpoint) > ENDPOINT_PREVIEW_CHARS else endpoint


def subscribe(
    db: Session,
    user_id: int,
    endpoint: str,
    p256dh: str,
    auth: str,
    user_agent: str | None = None,
) -> PushSubscription:
    """
    Register a browser endpoint for user_id. Idempotent: the same endpoint is updated in
    place, re-activated and moved to user_id if another account owned it.
    """
    endpoint = endpoint.strip()
    now = datetime.now(timezone.utc)
    row = db.query(PushSubscription).filter(PushSubscription.endpoint == endpoint).first()
    if row:
        if row.user_id != user_id:
            logger.info("Push endpoint %s moved from user %s to user %s", _preview(endpoint), row.user_id, user_id)
        row.user_id = user_id
        row.p256dh = p256dh
        row.auth = auth
        row.user_agent = user_agent
        row.is_active = True
        row.last_used_at = now
    else:
        row = PushSubscription(
            user_id=user_id,
            endpoint=endpoint,
            p256dh=p256dh,
            auth=auth,
            user_agent=user_agent,
            is_active=True,
            last_used_at=now,
        )
        db.add(row)
        logger.info("Created push subscription for user %s: %s", user_id, _preview(endpoint))
    db.commit()
    db.refresh(row)
    return row


def unsubscribe(db: Session, user_id: int, endpoint: str) -> None:
    """Soft-deactivate the caller's subscription. NotFoundError if they don't own an active one."""
    updated = (
        db.query(PushSubscription)
        .filter(
            PushSubscription.endpoint == endpoint.strip(),
            PushSubscription.user_id == user_id,
            PushSubscription.is_active.is_(True),
        )
        .update({PushSubscription.is_active: False}, synchronize_session=False)
    )
    db.commit()
    if not updated:
        raise NotFoundError("push subscription", _preview(endpoint))
    logger.info("Unsubscribed push endpoint for user %s: %s", user_id, _preview(endpoint))


def active_subscriptions(db: Session, user_id: int) -> list[PushSubscription]:
    return (
        db.query(PushSubscription)
        .filter(PushSubscription.user_id == user_id, PushSubscription.is_active.is_(True))
        .order_by(PushSubscription.created_at.asc(), PushSubscription.id.asc())
        .all()
    )


def get_status(db: Session, user_id: int) -> dict:
    rows = active_subscriptions(db, user_id)
    return {
        "is_subscribed": bool(rows),
        "subscriptions": [
            {
                "id": r.id,
                "endpoint": _preview(r.endpoint),
                "user_agent": r.user_agent,
                "created_at": r.created_at.isoformat() if r.created_at else None,
                "last_used_at": r.last_used_at.isoformat() if r.last_used_at else None,
            }
            for r in rows
        ],
    }


def deactivate_endpoint(db: Session, endpoint: str) -> bool:
    """Mark an endpoint inactive regardless of owner (push service reported it gone)."""
    updated = (
        db.query(PushSubscription)
        .filter(PushSubscription.endpoint == endpoint, PushSubscription.is_active.is_(True))
        .update({PushSubscription.is_active: False}, synchronize_session=False)
    )
    db.commit()
    return bool(updated)


def touch_endpoint(db: Session, endpoint: str) -> None:
    db.query(PushSubscription).filter(PushSubscription.endpoint == endpoint).update(
        {PushSubscription.last_used_at: datetime.now(timezone.utc)}, synchronize_session=False
    )
    db.commit()
