"""
Digest sweep for types whose frequency is daily or weekly.

Realtime email/push is suppressed for those types (see dispatch.plan_channels); the
sweep gathers what was written since the user's previous digest and sends one email
and one push per user. In-app rows are never touched here.

Slots are computed in the user's do-not-disturb timezone:
  daily:  every day at digest_time.daily
  weekly: digest_time.weekly_day (0 = Sunday) at digest_time.weekly_time
A user is due when the most recent slot is later than their last digest of that cadence.
"""
import logging
from datetime import datetime, time, timedelta, timezone
from typing import Any, Callable

from sqlalchemy.orm import Session, sessionmaker

from blognotify.config import settings
from blognotify.core.constants import DIGEST_CADENCES, NOTIFICATION_TYPES
from blognotify.models.notification import Notification
from blognotify.models.notification_settings import NotificationSettings
from blognotify.models.user import User
from blognotify.services.deferred import DeferredTasks, get_deferred
from blognotify.services.email_notify import send_digest_email
from blognotify.services.preferences import DigestTime, EffectiveSettings, mark_digest_sent, resolve
from blognotify.services.push import PushResult, send_web_push
from blognotify.services.push_subscription_service import (
    active_subscriptions,
    deactivate_endpoint,
    touch_endpoint,
)
from blognotify.services.quiet_hours import get_zone, is_quiet_now, parse_time

logger = logging.getLogger(__name__)

_PERIOD = {"daily": timedelta(days=1), "weekly": timedelta(days=7)}


def _utc(dt: datetime | None) -> datetime | None:
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def latest_slot(cadence: str, digest_time: DigestTime, tz: str | None, now: datetime) -> datetime:
    """Most recent scheduled digest time <= now, in UTC."""
    zone = get_zone(tz)
    local = _utc(now).astimezone(zone)
    if cadence == "daily":
        hour, minute = parse_time(digest_time.daily) or (9, 0)
        slot = datetime.combine(local.date(), time(hour, minute), tzinfo=zone)
        if slot > local:
            slot = datetime.combine(local.date() - timedelta(days=1), time(hour, minute), tzinfo=zone)
    else:
        hour, minute = parse_time(digest_time.weekly_time) or (9, 0)
        # Python weekday(): Monday = 0; stored weekday: Sunday = 0
        today = (local.weekday() + 1) % 7
        days_back = (today - digest_time.weekly_day) % 7
        slot = datetime.combine(local.date() - timedelta(days=days_back), time(hour, minute), tzinfo=zone)
        if slot > local:
            slot = datetime.combine(slot.date() - timedelta(days=7), time(hour, minute), tzinfo=zone)
    return slot.astimezone(timezone.utc)


def digest_due(
    cadence: str,
    digest_time: DigestTime,
    tz: str | None,
    now: datetime,
    last_run: datetime | None,
) -> datetime | None:
    """
    Start of the window to digest, or None when the user already got this slot's digest.
    First run looks back one period from the slot.
    """
    if cadence not in DIGEST_CADENCES:
        raise ValueError(f"unknown digest cadence: {cadence}")
    slot = latest_slot(cadence, digest_time, tz, now)
    last_run = _utc(last_run)
    if last_run is not None and last_run >= slot:
        return None
    return last_run or slot - _PERIOD[cadence]


def _digest_item(n: Notification) -> dict[str, Any]:
    related = n.related_data or {}
    return {"id": n.id, "title": n.title, "content": n.content, "link": related.get("link")}


def deliver_digest_email(
    to_email: str,
    name: str,
    items: list[dict[str, Any]],
    cadence: str,
    session_factory: Callable[[], Session],
) -> bool:
    sent = send_digest_email(to_email, name, items, cadence)
    if not sent:
        return False
    db = session_factory()
    try:
        db.query(Notification).filter(Notification.id.in_([i["id"] for i in items])).update(
            {Notification.email_sent: True}, synchronize_session=False
        )
        db.commit()
    finally:
        db.close()
    return True


def deliver_digest_push(
    notification_ids: list[int],
    endpoint: str,
    cadence: str,
    session_factory: Callable[[], Session],
) -> PushResult:
    result = send_web_push(endpoint, urgency="low", topic=f"digest-{cadence}")
    if result in (PushResult.SKIPPED, PushResult.FAILED):
        return result
    db = session_factory()
    try:
        if result == PushResult.GONE:
            deactivate_endpoint(db, endpoint)
        else:
            db.query(Notification).filter(Notification.id.in_(notification_ids)).update(
                {Notification.push_sent: True}, synchronize_session=False
            )
            touch_endpoint(db, endpoint)
    finally:
        db.close()
    return result


def _digest_user(
    db: Session,
    effective: EffectiveSettings,
    cadence: str,
    types: list[str],
    start: datetime,
    now: datetime,
    deferred: DeferredTasks,
    session_factory: Callable[[], Session],
) -> int:
    """Queue one user's digest; returns how many notifications it covers."""
    rows = (
        db.query(Notification)
        .filter(
            Notification.recipient_user_id == effective.user_id,
            Notification.type.in_(types),
            Notification.is_deleted.is_(False),
            Notification.created_at > start,
            Notification.created_at <= now,
        )
        .order_by(Notification.created_at.asc(), Notification.id.asc())
        .all()
    )
    email_items = [_digest_item(n) for n in rows if effective.for_type(n.type).email]
    push_ids = [n.id for n in rows if effective.for_type(n.type).push]
    if email_items:
        user = db.query(User).filter(User.id == effective.user_id).first()
        to_email = (user.email or "").strip() if user else ""
        if to_email:
            deferred.submit(deliver_digest_email, to_email, user.name, email_items, cadence, session_factory)
    if push_ids:
        for sub in active_subscriptions(db, effective.user_id):
            deferred.submit(deliver_digest_push, push_ids, sub.endpoint, cadence, session_factory)
    return len(rows)


def run_digest(
    db: Session,
    cadence: str,
    now: datetime | None = None,
    deferred: DeferredTasks | None = None,
) -> dict[str, int]:
    """
    One sweep of a cadence over every user with at least one type on that cadence.
    Users inside quiet hours are left for a later tick. Returns {users, notifications, failed}.
    """
    if cadence not in DIGEST_CADENCES:
        raise ValueError(f"unknown digest cadence: {cadence}")
    now = _utc(now) or datetime.now(timezone.utc)
    deferred = deferred or get_deferred()
    session_factory = sessionmaker(bind=db.get_bind(), autoflush=False)
    users = notifications = failed = 0

    for row in db.query(NotificationSettings).order_by(NotificationSettings.user_id.asc()).all():
        effective = resolve(row)
        types = [t for t in NOTIFICATION_TYPES if effective.for_type(t).frequency == cadence]
        if not types:
            continue
        last_run = effective.last_daily_digest_at if cadence == "daily" else effective.last_weekly_digest_at
        start = digest_due(cadence, effective.digest_time, effective.do_not_disturb.timezone, now, last_run)
        if start is None:
            continue
        if is_quiet_now(effective.do_not_disturb, now, settings.zero_length_quiet):
            logger.debug("User %s in quiet hours; %s digest postponed", effective.user_id, cadence)
            continue
        try:
            count = _digest_user(db, effective, cadence, types, start, now, deferred, session_factory)
            mark_digest_sent(db, effective.user_id, cadence, now)
        except Exception as e:
            db.rollback()
            failed += 1
            logger.warning("%s digest for user %s failed: %s", cadence, effective.user_id, e, exc_info=True)
            continue
        if count:
            users += 1
            notifications += count

    logger.info("%s digest sweep: %s users, %s notifications, %s failed", cadence, users, notifications, failed)
    return {"users": users, "notifications": notifications, "failed": failed}
