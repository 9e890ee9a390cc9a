"""
Channel selection and dispatch.

Channels are a closed enum. plan_channels() decides, from the recipient's settings for
the notification type, the caller's hints and quiet hours, which channels an approved
notification goes to. dispatch() then runs one handler per channel from a lookup table;
each handler is isolated so a failure in one channel never blocks the others.

In-app is persistence only (the row already exists). Email and push are submitted as
deferred tasks and never awaited by the request path.
"""
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Iterable

from sqlalchemy.orm import Session, sessionmaker

from blognotify.models.notification import Notification
from blognotify.models.user import User
from blognotify.services.deferred import DeferredTasks
from blognotify.services.email_notify import send_notification_email
from blognotify.services.preferences import TypeSettings
from blognotify.services.push import PushResult, send_web_push
from blognotify.services.push_subscription_service import (
    active_subscriptions,
    deactivate_endpoint,
    touch_endpoint,
)

logger = logging.getLogger(__name__)


class Channel(str, Enum):
    IN_APP = "in_app"
    EMAIL = "email"
    PUSH = "push"


INTERRUPTING_CHANNELS = (Channel.EMAIL, Channel.PUSH)

# Settings flag gating each channel
_CHANNEL_FLAG: dict[Channel, str] = {
    Channel.IN_APP: "in_app",
    Channel.EMAIL: "email",
    Channel.PUSH: "push",
}


def parse_channels(values: Iterable[str]) -> frozenset[Channel]:
    """Strings -> channels; ValueError names the first unknown value."""
    out = set()
    for v in values:
        try:
            out.add(Channel(v))
        except ValueError:
            raise ValueError(f"unknown channel: {v}") from None
    return frozenset(out)


@dataclass(frozen=True)
class ChannelHints:
    """Caller-side suppression layered on top of the recipient's own preferences."""

    skip: frozenset[Channel] = field(default_factory=frozenset)

    @classmethod
    def only(cls, channels: Iterable[Channel]) -> "ChannelHints":
        allowed = set(channels)
        return cls(skip=frozenset(c for c in Channel if c not in allowed))

    def allows(self, channel: Channel) -> bool:
        return channel not in self.skip


def plan_channels(
    type_settings: TypeSettings,
    hints: ChannelHints | None = None,
    quiet: bool = False,
) -> frozenset[Channel]:
    """
    In-app follows only the type's in_app flag; caller hints and quiet hours never remove it.
    Email/push need the type's flag, realtime frequency (daily/weekly go to the digest),
    no quiet hours, and no caller hint against them.
    """
    hints = hints or ChannelHints()
    planned = {Channel.IN_APP} if type_settings.in_app else set()
    for channel in INTERRUPTING_CHANNELS:
        if not getattr(type_settings, _CHANNEL_FLAG[channel]):
            continue
        if not type_settings.realtime or quiet or not hints.allows(channel):
            continue
        planned.add(channel)
    return frozenset(planned)


# --- Deferred delivery tasks (run off the request path, own session) ---


@dataclass(frozen=True)
class DeliveryJob:
    notification_id: int
    recipient_user_id: int
    title: str
    body: str | None = None
    link: str | None = None


def deliver_email(job: DeliveryJob, to_email: str, session_factory: Callable[[], Session]) -> bool:
    sent = send_notification_email(to_email, job.title, job.body, job.link)
    if not sent:
        return False
    db = session_factory()
    try:
        db.query(Notification).filter(Notification.id == job.notification_id).update(
            {Notification.email_sent: True}, synchronize_session=False
        )
        db.commit()
    finally:
        db.close()
    return True


def deliver_push(job: DeliveryJob, endpoint: str, session_factory: Callable[[], Session]) -> PushResult:
    result = send_web_push(endpoint, urgency="normal", topic=f"n{job.notification_id}")
    if result in (PushResult.SKIPPED, PushResult.FAILED):
        return result
    db = session_factory()
    try:
        if result == PushResult.GONE:
            deactivate_endpoint(db, endpoint)
        else:
            db.query(Notification).filter(Notification.id == job.notification_id).update(
                {Notification.push_sent: True}, synchronize_session=False
            )
            touch_endpoint(db, endpoint)
    finally:
        db.close()
    return result


# --- Per-channel handlers ---


@dataclass
class DispatchContext:
    db: Session
    notification: Notification
    recipient: User | None
    deferred: DeferredTasks
    session_factory: Callable[[], Session]

    @property
    def job(self) -> DeliveryJob:
        related = self.notification.related_data or {}
        return DeliveryJob(
            notification_id=self.notification.id,
            recipient_user_id=self.notification.recipient_user_id,
            title=self.notification.title,
            body=self.notification.content,
            link=related.get("link") if isinstance(related, dict) else None,
        )


def _dispatch_in_app(ctx: DispatchContext) -> None:
    logger.debug("Notification %s stored in-app for user %s", ctx.notification.id, ctx.notification.recipient_user_id)


def _dispatch_email(ctx: DispatchContext) -> None:
    to_email = (ctx.recipient.email or "").strip() if ctx.recipient else ""
    if not to_email:
        logger.debug("User %s has no email address; skipping email", ctx.notification.recipient_user_id)
        return
    ctx.deferred.submit(deliver_email, ctx.job, to_email, ctx.session_factory)


def _dispatch_push(ctx: DispatchContext) -> None:
    subs = active_subscriptions(ctx.db, ctx.notification.recipient_user_id)
    if not subs:
        logger.debug("User %s has no active push subscriptions", ctx.notification.recipient_user_id)
        return
    job = ctx.job
    for sub in subs:
        ctx.deferred.submit(deliver_push, job, sub.endpoint, ctx.session_factory)


CHANNEL_HANDLERS: dict[Channel, Callable[[DispatchContext], None]] = {
    Channel.IN_APP: _dispatch_in_app,
    Channel.EMAIL: _dispatch_email,
    Channel.PUSH: _dispatch_push,
}


def dispatch(
    db: Session,
    notification: Notification,
    channels: Iterable[Channel],
    deferred: DeferredTasks,
    recipient: User | None = None,
) -> list[Channel]:
    """Run each planned channel's handler; returns the channels whose handler did not raise."""
    ctx = DispatchContext(
        db=db,
        notification=notification,
        recipient=recipient,
        deferred=deferred,
        session_factory=sessionmaker(bind=db.get_bind(), autoflush=False),
    )
    ok: list[Channel] = []
    for channel in sorted(channels, key=lambda c: list(Channel).index(c)):
        try:
            CHANNEL_HANDLERS[channel](ctx)
            ok.append(channel)
        except Exception as e:
            db.rollback()
            logger.warning(
                "Dispatch %s for notification %s failed: %s", channel.value, notification.id, e, exc_info=True
            )
    return ok
