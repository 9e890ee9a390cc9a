"""
@mention detection, rendering and notification.

A mention is '@' (not preceded by a word character) followed by 3-20 of [A-Za-z0-9_]
and then end of text or a boundary: whitespace, . , ! ? : ; ) (ASCII or full-width) or
'<'. '<' is included so the anchor markup from render_mentions() stays detectable.
"""
import html
import logging
import re

from sqlalchemy import func
from sqlalchemy.orm import Session

from blognotify.core.constants import SUBTYPE_MENTION, TYPE_INTERACTION, USER_STATUS_ACTIVE
from blognotify.models.notification import Notification
from blognotify.models.user import User
from blognotify.services.notification_service import NotificationEvent, create_notification

logger = logging.getLogger(__name__)

MENTION_RE = re.compile(r"(?<![A-Za-z0-9_])@([A-Za-z0-9_]{3,20})(?=[\s.,!?:;)）！？，。：；<]|$)")


def detect_mentions(text: str | None) -> list[str]:
    """Usernames mentioned in text, in order of first appearance, exact-spelling dedupe."""
    if not text:
        return []
    seen: set[str] = set()
    out: list[str] = []
    for m in MENTION_RE.finditer(text):
        name = m.group(1)
        if name not in seen:
            seen.add(name)
            out.append(name)
    return out


def render_mentions(text: str | None) -> str:
    """HTML-escape text and link every mention to the user's profile."""
    if not text:
        return ""
    parts: list[str] = []
    pos = 0
    for m in MENTION_RE.finditer(text):
        parts.append(html.escape(text[pos : m.start()]))
        name = m.group(1)
        parts.append(f'<a href="#/profile/{name}" class="mention" data-username="{name}">@{name}</a>')
        pos = m.end()
    parts.append(html.escape(text[pos:]))
    return "".join(parts)


def remove_mentions(text: str | None) -> str:
    """Strip mentions (including the '@') and collapse leftover whitespace."""
    if not text:
        return ""
    return re.sub(r"\s+", " ", MENTION_RE.sub("", text)).strip()


def is_user_mentioned(username: str, text: str | None) -> bool:
    if not username:
        return False
    wanted = username.lower()
    return any(name.lower() == wanted for name in detect_mentions(text))


def resolve_mentions(db: Session, usernames: list[str], mentioner_user_id: int) -> list[User]:
    """
    Active users matching usernames (case-insensitive), in mention order.
    Unknown names and the mentioner themselves are dropped; one entry per user.
    """
    if not usernames:
        return []
    lowered = list(dict.fromkeys(u.lower() for u in usernames))
    rows = (
        db.query(User)
        .filter(func.lower(User.username).in_(lowered), User.status == USER_STATUS_ACTIVE)
        .all()
    )
    by_name = {r.username.lower(): r for r in rows}
    out: list[User] = []
    seen_ids: set[int] = set()
    for name in lowered:
        user = by_name.get(name)
        if user is None or user.id == mentioner_user_id or user.id in seen_ids:
            continue
        seen_ids.add(user.id)
        out.append(user)
    return out


def notify_mentions(
    db: Session,
    text: str | None,
    mentioner_user_id: int,
    content_type: str,
    content_id: int,
    link: str | None = None,
    **kwargs,
) -> list[Notification]:
    """
    Detect mentions in text and notify each resolved user (interaction/mention).
    Returns the notifications actually written; users who disabled mentions are skipped.
    """
    usernames = detect_mentions(text)
    if not usernames:
        return []
    users = resolve_mentions(db, usernames, mentioner_user_id)
    if not users:
        return []
    mentioner = db.query(User).filter(User.id == mentioner_user_id).first()
    actor = mentioner.name if mentioner else "Someone"
    where = "a comment" if content_type == "comment" else f"a {content_type}"
    related = {
        "mentioner_user_id": mentioner_user_id,
        "content_type": content_type,
        "content_id": content_id,
    }
    if link:
        related["link"] = link
    created: list[Notification] = []
    for user in users:
        row = create_notification(
            db,
            NotificationEvent(
                recipient_user_id=user.id,
                type=TYPE_INTERACTION,
                subtype=SUBTYPE_MENTION,
                title=f"{actor} mentioned you in {where}",
                body=remove_mentions(text)[:200] or None,
                related_data=related,
            ),
            **kwargs,
        )
        if row is not None:
            created.append(row)
    logger.info(
        "Mentions in %s %s by user %s: %s detected, %s notified",
        content_type, content_id, mentioner_user_id, len(usernames), len(created),
    )
    return created
