"""
Event producers: turn blog activity (comment, reply, like, favorite, private message)
into notifications. Each producer drops self-notifications before touching the writer.
"""
import logging
from typing import Any

from sqlalchemy.orm import Session

from blognotify.core.constants import NOTIFICATION_EXCERPT_CHARS
from blognotify.models.notification import Notification
from blognotify.models.user import User
from blognotify.services.notification_service import (
    create_interaction_notification,
    create_private_message_notification,
)

logger = logging.getLogger(__name__)


def excerpt(text: str | None, limit: int = NOTIFICATION_EXCERPT_CHARS) -> str | None:
    if not text:
        return None
    return text[:limit] + "..." if len(text) > limit else text


def post_link(slug: str | None) -> str | None:
    return f"#/posts/{slug}" if slug else None


def _sender(db: Session, actor_user_id: int) -> tuple[str, dict[str, Any]]:
    actor = db.query(User).filter(User.id == actor_user_id).first()
    name = actor.name if actor else "Someone"
    return name, {
        "sender_id": actor_user_id,
        "sender_name": name,
        "sender_avatar": actor.avatar_url if actor else None,
    }


def _is_self(actor_user_id: int, recipient_user_id: int | None) -> bool:
    if recipient_user_id is None or recipient_user_id == actor_user_id:
        logger.debug("Skipping self/unknown-recipient notification from user %s", actor_user_id)
        return True
    return False


def notify_comment(
    db: Session,
    actor_user_id: int,
    post_author_id: int,
    post_id: int,
    post_title: str,
    post_slug: str | None,
    comment_id: int,
    content: str,
    **kwargs,
) -> Notification | None:
    """New top-level comment -> post author."""
    if _is_self(actor_user_id, post_author_id):
        return None
    name, sender = _sender(db, actor_user_id)
    return create_interaction_notification(
        db,
        post_author_id,
        "comment",
        f"{name} commented on your post \"{post_title}\"",
        excerpt(content),
        {
            "post_id": post_id,
            "post_title": post_title,
            "post_slug": post_slug,
            "comment_id": comment_id,
            "link": post_link(post_slug),
            **sender,
        },
        **kwargs,
    )


def notify_reply(
    db: Session,
    actor_user_id: int,
    parent_author_id: int,
    post_id: int,
    post_slug: str | None,
    comment_id: int,
    parent_comment_id: int,
    content: str,
    **kwargs,
) -> Notification | None:
    """Reply to a comment -> parent comment's author."""
    if _is_self(actor_user_id, parent_author_id):
        return None
    name, sender = _sender(db, actor_user_id)
    return create_interaction_notification(
        db,
        parent_author_id,
        "reply",
        f"{name} replied to your comment",
        excerpt(content),
        {
            "post_id": post_id,
            "post_slug": post_slug,
            "comment_id": comment_id,
            "parent_comment_id": parent_comment_id,
            "link": post_link(post_slug),
            **sender,
        },
        **kwargs,
    )


def notify_like(
    db: Session,
    actor_user_id: int,
    comment_author_id: int,
    post_id: int,
    post_slug: str | None,
    comment_id: int,
    comment_content: str | None,
    **kwargs,
) -> Notification | None:
    """Like on a comment -> comment author."""
    if _is_self(actor_user_id, comment_author_id):
        return None
    name, sender = _sender(db, actor_user_id)
    return create_interaction_notification(
        db,
        comment_author_id,
        "like",
        f"{name} liked your comment",
        excerpt(comment_content),
        {
            "post_id": post_id,
            "post_slug": post_slug,
            "comment_id": comment_id,
            "link": post_link(post_slug),
            **sender,
        },
        **kwargs,
    )


def notify_favorite(
    db: Session,
    actor_user_id: int,
    post_author_id: int,
    post_id: int,
    post_title: str,
    post_slug: str | None,
    **kwargs,
) -> Notification | None:
    """Post added to favorites -> post author."""
    if _is_self(actor_user_id, post_author_id):
        return None
    name, sender = _sender(db, actor_user_id)
    return create_interaction_notification(
        db,
        post_author_id,
        "favorite",
        f"{name} added your post \"{post_title}\" to favorites",
        None,
        {
            "post_id": post_id,
            "post_title": post_title,
            "post_slug": post_slug,
            "link": post_link(post_slug),
            **sender,
        },
        **kwargs,
    )


def notify_private_message(
    db: Session,
    sender_user_id: int,
    recipient_user_id: int,
    message_id: int,
    content: str,
    **kwargs,
) -> Notification | None:
    """New private message -> recipient."""
    if _is_self(sender_user_id, recipient_user_id):
        return None
    name, sender = _sender(db, sender_user_id)
    return create_private_message_notification(
        db,
        recipient_user_id,
        f"New message from {name}",
        excerpt(content),
        {"message_id": message_id, "link": f"#/messages/{sender_user_id}", **sender},
        **kwargs,
    )
