"""Notification: one row per (recipient, event).

recipient_user_id: who receives; 0 marks a system broadcast (homepage carousel entry),
which is never a per-user row.
type: 'system' | 'interaction' | 'private_message'; subtype: comment, reply, like, ...
related_data: JSON deep-link context (postId, postSlug, senderId, senderName, link, ...).
is_active: carousel visibility toggle for system broadcasts.
is_deleted/deleted_at: soft delete; rows are only hard-deleted by an admin purge.
email_sent/push_sent: set by the dispatch tasks and the digest sweep.
"""
from sqlalchemy import Boolean, Column, DateTime, Index, Integer, String, Text
from sqlalchemy.sql import false, func, true

from blognotify.db.base import Base, JSONType


class Notification(Base):
    __tablename__ = "notifications"
    __table_args__ = (
        Index("ix_notifications_recipient_read", "recipient_user_id", "is_read", "is_deleted"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    recipient_user_id = Column(Integer, nullable=False, index=True)
    type = Column(String(32), nullable=False, index=True)
    subtype = Column(String(32), nullable=True)
    title = Column(String(255), nullable=False)
    content = Column(Text, nullable=True)
    related_data = Column(JSONType, nullable=True)
    is_read = Column(Boolean, nullable=False, default=False, server_default=false())
    read_at = Column(DateTime(timezone=True), nullable=True)
    is_active = Column(Boolean, nullable=False, default=True, server_default=true())
    is_deleted = Column(Boolean, nullable=False, default=False, server_default=false())
    deleted_at = Column(DateTime(timezone=True), nullable=True)
    email_sent = Column(Boolean, nullable=False, default=False, server_default=false())
    push_sent = Column(Boolean, nullable=False, default=False, server_default=false())
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False, index=True)
