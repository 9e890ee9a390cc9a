"""Per-user notification settings, created lazily with defaults on first read/write.

Every group is a JSON document so partial updates merge per group; missing keys fall
back to defaults at read time (see services.preferences.resolve).
"""
from sqlalchemy import Column, DateTime, Integer
from sqlalchemy.sql import func

from blognotify.db.base import Base, JSONType


class NotificationSettings(Base):
    __tablename__ = "notification_settings"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, nullable=False, unique=True, index=True)
    system = Column(JSONType, nullable=True)  # {in_app, email, push, frequency}
    interaction = Column(JSONType, nullable=True)  # {in_app, email, push, frequency, subtypes: {...}}
    private_message = Column(JSONType, nullable=True)
    do_not_disturb = Column(JSONType, nullable=True)  # {enabled, start, end, timezone}
    digest_time = Column(JSONType, nullable=True)  # {daily, weekly_day, weekly_time}
    last_daily_digest_at = Column(DateTime(timezone=True), nullable=True)
    last_weekly_digest_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)
