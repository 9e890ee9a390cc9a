"""Read model of blog accounts (owned by the account service).

Used for mention resolution, broadcast targeting ("all" = active users) and the
recipient's email address.
"""
from sqlalchemy import Column, DateTime, Integer, String
from sqlalchemy.sql import func

from blognotify.db.base import Base


class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, autoincrement=True)
    username = Column(String(64), nullable=False, unique=True, index=True)
    display_name = Column(String(128), nullable=True)
    email = Column(String(256), nullable=True)
    avatar_url = Column(String(512), nullable=True)
    status = Column(String(16), nullable=False, server_default="active", index=True)  # 'active' | 'suspended' | 'deleted'
    role = Column(String(16), nullable=False, server_default="user")  # 'user' | 'admin'
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    @property
    def name(self) -> str:
        return self.display_name or self.username
